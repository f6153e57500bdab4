"""
Natours Backend — Body Parser Stage
=====================================

What:  Reads the request body under a hard byte limit and parses it.
How:   1. Reject early when Content-Length already exceeds the limit
       2. Stream the body, aborting as soon as the running total crosses it
       3. Parse JSON or urlencoded content into `request.body`
When:  Right after the rate limiter, before any sanitization.

Content types:
    application/json                   → json.loads (empty body → {})
    application/x-www-form-urlencoded  → bracket-aware form parsing
    anything else                      → body stays {}, raw bytes kept
"""

import json
import logging
from typing import Any

from natours.exceptions import PayloadRejectedError
from natours.pipeline.query import parse_query_string
from natours.pipeline.request import PipelineRequest

logger = logging.getLogger(__name__)

JSON_TYPES = {"application/json"}
FORM_TYPES = {"application/x-www-form-urlencoded"}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Unsupported JSON constant: {name}")


class BodyParser:
    """Pipeline stage: size-limited body reading and parsing."""

    name = "body_parser"

    def __init__(self, limit_bytes: int = 10 * 1024):
        self.limit_bytes = limit_bytes

    def _too_large(self, size: int) -> PayloadRejectedError:
        return PayloadRejectedError(
            message=f"Request body exceeds the {self.limit_bytes} byte limit",
            status_code=413,
            context={"limit_bytes": self.limit_bytes, "received_bytes": size},
        )

    async def read(self, request: PipelineRequest) -> bytes:
        """Return the raw body, raising 413 once more than limit_bytes arrive."""
        declared = request.content_length
        if declared is not None and declared > self.limit_bytes:
            raise self._too_large(declared)

        if request.raw_body is not None:
            if len(request.raw_body) > self.limit_bytes:
                raise self._too_large(len(request.raw_body))
            return request.raw_body

        if request.body_stream is None:
            return b""

        chunks = []
        received = 0
        async for chunk in request.body_stream():
            received += len(chunk)
            if received > self.limit_bytes:
                raise self._too_large(received)
            chunks.append(chunk)
        return b"".join(chunks)

    def parse(self, request: PipelineRequest, raw: bytes) -> Any:
        content_type = request.content_type
        if content_type in JSON_TYPES:
            if not raw.strip():
                return {}
            try:
                return json.loads(raw, parse_constant=_reject_constant)
            except (ValueError, RecursionError) as exc:
                raise PayloadRejectedError(
                    message="Invalid JSON payload",
                    status_code=400,
                    cause=exc,
                ) from exc

        if content_type in FORM_TYPES:
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise PayloadRejectedError(
                    message="Form body must be UTF-8 encoded",
                    status_code=400,
                    cause=exc,
                ) from exc
            return parse_query_string(text)

        return {}

    async def __call__(self, request: PipelineRequest) -> PipelineRequest:
        raw = await self.read(request)
        request.raw_body = raw
        request.body = self.parse(request, raw)
        request.is_form_body = request.content_type in FORM_TYPES
        if raw:
            logger.debug("Parsed %d byte %s body", len(raw), request.content_type or "untyped")
        return request
