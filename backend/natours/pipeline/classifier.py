"""
Natours Backend — Error Classifier
====================================

What:  The single place that turns a raised exception into a response.
How:   1. classify(): keep NatoursError faults as they are; convert known
          collaborator failures (pydantic validation, SQLAlchemy uniqueness
          violations) into operational faults; wrap everything else in a
          non-operational InternalError
       2. respond(): shape the response according to the runtime mode
Who:   Called by the pipeline runner for every stage and handler failure,
       and by the FastAPI exception handlers as a last resort.

Modes:
    development  status, message, full fault detail (cause chain) and stack,
                 for operational and non-operational faults alike
    production   operational     → status + message
                 non-operational → logged server-side with traceback;
                                   caller sees "Something went very wrong!" / 500

Known patterns:
    ┌────────────────────────────────────┬───────────────────────────────────────┐
    │ pydantic ValidationError (one      │ "Invalid <field>: <value>."  400      │
    │ identifier/number parse failure)   │                                       │
    │ pydantic ValidationError (other)   │ "Invalid input data. <msg>. <msg>"    │
    │ sqlalchemy IntegrityError (unique) │ "Duplicate field value: <v>. ..."     │
    └────────────────────────────────────┴───────────────────────────────────────┘
"""

import logging
import re
import traceback
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from natours.config import VALID_MODES
from natours.exceptions import (
    ConflictDetectedError,
    InternalError,
    NatoursError,
    ValidationFailedError,
)
from natours.middleware.request_id import request_id_var
from natours.pipeline.request import PipelineRequest
from natours.pipeline.response import PipelineResponse
from natours.schemas.envelope import CauseDetail, FaultDetail, ResponseEnvelope

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Something went very wrong!"

# pydantic error types meaning "this value is not a valid identifier/number"
CAST_ERROR_TYPES = {
    "uuid_parsing",
    "uuid_type",
    "int_parsing",
    "int_type",
    "int_from_float",
    "float_parsing",
    "float_type",
    "bool_parsing",
    "date_parsing",
    "datetime_parsing",
}

_DUPLICATE_MARKERS = re.compile(r"duplicate key|unique constraint|unique violation", re.IGNORECASE)
_POSTGRES_DUPLICATE = re.compile(r"Key \((?P<field>[^)]+)\)=\((?P<value>.*?)\) already exists")
_SQLITE_DUPLICATE = re.compile(r"UNIQUE constraint failed: (?P<field>[\w.]+)")


def _field_name(location: Any) -> str:
    parts = [str(part) for part in location or ()]
    return ".".join(parts) or "value"


def classify_validation_error(exc: BaseException) -> Optional[NatoursError]:
    """Identifier casts and schema validation failures from pydantic models."""
    if not isinstance(exc, PydanticValidationError):
        return None

    errors = exc.errors()
    if len(errors) == 1 and errors[0]["type"] in CAST_ERROR_TYPES:
        error = errors[0]
        field = _field_name(error.get("loc"))
        return ValidationFailedError(
            message=f"Invalid {field}: {error.get('input')}.",
            field=field,
            cause=exc,
        )

    messages = [f"{_field_name(error.get('loc'))}: {error.get('msg')}" for error in errors]
    return ValidationFailedError(
        message="Invalid input data. " + ". ".join(messages),
        cause=exc,
        context={"error_count": len(errors)},
    )


def classify_integrity_error(exc: BaseException) -> Optional[NatoursError]:
    """Uniqueness violations reported by the database driver."""
    if not isinstance(exc, IntegrityError):
        return None

    text = str(exc.orig) if exc.orig is not None else str(exc)
    if not _DUPLICATE_MARKERS.search(text):
        return None

    postgres = _POSTGRES_DUPLICATE.search(text)
    if postgres:
        return ConflictDetectedError(
            message=f"Duplicate field value: {postgres.group('value')}. Please use another value!",
            cause=exc,
            context={"field": postgres.group("field")},
        )

    sqlite = _SQLITE_DUPLICATE.search(text)
    context = {"field": sqlite.group("field")} if sqlite else {}
    return ConflictDetectedError(cause=exc, context=context)


Pattern = Callable[[BaseException], Optional[NatoursError]]

DEFAULT_PATTERNS: List[Pattern] = [
    classify_validation_error,
    classify_integrity_error,
]


def _json_safe(context: Dict[str, Any]) -> Dict[str, Any]:
    safe = {}
    for key, value in context.items():
        if isinstance(value, (str, int, float, bool, type(None))):
            safe[key] = value
        else:
            safe[key] = repr(value)
    return safe


def cause_chain(fault: BaseException) -> List[BaseException]:
    """Every exception underneath `fault`, nearest first."""
    chain: List[BaseException] = []
    seen = {id(fault)}
    current: Optional[BaseException] = fault
    while current is not None:
        if isinstance(current, NatoursError) and current.cause is not None:
            nxt: Optional[BaseException] = current.cause
        else:
            nxt = current.__cause__
        if nxt is None or id(nxt) in seen:
            break
        seen.add(id(nxt))
        chain.append(nxt)
        current = nxt
    return chain


class ErrorClassifier:
    """Fault → response. The only component allowed to write an error body."""

    def __init__(self, mode: str = "production", patterns: Optional[List[Pattern]] = None):
        if mode not in VALID_MODES:
            raise ValueError(f"Invalid mode '{mode}'. Must be one of: {sorted(VALID_MODES)}")
        self.mode = mode
        self.patterns = list(patterns) if patterns is not None else list(DEFAULT_PATTERNS)

    @property
    def is_development(self) -> bool:
        return self.mode == "development"

    def classify(self, exc: BaseException) -> NatoursError:
        if isinstance(exc, NatoursError):
            return exc
        for pattern in self.patterns:
            fault = pattern(exc)
            if fault is not None:
                return fault
        return InternalError(message=str(exc) or type(exc).__name__, cause=exc)

    def _log(self, fault: NatoursError, exc: BaseException, request: Optional[PipelineRequest]) -> None:
        rid = request_id_var.get("")
        where = f"{request.method} {request.original_url}" if request is not None else "-"
        if fault.is_operational:
            logger.warning(
                "[%s] %s %d %s: %s", rid, where, fault.status_code, fault.kind.value, fault.message
            )
            return
        logger.error(
            "[%s] %s unexpected error: %s | Context: %s",
            rid,
            where,
            fault.message,
            fault.context,
            exc_info=(type(exc), exc, exc.__traceback__),
        )

    def _detail(self, fault: NatoursError) -> FaultDetail:
        return FaultDetail(
            kind=fault.kind.value,
            status_code=fault.status_code,
            is_operational=fault.is_operational,
            message=fault.message,
            context=_json_safe(fault.context),
            causes=[
                CauseDetail(type=type(cause).__name__, message=str(cause))
                for cause in cause_chain(fault)
            ],
        )

    def respond(
        self, exc: BaseException, request: Optional[PipelineRequest] = None
    ) -> PipelineResponse:
        """Classify `exc` and build the caller-visible response."""
        fault = self.classify(exc)
        self._log(fault, exc, request)

        headers: Dict[str, str] = dict(request.response_headers) if request is not None else {}

        if self.is_development:
            headers.update(fault.headers)
            envelope = ResponseEnvelope(
                status=fault.status,
                message=fault.message,
                error=self._detail(fault),
                stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            )
            return PipelineResponse(fault.status_code, envelope.to_content(), headers)

        if fault.is_operational:
            headers.update(fault.headers)
            envelope = ResponseEnvelope(status=fault.status, message=fault.message)
            return PipelineResponse(fault.status_code, envelope.to_content(), headers)

        envelope = ResponseEnvelope(status="error", message=GENERIC_MESSAGE)
        return PipelineResponse(500, envelope.to_content(), headers)
