"""
Natours Backend — Pipeline Request
====================================

What:  The request object that travels through the pipeline stages.
How:   Built once from the Starlette request by `from_starlette()`. Stages
       read and replace its fields in order; the runner freezes it before
       the router hands it to a handler group.

Body reading is lazy: `body_stream` is consumed by the BodyParser stage,
after the rate limiter has admitted the request.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from starlette.requests import Request

from natours.exceptions import InternalError
from natours.pipeline.query import parse_query_items

BodyStream = Callable[[], AsyncIterator[bytes]]

FROZEN_FIELDS = (
    "headers",
    "cookies",
    "query",
    "body",
    "params",
    "response_headers",
    "polluted_query",
)


def path_has_prefix(path: str, prefix: str) -> bool:
    """Segment-aware prefix test: /api matches /api and /api/x, not /apix."""
    if prefix in ("", "/"):
        return True
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


class FrozenDict(dict):
    """
    Read-only dict handed to handler groups.

    Still a dict for isinstance checks and JSON serialization; every
    mutating method raises. copy.copy/deepcopy return a plain, mutable dict.
    """

    def _readonly(self, *args: Any, **kwargs: Any) -> None:
        raise InternalError(
            "Request data modified after the pipeline completed",
            context={"container": "dict"},
        )

    __setitem__ = _readonly
    __delitem__ = _readonly
    __ior__ = _readonly
    clear = _readonly
    pop = _readonly
    popitem = _readonly
    setdefault = _readonly
    update = _readonly

    def __reduce__(self):
        return dict, (dict(self),)


def deep_freeze(value: Any) -> Any:
    """dicts become FrozenDicts and lists become tuples, recursively."""
    if isinstance(value, dict):
        return FrozenDict((key, deep_freeze(item)) for key, item in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(deep_freeze(item) for item in value)
    return value


@dataclass
class PipelineRequest:
    """
    Mutable-until-frozen request record.

    Attributes:
        method:           Uppercase HTTP verb
        path:             URL path without query string
        original_url:     Path plus query string, as requested
        client_id:        Rate-limit key derived from the source address
        headers:          Lowercased header names
        query:            {key: str | [str, ...] | {nested}}
        body:             Parsed body ({} until BodyParser runs)
        params:           Route parameters
        request_time:     ISO-8601 timestamp set by RequestTimeStamper
        response_headers: Headers stages want on the final response
        polluted_query:   Values collapsed away by ParameterNormalizer
    """

    method: str
    path: str
    original_url: str = ""
    client_id: str = "unknown"
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    body: Any = field(default_factory=dict)
    raw_body: Optional[bytes] = None
    body_stream: Optional[BodyStream] = None
    is_form_body: bool = False
    params: Dict[str, Any] = field(default_factory=dict)
    request_time: Optional[str] = None
    response_headers: Dict[str, str] = field(default_factory=dict)
    polluted_query: Dict[str, Any] = field(default_factory=dict)
    frozen: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if not self.original_url:
            self.original_url = self.path

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("frozen", False):
            raise InternalError(
                f"Request attribute '{name}' modified after the pipeline completed",
                context={"attribute": name},
            )
        super().__setattr__(name, value)

    def freeze(self) -> None:
        """
        Blocks further attribute assignment and makes every container
        read-only, nested ones included. Called once by the runner.
        """
        for name in FROZEN_FIELDS:
            super().__setattr__(name, deep_freeze(getattr(self, name)))
        super().__setattr__("frozen", True)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";")[0].strip().lower()

    @property
    def content_length(self) -> Optional[int]:
        value = self.headers.get("content-length")
        if value is None or not value.strip().isdigit():
            return None
        return int(value)

    @classmethod
    def from_starlette(cls, request: Request) -> "PipelineRequest":
        """
        Snapshot the parts of a Starlette request the pipeline needs.

        The body is not read here; `body_stream` defers to request.stream().
        """
        items: List[Tuple[str, str]] = request.query_params.multi_items()
        client_id = request.client.host if request.client else "unknown"
        query_string = request.url.query
        original_url = request.url.path + (f"?{query_string}" if query_string else "")
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            original_url=original_url,
            client_id=client_id or "unknown",
            headers={key.lower(): value for key, value in request.headers.items()},
            cookies=dict(request.cookies),
            query=parse_query_items(items),
            body_stream=request.stream,
        )
