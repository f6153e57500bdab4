"""
Natours Backend — Fault Hierarchy
===================================

What:  Defines the faults raised by pipeline stages and handler groups.
How:   Each fault carries a message, an HTTP status code, an operational flag,
       an optional underlying cause and a context dict. The ErrorClassifier
       (pipeline/classifier.py) is the single consumer that turns a fault
       into a caller-visible response.
Who:   Raised by the limiter, body parser, sanitizer, router and handler groups.

Operational vs non-operational:
    Operational faults are expected failures (bad input, not found, rate
    limited). Their message is safe to show to the caller.
    Non-operational faults are defects. In production mode the caller only
    ever sees "Something went very wrong!" with status 500.

Exception Hierarchy:
    NatoursError (base, operational)
    ├── AdmissionDeniedError     → 429 Too Many Requests
    ├── PayloadRejectedError     → 400 / 413 (non-operational for structural defects)
    ├── RouteNotFoundError       → 404 Not Found
    ├── MethodNotAllowedError    → 405 Method Not Allowed
    ├── ValidationFailedError    → 400 Bad Request
    ├── ConflictDetectedError    → 400 Bad Request (uniqueness violation)
    ├── UnauthorizedError        → 401 Unauthorized
    ├── ForbiddenError           → 403 Forbidden
    └── InternalError            → 500 (never operational)
"""

from enum import Enum
from typing import Any, Dict, Optional


class FaultKind(str, Enum):
    """Tag identifying which branch of the taxonomy a fault belongs to."""

    ADMISSION_DENIED = "admission_denied"
    PAYLOAD_REJECTED = "payload_rejected"
    ROUTE_NOT_FOUND = "route_not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    VALIDATION_FAILED = "validation_failed"
    CONFLICT_DETECTED = "conflict_detected"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


class NatoursError(Exception):
    """
    Base fault for all Natours application errors.

    Attributes:
        message:        Caller-facing description (shown when operational)
        status_code:    HTTP status code of the response
        is_operational: True when the message is safe to show in production
        cause:          Underlying exception, if this fault wraps one
        context:        Debug info (logged, shown only in development mode)
        headers:        Extra response headers (e.g. Retry-After)
    """

    kind: FaultKind = FaultKind.INTERNAL
    default_status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        is_operational: bool = True,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message if message is not None else self.default_message
        self.status_code = status_code if status_code is not None else self.default_status_code
        self.is_operational = is_operational
        self.cause = cause
        self.context = context or {}
        self.headers = headers or {}
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def status(self) -> str:
        """Envelope status: "fail" for client errors, "error" for everything else."""
        return "fail" if 400 <= self.status_code < 500 else "error"


class AdmissionDeniedError(NatoursError):
    """
    Raised by the RequestLimiter when a client exceeds its window quota.

    HTTP:    429 Too Many Requests, with a Retry-After header.
    """

    kind = FaultKind.ADMISSION_DENIED
    default_status_code = 429
    default_message = "Too many requests from this IP, please try again in an hour!"

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: int = 0,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(
            message=message,
            context=ctx,
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


class PayloadRejectedError(NatoursError):
    """
    Raised when a request body is oversized, unparsable or structurally invalid.

    Oversized → 413, malformed JSON → 400 (both operational).
    Cyclic or non-representable structures reaching the sanitizer are
    defects and are raised with is_operational=False.
    """

    kind = FaultKind.PAYLOAD_REJECTED
    default_status_code = 400
    default_message = "Invalid request payload"


class RouteNotFoundError(NatoursError):
    """Raised by the router catch-all (and by handler groups for unknown sub-paths)."""

    kind = FaultKind.ROUTE_NOT_FOUND
    default_status_code = 404

    def __init__(self, path: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["path"] = path
        super().__init__(message=f"Can't find {path} on this server!", context=ctx)
        self.path = path


class MethodNotAllowedError(NatoursError):
    kind = FaultKind.METHOD_NOT_ALLOWED
    default_status_code = 405

    def __init__(self, method: str, path: str):
        super().__init__(
            message=f"Method {method} is not allowed on {path}",
            context={"method": method, "path": path},
        )


class ValidationFailedError(NatoursError):
    """
    Raised when client input fails validation.

    HTTP:    400 Bad Request
    """

    kind = FaultKind.VALIDATION_FAILED
    default_status_code = 400
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, cause=cause, context=ctx)
        self.field = field


class ConflictDetectedError(NatoursError):
    """Uniqueness violation reported by the persistence collaborator."""

    kind = FaultKind.CONFLICT_DETECTED
    default_status_code = 400
    default_message = "Duplicate field value. Please use another value!"


class UnauthorizedError(NatoursError):
    kind = FaultKind.UNAUTHORIZED
    default_status_code = 401
    default_message = "You are not logged in! Please log in to get access."


class ForbiddenError(NatoursError):
    kind = FaultKind.FORBIDDEN
    default_status_code = 403
    default_message = "You do not have permission to perform this action"


class InternalError(NatoursError):
    """
    Catch-all for unexpected defects.

    Always non-operational: in production mode its message never reaches the
    caller. The classifier wraps unrecognized exceptions in this class,
    keeping the original as `cause`.
    """

    kind = FaultKind.INTERNAL
    default_status_code = 500
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            is_operational=False,
            cause=cause,
            context=context,
        )
