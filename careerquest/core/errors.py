"""
Service errors.

Every engine raises ServiceError tagged with an ErrorKind. The HTTP layer turns
the kind into a status code in exactly one place (register_error_handlers).
"""
import enum
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_STATE = "INVALID_STATE"
    EXPIRED = "EXPIRED"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INSUFFICIENT_CREDITS: 400,
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.EXPIRED: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    def __init__(self, kind: ErrorKind, message: str, **details):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    def __repr__(self):
        return f"ServiceError({self.kind.value}, {self.message!r})"


class NotFound(ServiceError):
    def __init__(self, message: str = "not found", **details):
        super().__init__(ErrorKind.NOT_FOUND, message, **details)


class Forbidden(ServiceError):
    def __init__(self, message: str = "forbidden", **details):
        super().__init__(ErrorKind.FORBIDDEN, message, **details)


class InsufficientCredits(ServiceError):
    def __init__(self, required: int, available: int):
        super().__init__(
            ErrorKind.INSUFFICIENT_CREDITS,
            f"insufficient credits: need {required}, have {available}",
            required=required,
            available=available,
        )
        self.required = required
        self.available = available


class InvalidArgument(ServiceError):
    def __init__(self, message: str, **details):
        super().__init__(ErrorKind.INVALID_ARGUMENT, message, **details)


class InvalidState(ServiceError):
    def __init__(self, message: str, **details):
        super().__init__(ErrorKind.INVALID_STATE, message, **details)


class Expired(ServiceError):
    def __init__(self, message: str = "expired", **details):
        super().__init__(ErrorKind.EXPIRED, message, **details)


class Conflict(ServiceError):
    def __init__(self, message: str = "concurrent update conflict", **details):
        super().__init__(ErrorKind.CONFLICT, message, **details)


def _error_body(kind: ErrorKind, message: str, details: dict) -> dict:
    return {
        "success": False,
        "error": {"code": kind.value, "message": message, **details},
    }


def register_error_handlers(app: FastAPI) -> None:
    """Map service errors to HTTP responses. INTERNAL never leaks its message."""

    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        status = STATUS_BY_KIND.get(exc.kind, 500)
        if exc.kind == ErrorKind.INTERNAL:
            logger.error(f"[ERROR] path={request.url.path} kind={exc.kind.value} message={exc.message}")
            return JSONResponse(status_code=status, content=_error_body(exc.kind, "internal server error", {}))
        logger.warning(f"[ERROR] path={request.url.path} kind={exc.kind.value} message={exc.message}")
        return JSONResponse(status_code=status, content=_error_body(exc.kind, exc.message, exc.details))

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        logger.warning(f"[ERROR] path={request.url.path} kind=CONFLICT integrity={type(exc.orig).__name__}")
        return JSONResponse(
            status_code=STATUS_BY_KIND[ErrorKind.CONFLICT],
            content=_error_body(ErrorKind.CONFLICT, "duplicate or conflicting record", {}),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception(f"[ERROR] path={request.url.path} unhandled={type(exc).__name__}")
        return JSONResponse(
            status_code=500,
            content=_error_body(ErrorKind.INTERNAL, "internal server error", {}),
        )
