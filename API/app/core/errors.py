import logging
import uuid

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Base class for failures the engine reports to its caller."""

    status_code = 500
    code = "engine_error"

    def __init__(self, message: str, *, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class StoreUnavailableError(EngineError):
    """Transient read/write/subscribe failure. The caller decides whether to retry."""

    status_code = 503
    code = "store_unavailable"


class ConflictError(EngineError):
    """A conditional write lost against a concurrent writer. Retry with freshly-read state."""

    status_code = 409
    code = "write_conflict"


class NotFoundError(EngineError):
    status_code = 404
    code = "not_found"


class TopicLockedError(EngineError):
    status_code = 403
    code = "topic_locked"


class AttemptClosedError(EngineError):
    status_code = 409
    code = "attempt_closed"


class DeadlineTokenError(EngineError):
    status_code = 401
    code = "invalid_deadline_token"


class QuarterKeyError(EngineError):
    status_code = 422
    code = "invalid_quarter"


class PermissionDeniedError(EngineError):
    status_code = 403
    code = "permission_denied"


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details=None,
) -> JSONResponse:
    payload = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=payload)


async def engine_exception_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.warning("Engine failure | request_id=%s | %s", get_request_id(request), exc.message)
    return error_response(
        request,
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(
        request,
        code="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        code="validation_error",
        message="Request validation failed",
        status_code=422,
        details=jsonable_encoder(exc.errors()),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception | request_id=%s", get_request_id(request), exc_info=exc)
    return error_response(
        request,
        code="internal_error",
        message="Internal server error",
        status_code=500,
    )


async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("x-request-id")
    request.state.request_id = incoming or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["x-request-id"] = request.state.request_id
    return response
