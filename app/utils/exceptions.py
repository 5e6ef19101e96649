import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.utils.response import error_response

logger = logging.getLogger(__name__)


class AppException(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, data=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data


class ValidationError(AppException):
    """Malformed, oversized or disallowed input."""

    status_code = 400


class AuthorizationError(AppException):
    """A capability was denied; ``reason`` is the gate's reason code."""

    status_code = 403

    def __init__(self, message: str, reason: str):
        super().__init__(message, status_code=401 if reason == "NOT_AUTHENTICATED" else 403)
        self.reason = reason


class NotFoundError(AppException):
    status_code = 404

    def __init__(self, message: str, reason: str = "NOT_FOUND"):
        super().__init__(message)
        self.reason = reason


class ProcessingError(AppException):
    """Decode, transcode or watermark failure for a single file."""

    status_code = 422


class PersistenceError(AppException):
    status_code = 500


def _diagnostics(exc: BaseException) -> dict | None:
    if settings.is_production:
        return None
    cause = exc.__cause__ or exc.__context__
    return {
        "type": type(exc).__name__,
        "cause": repr(cause) if cause is not None else None,
        "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
    }


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        data = exc.data
        reason = getattr(exc, "reason", None)
        if reason is not None and data is None:
            data = {"reason": reason}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message, data=data, detail=_diagnostics(exc)),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error", detail=_diagnostics(exc)),
        )
