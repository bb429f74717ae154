"""Translate route-guard errors into JSON responses.

Body shape is always ``{"error": {"code", "message", "request_id"[, "details"]}}``.
Rate-limit rejections additionally carry ``Retry-After`` and ``Cache-Control``
unless ``LIMITER_INCLUDE_HEADERS`` is off.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from route_guard.core.config import settings
from route_guard.core.errors import (
    AppError,
    RateLimitAppError,
    StoreUnavailableAppError,
    ValidationAppError,
)
from route_guard.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_TYPE: tuple[tuple[type[AppError], int], ...] = (
    (RateLimitAppError, 429),
    (StoreUnavailableAppError, 503),
    (ValidationAppError, 400),
)

_GENERIC_MESSAGE = "Internal error while handling the request."


def _status_for(exc: AppError) -> int:
    for error_type, status in _STATUS_BY_TYPE:
        if isinstance(exc, error_type):
            return status
    return 500


def _headers_for(exc: AppError) -> dict[str, str] | None:
    if not isinstance(exc, RateLimitAppError) or not settings.limiter.include_headers:
        return None
    seconds = exc.retry_after
    return {"Retry-After": str(seconds), "Cache-Control": f"public, max-age={seconds}"}


def _error_body(code: str, message: str, details: dict | None = None) -> dict:
    body: dict = {"code": code, "message": message, "request_id": get_request_id()}
    if details:
        body["details"] = details
    return {"error": body}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status = _status_for(exc)
    logger.warning(
        "http.app_error",
        extra={
            "error_code": exc.code,
            "status_code": status,
            "request_method": request.method,
            "request_path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=status,
        content=_error_body(exc.code, exc.message, exc.details),
        headers=_headers_for(exc),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for anything that escaped as a non-domain exception.

    The exception text may hold connection strings, so it is only logged
    (where the redaction filter applies) and never returned.
    """
    logger.error(
        "http.unhandled_error",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_method": request.method,
            "request_path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=500,
        content=_error_body("internal_server_error", _GENERIC_MESSAGE),
    )


def setup_exception_handlers(app) -> None:
    for exc_type, handler in ((AppError, app_error_handler), (Exception, general_exception_handler)):
        app.add_exception_handler(exc_type, handler)
