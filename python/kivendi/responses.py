"""Response envelopes and exception handlers.

REST bodies are always enveloped:

    success: {"data": ...}
    failure: {"error": {"code": "E_...", "message": "...", "request_id": "..."}}

The request_id matches the X-Request-ID response header so a mobile bug
report can be traced to its log lines. WebSocket failures are sent as
{"type": "error", ...} frames instead, since a socket has no status code.
"""

from typing import Any

from fastapi import BackgroundTasks, Request
from fastapi.responses import JSONResponse

from kivendi.errors import ApiError, ApiErrorCode
from kivendi.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Framework-raised HTTP errors (unknown route, wrong method, oversized body)
HTTP_STATUS_CODES = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    401: ApiErrorCode.E_UNAUTHENTICATED,
    403: ApiErrorCode.E_FORBIDDEN,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    413: ApiErrorCode.E_FILE_TOO_LARGE,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Build an error envelope. request_id defaults to the one bound for this request."""
    error = {"code": code.value, "message": message}
    request_id = request_id or get_request_id()
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


def error_frame(code: ApiErrorCode, message: str) -> dict[str, Any]:
    return {"type": "error", "code": code.value, "message": message}


def api_error_json(exc: ApiError, background: BackgroundTasks | None = None) -> JSONResponse:
    """Render an ApiError.

    background carries work already scheduled by the service (e.g. the
    push for a failed-payment notification) so it still runs when the
    request ends in an error.
    """
    if exc.status_code >= 500:
        logger.error("api_error", code=exc.code.value, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message),
        background=background,
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return api_error_json(exc)


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    code = HTTP_STATUS_CODES.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, str(exc.detail) if exc.detail else "An error occurred"),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and answer 500 without leaking details."""
    logger.exception("unhandled_exception", error=str(exc))
    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_INTERNAL, "Internal server error"),
    )
