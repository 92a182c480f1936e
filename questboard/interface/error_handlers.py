"""Render every failure as a ``{"success": false, ...}`` JSON payload."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from questboard.core.config import constants
from questboard.core.errors import ErrorCode, ErrorResponse, QuestboardError


logger = logging.getLogger(__name__)

_HTTP_STATUS_CODES = {
    constants.HTTP_BAD_REQUEST: ErrorCode.ERR_BAD_REQUEST,
    constants.HTTP_UNAUTHORIZED: ErrorCode.ERR_UNAUTHORIZED,
    constants.HTTP_NOT_FOUND: ErrorCode.ERR_NOT_FOUND,
    429: ErrorCode.ERR_RATE_LIMITED,
}


def _render(status_code: int, payload: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True), headers=headers)


async def questboard_error_handler(request: Request, exc: QuestboardError) -> JSONResponse:
    """Map service-layer errors to their HTTP status and error code."""
    log = logger.error if exc.status_code >= constants.HTTP_SERVER_ERROR else logger.info
    log(
        "request_failed",
        extra={"path": request.url.path, "code": exc.code, "severity": exc.severity.value, "error": exc.message},
    )
    return _render(exc.status_code, exc.to_response())


async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Keep framework errors (404 routes, 429 rate limits) in the same shape."""
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.ERR_UNKNOWN)
    payload = ErrorResponse(error=str(exc.detail), code=code)
    return _render(exc.status_code, payload, headers=exc.headers)


async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body or query validation failures are plain bad requests."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    payload = ErrorResponse(error="Invalid request", code=ErrorCode.ERR_BAD_REQUEST, details=details or None)
    return _render(constants.HTTP_BAD_REQUEST, payload)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: anything unexpected is an opaque 500 in the usual shape."""
    logger.error("unhandled_error", extra={"path": request.url.path, "error_type": type(exc).__name__}, exc_info=exc)
    payload = ErrorResponse(error="Internal server error", code=ErrorCode.ERR_UNKNOWN)
    return _render(constants.HTTP_SERVER_ERROR, payload)


def register_error_handlers(app: FastAPI) -> None:
    """Install the JSON error handlers on an application."""
    app.add_exception_handler(QuestboardError, questboard_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
