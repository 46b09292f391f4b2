"""Response envelopes and the exception handlers that produce them.

Every body the API returns is one of:
- Success: { "data": ... }
- Error: { "error": { "code": "E_...", "message": "...", "request_id": "..." } }

``register_exception_handlers`` wires the error side onto an app so that
domain errors, request validation failures, unknown routes and unexpected
exceptions all come back in the same envelope.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from freefor.errors import ApiError, ApiErrorCode
from freefor.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Framework-raised HTTP errors carry no domain code of their own
_STATUS_TO_CODE = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    401: ApiErrorCode.E_UNAUTHENTICATED,
    403: ApiErrorCode.E_FORBIDDEN,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    409: ApiErrorCode.E_CONFLICT,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Build an error envelope.

    Args:
        code: The error code.
        message: Client-safe description.
        request_id: Correlation id; taken from the logging context when omitted.
    """
    error = {"code": code.value, "message": message}
    request_id = request_id or get_request_id()
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


def error_json(code: ApiErrorCode, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("api_error", code=exc.code.value, message=exc.message)
    return error_json(exc.code, exc.message, exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and other framework-level HTTP errors."""
    code = _STATUS_TO_CODE.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    return error_json(code, str(exc.detail) if exc.detail else "An error occurred", exc.status_code)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Schema failures (including naive instants in bodies) become 400, never 422.

    Only the location of the first failing field is reported.
    """
    errors = exc.errors()
    location = ""
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
    message = f"Invalid request: {location}" if location else "Invalid request body"
    return error_json(ApiErrorCode.E_INVALID_REQUEST, message, 400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 with E_INTERNAL; the exception is logged, never echoed."""
    logger.exception("unhandled_exception", error_type=type(exc).__name__)
    return error_json(ApiErrorCode.E_INTERNAL, "Internal server error", 500)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
