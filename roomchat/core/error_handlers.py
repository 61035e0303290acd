# roomchat/core/error_handlers.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from .exceptions import ChatException, ValidationFailed
from .responses import error_response

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "UNPROCESSABLE_ENTITY",
    429: "RATE_LIMIT_EXCEEDED",
}


async def chat_exception_handler(request: Request, exc: ChatException):
    """Handle application exceptions"""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.detail} - Path: {request.url.path}")
    else:
        logger.info(f"{exc.__class__.__name__}: {exc.detail} - Path: {request.url.path}")
    return error_response(
        request,
        status_code=exc.status_code,
        message=exc.detail,
        code=exc.code,
        details=exc.details,
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "Whoops! Route does not exist"
    return error_response(
        request,
        status_code=exc.status_code,
        message=message,
        code=_STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Field level errors for malformed bodies, paths and queries"""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({
            "field": ".".join(location),
            "message": error.get("msg", "Invalid value"),
            "code": error.get("type", "invalid"),
        })
    return await chat_exception_handler(request, ValidationFailed(errors=errors))


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.exception(f"Unexpected error: {str(exc)} - Path: {request.url.path}")
    return error_response(
        request,
        status_code=500,
        message="Internal server error",
        code="INTERNAL_ERROR",
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ChatException, chat_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
