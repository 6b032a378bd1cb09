"""
app/core/errors.py

Purpose: Maps exceptions to ErrorResponse bodies for the document API

- SarafanError subclasses keep their own status code and error code
- Framework 404/405 and body validation errors get fixed codes
- Anything else is a 500 with the message hidden in production
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import SarafanError
from app.core.logging import get_logger
from app.schemas.response import ErrorResponse
from app.core.config import settings

logger = get_logger(__name__)


def _error_body(error: str, code: str, details=None) -> dict:
    return ErrorResponse(error=error, code=code, details=details).model_dump(mode="json")


def add_exception_handlers(app: FastAPI):
    """
    Registers exception handlers with the FastAPI app.
    """
    @app.exception_handler(SarafanError)
    async def sarafan_exception_handler(request: Request, exc: SarafanError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}", extra={"url": str(request.url)})
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.code}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, exc.code, exc.details)
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Unknown routes and wrong methods.
        """
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail), "HTTP_ERROR")
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """
        Malformed document callbacks (missing or empty url, bad sent_at).
        """
        return JSONResponse(
            status_code=422,
            content=_error_body(
                "Input validation failed",
                "VALIDATION_ERROR",
                [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                    for err in exc.errors()
                ]
            )
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "method": request.method,
                "url": str(request.url),
                "client": request.client.host if request.client else "unknown"
            },
            exc_info=True
        )

        message = "An internal error occurred. Please try again later." if settings.is_production else str(exc)

        return JSONResponse(
            status_code=500,
            content=_error_body(message, "INTERNAL_ERROR")
        )
