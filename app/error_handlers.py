"""Exception handlers that give every error response the same JSON shape.

- Request validation failures: 400 ``{"message": ..., "error": ["field: violation", ...]}``
- HTTPException raised by routes: ``{"message": detail}`` with the exception's status
- Anything else: 500 ``{"message": "Internal server error"}``; details go to the log only
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

__all__ = ["register_error_handlers", "format_validation_errors"]

logger = logging.getLogger("linkshortener")


def format_validation_errors(errors) -> list[str]:
    formatted = []
    for error in errors:
        location = ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path"))
        formatted.append(f"{location}: {error['msg']}" if location else error["msg"])
    return formatted


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid data provided", "error": format_validation_errors(exc.errors())},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
