"""
Exception handlers for the FastAPI application.

Service errors and request validation errors become ``{"message": ...}``
JSON bodies; anything else is logged with an error id and returned as a 500.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .services.errors import ServiceError


logger = logging.getLogger(__name__)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Return the error's status code and message (plus any details)."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report malformed requests as 400 with the list of field errors.
    """
    logger.info("Invalid request to %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={
            "message": "Invalid request data.",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Log an unhandled exception and return a 500 with an error id.

    The error id appears in the log line so a client report can be matched
    to its traceback.
    """
    error_id = id(exc)
    logger.error(
        "Unhandled exception [%s] in %s %s: %s",
        error_id, request.method, request.url.path, exc,
        exc_info=exc,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "message": "Internal server error",
            "errorId": error_id,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on ``app``."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
