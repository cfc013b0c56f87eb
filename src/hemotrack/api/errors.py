"""
API Error Mapping

Translates domain errors to HTTP responses. The body always carries the
error code, message and the list of failed conditions.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from hemotrack.config import get_settings
from hemotrack.errors import HemotrackError, ValidationFailedError

logger = structlog.get_logger(__name__)

STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "VALIDATION_FAILED": 422,
    "PRECONDITION_FAILED": 409,
    "INVALID_STATE": 409,
    "CONFIGURATION_ERROR": 500,
}


async def hemotrack_error_handler(request: Request, exc: HemotrackError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, 400)
    logger.info(
        "Request rejected",
        path=request.url.path,
        method=request.method,
        error=exc.code,
        status_code=status_code,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies, paths or queries use the VALIDATION_FAILED shape."""
    reasons = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    return await hemotrack_error_handler(
        request, ValidationFailedError("invalid request", reasons=reasons)
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "detail": str(exc) if get_settings().app.debug else None,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HemotrackError, hemotrack_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)
