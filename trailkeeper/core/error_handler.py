"""
Global exception handlers.

Renders every failure into the error envelope:
{
    "success": false,
    "error": {"kind": <machine kind>, "message": <human reason>, ...extra}
}
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from trailkeeper.core.exceptions import AppError

logger = logging.getLogger(__name__)

_KIND_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    410: "gone",
    422: "validation_error",
}


def _error_response(status_code: int, kind: str, message: str, extra=None, headers=None) -> JSONResponse:
    error = {"kind": kind, "message": message}
    if extra:
        error.update(extra)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.kind, exc.message, exc.extra, exc.headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    kind = _KIND_BY_STATUS.get(exc.status_code, "error")
    return _error_response(exc.status_code, kind, str(exc.detail), headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Report the first offending field, e.g. "body.referenceCode: Field required"
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "validation_error",
        message,
        {"fields": [".".join(str(p) for p in e.get("loc", ())) for e in errors]},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal server error"
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
