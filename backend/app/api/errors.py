import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.api.schemas import error_body
from app.core.errors import DriveError, public_message, status_for

logger = logging.getLogger(__name__)


def validation_errors(exc: RequestValidationError) -> dict:
    """Field name -> first error message"""
    errors = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = location[-1] if location else "request"
        errors.setdefault(field, error.get("msg", "Invalid value"))
    return errors


async def drive_error_handler(request: Request, exc: DriveError) -> JSONResponse:
    status_code = status_for(exc.kind)
    if status_code >= 500:
        logger.error(f"{exc.kind.value} on {request.method} {request.url.path}: {exc}")
    else:
        logger.warning(f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}")

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=error_body(public_message(exc.kind, exc.message), exc.errors),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing and framework errors (404, 405, ...) in the response envelope"""
    logger.warning(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = validation_errors(exc)
    logger.warning(f"Validation failed on {request.method} {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content=error_body("Validation failed", errors))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("An unexpected error occurred"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DriveError, drive_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
