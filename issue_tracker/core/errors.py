from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings

logger = logging.getLogger(__name__)

STALE_MESSAGE = "The ticket was modified by someone else. Reload it and try again."


def error_body(status: int, message: str, **extra) -> dict:
    return {"status": status, "message": message, **extra}


def _field_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=error_body(400, "Invalid request data", errors=_field_errors(exc)),
    )


async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.info("Stale write rejected on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=409, content=error_body(409, STALE_MESSAGE))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = error_body(500, "An unexpected error occurred")
    if settings.is_development:
        body["detail"] = str(exc)
    return JSONResponse(status_code=500, content=body)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
