"""
Error taxonomy for the HTTP surface and the handlers that render it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload: dict = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class BadRequestError(AppError):
    """Missing or invalid required fields."""

    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class UpstreamError(AppError):
    """The mail provider or the object store reported a failure."""

    status_code = 500


class ServerError(AppError):
    """Unexpected failure; the caller only sees a generic message."""

    status_code = 500


def missing_fields_error(missing: list[str]) -> BadRequestError:
    return BadRequestError(f"Missing required fields: {', '.join(missing)}")


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        if loc:
            fields.append(".".join(loc))
    message = "Invalid request"
    if fields:
        message = f"Invalid or missing fields: {', '.join(sorted(set(fields)))}"
    return JSONResponse(status_code=400, content={"error": message})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
