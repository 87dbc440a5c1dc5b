"""Error taxonomy shared by every module and its JSON envelope rendering.

Handlers registered here turn each ``AppError`` subclass into the common
``{success, error, message?}`` body with the matching HTTP status. Only
``AuthError`` deliberately hides its cause; the internal reason is logged by
whoever raised it.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError


logger = logging.getLogger("app.errors")


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_error = "Internal server error"

    def __init__(self, error: str | None = None, message: str | None = None, **extra: Any):
        self.error = error or self.default_error
        self.message = message
        self.extra = extra
        super().__init__(self.error)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.message:
            body["message"] = self.message
        body.update(self.extra)
        return body


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_error = "Invalid or expired session"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_error = "Invalid request data"

    def __init__(self, error: str | None = None, fields: dict[str, str] | None = None, **extra: Any):
        self.fields = fields or {}
        if self.fields:
            extra["fields"] = self.fields
        super().__init__(error, **extra)


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_error = "Rate limit exceeded"

    def __init__(self, reset_at: datetime, now: datetime | None = None):
        now = now or datetime.now(timezone.utc)
        self.reset_at = reset_at
        reset_in = max(0, math.ceil((reset_at - now).total_seconds()))
        super().__init__(
            resetIn=reset_in,
            resetAt=int(reset_at.timestamp() * 1000),
        )


class UpstreamError(AppError):
    default_error = "AI service is unavailable, please try again later"

    def __init__(self, detail: str):
        # detail is for logs only, never rendered
        self.detail = detail
        super().__init__()


class StoreError(AppError):
    default_error = "Service temporarily unavailable"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, UpstreamError):
        logger.error("Upstream failure on %s: %s", request.url.path, exc.detail)
    elif isinstance(exc, StoreError):
        logger.error("Store failure on %s: %s", request.url.path, exc.__cause__ or exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields[".".join(loc) or "body"] = err.get("msg", "invalid")
    return await app_error_handler(request, ValidationError(fields=fields))


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    store_error = StoreError()
    store_error.__cause__ = exc
    return await app_error_handler(request, store_error)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": AppError.default_error},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
