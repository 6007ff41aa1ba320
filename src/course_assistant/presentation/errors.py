"""Translation of application exceptions into HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from course_assistant.application.exceptions import (
    CourseAssistantError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)


def status_for(exc: CourseAssistantError) -> int:
    """Return the HTTP status code an application error maps to."""
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, UpstreamError):
        # RateLimit, ServiceUnavailable and InvalidCredentials carry 429/503/401
        status = exc.status_code
        return status if status and 400 <= status < 600 else 502
    return 500


async def course_assistant_error_handler(request: Request, exc: CourseAssistantError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("{} {} failed | {}: {}", request.method, request.url.path, type(exc).__name__, exc)
    else:
        logger.warning("{} {} rejected | {}", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CourseAssistantError, course_assistant_error_handler)
