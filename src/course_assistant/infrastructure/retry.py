"""Retry-with-backoff policy shared by the embedding and completion clients.

Also maps raw ``openai`` SDK errors onto the application error taxonomy.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import openai
from loguru import logger

from course_assistant.application.exceptions import (
    InvalidCredentialsError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamError,
)

T = TypeVar("T")

BackoffFn = Callable[[int, int | None], float]


# ---------------------------------------------------------------------------
# Status helpers
# ---------------------------------------------------------------------------


def status_of(exc: BaseException) -> int | None:
    """Return the HTTP status carried by an upstream error, if any."""
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code
    return getattr(exc, "status_code", None)


def is_transient_status(status: int | None) -> bool:
    """429 and 5xx are worth retrying; everything else fails immediately."""
    return status is not None and (status == 429 or status >= 500)


def default_backoff(attempt: int, status: int | None) -> float:
    """Seconds to wait after a failed *attempt* (1-based).

    Rate limits back off exponentially (2, 4, 8 s ...), server errors linearly
    (2, 4, 6 s ...).
    """
    if status == 429:
        return float(2**attempt)
    return float(attempt * 2)


def _retry_after(exc: BaseException) -> float | None:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def to_upstream_error(exc: BaseException) -> UpstreamError:
    """Translate an SDK exception into the matching ``UpstreamError`` subclass."""
    if isinstance(exc, UpstreamError):
        return exc

    status = status_of(exc)
    message = getattr(exc, "message", None) or str(exc) or "Unknown error"

    if status == 401:
        return InvalidCredentialsError()
    if status == 429:
        return RateLimitError(retry_after=_retry_after(exc))
    if status is not None and status >= 500:
        return ServiceUnavailableError(status_code=status)
    return UpstreamError(status, message)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass
class RetryPolicy:
    """Bounded retry loop parameterised by attempts, backoff and a status predicate.

    Only ``openai.APIError`` instances are considered upstream failures; any
    other exception propagates untouched on the first attempt.
    """

    max_attempts: int = 3
    backoff: BackoffFn = default_backoff
    is_retryable: Callable[[int | None], bool] = is_transient_status
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str = "upstream call",
    ) -> T:
        """Await ``operation()`` until it succeeds or the policy gives up.

        Raises:
            UpstreamError: (or a subclass) once retries are exhausted or the
                failure is not retryable.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except openai.APIError as exc:
                status = status_of(exc)
                if self.is_retryable(status) and attempt < self.max_attempts:
                    wait = self.backoff(attempt, status)
                    logger.warning(
                        "{} failed with status {} | retry {}/{} in {:.1f}s",
                        description,
                        status,
                        attempt,
                        self.max_attempts,
                        wait,
                    )
                    await self.sleep(wait)
                    attempt += 1
                    continue

                logger.error(
                    "{} failed after {} attempt(s) | status={} | {}",
                    description,
                    attempt,
                    status,
                    exc,
                )
                raise to_upstream_error(exc) from exc
