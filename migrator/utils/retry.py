"""Retry helpers for outbound HTTP calls."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable

import httpx

RETRY_EXCEPTIONS = (OSError, asyncio.TimeoutError, httpx.TransportError)
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRY_STATUS_CODES
    return isinstance(exc, RETRY_EXCEPTIONS)


def retry_async(
    func: Callable[..., Awaitable],
    *,
    attempts: int = 3,
    delay: float = 1.0,
    max_delay: float | None = None,
    retry_if: Callable[[BaseException], bool] = is_transient,
    on_failed_attempt: Callable[[int, BaseException], None] | None = None,
):
    """Retry ``func`` with exponential backoff capped at ``max_delay``.

    ``max_delay`` defaults to three times the base delay. Errors rejected by
    ``retry_if`` and the error of the final attempt are re-raised unchanged.
    """
    cap = max_delay if max_delay is not None else delay * 3

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        wait = delay
        for attempt in range(1, attempts + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                if attempt == attempts or not retry_if(exc):
                    raise
                if on_failed_attempt:
                    on_failed_attempt(attempt, exc)
                await asyncio.sleep(min(wait, cap))
                wait *= 2
    return wrapper
