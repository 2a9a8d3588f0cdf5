"""Rate-limited, retrying executor for upstream API calls."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

from migrator.utils.retry import retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimitedExecutor:
    """Single-file queue admitting at most ``rate`` operations per ``interval``.

    Operations never overlap: each one waits for the previous to finish and for
    a free slot in the rolling admission window. Every admitted operation runs
    under :func:`retry_async`; the last error is re-raised with ``label``
    attached as an exception note.
    """

    def __init__(
        self,
        *,
        rate: int = 2,
        interval: float = 1.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        if rate < 1:
            raise ValueError("rate must be at least 1")
        self.rate = rate
        self.interval = interval
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._lock = asyncio.Lock()
        self._admitted: deque[float] = deque()
        self._running = asyncio.Event()
        self._running.set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._waiting = 0
        self._active = 0
        logger.info("Rate limiter initialised: %s requests per %.1fs", rate, interval)

    @property
    def pending_count(self) -> int:
        """Operations currently running (0 or 1)."""
        return self._active

    @property
    def queue_size(self) -> int:
        """Operations waiting for admission."""
        return self._waiting

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    def pause(self) -> None:
        self._running.clear()
        logger.info("Rate limiter queue paused")

    def resume(self) -> None:
        self._running.set()
        logger.info("Rate limiter queue resumed")

    async def wait_for_completion(self) -> None:
        await self._idle.wait()
        logger.info("All queued requests completed")

    async def execute(self, operation: Callable[[], Awaitable[T]], label: str = "unknown operation") -> T:
        self._waiting += 1
        self._idle.clear()
        admitted = False
        try:
            async with self._lock:
                await self._running.wait()
                await self._wait_for_slot()
                self._waiting -= 1
                self._active += 1
                admitted = True
                logger.debug("Executing %s", label)
                runner = retry_async(
                    operation,
                    attempts=self.retry_attempts,
                    delay=self.retry_delay,
                    on_failed_attempt=functools.partial(self._log_retry, label),
                )
                try:
                    return await runner()
                except Exception as exc:
                    logger.error("Request failed: %s (%s)", label, exc)
                    exc.add_note(f"while executing: {label}")
                    raise
        finally:
            if admitted:
                self._active -= 1
            else:
                self._waiting -= 1
            if not self._waiting and not self._active:
                self._idle.set()

    async def _wait_for_slot(self) -> None:
        while True:
            now = time.monotonic()
            while self._admitted and now - self._admitted[0] >= self.interval:
                self._admitted.popleft()
            if len(self._admitted) < self.rate:
                self._admitted.append(now)
                return
            await asyncio.sleep(self.interval - (now - self._admitted[0]))

    def _log_retry(self, label: str, attempt: int, exc: BaseException) -> None:
        logger.warning("Retrying (%s/%s) %s: %s", attempt, self.retry_attempts, label, exc)
