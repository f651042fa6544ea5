"""Sliding-window rate limiter for outbound LLM requests.

One instance is created per process (in the app lifespan) and injected into
the services that call the LLM. Callers that cannot get a slot within
``max_wait_seconds`` get ``RateLimitExceeded`` and must fall back instead of
retrying.
"""

import asyncio
import contextlib
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class RateLimitExceeded(Exception):
    """Raised when a slot would not free up within the wait cap."""

    def __init__(self, wait_seconds: float, max_wait_seconds: float):
        self.wait_seconds = wait_seconds
        self.max_wait_seconds = max_wait_seconds
        super().__init__(
            f"Rate limit exceeded: next slot in {wait_seconds:.2f}s "
            f"(max wait {max_wait_seconds:.2f}s)"
        )


class RateLimiter:
    """Admit at most ``max_requests`` calls per sliding ``window_seconds``.

    The timestamp window is pruned on every check and on a periodic cleanup
    task, and never holds more than ``max_history`` entries. The
    check-and-append critical section is guarded by a lock and contains no
    ``await``, so concurrent callers can never overshoot the window.

    ``clock`` and ``sleep`` are injectable so tests can drive time manually.
    """

    def __init__(
        self,
        max_requests: int = 20,
        window_seconds: float = 60.0,
        max_wait_seconds: float = 3.0,
        max_history: int = 50,
        cleanup_interval_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if max_history < max_requests:
            raise ValueError("max_history must be >= max_requests")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_wait_seconds = max_wait_seconds
        self.max_history = max_history
        self.cleanup_interval_seconds = cleanup_interval_seconds

        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None
        self._total_admitted = 0
        self._total_rejected = 0

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()
        while len(self._timestamps) > self.max_history:
            self._timestamps.popleft()

    def _try_acquire(self) -> float | None:
        """Take a slot and return None, or return the seconds until one frees up."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._timestamps) < self.max_requests:
                self._timestamps.append(now)
                self._total_admitted += 1
                return None
            return self._timestamps[0] + self.window_seconds - now

    async def wait_for_slot(self) -> None:
        """Wait until a request slot is available.

        Raises:
            RateLimitExceeded: If the total wait for this call would exceed
                ``max_wait_seconds``.
        """
        waited = 0.0
        while True:
            wait = self._try_acquire()
            if wait is None:
                if waited:
                    logger.debug("rate_limiter_slot_acquired", waited_seconds=round(waited, 3))
                return

            if waited + wait > self.max_wait_seconds:
                with self._lock:
                    self._total_rejected += 1
                logger.warning(
                    "rate_limiter_rejected",
                    wait_seconds=round(wait, 3),
                    max_wait_seconds=self.max_wait_seconds,
                    active_requests=len(self._timestamps),
                )
                raise RateLimitExceeded(wait, self.max_wait_seconds)

            logger.debug("rate_limiter_waiting", wait_seconds=round(wait, 3))
            await self._sleep(wait)
            waited += wait

    def cleanup(self) -> int:
        """Drop expired timestamps. Returns the number removed."""
        with self._lock:
            before = len(self._timestamps)
            self._prune(self._clock())
            removed = before - len(self._timestamps)
        if removed:
            logger.debug("rate_limiter_cleanup", removed=removed)
        return removed

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.cleanup()

    def start(self) -> None:
        """Start the periodic cleanup task on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
            logger.info(
                "rate_limiter_started",
                max_requests=self.max_requests,
                window_seconds=self.window_seconds,
            )

    async def destroy(self) -> None:
        """Stop the cleanup task and forget all timestamps."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
        with self._lock:
            self._timestamps.clear()
        logger.info("rate_limiter_stopped")

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def stats(self) -> dict[str, Any]:
        """Current window usage, for the health endpoint."""
        with self._lock:
            self._prune(self._clock())
            active = len(self._timestamps)
            return {
                "active_requests": active,
                "max_requests": self.max_requests,
                "window_seconds": self.window_seconds,
                "available_slots": self.max_requests - active,
                "total_admitted": self._total_admitted,
                "total_rejected": self._total_rejected,
                "cleanup_running": self.is_running,
            }
