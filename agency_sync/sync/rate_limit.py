"""Per-provider sliding-window throttle for outbound API requests."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable

from ..config import PROVIDERS, SyncSettings

log = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter that only ever delays, never rejects.

    Callers queue on an asyncio.Lock, so acquisitions complete in the
    order they were requested. No window of ``window_seconds`` ever sees
    more than ``max_requests`` completions.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.acquire_count = 0
        self._clock = clock
        self._sleep = sleep
        self._events: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._events and self._events[0] <= cutoff:
            self._events.popleft()

    def in_window(self) -> int:
        """Number of acquisitions inside the current window."""
        self._evict(self._clock())
        return len(self._events)

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._events) < self.max_requests:
                    self._events.append(now)
                    self.acquire_count += 1
                    return
                wait = self._events[0] + self.window_seconds - now
                log.debug("Rate limit reached for %s, waiting %.3fs", self.name or "provider", wait)
                await self._sleep(max(wait, 0.0))

    def __repr__(self) -> str:
        return f"<RateLimiter {self.name} {self.max_requests}/{self.window_seconds}s>"


def build_rate_limiters(settings: SyncSettings) -> dict[str, RateLimiter]:
    """One explicitly owned limiter per provider."""
    limiters: dict[str, RateLimiter] = {}
    for provider in PROVIDERS:
        max_requests, window = settings.rate_limit(provider)
        limiters[provider] = RateLimiter(max_requests, window, name=provider)
    return limiters
