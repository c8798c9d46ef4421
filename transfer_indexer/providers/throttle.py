"""Minimum-interval gate for outbound price provider requests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager


class RequestThrottle:
    """Serialize requests and keep ``cooldown_seconds`` between their completions.

    Only one caller holds a slot at a time, so at most one request is in flight.
    """

    def __init__(
        self,
        cooldown_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._cooldown = max(0.0, cooldown_seconds)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._next_allowed: float | None = None

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._lock:
            if self._next_allowed is not None:
                wait = self._next_allowed - self._clock()
                if wait > 0:
                    await self._sleep(wait)
            try:
                yield
            finally:
                self._next_allowed = max(self._next_allowed or 0.0, self._clock() + self._cooldown)

    def defer(self, seconds: float) -> None:
        """Push the next allowed request at least ``seconds`` into the future."""

        candidate = self._clock() + max(0.0, seconds)
        if self._next_allowed is None or candidate > self._next_allowed:
            self._next_allowed = candidate


__all__ = ["RequestThrottle"]
