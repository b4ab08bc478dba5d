"""Minimum-spacing throttle shared by every caller of a remote service."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from loguru import logger


class ThrottleGate:
    """Enforces a minimum delay between consecutive requests.

    The time of the last request is read and written under an asyncio lock,
    so concurrent callers queue up behind each other instead of all seeing
    an old timestamp and firing together.

    Args:
        min_interval: Seconds required between request starts.
        name: Label used in log messages.
        clock: Monotonic time source (injectable for tests).
        sleep: Async sleep function (injectable for tests).
    """

    def __init__(
        self,
        min_interval: float,
        name: str = "gate",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Block until the caller may issue its request."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    logger.debug(f"[{self.name}] throttling for {delay:.2f}s")
                    await self._sleep(delay)
            self._last_request = self._clock()

    async def __aenter__(self) -> "ThrottleGate":
        await self.wait()
        return self

    async def __aexit__(self, *exc) -> None:
        return None
