"""Token bucket rate limiter with a capacity of one permit."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from config.retry_policies import BenchCancelledError


class RateLimiter:
    """Bounds an action to at most ``rate`` operations per second.

    The bucket holds a single permit: the first call passes immediately and
    an idle limiter never lets more than one call through without waiting.
    A rate of zero or less disables limiting.

    Not thread safe; each driver shard owns its own instance.
    """

    def __init__(
        self,
        rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rate = rate
        self._clock = clock
        self._sleep = sleep
        self._interval = 1.0 / rate if rate > 0 else 0.0
        self._next_permit: Optional[float] = None

    @property
    def unlimited(self) -> bool:
        return self.rate <= 0

    async def wait(self, is_cancelled: Optional[Callable[[], bool]] = None) -> None:
        """Block until a permit is available.

        Raises:
            BenchCancelledError: If ``is_cancelled`` reports cancellation
                before or after the wait.
        """
        self._check_cancelled(is_cancelled)
        if self.unlimited:
            return

        now = self._clock()
        if self._next_permit is not None and self._next_permit > now:
            await self._sleep(self._next_permit - now)
            self._check_cancelled(is_cancelled)
            now = self._clock()

        base = now if self._next_permit is None else max(now, self._next_permit)
        self._next_permit = base + self._interval

    @staticmethod
    def _check_cancelled(is_cancelled: Optional[Callable[[], bool]]) -> None:
        if is_cancelled is not None and is_cancelled():
            raise BenchCancelledError("cancelled while waiting for rate limiter")
