"""Fixed-delay request pacing for polite upstream access."""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class RequestPacer:
    """Guarantees a minimum spacing between consecutive requests.

    The first :meth:`acquire` returns immediately; later calls sleep for
    whatever remains of ``min_interval`` since the previous grant.

    Args:
        min_interval: Seconds between two granted requests.
        clock: Monotonic time source.
        sleep: Coroutine used to wait, ``asyncio.sleep`` by default.
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_grant: Optional[float] = None

    async def acquire(self) -> None:
        if self._last_grant is not None:
            remaining = self.min_interval - (self._clock() - self._last_grant)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_grant = self._clock()

    def reset(self) -> None:
        self._last_grant = None
