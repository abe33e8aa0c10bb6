from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable


class AdaptiveBackoff:
    """Inter-request pause that widens on throttling and relaxes on success.

    The pause starts at ``base_delay``. A throttled response (429/5xx) doubles
    it, never below the server's ``Retry-After``, capped at ``max_delay``;
    each success halves it back towards ``base_delay``.
    """

    def __init__(
        self,
        base_delay: float,
        max_delay: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.base_delay = max(0.0, base_delay)
        self.max_delay = max(self.base_delay, max_delay)
        self.current = self.base_delay
        self._sleep = sleep

    def on_success(self) -> None:
        self.current = max(self.base_delay, self.current / 2)

    def on_throttle(self, retry_after: float | None = None) -> None:
        widened = max(self.current * 2, self.base_delay or 1.0)
        if retry_after is not None:
            widened = max(widened, retry_after)
        self.current = min(widened, self.max_delay)

    async def pause(self) -> None:
        if self.current > 0:
            await self._sleep(self.current)
