"""Injectable clocks for settlement and polling waits."""
import asyncio
from typing import List


class AsyncioClock:
    """Real-time clock backed by ``asyncio.sleep``."""

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


class InstantClock:
    """Clock that never waits; records requested delays instead.

    Used by tests and the paper-trading example.
    """

    def __init__(self):
        self.sleeps: List[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    @property
    def elapsed(self) -> float:
        return sum(self.sleeps)
