from __future__ import annotations

import asyncio
import time

from fridge.telemetry.logging import get_logger

LOGGER = get_logger(__name__)


class Clock:
    """Suspension points shared by the listener, recorder and controller.

    ``settle`` is the one-tick grace the audio driver gets after a device is
    released and before another owner opens it.
    """

    def __init__(self, settle_sec: float = 0.0) -> None:
        self.settle_sec = settle_sec

    def monotonic(self) -> float:
        return time.monotonic()

    def wall(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))

    async def settle(self) -> None:
        LOGGER.debug("clock.settle", seconds=self.settle_sec)
        await asyncio.sleep(self.settle_sec)


CLOCK = Clock()


__all__ = ["Clock", "CLOCK"]
