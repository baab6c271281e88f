from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Callable

from fridge.errors import AlreadyHeld
from fridge.orchestrator.clock import CLOCK, Clock
from fridge.telemetry.logging import get_logger

WAKEWORD_OWNER = "wakeword"
RECORDER_OWNER = "recorder"


@dataclass(slots=True)
class MicrophoneLease:
    owner: str
    lease_id: int
    released: bool = False
    _on_revoke: Callable[[], None] | None = field(default=None, repr=False)


class MicrophoneGuard:
    """Single-holder lease over the physical input device.

    Overlapping acquisitions never queue. In strict mode (tests) a second
    ``acquire`` raises ``AlreadyHeld``; otherwise it is logged and refused.
    """

    def __init__(self, strict: bool = False, clock: Clock | None = None) -> None:
        self._strict = strict
        self._clock = clock or CLOCK
        self._current: MicrophoneLease | None = None
        self._ids = itertools.count(1)
        self._logger = get_logger(__name__)

    @property
    def holder(self) -> str | None:
        return self._current.owner if self._current else None

    @property
    def is_held(self) -> bool:
        return self._current is not None

    def acquire(self, owner: str, on_revoke: Callable[[], None] | None = None) -> MicrophoneLease | None:
        if self._current is not None:
            self._logger.error("mic.acquire.refused", owner=owner, holder=self._current.owner)
            if self._strict:
                raise AlreadyHeld(f"microphone held by {self._current.owner!r}, requested by {owner!r}")
            return None
        lease = MicrophoneLease(owner=owner, lease_id=next(self._ids), _on_revoke=on_revoke)
        self._current = lease
        self._logger.debug("mic.acquired", owner=owner, lease_id=lease.lease_id)
        return lease

    def release(self, lease: MicrophoneLease | None) -> None:
        if lease is None or lease.released:
            return
        lease.released = True
        if self._current is lease:
            self._current = None
            self._logger.debug("mic.released", owner=lease.owner, lease_id=lease.lease_id)

    def force_revoke(self, owner: str) -> bool:
        """Take the device away from ``owner`` even if it is mid-operation.

        Safe when ``owner`` never acquired. Callers must ``await settle()``
        before acquiring again.
        """
        lease = self._current
        if lease is None or lease.owner != owner:
            return False
        lease.released = True
        self._current = None
        self._logger.info("mic.revoked", owner=owner, lease_id=lease.lease_id)
        if lease._on_revoke is not None:
            try:
                lease._on_revoke()
            except Exception as exc:
                self._logger.error("mic.revoke.callback_failed", owner=owner, error=str(exc))
        return True

    async def settle(self) -> None:
        await self._clock.settle()


__all__ = ["MicrophoneGuard", "MicrophoneLease", "RECORDER_OWNER", "WAKEWORD_OWNER"]
