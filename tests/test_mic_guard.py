from __future__ import annotations

import pytest

from fridge.audio.mic_guard import RECORDER_OWNER, WAKEWORD_OWNER, MicrophoneGuard
from fridge.errors import AlreadyHeld


@pytest.fixture
def anyio_backend():
    return "asyncio"


def test_acquire_and_release() -> None:
    guard = MicrophoneGuard(strict=True)
    lease = guard.acquire(WAKEWORD_OWNER)
    assert lease is not None
    assert guard.holder == WAKEWORD_OWNER
    guard.release(lease)
    assert guard.holder is None
    assert lease.released


def test_second_acquire_raises_in_strict_mode() -> None:
    guard = MicrophoneGuard(strict=True)
    guard.acquire(WAKEWORD_OWNER)
    with pytest.raises(AlreadyHeld):
        guard.acquire(RECORDER_OWNER)
    assert guard.holder == WAKEWORD_OWNER


def test_second_acquire_refused_in_production_mode() -> None:
    guard = MicrophoneGuard()
    guard.acquire(WAKEWORD_OWNER)
    assert guard.acquire(RECORDER_OWNER) is None
    assert guard.holder == WAKEWORD_OWNER


def test_release_is_idempotent() -> None:
    guard = MicrophoneGuard(strict=True)
    first = guard.acquire(RECORDER_OWNER)
    guard.release(first)
    guard.release(first)
    guard.release(None)
    second = guard.acquire(WAKEWORD_OWNER)
    # A stale lease must not free the new holder.
    guard.release(first)
    assert guard.holder == WAKEWORD_OWNER
    assert second is not None and not second.released


def test_force_revoke_calls_back_once() -> None:
    guard = MicrophoneGuard(strict=True)
    calls: list[str] = []
    lease = guard.acquire(WAKEWORD_OWNER, on_revoke=lambda: calls.append("revoked"))
    assert guard.force_revoke(WAKEWORD_OWNER)
    assert not guard.force_revoke(WAKEWORD_OWNER)
    assert calls == ["revoked"]
    assert lease is not None and lease.released
    assert not guard.is_held


def test_force_revoke_ignores_other_owner_and_never_started() -> None:
    guard = MicrophoneGuard(strict=True)
    assert not guard.force_revoke(WAKEWORD_OWNER)
    guard.acquire(RECORDER_OWNER)
    assert not guard.force_revoke(WAKEWORD_OWNER)
    assert guard.holder == RECORDER_OWNER


def test_revoke_callback_failure_still_frees_device() -> None:
    guard = MicrophoneGuard(strict=True)

    def boom() -> None:
        raise RuntimeError("driver hiccup")

    guard.acquire(WAKEWORD_OWNER, on_revoke=boom)
    assert guard.force_revoke(WAKEWORD_OWNER)
    assert guard.acquire(RECORDER_OWNER) is not None


@pytest.mark.anyio("asyncio")
async def test_settle_then_acquire() -> None:
    guard = MicrophoneGuard(strict=True)
    guard.acquire(WAKEWORD_OWNER)
    guard.force_revoke(WAKEWORD_OWNER)
    await guard.settle()
    lease = guard.acquire(RECORDER_OWNER)
    assert lease is not None and lease.lease_id == 2
