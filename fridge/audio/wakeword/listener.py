from __future__ import annotations

from enum import Enum
from typing import Callable

from fridge.audio.mic_guard import WAKEWORD_OWNER, MicrophoneGuard, MicrophoneLease
from fridge.audio.wakeword.base import EngineFactory, KeywordEngine
from fridge.errors import EngineUnavailable
from fridge.orchestrator.clock import CLOCK, Clock
from fridge.orchestrator.events import WakeWordHit
from fridge.telemetry.logging import get_logger


class ListenerState(str, Enum):
    STOPPED = "STOPPED"
    LISTENING = "LISTENING"


class WakeWordListener:
    """Idempotent start/stop wrapper around a keyword engine.

    Emits one ``WakeWordHit`` per detection and stops itself; restarting is
    the caller's job. An engine that fails to construct latches the listener
    as unavailable for the rest of the session.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        guard: MicrophoneGuard,
        on_detected: Callable[[WakeWordHit], None] | None = None,
        keyword: str = "hey fridge",
        clock: Clock | None = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._guard = guard
        self._on_detected = on_detected
        self._keyword = keyword
        self._clock = clock or CLOCK
        self._engine: KeywordEngine | None = None
        self._unavailable: Exception | None = None
        self._lease: MicrophoneLease | None = None
        self._state = ListenerState.STOPPED
        self._logger = get_logger(__name__)

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is ListenerState.LISTENING

    @property
    def available(self) -> bool:
        return self._unavailable is None

    def set_handler(self, on_detected: Callable[[WakeWordHit], None]) -> None:
        self._on_detected = on_detected

    def start(self) -> None:
        if self._unavailable is not None:
            raise EngineUnavailable(str(self._unavailable)) from self._unavailable
        if self._state is ListenerState.LISTENING:
            return
        engine = self._ensure_engine()
        lease = self._guard.acquire(WAKEWORD_OWNER, on_revoke=self._on_revoked)
        if lease is None:
            self._logger.warning("wakeword.start.mic_busy", holder=self._guard.holder)
            return
        try:
            engine.start()
        except Exception as exc:
            self._guard.release(lease)
            self._logger.error("wakeword.start.failed", error=str(exc))
            return
        self._lease = lease
        self._state = ListenerState.LISTENING
        self._logger.info("wakeword.listening", keyword=self._keyword)

    def stop(self) -> None:
        if self._state is ListenerState.STOPPED:
            return
        self._state = ListenerState.STOPPED
        self._stop_engine()
        lease, self._lease = self._lease, None
        self._guard.release(lease)
        self._logger.info("wakeword.stopped")

    def close(self) -> None:
        self.stop()
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.close()

    def _ensure_engine(self) -> KeywordEngine:
        if self._engine is None:
            try:
                self._engine = self._engine_factory(self._handle_keyword)
            except Exception as exc:
                self._unavailable = exc
                self._logger.error("wakeword.engine.unavailable", error=str(exc))
                raise EngineUnavailable(str(exc)) from exc
        return self._engine

    def _stop_engine(self) -> None:
        if self._engine is None:
            return
        try:
            self._engine.stop()
        except Exception as exc:
            self._logger.error("wakeword.stop.failed", error=str(exc))

    def _on_revoked(self) -> None:
        # The guard has already dropped the lease.
        if self._state is ListenerState.STOPPED:
            return
        self._state = ListenerState.STOPPED
        self._lease = None
        self._stop_engine()
        self._logger.info("wakeword.revoked")

    def _handle_keyword(self, keyword_index: int) -> None:
        if self._state is not ListenerState.LISTENING:
            self._logger.debug("wakeword.hit.ignored", keyword_index=keyword_index, reason="stopped")
            return
        hit = WakeWordHit(ts=self._clock.wall(), keyword_index=keyword_index, keyword=self._keyword)
        self._logger.info("wakeword.detected", keyword=self._keyword, keyword_index=keyword_index)
        self.stop()
        if self._on_detected is not None:
            self._on_detected(hit)


__all__ = ["ListenerState", "WakeWordListener"]
