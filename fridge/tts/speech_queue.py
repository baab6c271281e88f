from __future__ import annotations

import asyncio
import inspect
from collections import deque
from typing import Any, Callable, Protocol

from fridge.orchestrator.events import SpeechRequest, VoiceParams
from fridge.telemetry.logging import get_logger


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice: VoiceParams) -> bytes: ...


class AudioPlayer(Protocol):
    async def play_bytes(self, audio: bytes, tag: str) -> float: ...


class SpeechOutputQueue:
    """FIFO of speech requests, drained by a single worker task.

    A failing item is logged and skipped. Drained listeners fire once each
    time the queue empties after having had work.
    """

    def __init__(self, synthesizer: SpeechSynthesizer, player: AudioPlayer, default_voice: VoiceParams | None = None) -> None:
        self._synthesizer = synthesizer
        self._player = player
        self._default_voice = default_voice or VoiceParams()
        self._queue: deque[SpeechRequest] = deque()
        self._active: SpeechRequest | None = None
        self._worker: asyncio.Task[None] | None = None
        self._drained_listeners: list[Callable[[], Any]] = []
        self._counter = 0
        self._logger = get_logger(__name__)

    @property
    def active(self) -> SpeechRequest | None:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._queue)

    def is_speaking(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def add_drained_listener(self, callback: Callable[[], Any]) -> None:
        self._drained_listeners.append(callback)

    def enqueue(self, text: str, voice: VoiceParams | None = None) -> SpeechRequest | None:
        if not text or not text.strip():
            return None
        request = SpeechRequest(text=text, voice=voice or self._default_voice)
        self._queue.append(request)
        self._logger.debug("speech.enqueued", pending=len(self._queue))
        if not self.is_speaking():
            self._worker = asyncio.create_task(self._drain(), name="speech-queue")
        return request

    async def join(self) -> None:
        worker = self._worker
        if worker is not None:
            await asyncio.shield(worker)

    async def aclose(self) -> None:
        self._queue.clear()
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

    async def _drain(self) -> None:
        played = 0
        while self._queue:
            request = self._queue.popleft()
            self._active = request
            self._counter += 1
            tag = f"tts:{self._counter}"
            try:
                audio = await self._synthesizer.synthesize(request.text, request.voice)
                await self._player.play_bytes(audio, tag=tag)
                played += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._logger.error("speech.item.skipped", tag=tag, error=str(exc))
            finally:
                self._active = None
        self._worker = None
        self._logger.info("speech.drained", played=played)
        for listener in list(self._drained_listeners):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self._logger.error("speech.drained_listener_failed", error=str(exc))


__all__ = ["AudioPlayer", "SpeechOutputQueue", "SpeechSynthesizer"]
