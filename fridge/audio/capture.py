from __future__ import annotations

import asyncio
import inspect
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

import numpy as np

from fridge.config import CaptureSettings
from fridge.errors import AlreadyRecording, EmptyCapture
from fridge.orchestrator.clock import CLOCK, Clock
from fridge.orchestrator.events import CommandCapture, Transcript
from fridge.telemetry.logging import get_logger
from fridge.transcription.base import TranscriptionBackend, clean_transcript

if TYPE_CHECKING:
    import sounddevice as sd

ResultCallback = Callable[[Transcript], Any]
StopCallback = Callable[[CommandCapture], Any]


class AudioSource(ABC):
    sample_rate: int
    channels: int

    @abstractmethod
    def open(self, max_seconds: float) -> None:
        """Start buffering into a fresh buffer of at most ``max_seconds``."""

    @abstractmethod
    def recent(self, seconds: float) -> np.ndarray:
        """Return the most recent ``seconds`` of buffered audio."""

    @abstractmethod
    def close(self) -> np.ndarray:
        """Stop the device and return the audio actually recorded."""


class SoundDeviceSource(AudioSource):
    """Non-looping fixed-length recording from the default (or named) input."""

    def __init__(self, sample_rate: int = 16_000, channels: int = 1, device: str | int | None = None) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self._device = device
        self._buffer = np.zeros((0, channels), dtype=np.float32)
        self._position = 0
        self._lock = threading.Lock()
        self._stream: sd.InputStream | None = None
        self._logger = get_logger(__name__)

    def open(self, max_seconds: float) -> None:
        import sounddevice as sd

        if self._stream is not None:
            self.close()
        capacity = max(int(max_seconds * self.sample_rate), 0)
        with self._lock:
            self._buffer = np.zeros((capacity, self.channels), dtype=np.float32)
            self._position = 0

        def callback(indata, frames, time_info, status) -> None:  # type: ignore[override]
            if status:
                self._logger.warning("audio.capture.status", status=str(status))
            with self._lock:
                room = self._buffer.shape[0] - self._position
                count = min(room, frames)
                if count > 0:
                    self._buffer[self._position : self._position + count] = indata[:count]
                    self._position += count

        self._stream = sd.InputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype="float32",
            callback=callback,
            device=self._device,
        )
        self._stream.start()
        self._logger.info("audio.capture.started", samplerate=self.sample_rate, capacity=capacity, device=self._device)

    def recent(self, seconds: float) -> np.ndarray:
        count = int(seconds * self.sample_rate)
        with self._lock:
            start = max(self._position - count, 0)
            return self._buffer[start : self._position].copy()

    def close(self) -> np.ndarray:
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
        with self._lock:
            recorded = self._buffer[: self._position].copy()
        self._logger.info("audio.capture.stopped", frames=int(recorded.shape[0]))
        return recorded[:, 0] if self.channels == 1 else recorded


class RecorderState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    STOPPING = "STOPPING"


class CommandRecorder:
    """Bounded command capture followed by transcription.

    Every ``start_capture`` ends with exactly one result callback and one
    listen-window-ended notification, whichever trigger stopped it and
    whatever went wrong afterwards.
    """

    def __init__(
        self,
        source: AudioSource,
        backend: TranscriptionBackend,
        settings: CaptureSettings | None = None,
        placeholder_tokens: Iterable[str] = (),
        clock: Clock | None = None,
    ) -> None:
        self._source = source
        self._backend = backend
        self._settings = settings or CaptureSettings()
        self._placeholder_tokens = tuple(placeholder_tokens)
        self._clock = clock or CLOCK
        self._state = RecorderState.IDLE
        self._capture: CommandCapture | None = None
        self._on_result: ResultCallback | None = None
        self._window_listeners: list[ResultCallback] = []
        self._stop_listeners: list[StopCallback] = []
        self._deadline_task: asyncio.Task[None] | None = None
        self._vad_task: asyncio.Task[None] | None = None
        self._stop_task: asyncio.Task[Any] | None = None
        self._logger = get_logger(__name__)

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is not RecorderState.IDLE

    @property
    def current_capture(self) -> CommandCapture | None:
        return self._capture

    def add_window_listener(self, callback: ResultCallback) -> None:
        self._window_listeners.append(callback)

    def add_stop_listener(self, callback: StopCallback) -> None:
        """Called once the device is closed, before transcription starts."""
        self._stop_listeners.append(callback)

    def start_capture(self, max_duration: float, on_result: ResultCallback | None = None) -> CommandCapture:
        if self._state is not RecorderState.IDLE:
            raise AlreadyRecording("command capture already in progress")
        max_duration = max(float(max_duration), 0.0)
        capture = CommandCapture(
            started_at=self._clock.monotonic(),
            max_duration=max_duration,
            sample_rate=self._source.sample_rate,
            channels=self._source.channels,
        )
        self._state = RecorderState.RECORDING
        self._capture = capture
        self._on_result = on_result

        if max_duration > 0:
            try:
                self._source.open(max_duration)
                capture.device_started = True
            except Exception as exc:
                self._logger.error("recorder.device.failed", error=str(exc))

        self._logger.info(
            "recorder.start",
            max_duration=max_duration,
            vad=self._settings.vad_enabled,
            device_started=capture.device_started,
        )
        self._deadline_task = asyncio.create_task(self._deadline(max_duration), name="recorder-deadline")
        if self._settings.vad_enabled and capture.device_started:
            self._vad_task = asyncio.create_task(self._monitor_silence(), name="recorder-vad")
        return capture

    async def stop_capture(self, reason: str = "cancelled") -> None:
        # First trigger wins; later ones land here and return.
        if self._state is not RecorderState.RECORDING:
            return
        self._state = RecorderState.STOPPING
        self._cancel_timers()
        capture = self._capture
        assert capture is not None

        samples: np.ndarray | None = None
        if capture.device_started:
            try:
                samples = self._source.close()
            except Exception as exc:
                self._logger.error("recorder.device.close_failed", error=str(exc))
        capture.finalize(samples, reason, self._clock.monotonic())
        self._logger.info("recorder.stop", reason=reason, seconds=round(capture.duration, 3))
        transcript = Transcript.failed()
        try:
            for listener in list(self._stop_listeners):
                await self._notify(listener, capture, "recorder.stop_listener_failed")
            transcript = await self._transcribe(capture)
        finally:
            on_result, self._on_result = self._on_result, None
            self._state = RecorderState.IDLE
            if on_result is not None:
                await self._notify(on_result, transcript, "recorder.result_callback_failed")
            for listener in list(self._window_listeners):
                await self._notify(listener, transcript, "recorder.window_listener_failed")
            self._stop_task = None

    async def _transcribe(self, capture: CommandCapture) -> Transcript:
        try:
            if capture.samples is None:
                raise EmptyCapture("no audio recorded")
            self._logger.info("recorder.transcribing", seconds=round(capture.duration, 3))
            raw = await self._backend.transcribe(capture.samples, capture.sample_rate, capture.channels)
        except EmptyCapture:
            self._logger.warning("recorder.capture.empty", device_started=capture.device_started)
            return Transcript.failed()
        except Exception as exc:
            self._logger.error("recorder.transcription.failed", error=str(exc))
            return Transcript.failed()
        text = clean_transcript(raw, self._placeholder_tokens)
        if not text:
            self._logger.info("recorder.transcription.blank", raw=raw)
            return Transcript.failed()
        self._logger.info("recorder.transcribed", text=text)
        return Transcript(text=text, succeeded=True)

    async def _deadline(self, seconds: float) -> None:
        await self._clock.sleep(seconds)
        await self.stop_capture("deadline")

    async def _monitor_silence(self) -> None:
        interval = self._settings.vad_interval_sec
        silence = 0.0
        while self._state is RecorderState.RECORDING:
            await self._clock.sleep(interval)
            if self._state is not RecorderState.RECORDING:
                return
            window = self._source.recent(interval)
            level = float(np.abs(window).mean()) if window.size else 0.0
            silence = silence + interval if level < self._settings.silence_threshold else 0.0
            if self._capture is not None:
                self._capture.silence_sec = silence
            if silence >= self._settings.silence_sec:
                self._logger.info("recorder.silence_detected", silence=round(silence, 3))
                await self.stop_capture("silence")
                return

    def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        # A timer that is itself running stop_capture stays referenced until the window has ended.
        if current is not None and current in (self._deadline_task, self._vad_task):
            self._stop_task = current
        for task in (self._deadline_task, self._vad_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._deadline_task = None
        self._vad_task = None

    async def _notify(self, callback: Callable[[Any], Any], value: Any, event: str) -> None:
        try:
            result = callback(value)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self._logger.error(event, error=str(exc))

    async def aclose(self) -> None:
        await self.stop_capture("shutdown")


__all__ = ["AudioSource", "CommandRecorder", "RecorderState", "SoundDeviceSource"]
