from __future__ import annotations

import asyncio
import io

import numpy as np
import soundfile as sf

from fridge.telemetry.logging import get_logger


def decode_audio(audio: bytes) -> tuple[np.ndarray, int, int]:
    """Decode a WAV payload into ``(samples, channels, sample_rate)``."""
    with io.BytesIO(audio) as buffer:
        data, samplerate = sf.read(buffer, dtype="float32", always_2d=True)
    return data, int(data.shape[1]), int(samplerate)


class AudioOutputController:
    """One playback at a time; decoding happens on a worker thread."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    async def play_bytes(self, audio: bytes, tag: str) -> float:
        if not audio:
            self._logger.warning("audio.output.empty_bytes", tag=tag)
            return 0.0
        try:
            data, _channels, samplerate = await asyncio.to_thread(decode_audio, audio)
        except Exception as exc:
            self._logger.error("audio.output.decode_failed", tag=tag, error=str(exc))
            return 0.0
        return await self.play_array(data, samplerate, tag)

    async def play_array(self, data: np.ndarray, samplerate: int, tag: str) -> float:
        if samplerate <= 0 or data.size == 0:
            self._logger.warning("audio.output.invalid_payload", tag=tag, samplerate=samplerate, frames=int(data.size))
            return 0.0
        duration = data.shape[0] / float(samplerate)

        import sounddevice as sd

        def _play() -> None:
            try:
                sd.play(data, samplerate=samplerate, blocking=True)
            finally:
                sd.stop()

        async with self._lock:
            self._logger.debug("audio.output.play", tag=tag, seconds=round(duration, 3))
            await asyncio.to_thread(_play)
        return duration


__all__ = ["AudioOutputController", "decode_audio"]
