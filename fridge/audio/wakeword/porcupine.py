from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

try:
    import pvporcupine  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    pvporcupine = None

from fridge.audio.wakeword.base import KeywordCallback, KeywordEngine
from fridge.telemetry.logging import get_logger

if TYPE_CHECKING:
    import sounddevice as sd


class PorcupineKeywordEngine(KeywordEngine):
    def __init__(
        self,
        on_detected: KeywordCallback,
        keyword_path: str | None,
        access_key: str | None,
        model_path: str | None = None,
        sensitivity: float = 0.6,
        device: str | int | None = None,
    ) -> None:
        if pvporcupine is None:
            raise RuntimeError("pvporcupine is not installed; install picovoice porcupine bindings.")
        if not access_key:
            raise RuntimeError("Porcupine access key not provided. Set PORCUPINE_ACCESS_KEY in your .env.")
        if not keyword_path or not Path(keyword_path).is_file():
            raise FileNotFoundError(f"Wake word model file not found at: {keyword_path}")
        self._on_detected = on_detected
        self._keyword_path = keyword_path
        self._device = device
        self._porcupine = pvporcupine.create(
            access_key=access_key,
            keyword_paths=[keyword_path],
            model_path=model_path,
            sensitivities=[sensitivity],
        )
        self._stream: sd.InputStream | None = None
        self._logger = get_logger(__name__)

    def start(self) -> None:
        import sounddevice as sd

        if self._stream is not None:
            return
        loop = asyncio.get_running_loop()

        def callback(indata, frames, time_info, status) -> None:  # type: ignore[override]
            if status:
                self._logger.warning("wakeword.porcupine.status", status=str(status))
            pcm = np.asarray(indata[:, 0], dtype=np.int16)
            if pcm.shape[0] != self._porcupine.frame_length:
                return
            index = self._porcupine.process(pcm)
            if index >= 0:
                loop.call_soon_threadsafe(self._on_detected, index)

        self._stream = sd.InputStream(
            samplerate=self._porcupine.sample_rate,
            channels=1,
            blocksize=self._porcupine.frame_length,
            dtype="int16",
            callback=callback,
            device=self._device,
        )
        self._stream.start()
        self._logger.info("wakeword.porcupine.started", keyword_path=self._keyword_path)

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        self._logger.info("wakeword.porcupine.stopped")

    def close(self) -> None:
        self.stop()
        self._porcupine.delete()


__all__ = ["PorcupineKeywordEngine"]
