from __future__ import annotations

import io

import httpx
import numpy as np
import soundfile as sf

from fridge.errors import TranscriptionBackendError
from fridge.telemetry.logging import get_logger
from fridge.transcription.base import TranscriptionBackend


class WhisperHTTPTranscriber(TranscriptionBackend):
    """Client for an OpenAI-compatible whisper server."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=httpx.Timeout(timeout, connect=5.0), transport=transport
        )
        self._logger = get_logger(__name__)

    async def transcribe(self, samples: np.ndarray, sample_rate: int, channels: int) -> str:
        wav = _encode_wav(samples, sample_rate, channels)
        self._logger.info("whisper.request", bytes=len(wav), sample_rate=sample_rate, channels=channels)
        try:
            resp = await self._client.post(
                "/v1/audio/transcriptions",
                data={"model": self._model, "response_format": "json"},
                files={"file": ("command.wav", wav, "audio/wav")},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TranscriptionBackendError(str(exc)) from exc
        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise TranscriptionBackendError("whisper response has no text field")
        return text

    async def aclose(self) -> None:
        await self._client.aclose()


def _encode_wav(samples: np.ndarray, sample_rate: int, channels: int) -> bytes:
    data = np.asarray(samples, dtype=np.float32)
    if channels > 1 and data.ndim == 1:
        data = data.reshape(-1, channels)
    with io.BytesIO() as buffer:
        sf.write(buffer, data, sample_rate, format="WAV", subtype="PCM_16")
        return buffer.getvalue()


__all__ = ["WhisperHTTPTranscriber"]
