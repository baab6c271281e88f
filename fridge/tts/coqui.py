from __future__ import annotations

import httpx

from fridge.config import TTSSettings
from fridge.errors import SynthesisBackendError
from fridge.orchestrator.events import VoiceParams
from fridge.telemetry.logging import get_logger


class CoquiTTSClient:
    """HTTP client for the local Coqui / espeak synthesis server.

    An espeak voice id takes precedence over the Coqui speaker id.
    """

    def __init__(self, settings: TTSSettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url, timeout=httpx.Timeout(30.0, connect=5.0), transport=transport
        )
        self._logger = get_logger(__name__)

    def default_voice(self) -> VoiceParams:
        return VoiceParams(speaker_id=self._settings.speaker_id, espeak_voice_id=self._settings.espeak_voice_id)

    def _build_request(self, text: str, voice: VoiceParams) -> tuple[str, dict[str, str]]:
        if voice.espeak_voice_id:
            return self._settings.espeak_endpoint, {"Text": text, "VoiceID": voice.espeak_voice_id}
        return self._settings.coqui_endpoint, {"Text": text, "Speaker": voice.speaker_id}

    async def synthesize(self, text: str, voice: VoiceParams) -> bytes:
        endpoint, payload = self._build_request(text, voice)
        preview = text if len(text) <= 120 else text[:120] + "…"
        self._logger.info("tts.request", endpoint=endpoint, text=preview)
        try:
            resp = await self._client.post(endpoint, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise SynthesisBackendError(str(exc)) from exc
        if not resp.content:
            raise SynthesisBackendError("synthesis server returned no audio")
        return resp.content

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["CoquiTTSClient"]
