from __future__ import annotations

import base64
from typing import Sequence

import httpx

from fridge.config import LLMSettings
from fridge.errors import InferenceBackendError
from fridge.llm.types import ChatProvider
from fridge.orchestrator.events import ChatMessage
from fridge.telemetry.logging import get_logger

SYSTEM_PROMPT = (
    "You are Fridge, a friendly kitchen companion. Reply with strict JSON only: "
    '{"message": "<what you say out loud>", "emotion": [pleasure, arousal, dominance]} '
    "with each emotion value between 0 and 1."
)

_ROLES = {"user": "user", "model": "assistant"}


class OllamaProvider(ChatProvider):
    def __init__(
        self,
        settings: LLMSettings,
        system_prompt: str = SYSTEM_PROMPT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = settings.model
        self._system_prompt = system_prompt
        self._client = httpx.AsyncClient(
            base_url=settings.ollama_host.rstrip("/"), timeout=settings.timeout_sec, transport=transport
        )
        self._logger = get_logger(__name__)
        self.name = "ollama"

    def _build_messages(self, history: Sequence[ChatMessage], images: Sequence[bytes] | None) -> list[dict]:
        messages: list[dict] = [{"role": "system", "content": self._system_prompt}]
        for message in history:
            messages.append({"role": _ROLES[message.role], "content": message.content})
        if images and len(messages) > 1:
            messages[-1]["images"] = [base64.b64encode(image).decode("ascii") for image in images]
        return messages

    async def generate(self, history: Sequence[ChatMessage], images: Sequence[bytes] | None = None) -> str:
        payload = {
            "model": self._model,
            "messages": self._build_messages(history, images),
            "stream": False,
            "format": "json",
        }
        self._logger.info("ollama.generate", model=self._model, turns=len(history), images=len(images or ()))
        try:
            resp = await self._client.post("/api/chat", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise InferenceBackendError(str(exc)) from exc
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise InferenceBackendError("ollama response has no message content")
        return message["content"]

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["OllamaProvider", "SYSTEM_PROMPT"]
