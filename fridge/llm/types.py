from __future__ import annotations

from typing import Sequence

from fridge.orchestrator.events import ChatMessage


class ChatProvider:
    """Vision/chat inference collaborator.

    ``generate`` receives the conversation so far (last entry is the
    current user turn) plus optional images, and returns the raw reply text.
    """

    name: str

    async def generate(self, history: Sequence[ChatMessage], images: Sequence[bytes] | None = None) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


__all__ = ["ChatProvider"]
