from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from fridge.orchestrator.events import InferenceResponse, TurnState
from fridge.orchestrator.policies import EmotionPolicy, PadEmotionPolicy
from fridge.telemetry.logging import get_logger


class FloatingUIBridge:
    """Pushes turn state and emotion cues to presentation clients.

    The core hands over the raw message and PAD vector; the policy turns the
    vector into face, colour and motion parameters for the renderer.
    """

    def __init__(self, policy: EmotionPolicy | None = None) -> None:
        self._clients: set[WebSocket] = set()
        self._policy = policy or PadEmotionPolicy()
        self._router = APIRouter()
        self._router.add_api_websocket_route("/ws/state", self._websocket_handler)
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    @property
    def router(self) -> APIRouter:
        return self._router

    async def _websocket_handler(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        self._logger.info("ui.client.connected", count=len(self._clients))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            async with self._lock:
                self._clients.discard(websocket)
            self._logger.info("ui.client.disconnected", count=len(self._clients))

    async def publish_state(self, state: TurnState, payload: dict[str, Any] | None = None) -> None:
        await self._broadcast({"state": state.value, "payload": payload or {}})

    async def present(self, response: InferenceResponse) -> None:
        payload: dict[str, Any] = {"message": response.message, "emotion": None, "cue": None}
        if response.emotion is not None:
            payload["emotion"] = response.emotion.as_list()
            payload["cue"] = self._policy.cue(response.emotion).to_dict()
        await self._broadcast({"state": "EMOTION", "payload": payload})

    async def _broadcast(self, message: dict[str, Any]) -> None:
        async with self._lock:
            send_tasks = [client.send_json(message) for client in self._clients]
        if send_tasks:
            await asyncio.gather(*send_tasks, return_exceptions=True)


__all__ = ["FloatingUIBridge"]
