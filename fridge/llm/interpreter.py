from __future__ import annotations

import json
import math
import re
from typing import Any, Sequence

from pydantic import BaseModel, ValidationError, field_validator

from fridge.errors import MalformedResponse
from fridge.orchestrator.events import Emotion, InferenceResponse
from fridge.telemetry.logging import get_logger

_FENCE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n?(?P<body>.*?)\n?```\s*$", re.DOTALL)


class ResponsePayload(BaseModel):
    """Wire shape of a model reply: ``{"message": str, "emotion": [p, a, d]}``."""

    message: str = ""
    emotion: tuple[float, float, float] | None = None

    @field_validator("message", mode="before")
    @classmethod
    def message_as_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("emotion", mode="before")
    @classmethod
    def drop_bad_emotion(cls, value: Any) -> tuple[float, float, float] | None:
        if not isinstance(value, Sequence) or isinstance(value, (str, bytes)) or len(value) != 3:
            return None
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
            return None
        if not all(math.isfinite(float(v)) for v in value):
            return None
        return (float(value[0]), float(value[1]), float(value[2]))


def strip_code_fence(raw: str) -> str:
    match = _FENCE.match(raw)
    return match.group("body") if match else raw.strip()


def serialize(message: str, emotion: Emotion | None) -> str:
    return InferenceResponse(message=message, emotion=emotion).to_json()


class ResponseInterpreter:
    """Turns raw model text into an ``InferenceResponse``; never raises."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    def parse(self, raw: str | None) -> InferenceResponse:
        try:
            payload = self._decode(raw)
        except MalformedResponse as exc:
            self._logger.warning("interpreter.malformed", error=str(exc), raw=(raw or "")[:200])
            return InferenceResponse()
        emotion = Emotion(*payload.emotion) if payload.emotion is not None else None
        if emotion is None:
            self._logger.debug("interpreter.emotion.absent")
        return InferenceResponse(message=payload.message, emotion=emotion)

    def _decode(self, raw: str | None) -> ResponsePayload:
        if not raw or not raw.strip():
            raise MalformedResponse("empty response")
        body = strip_code_fence(raw)
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise MalformedResponse(f"not json: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise MalformedResponse(f"expected object, got {type(data).__name__}")
        try:
            return ResponsePayload.model_validate(data)
        except ValidationError as exc:
            raise MalformedResponse(str(exc)) from exc


__all__ = ["ResponseInterpreter", "ResponsePayload", "serialize", "strip_code_fence"]
