from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

import numpy as np


class TurnState(str, Enum):
    IDLE = "IDLE"
    WAKE_ARMED = "WAKE_ARMED"
    CAPTURING = "CAPTURING"
    TRANSCRIBING = "TRANSCRIBING"
    AWAITING_INFERENCE = "AWAITING_INFERENCE"
    SPEAKING = "SPEAKING"
    FOLLOWUP_WINDOW = "FOLLOWUP_WINDOW"


@dataclass(slots=True, frozen=True)
class WakeWordHit:
    ts: float
    keyword_index: int
    keyword: str = "hey fridge"


@dataclass(slots=True)
class CommandCapture:
    """One in-progress recording; frozen by ``finalize``."""

    started_at: float
    max_duration: float
    sample_rate: int
    channels: int = 1
    silence_sec: float = 0.0
    device_started: bool = False
    samples: np.ndarray | None = None
    stop_reason: str | None = None
    finished_at: float | None = None

    @property
    def finalized(self) -> bool:
        return self.stop_reason is not None

    @property
    def duration(self) -> float:
        if self.samples is None or self.sample_rate <= 0:
            return 0.0
        return self.samples.shape[0] / float(self.sample_rate)

    def finalize(self, samples: np.ndarray | None, reason: str, ts: float) -> None:
        if self.finalized:
            return
        if samples is not None and samples.size == 0:
            samples = None
        if samples is not None:
            samples.setflags(write=False)
        self.samples = samples
        self.stop_reason = reason
        self.finished_at = ts


@dataclass(slots=True, frozen=True)
class Transcript:
    text: str
    succeeded: bool

    @classmethod
    def failed(cls) -> "Transcript":
        return cls(text="", succeeded=False)


@dataclass(slots=True, frozen=True)
class Emotion:
    pleasure: float
    arousal: float
    dominance: float

    def as_list(self) -> list[float]:
        return [self.pleasure, self.arousal, self.dominance]


@dataclass(slots=True, frozen=True)
class InferenceResponse:
    message: str = ""
    emotion: Emotion | None = None

    def to_json(self) -> str:
        payload: dict[str, object] = {"message": self.message}
        if self.emotion is not None:
            payload["emotion"] = self.emotion.as_list()
        return json.dumps(payload, ensure_ascii=False)


@dataclass(slots=True, frozen=True)
class VoiceParams:
    speaker_id: str = ""
    espeak_voice_id: str = ""


@dataclass(slots=True, frozen=True)
class SpeechRequest:
    text: str
    voice: VoiceParams = field(default_factory=VoiceParams)


@dataclass(slots=True, frozen=True)
class ChatMessage:
    role: Literal["user", "model"]
    content: str


__all__ = [
    "ChatMessage",
    "CommandCapture",
    "Emotion",
    "InferenceResponse",
    "SpeechRequest",
    "Transcript",
    "TurnState",
    "VoiceParams",
    "WakeWordHit",
]
