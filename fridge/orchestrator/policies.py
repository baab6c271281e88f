from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal, Protocol

from fridge.orchestrator.events import Emotion

Expression = Literal["happy", "sad", "angry", "scared", "surprised", "neutral"]
Burst = Literal["happiness", "neutral", "sadness", "fear"]


def _lerp(low: float, high: float, t: float) -> float:
    return low + (high - low) * t


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


@dataclass(slots=True, frozen=True)
class ColorParams:
    hue: float
    saturation: float
    shell_alpha: float
    blush_alpha: float


@dataclass(slots=True, frozen=True)
class MotionParams:
    amplitude: float
    noise_speed: float
    noise_scale: float
    rotation_speed: float
    idle_speed: float
    detail_level: int


@dataclass(slots=True, frozen=True)
class PresentationCue:
    expression: Expression
    burst: Burst
    color: ColorParams
    motion: MotionParams

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class EmotionPolicy(Protocol):
    def cue(self, emotion: Emotion) -> PresentationCue: ...


@dataclass
class PadEmotionPolicy:
    """Maps a PAD vector onto face, colour and motion cues.

    Each component is clamped to [0, 1] and snapped to 0 or 1 (at 0.5) before the
    ranges below are applied. The expression reads the clamped values so a
    very high arousal can still tip a happy reply into surprise.
    """

    surprise_arousal: float = 0.85
    hue_unpleasant: float = 0.62
    hue_pleasant: float = 0.12
    saturation: tuple[float, float] = (0.4, 1.0)
    shell_alpha: tuple[float, float] = (0.1, 0.9)
    blush_alpha: tuple[float, float] = (0.3, 0.9)
    amplitude: tuple[float, float] = (0.2, 1.5)
    noise_speed: tuple[float, float] = (1.0, 5.0)
    noise_scale: tuple[float, float] = (5.0, 1.0)  # jagged when unpleasant
    rotation_speed: tuple[float, float] = (0.25, 1.0)
    idle_speed: tuple[float, float] = (0.1, 0.75)
    detail_level: tuple[int, int] = (2, 6)

    def quantize(self, emotion: Emotion) -> tuple[float, float, float]:
        return tuple(1.0 if _clamp01(v) >= 0.5 else 0.0 for v in emotion.as_list())  # type: ignore[return-value]

    def expression(self, p: float, a: float, d: float) -> Expression:
        if p >= 0.5:
            if a >= self.surprise_arousal:
                return "surprised"
            return "happy" if a >= 0.5 else "neutral"
        if a < 0.5:
            return "sad"
        return "angry" if d >= 0.5 else "scared"

    @staticmethod
    def burst(p: float, a: float) -> Burst:
        if p >= 0.5:
            return "happiness" if a >= 0.5 else "neutral"
        return "sadness" if a < 0.5 else "fear"

    def cue(self, emotion: Emotion) -> PresentationCue:
        raw = tuple(_clamp01(v) for v in emotion.as_list())
        p, a, d = self.quantize(emotion)
        color = ColorParams(
            hue=_lerp(self.hue_unpleasant, self.hue_pleasant, p),
            saturation=_lerp(*self.saturation, a),
            shell_alpha=_lerp(*self.shell_alpha, d),
            blush_alpha=_lerp(*self.blush_alpha, d),
        )
        motion = MotionParams(
            amplitude=_lerp(*self.amplitude, a),
            noise_speed=_lerp(*self.noise_speed, a),
            noise_scale=_lerp(*self.noise_scale, p),
            rotation_speed=_lerp(*self.rotation_speed, d),
            idle_speed=_lerp(*self.idle_speed, a),
            detail_level=round(_lerp(*self.detail_level, p)),
        )
        return PresentationCue(expression=self.expression(*raw), burst=self.burst(p, a), color=color, motion=motion)


__all__ = [
    "ColorParams",
    "EmotionPolicy",
    "MotionParams",
    "PadEmotionPolicy",
    "PresentationCue",
]
