from __future__ import annotations

import pytest

from fridge.orchestrator.events import Emotion
from fridge.orchestrator.policies import PadEmotionPolicy


@pytest.mark.parametrize(
    "emotion, expression, burst",
    [
        (Emotion(0.9, 0.9, 0.2), "surprised", "happiness"),
        (Emotion(0.8, 0.6, 0.5), "happy", "happiness"),
        (Emotion(0.7, 0.2, 0.5), "neutral", "neutral"),
        (Emotion(0.1, 0.1, 0.9), "sad", "sadness"),
        (Emotion(0.2, 0.8, 0.9), "angry", "fear"),
        (Emotion(0.2, 0.8, 0.1), "scared", "fear"),
    ],
)
def test_expression_and_burst(emotion: Emotion, expression: str, burst: str) -> None:
    cue = PadEmotionPolicy().cue(emotion)
    assert cue.expression == expression
    assert cue.burst == burst


def test_threshold_is_inclusive() -> None:
    assert PadEmotionPolicy().quantize(Emotion(0.5, 0.49, 0.5)) == (1.0, 0.0, 1.0)


def test_values_are_clamped() -> None:
    policy = PadEmotionPolicy()
    assert policy.quantize(Emotion(3.0, -2.0, 0.7)) == (1.0, 0.0, 1.0)
    assert policy.cue(Emotion(3.0, 3.0, 0.0)).expression == "surprised"


def test_pleasant_excited_cue_parameters() -> None:
    cue = PadEmotionPolicy().cue(Emotion(1.0, 1.0, 0.0))
    assert cue.color.hue == pytest.approx(0.12)
    assert cue.color.saturation == pytest.approx(1.0)
    assert cue.color.shell_alpha == pytest.approx(0.1)
    assert cue.motion.amplitude == pytest.approx(1.5)
    assert cue.motion.noise_scale == pytest.approx(1.0)
    assert cue.motion.rotation_speed == pytest.approx(0.25)
    assert cue.motion.detail_level == 6


def test_unpleasant_calm_cue_parameters() -> None:
    cue = PadEmotionPolicy().cue(Emotion(0.0, 0.0, 1.0))
    assert cue.color.hue == pytest.approx(0.62)
    assert cue.color.saturation == pytest.approx(0.4)
    assert cue.color.blush_alpha == pytest.approx(0.9)
    assert cue.motion.noise_speed == pytest.approx(1.0)
    assert cue.motion.noise_scale == pytest.approx(5.0)
    assert cue.motion.detail_level == 2


def test_cue_serializes_for_presentation() -> None:
    payload = PadEmotionPolicy().cue(Emotion(0.6, 0.6, 0.6)).to_dict()
    assert payload["expression"] == "happy"
    assert set(payload["color"]) == {"hue", "saturation", "shell_alpha", "blush_alpha"}
    assert payload["motion"]["detail_level"] == 6
