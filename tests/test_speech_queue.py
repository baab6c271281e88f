from __future__ import annotations

import asyncio

import pytest

from fridge.errors import SynthesisBackendError
from fridge.orchestrator.events import VoiceParams
from fridge.tts.speech_queue import SpeechOutputQueue


@pytest.fixture
def anyio_backend():
    return "asyncio"


class DummySynth:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.requests: list[tuple[str, VoiceParams]] = []

    async def synthesize(self, text: str, voice: VoiceParams) -> bytes:
        self.requests.append((text, voice))
        await asyncio.sleep(0)
        if text in self.failing:
            raise SynthesisBackendError(f"cannot say {text!r}")
        return text.encode()


class DummyPlayer:
    def __init__(self) -> None:
        self.played: list[str] = []
        self.concurrent = 0
        self.max_concurrent = 0

    async def play_bytes(self, audio: bytes, tag: str) -> float:
        self.concurrent += 1
        self.max_concurrent = max(self.max_concurrent, self.concurrent)
        await asyncio.sleep(0.01)
        self.played.append(audio.decode())
        self.concurrent -= 1
        return 0.01


@pytest.mark.anyio("asyncio")
async def test_fifo_order_and_single_drained_signal() -> None:
    player = DummyPlayer()
    queue = SpeechOutputQueue(DummySynth(), player)
    drained: list[list[str]] = []
    queue.add_drained_listener(lambda: drained.append(list(player.played)))

    queue.enqueue("hello")
    queue.enqueue("world")
    assert queue.is_speaking()
    await queue.join()

    assert player.played == ["hello", "world"]
    assert drained == [["hello", "world"]]
    assert player.max_concurrent == 1
    assert not queue.is_speaking()


@pytest.mark.anyio("asyncio")
async def test_failed_item_is_skipped() -> None:
    player = DummyPlayer()
    synth = DummySynth(failing={"hello"})
    queue = SpeechOutputQueue(synth, player)
    drained: list[int] = []
    queue.add_drained_listener(lambda: drained.append(1))

    queue.enqueue("hello")
    queue.enqueue("world")
    await queue.join()

    assert [text for text, _ in synth.requests] == ["hello", "world"]
    assert player.played == ["world"]
    assert drained == [1]


@pytest.mark.anyio("asyncio")
async def test_enqueue_during_playback_does_not_interrupt() -> None:
    player = DummyPlayer()
    queue = SpeechOutputQueue(DummySynth(), player)
    queue.enqueue("one")
    await asyncio.sleep(0.005)
    assert queue.active is not None and queue.active.text == "one"
    queue.enqueue("two")
    assert queue.pending == 1
    await queue.join()
    assert player.played == ["one", "two"]


@pytest.mark.anyio("asyncio")
async def test_blank_text_is_not_queued() -> None:
    queue = SpeechOutputQueue(DummySynth(), DummyPlayer())
    assert queue.enqueue("   ") is None
    assert not queue.is_speaking()


@pytest.mark.anyio("asyncio")
async def test_default_voice_applies() -> None:
    synth = DummySynth()
    voice = VoiceParams(speaker_id="p225")
    queue = SpeechOutputQueue(synth, DummyPlayer(), default_voice=voice)
    queue.enqueue("hi")
    queue.enqueue("there", VoiceParams(espeak_voice_id="en-gb"))
    await queue.join()
    assert synth.requests == [("hi", voice), ("there", VoiceParams(espeak_voice_id="en-gb"))]


@pytest.mark.anyio("asyncio")
async def test_drained_fires_per_burst() -> None:
    queue = SpeechOutputQueue(DummySynth(), DummyPlayer())
    drained: list[int] = []

    async def on_drained() -> None:
        drained.append(1)

    queue.add_drained_listener(on_drained)
    queue.enqueue("first")
    await queue.join()
    queue.enqueue("second")
    await queue.join()
    assert drained == [1, 1]


@pytest.mark.anyio("asyncio")
async def test_aclose_cancels_pending_items() -> None:
    player = DummyPlayer()
    queue = SpeechOutputQueue(DummySynth(), player)
    queue.enqueue("a")
    queue.enqueue("b")
    await queue.aclose()
    assert queue.pending == 0
    assert not queue.is_speaking()
    assert "b" not in player.played
