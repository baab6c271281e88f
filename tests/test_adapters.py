from __future__ import annotations

import base64
import io
import json
import sys
import types

import httpx
import numpy as np
import pytest
import soundfile as sf

from fridge.config import LLMSettings, TTSSettings
from fridge.errors import InferenceBackendError, SynthesisBackendError, TranscriptionBackendError
from fridge.llm.providers.ollama import OllamaProvider
from fridge.orchestrator.events import ChatMessage, VoiceParams
from fridge.transcription import ThreadedTranscriber, WhisperHTTPTranscriber, clean_transcript
from fridge.tts.coqui import CoquiTTSClient


@pytest.fixture
def anyio_backend():
    return "asyncio"


def wav_bytes(seconds: float = 0.1, sample_rate: int = 8000) -> bytes:
    buffer = io.BytesIO()
    sf.write(buffer, np.zeros(int(seconds * sample_rate), dtype=np.float32), sample_rate, format="WAV")
    return buffer.getvalue()


@pytest.mark.anyio("asyncio")
async def test_coqui_uses_speaker_endpoint() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"RIFFdata")

    client = CoquiTTSClient(TTSSettings(speaker_id="p225"), transport=httpx.MockTransport(handler))
    audio = await client.synthesize("Hello", client.default_voice())
    await client.aclose()

    assert audio == b"RIFFdata"
    assert seen[0].url.path == "/synthesize_speech"
    assert json.loads(seen[0].content) == {"Text": "Hello", "Speaker": "p225"}


@pytest.mark.anyio("asyncio")
async def test_coqui_espeak_voice_wins() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"RIFF")

    client = CoquiTTSClient(TTSSettings(), transport=httpx.MockTransport(handler))
    await client.synthesize("Hi", VoiceParams(speaker_id="p225", espeak_voice_id="en-us"))
    await client.aclose()

    assert seen[0].url.path == "/synthesize_espeak"
    assert json.loads(seen[0].content) == {"Text": "Hi", "VoiceID": "en-us"}


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("response", [httpx.Response(500), httpx.Response(200, content=b"")])
async def test_coqui_failures_raise_synthesis_error(response: httpx.Response) -> None:
    client = CoquiTTSClient(TTSSettings(), transport=httpx.MockTransport(lambda _: response))
    with pytest.raises(SynthesisBackendError):
        await client.synthesize("Hi", VoiceParams())
    await client.aclose()


@pytest.mark.anyio("asyncio")
async def test_ollama_sends_history_and_images() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"message": {"role": "assistant", "content": '{"message": "hi"}'}})

    provider = OllamaProvider(LLMSettings(model="llava:7b"), transport=httpx.MockTransport(handler))
    history = [
        ChatMessage(role="user", content="hello"),
        ChatMessage(role="model", content='{"message": "hey"}'),
        ChatMessage(role="user", content="what is this?"),
    ]
    raw = await provider.generate(history, [b"jpeg"])
    await provider.aclose()

    assert raw == '{"message": "hi"}'
    payload = seen[0]
    assert payload["model"] == "llava:7b"
    assert payload["format"] == "json"
    assert payload["stream"] is False
    roles = [m["role"] for m in payload["messages"]]
    assert roles == ["system", "user", "assistant", "user"]
    assert payload["messages"][-1]["images"] == [base64.b64encode(b"jpeg").decode("ascii")]
    assert "images" not in payload["messages"][1]


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "response",
    [httpx.Response(503), httpx.Response(200, content=b"<html>"), httpx.Response(200, json={"done": True})],
)
async def test_ollama_failures_raise_inference_error(response: httpx.Response) -> None:
    provider = OllamaProvider(LLMSettings(), transport=httpx.MockTransport(lambda _: response))
    with pytest.raises(InferenceBackendError):
        await provider.generate([ChatMessage(role="user", content="hi")])
    await provider.aclose()


@pytest.mark.anyio("asyncio")
async def test_whisper_posts_wav_and_returns_text() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": " open the door "})

    transcriber = WhisperHTTPTranscriber("http://whisper:8000/", "ggml-tiny.bin", transport=httpx.MockTransport(handler))
    text = await transcriber.transcribe(np.zeros(1600, dtype=np.float32), 16_000, 1)
    await transcriber.aclose()

    assert text == " open the door "
    assert seen[0].url.path == "/v1/audio/transcriptions"
    assert b"RIFF" in seen[0].content
    assert b"ggml-tiny.bin" in seen[0].content


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("response", [httpx.Response(500), httpx.Response(200, json={"segments": []})])
async def test_whisper_failures_raise_transcription_error(response: httpx.Response) -> None:
    transcriber = WhisperHTTPTranscriber("http://whisper:8000", "m", transport=httpx.MockTransport(lambda _: response))
    with pytest.raises(TranscriptionBackendError):
        await transcriber.transcribe(np.zeros(160, dtype=np.float32), 16_000, 1)
    await transcriber.aclose()


@pytest.mark.anyio("asyncio")
async def test_threaded_transcriber_runs_blocking_engine() -> None:
    calls: list[tuple[int, int, int]] = []

    def engine(samples: np.ndarray, sample_rate: int, channels: int) -> str:
        calls.append((samples.shape[0], sample_rate, channels))
        return "hello"

    text = await ThreadedTranscriber(engine).transcribe(np.zeros(10, dtype=np.float32), 16_000, 1)
    assert text == "hello"
    assert calls == [(10, 16_000, 1)]


def test_clean_transcript() -> None:
    tokens = ("[BLANK_AUDIO]", "(silence)")
    assert clean_transcript(None, tokens) == ""
    assert clean_transcript("[blank_audio]\n hi  there (SILENCE)", tokens) == "hi there"


@pytest.mark.anyio("asyncio")
async def test_output_decodes_and_plays(monkeypatch) -> None:
    played: list[tuple[int, int]] = []
    dummy = types.ModuleType("sounddevice")
    dummy.play = lambda data, samplerate, blocking: played.append((data.shape[0], samplerate))
    dummy.stop = lambda: None
    monkeypatch.setitem(sys.modules, "sounddevice", dummy)

    from fridge.audio.output import AudioOutputController

    output = AudioOutputController()
    duration = await output.play_bytes(wav_bytes(0.1, 8000), tag="tts:1")
    assert duration == pytest.approx(0.1)
    assert played == [(800, 8000)]
    assert await output.play_bytes(b"", tag="tts:2") == 0.0
    assert await output.play_bytes(b"not a wav", tag="tts:3") == 0.0
    assert len(played) == 1
