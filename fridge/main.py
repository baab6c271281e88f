from __future__ import annotations

from typing import Any

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from fridge.audio.capture import CommandRecorder, SoundDeviceSource
from fridge.audio.mic_guard import MicrophoneGuard
from fridge.audio.output import AudioOutputController
from fridge.audio.wakeword.base import KeywordCallback, KeywordEngine
from fridge.audio.wakeword.listener import WakeWordListener
from fridge.audio.wakeword.porcupine import PorcupineKeywordEngine
from fridge.config import AppSettings, load_settings
from fridge.llm.interpreter import ResponseInterpreter
from fridge.llm.providers.ollama import OllamaProvider
from fridge.orchestrator.state_machine import DialogueTurnController
from fridge.telemetry.logging import configure_logging, get_logger
from fridge.telemetry.tracing import configure_tracing
from fridge.transcription import WhisperHTTPTranscriber
from fridge.tts.coqui import CoquiTTSClient
from fridge.tts.speech_queue import SpeechOutputQueue
from fridge.ui.websocket import FloatingUIBridge

settings = load_settings()
configure_logging(settings.telemetry.log_level)
configure_tracing("fridge-companion", settings.telemetry.otlp_endpoint)
logger = get_logger(__name__)

app = FastAPI(title="Fridge Companion")
ui_bridge = FloatingUIBridge()

origins = {settings.ui.floating_ui_origin}
if "localhost" in settings.ui.floating_ui_origin:
    origins.add(settings.ui.floating_ui_origin.replace("localhost", "127.0.0.1"))
app.include_router(ui_bridge.router)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(origins),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


class Runtime:
    def __init__(
        self,
        controller: DialogueTurnController,
        transcriber: WhisperHTTPTranscriber,
        tts: CoquiTTSClient,
        provider: OllamaProvider,
    ) -> None:
        self.controller = controller
        self._transcriber = transcriber
        self._tts = tts
        self._provider = provider
        self._logger = get_logger(__name__)

    async def start(self) -> None:
        self._logger.info("runtime.starting")
        await self.controller.start()

    async def shutdown(self) -> None:
        self._logger.info("runtime.shutdown.start")
        await self.controller.shutdown()
        await self._transcriber.aclose()
        await self._tts.aclose()
        await self._provider.aclose()
        self._logger.info("runtime.shutdown.complete")


def build_engine_factory(config: AppSettings):
    wakeword = config.wakeword
    device = config.capture.device

    def factory(on_detected: KeywordCallback) -> KeywordEngine:
        return PorcupineKeywordEngine(
            on_detected,
            keyword_path=wakeword.keyword_path,
            access_key=wakeword.access_key,
            model_path=wakeword.model_path,
            sensitivity=wakeword.sensitivity,
            device=device,
        )

    return factory


async def bootstrap_runtime(config: AppSettings | None = None) -> Runtime:
    config = config or settings
    guard = MicrophoneGuard(strict=config.dialogue.strict_microphone)
    listener = WakeWordListener(build_engine_factory(config), guard)

    capture = config.capture
    transcriber = WhisperHTTPTranscriber(config.transcription.base_url, config.transcription.model)
    recorder = CommandRecorder(
        SoundDeviceSource(capture.sample_rate, capture.channels, capture.device),
        transcriber,
        settings=capture,
        placeholder_tokens=config.transcription.placeholder_tokens,
    )

    tts = CoquiTTSClient(config.tts)
    speech = SpeechOutputQueue(tts, AudioOutputController(), default_voice=tts.default_voice())
    provider = OllamaProvider(config.llm)

    controller = DialogueTurnController(
        listener=listener,
        recorder=recorder,
        speech=speech,
        provider=provider,
        guard=guard,
        presentation=ui_bridge,
        settings=config.dialogue,
        interpreter=ResponseInterpreter(),
    )
    runtime = Runtime(controller, transcriber, tts, provider)
    await runtime.start()
    logger.info("runtime.started", wakeword_available=listener.available)
    return runtime


@app.on_event("startup")
async def startup_event() -> None:
    app.state.runtime = await bootstrap_runtime()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    runtime = getattr(app.state, "runtime", None)
    if runtime:
        await runtime.shutdown()


def _controller() -> DialogueTurnController:
    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Assistant not ready yet.")
    return runtime.controller


@app.post("/manual/wake")
async def manual_wake() -> dict[str, str]:
    accepted = _controller().trigger_manual_wake()
    logger.info("manual.endpoint.wake", accepted=accepted)
    return {"status": "ok" if accepted else "busy"}


class ChatRequest(BaseModel):
    text: str


@app.post("/chat")
async def chat_endpoint(request: ChatRequest) -> dict[str, str]:
    accepted = await _controller().submit_transcript(request.text)
    if not accepted:
        raise HTTPException(status_code=409, detail="A turn is already in progress.")
    return {"status": "ok"}


@app.post("/vision/image")
async def attach_images(files: list[UploadFile] = File(...)) -> dict[str, Any]:
    images = [await upload.read() for upload in files]
    _controller().set_image_context(images)
    return {"status": "ok", "images": min(len(images), 2)}


@app.get("/state")
async def get_state() -> dict[str, Any]:
    controller = _controller()
    return {
        "state": controller.state.value,
        "processing": controller.is_processing,
        "turn_id": controller.turn_id,
        "history": len(controller.history),
    }
