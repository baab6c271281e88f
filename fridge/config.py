from __future__ import annotations

import functools

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WakeWordSettings(BaseModel):
    access_key: str | None = None
    keyword_path: str | None = None
    model_path: str | None = None
    sensitivity: float = Field(0.6, ge=0.0, le=1.0)


class CaptureSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    sample_rate: int = 16_000
    channels: int = 1
    device: str | int | None = None
    vad_enabled: bool = True
    vad_interval_sec: float = Field(0.1, gt=0.0)
    silence_threshold: float = Field(0.01, ge=0.0)
    silence_sec: float = Field(1.5, gt=0.0)


class TranscriptionSettings(BaseModel):
    base_url: str = "http://localhost:8000"
    model: str = "ggml-tiny.bin"
    placeholder_tokens: tuple[str, ...] = (
        "[BLANK_AUDIO]",
        "[SILENCE]",
        "[MUSIC]",
        "[NOISE]",
        "[INAUDIBLE]",
        "(silence)",
        "(inaudible)",
    )


class LLMSettings(BaseModel):
    ollama_host: str = "http://localhost:11434"
    model: str = "gemma3:12b"
    timeout_sec: float = 120.0


class TTSSettings(BaseModel):
    host: str = "localhost"
    port: int = 5000
    coqui_endpoint: str = "/synthesize_speech"
    espeak_endpoint: str = "/synthesize_espeak"
    speaker_id: str = ""
    espeak_voice_id: str = ""

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class DialogueSettings(BaseModel):
    """Immutable knobs handed to the turn controller at construction."""

    model_config = ConfigDict(frozen=True)

    command_listen_sec: float = Field(10.0, ge=0.0)
    followup_listen_sec: float = Field(10.0, ge=0.0)
    followup_enabled: bool = True
    fallback_phrase: str = ""
    strict_microphone: bool = False


class TelemetrySettings(BaseModel):
    log_level: str = "INFO"
    otlp_endpoint: str | None = None


class UISettings(BaseModel):
    floating_ui_origin: str = "http://localhost:8010"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", ".env.local"), env_file_encoding="utf-8", extra="ignore")

    PORCUPINE_ACCESS_KEY: str | None = None
    PORCUPINE_KEYWORD_PATH: str | None = None
    PORCUPINE_MODEL_PATH: str | None = None
    PORCUPINE_SENSITIVITY: float = 0.6
    CAPTURE_SAMPLE_RATE: int = 16_000
    CAPTURE_CHANNELS: int = 1
    CAPTURE_DEVICE: str | int | None = None
    COMMAND_LISTEN_SECONDS: float = 10.0
    FOLLOWUP_LISTEN_SECONDS: float = 10.0
    FOLLOWUP_ENABLED: bool = True
    VAD_ENABLED: bool = True
    VAD_INTERVAL_SECONDS: float = 0.1
    SILENCE_THRESHOLD: float = 0.01
    SILENCE_SECONDS: float = 1.5
    WHISPER_URL: str = "http://localhost:8000"
    WHISPER_MODEL: str = "ggml-tiny.bin"
    OLLAMA_HOST: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "gemma3:12b"
    OLLAMA_TIMEOUT_SECONDS: float = 120.0
    TTS_HOST: str = "localhost"
    TTS_PORT: int = 5000
    TTS_COQUI_ENDPOINT: str = "/synthesize_speech"
    TTS_ESPEAK_ENDPOINT: str = "/synthesize_espeak"
    TTS_SPEAKER_ID: str = ""
    TTS_ESPEAK_VOICE_ID: str = ""
    FALLBACK_PHRASE: str = ""
    MIC_STRICT: bool = False
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    FLOATING_UI_ORIGIN: str = "http://localhost:8010"

    @staticmethod
    def _coerce_device(device: str | int | None) -> str | int | None:
        if isinstance(device, str):
            trimmed = device.strip()
            if not trimmed:
                return None
            if trimmed.isdigit():
                return int(trimmed)
            return trimmed
        return device

    @property
    def wakeword(self) -> WakeWordSettings:
        return WakeWordSettings(
            access_key=self.PORCUPINE_ACCESS_KEY,
            keyword_path=self.PORCUPINE_KEYWORD_PATH,
            model_path=self.PORCUPINE_MODEL_PATH,
            sensitivity=self.PORCUPINE_SENSITIVITY,
        )

    @property
    def capture(self) -> CaptureSettings:
        return CaptureSettings(
            sample_rate=self.CAPTURE_SAMPLE_RATE,
            channels=self.CAPTURE_CHANNELS,
            device=self._coerce_device(self.CAPTURE_DEVICE),
            vad_enabled=self.VAD_ENABLED,
            vad_interval_sec=self.VAD_INTERVAL_SECONDS,
            silence_threshold=self.SILENCE_THRESHOLD,
            silence_sec=self.SILENCE_SECONDS,
        )

    @property
    def transcription(self) -> TranscriptionSettings:
        return TranscriptionSettings(base_url=self.WHISPER_URL, model=self.WHISPER_MODEL)

    @property
    def llm(self) -> LLMSettings:
        return LLMSettings(
            ollama_host=self.OLLAMA_HOST,
            model=self.OLLAMA_MODEL,
            timeout_sec=self.OLLAMA_TIMEOUT_SECONDS,
        )

    @property
    def tts(self) -> TTSSettings:
        return TTSSettings(
            host=self.TTS_HOST,
            port=self.TTS_PORT,
            coqui_endpoint=self.TTS_COQUI_ENDPOINT,
            espeak_endpoint=self.TTS_ESPEAK_ENDPOINT,
            speaker_id=self.TTS_SPEAKER_ID,
            espeak_voice_id=self.TTS_ESPEAK_VOICE_ID,
        )

    @property
    def dialogue(self) -> DialogueSettings:
        return DialogueSettings(
            command_listen_sec=self.COMMAND_LISTEN_SECONDS,
            followup_listen_sec=self.FOLLOWUP_LISTEN_SECONDS,
            followup_enabled=self.FOLLOWUP_ENABLED,
            fallback_phrase=self.FALLBACK_PHRASE,
            strict_microphone=self.MIC_STRICT,
        )

    @property
    def telemetry(self) -> TelemetrySettings:
        return TelemetrySettings(log_level=self.LOG_LEVEL, otlp_endpoint=self.OTEL_EXPORTER_OTLP_ENDPOINT)

    @property
    def ui(self) -> UISettings:
        return UISettings(floating_ui_origin=self.FLOATING_UI_ORIGIN)


@functools.lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    return AppSettings()


__all__ = [
    "AppSettings",
    "CaptureSettings",
    "DialogueSettings",
    "LLMSettings",
    "TTSSettings",
    "TranscriptionSettings",
    "WakeWordSettings",
    "load_settings",
]
