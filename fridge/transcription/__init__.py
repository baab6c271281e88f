from fridge.transcription.base import ThreadedTranscriber, TranscriptionBackend, clean_transcript
from fridge.transcription.whisper import WhisperHTTPTranscriber

__all__ = ["ThreadedTranscriber", "TranscriptionBackend", "WhisperHTTPTranscriber", "clean_transcript"]
