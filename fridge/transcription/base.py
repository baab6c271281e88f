from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from typing import Callable, Iterable

import numpy as np

_WHITESPACE = re.compile(r"\s+")


class TranscriptionBackend(ABC):
    @abstractmethod
    async def transcribe(self, samples: np.ndarray, sample_rate: int, channels: int) -> str:
        """Return the text spoken in ``samples`` (float32 in [-1, 1])."""

    async def aclose(self) -> None:
        return None


class ThreadedTranscriber(TranscriptionBackend):
    """Adapter for blocking engines (e.g. local whisper bindings).

    The call runs on a worker thread; the result is handed back to the
    event loop by ``asyncio.to_thread``.
    """

    def __init__(self, fn: Callable[[np.ndarray, int, int], str]) -> None:
        self._fn = fn

    async def transcribe(self, samples: np.ndarray, sample_rate: int, channels: int) -> str:
        return await asyncio.to_thread(self._fn, samples, sample_rate, channels)


def clean_transcript(text: str | None, placeholder_tokens: Iterable[str]) -> str:
    """Strip non-speech markers such as ``[BLANK_AUDIO]`` and collapse whitespace."""
    if not text:
        return ""
    cleaned = text
    for token in placeholder_tokens:
        cleaned = re.sub(re.escape(token), " ", cleaned, flags=re.IGNORECASE)
    return _WHITESPACE.sub(" ", cleaned).strip()


__all__ = ["ThreadedTranscriber", "TranscriptionBackend", "clean_transcript"]
