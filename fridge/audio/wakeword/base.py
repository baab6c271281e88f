from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

KeywordCallback = Callable[[int], None]


class KeywordEngine(ABC):
    """Keyword spotter that owns an input stream while started.

    Detections are delivered as ``on_detected(keyword_index)`` on the event
    loop thread.
    """

    @abstractmethod
    def start(self) -> None:
        """Open the input stream and begin spotting."""

    @abstractmethod
    def stop(self) -> None:
        """Close the input stream; the device must be free afterwards."""

    @abstractmethod
    def close(self) -> None:
        """Release engine resources."""


EngineFactory = Callable[[KeywordCallback], KeywordEngine]
