from __future__ import annotations


class FridgeError(Exception):
    """Base class for runtime errors raised by the companion core."""


class EngineUnavailable(FridgeError):
    """The keyword-spotting engine could not be constructed for this session."""


class AlreadyHeld(FridgeError):
    """The microphone is already leased to another owner."""


class AlreadyRecording(FridgeError):
    """A command capture is already in progress."""


class EmptyCapture(FridgeError):
    """The capture produced no audio."""


class TranscriptionBackendError(FridgeError):
    pass


class InferenceBackendError(FridgeError):
    pass


class MalformedResponse(FridgeError):
    pass


class SynthesisBackendError(FridgeError):
    pass


__all__ = [
    "AlreadyHeld",
    "AlreadyRecording",
    "EmptyCapture",
    "EngineUnavailable",
    "FridgeError",
    "InferenceBackendError",
    "MalformedResponse",
    "SynthesisBackendError",
    "TranscriptionBackendError",
]
