from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Protocol, Sequence
from uuid import uuid4

from fridge.audio.capture import CommandRecorder
from fridge.audio.mic_guard import RECORDER_OWNER, WAKEWORD_OWNER, MicrophoneGuard, MicrophoneLease
from fridge.audio.wakeword.listener import WakeWordListener
from fridge.config import DialogueSettings
from fridge.errors import AlreadyRecording, EngineUnavailable
from fridge.llm.interpreter import ResponseInterpreter
from fridge.llm.types import ChatProvider
from fridge.orchestrator.clock import CLOCK, Clock
from fridge.orchestrator.events import ChatMessage, CommandCapture, InferenceResponse, Transcript, TurnState, WakeWordHit
from fridge.telemetry.logging import bind_turn, get_logger
from fridge.telemetry.tracing import turn_span
from fridge.tts.speech_queue import SpeechOutputQueue

_CAPTURE_STATES = (TurnState.CAPTURING, TurnState.TRANSCRIBING, TurnState.FOLLOWUP_WINDOW)


class PresentationBridge(Protocol):
    async def publish_state(self, state: TurnState, payload: dict | None = None) -> None: ...

    async def present(self, response: InferenceResponse) -> None: ...


class DialogueTurnController:
    """Owns the turn state and sequences listener, recorder, model and speech.

    One turn at a time: a wake word outside ``IDLE`` is dropped, and the
    processing flag rejects a second submission while inference is pending.
    Every exit path funnels through ``_end_turn`` which re-arms the wake word.
    """

    def __init__(
        self,
        listener: WakeWordListener,
        recorder: CommandRecorder,
        speech: SpeechOutputQueue,
        provider: ChatProvider,
        guard: MicrophoneGuard,
        presentation: PresentationBridge,
        settings: DialogueSettings | None = None,
        interpreter: ResponseInterpreter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._listener = listener
        self._recorder = recorder
        self._speech = speech
        self._provider = provider
        self._guard = guard
        self._ui = presentation
        self._settings = settings or DialogueSettings()
        self._interpreter = interpreter or ResponseInterpreter()
        self._clock = clock or CLOCK
        self._logger = get_logger(__name__)
        self._state = TurnState.IDLE
        self._processing = False
        self._capture_pending = False
        self._closed = False
        self._lease: MicrophoneLease | None = None
        self._turn_id: str | None = None
        self._followup_after_speech = True
        self._history: list[ChatMessage] = []
        self._images: list[bytes] = []
        self._tasks: set[asyncio.Task[Any]] = set()

        listener.set_handler(self.on_wake_word)
        recorder.add_stop_listener(self._on_capture_stopped)
        recorder.add_window_listener(self._on_listen_window_ended)
        speech.add_drained_listener(self._on_playback_drained)

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    @property
    def turn_id(self) -> str | None:
        return self._turn_id

    async def start(self) -> None:
        self._arm_listener()
        self._transition(TurnState.IDLE)

    async def shutdown(self) -> None:
        # Callbacks still delivered by the recorder or speech queue are dropped from here on.
        self._closed = True
        self._logger.info("turn.shutdown")
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._listener.close()
        await self._recorder.aclose()
        await self._speech.aclose()
        self._release_lease()

    def set_image_context(self, images: Sequence[bytes]) -> None:
        """Attach camera frames to the next inference request (at most two)."""
        self._images = [bytes(image) for image in images][:2]

    def clear_history(self) -> None:
        self._history.clear()

    # -- triggers -----------------------------------------------------------

    def on_wake_word(self, hit: WakeWordHit) -> None:
        if not self._accepting_turn():
            self._logger.info("turn.wakeword.ignored", state=self._state.value, keyword=hit.keyword)
            return
        self._turn_id = str(uuid4())
        bind_turn(self._turn_id)
        self._capture_pending = True
        self._transition(TurnState.WAKE_ARMED, keyword=hit.keyword, detected_at=hit.ts)
        self._spawn(self._begin_capture(followup=False))

    def trigger_manual_wake(self) -> bool:
        if not self._accepting_turn():
            return False
        self.on_wake_word(WakeWordHit(ts=self._clock.wall(), keyword_index=-1, keyword="manual"))
        return True

    async def submit_transcript(self, text: str) -> bool:
        """Start a turn from text instead of speech; only accepted while idle."""
        if not self._accepting_turn():
            self._logger.warning("turn.submit.rejected", state=self._state.value, processing=self._processing)
            return False
        if not text.strip():
            return False
        self._turn_id = str(uuid4())
        bind_turn(self._turn_id)
        self._listener.stop()
        return await self._infer(text.strip())

    def begin_followup(self) -> bool:
        if self._closed or self._state is not TurnState.SPEAKING or self._speech.is_speaking():
            return False
        if self._capture_pending or self._recorder.is_recording:
            return False
        self._capture_pending = True
        self._spawn(self._begin_capture(followup=True))
        return True

    # -- capture phase ------------------------------------------------------

    async def _begin_capture(self, followup: bool) -> None:
        # Callers set _capture_pending before scheduling so a second trigger during settle is refused.
        self._capture_pending = True
        try:
            self._guard.force_revoke(WAKEWORD_OWNER)
            self._listener.stop()
            await self._guard.settle()
            if self._closed:
                return
            if self._lease is not None or self._recorder.is_recording:
                self._logger.warning("turn.capture.mic_busy", state=self._state.value)
                return
            lease = self._guard.acquire(RECORDER_OWNER)
            if lease is None:
                await self._end_turn("microphone_busy")
                return
            self._lease = lease
            duration = self._settings.followup_listen_sec if followup else self._settings.command_listen_sec
            self._transition(TurnState.FOLLOWUP_WINDOW if followup else TurnState.CAPTURING, seconds=duration)
            try:
                self._recorder.start_capture(duration)
            except AlreadyRecording:
                self._logger.error("turn.capture.already_recording")
                await self._end_turn("recorder_busy")
        finally:
            self._capture_pending = False

    def _on_capture_stopped(self, capture: CommandCapture) -> None:
        self._release_lease()
        if self._state in _CAPTURE_STATES:
            self._transition(TurnState.TRANSCRIBING, stop_reason=capture.stop_reason, seconds=round(capture.duration, 3))

    async def _on_listen_window_ended(self, transcript: Transcript) -> None:
        self._release_lease()
        if self._closed:
            return
        if self._state not in _CAPTURE_STATES:
            self._logger.warning("turn.window_ended.stray", state=self._state.value)
            return
        if not transcript.succeeded:
            await self._end_turn("no_speech")
            return
        self._spawn(self._infer(transcript.text))

    # -- inference phase ----------------------------------------------------

    async def _infer(self, text: str) -> bool:
        if self._processing:
            self._logger.warning("turn.infer.rejected", reason="processing")
            return False
        self._processing = True
        try:
            self._transition(TurnState.AWAITING_INFERENCE, transcript=text)
            self._history.append(ChatMessage(role="user", content=text))
            images, self._images = self._images, []
            with turn_span("turn.inference", turn_id=self._turn_id, images=len(images)):
                try:
                    raw = await self._provider.generate(tuple(self._history), images or None)
                except Exception as exc:
                    self._logger.error("turn.inference.failed", error=str(exc))
                    self._history.pop()
                    await self._on_inference_failed()
                    return True
            self._history.append(ChatMessage(role="model", content=raw))
            response = self._interpreter.parse(raw)
        finally:
            self._processing = False

        await self._present(response)
        if not response.message.strip():
            self._logger.info("turn.response.silent")
            await self._end_turn("empty_response")
            return True
        self._followup_after_speech = self._settings.followup_enabled
        self._speak(response.message)
        return True

    async def _on_inference_failed(self) -> None:
        phrase = self._settings.fallback_phrase.strip()
        if not phrase:
            await self._end_turn("inference_failed")
            return
        self._followup_after_speech = False
        self._speak(phrase)

    async def _present(self, response: InferenceResponse) -> None:
        try:
            await self._ui.present(response)
        except Exception as exc:
            self._logger.error("turn.present.failed", error=str(exc))

    # -- speaking phase -----------------------------------------------------

    def _speak(self, text: str) -> None:
        if self._closed:
            return
        self._transition(TurnState.SPEAKING, text=text)
        if self._speech.enqueue(text) is None:
            self._spawn(self._end_turn("nothing_to_say"))

    async def _on_playback_drained(self) -> None:
        if self._closed or self._state is not TurnState.SPEAKING:
            return
        if self._followup_after_speech:
            if self._capture_pending or self._recorder.is_recording:
                return
            await self._begin_capture(followup=True)
        else:
            await self._end_turn("spoken")

    # -- bookkeeping --------------------------------------------------------

    async def _end_turn(self, reason: str) -> None:
        self._release_lease()
        await self._guard.settle()
        self._logger.info("turn.end", reason=reason)
        self._arm_listener()
        self._transition(TurnState.IDLE, reason=reason)
        bind_turn(None)
        self._turn_id = None

    def _arm_listener(self) -> None:
        if self._closed:
            return
        try:
            self._listener.start()
        except EngineUnavailable as exc:
            self._logger.error("turn.wakeword.unavailable", error=str(exc))

    def _accepting_turn(self) -> bool:
        if self._closed or self._processing or self._capture_pending:
            return False
        return self._state is TurnState.IDLE and not self._recorder.is_recording

    def _release_lease(self) -> None:
        lease, self._lease = self._lease, None
        self._guard.release(lease)

    def _transition(self, state: TurnState, **payload: Any) -> None:
        previous, self._state = self._state, state
        self._logger.info("turn.transition", previous=previous.value, state=state.value)
        payload["turn_id"] = self._turn_id
        self._spawn(self._publish(state, payload))

    async def _publish(self, state: TurnState, payload: dict[str, Any]) -> None:
        try:
            await self._ui.publish_state(state, payload)
        except Exception as exc:
            self._logger.error("turn.publish.failed", state=state.value, error=str(exc))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any] | None:
        if self._closed:
            coro.close()
            return None
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


__all__ = ["DialogueTurnController", "PresentationBridge"]
