#!/usr/bin/env python3
"""
Session controller: the Ready -> Listening -> Processing -> Listening state machine.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from .capture import AudioCapture, RecordingGesture
from .config import default_config
from .conversation import Conversation
from .credentials import CredentialStore, Credentials
from .errors import AssistantError, DeviceError, PreconditionError, ProviderError
from .presentation import PresentationSink
from .sse import Done, StreamError, TextDelta


logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    READY = "Ready"
    LISTENING = "Listening"
    PROCESSING = "Processing"


class GestureKind(str, Enum):
    NEW = "new"        # start a new exchange, clearing history
    EXTEND = "extend"  # follow up on the current exchange


@dataclass(frozen=True)
class Affordances:
    """Which controls are enabled; derived from status and history only."""

    start: bool
    ask: bool
    extend: bool
    stop: bool


async def resume_after_delay(controller: "SessionController", generation: int):
    """Default recovery policy: wait ``resume_delay_sec`` then resume recording."""
    delay = controller.config.resume_delay_sec
    if delay:
        await asyncio.sleep(delay)
    controller.resume_if_still_listening(generation)


class SessionController:
    """
    Turns recording gestures into a multi-turn conversation.

    One gesture is in flight at a time. A single action control is overloaded:
    the first press starts a recording, the second press stops it and sends it
    through transcription and the streamed answer. Failures while processing
    are shown through the sink and the session goes back to Listening; an
    explicit ``stop()`` resets to Ready and bumps the session generation so
    results of requests already on the wire are discarded.
    """

    def __init__(
        self,
        capture: AudioCapture,
        transcription,
        answers,
        sink: Optional[PresentationSink] = None,
        backend=None,
        credential_store: Optional[CredentialStore] = None,
        config=None,
        resume_policy: Optional[Callable[["SessionController", int], Awaitable[None]]] = None,
    ):
        self.config = config or default_config
        self.capture = capture
        self.transcription = transcription
        self.answers = answers
        self.sink = sink or PresentationSink()
        self.backend = backend
        self.credential_store = credential_store
        self.resume_policy = resume_policy or resume_after_delay
        self._history = Conversation()
        self._status = SessionStatus.READY
        self._generation = 0

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def history(self) -> Conversation:
        return self._history

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def affordances(self) -> Affordances:
        listening = self._status is SessionStatus.LISTENING
        return Affordances(
            start=self._status is SessionStatus.READY,
            ask=listening,
            extend=listening and not self._history.is_empty,
            stop=listening,
        )

    def _set_status(self, status: SessionStatus):
        if status is self._status:
            return
        logger.info("Session status %s -> %s", self._status.value, status.value)
        self._status = status
        self.sink.show_status(status)

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    async def start_session(self):
        """Acquire the microphone and begin buffering the first gesture.

        Raises ``BackendUnavailable`` when the backend does not answer the
        readiness probe and ``DeviceError`` when the microphone cannot be used;
        the session stays Ready in both cases.
        """
        if self._status is not SessionStatus.READY:
            return
        if self.backend is not None:
            await self.backend.probe()
            await self._push_stored_credentials()
        self.capture.open()
        self._set_status(SessionStatus.LISTENING)
        try:
            self.capture.start_gesture()
        except DeviceError:
            self._set_status(SessionStatus.READY)
            raise

    async def _push_stored_credentials(self):
        if self.credential_store is None:
            return
        credentials = self.credential_store.load()
        if not credentials.complete:
            return
        try:
            await self.backend.push_credentials(credentials)
        except AssistantError as e:
            logger.warning("Failed to push stored API keys to the backend: %s", e.message)
        else:
            self._reconfigure_clients(credentials)
            logger.info("API keys loaded from local storage and pushed to the backend")

    def _reconfigure_clients(self, credentials: Credentials):
        self.transcription.set_credentials(credentials.transcription_key)
        self.answers.set_credentials(credentials.completion_key)

    async def submit_gesture(self, kind: GestureKind):
        """Press the action control for ``kind``.

        Starts a recording when none is running; otherwise stops it and
        processes the captured audio to completion.
        """
        if self._status is SessionStatus.PROCESSING:
            raise PreconditionError("A request is already being processed.")
        if self._status is SessionStatus.READY:
            raise PreconditionError("Audio recorder not ready. Start listening first.")
        if kind is GestureKind.EXTEND and self._history.is_empty:
            raise PreconditionError("There is no conversation to follow up on yet.")

        if not self.capture.recording:
            self.capture.start_gesture()
            self.sink.show_notice("(Please speak, then press ask or follow-up again.)")
            return

        gesture = self.capture.stop_gesture()
        generation = self._generation
        if gesture is None or gesture.is_empty:
            self.sink.show_notice("(No audio detected for the request. Please try again.)")
            await self.resume_policy(self, generation)
            return

        self._set_status(SessionStatus.PROCESSING)
        try:
            await self._process(kind, gesture, generation)
        except AssistantError as e:
            if not self._is_stale(generation):
                logger.info("Recovered from %s: %s", type(e).__name__, e.message)
                self.sink.show_error(e.message)
        except Exception as e:
            logger.exception("Unexpected error while processing a gesture")
            if not self._is_stale(generation):
                self.sink.show_error(f"Unexpected error: {e}")
        finally:
            if not self._is_stale(generation):
                self._set_status(SessionStatus.LISTENING)
        await self.resume_policy(self, generation)

    async def _process(self, kind: GestureKind, gesture: RecordingGesture, generation: int):
        transcript = await self.transcription.transcribe(gesture.audio, gesture.mime_type)
        if self._is_stale(generation):
            logger.debug("Discarding transcript from a reset session")
            return
        if not transcript:
            self.sink.show_notice("(Couldn't hear anything clearly, please try again.)")
            return

        if kind is GestureKind.NEW:
            self._history.clear()
            self.sink.clear()
        self._history.add_user(transcript)
        self.sink.show_user(transcript)
        await self._stream_answer(generation)

    async def _stream_answer(self, generation: int):
        self.sink.begin_answer()
        parts = []
        stream = self.answers.stream_answer(self._history.history())
        try:
            async for chunk in stream:
                if self._is_stale(generation):
                    continue
                if isinstance(chunk, TextDelta):
                    parts.append(chunk.text)
                    self.sink.render_delta(chunk.text)
                elif isinstance(chunk, StreamError):
                    raise ProviderError(f"LLM Error: {chunk.message}")
                elif isinstance(chunk, Done):
                    answer = "".join(parts)
                    self._history.add_assistant(answer)
                    self.sink.end_answer(answer)
        except Exception:
            # Partial text stays rendered but is not committed
            if not parts and not self._is_stale(generation):
                self.sink.discard_answer()
            raise
        finally:
            await stream.aclose()

    def resume_if_still_listening(self, generation: Optional[int] = None):
        """Restart recording if the session is still listening; best effort."""
        if generation is not None and self._is_stale(generation):
            return
        if self._status is not SessionStatus.LISTENING or self.capture.recording:
            return
        try:
            self.capture.start_gesture()
        except DeviceError as e:
            logger.debug("Recorder restart failed: %s", e.message)

    def stop(self):
        """Hard stop: cancel any pending recording, clear history, back to Ready."""
        self._generation += 1
        self.capture.cancel_gesture()
        self._history.clear()
        self._set_status(SessionStatus.READY)

    async def update_credentials(self, credentials: Credentials):
        """Persist new API keys locally and push them.

        Both local clients take the new keys once the push succeeds.
        """
        if self.credential_store is not None:
            self.credential_store.save(credentials)
        if not credentials.complete:
            raise PreconditionError("Both API keys are required.")
        if self.backend is not None:
            await self.backend.push_credentials(credentials)
        self._reconfigure_clients(credentials)

    def close(self):
        self.capture.close()
