"""
Turn controller for autochat.

This module runs the hands-free conversation loop:
- Continuous capture with automatic restart while auto-chat is enabled
- Debounced finalization of user utterances
- Dispatch to the assistant and spoken playback of the reply
- Recovery from transient capture errors

All methods must be called from the event loop thread. Timers are loop
handles owned by the controller, and every delayed restart re-checks
auto-chat at the moment it fires.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

from autochat.assistant import AssistantClient
from autochat.config import ChatSettings
from autochat.errors import CapabilityUnavailable, capture_error_for
from autochat.messages import MessageLog, Sender
from autochat.voice.listener import (
    CaptureEvent,
    CaptureEventKind,
    CaptureSession,
    SpeechCapture,
    resolve_batch,
)
from autochat.voice.metrics import TurnMetrics
from autochat.voice.speaker import SpeechOutput

logger = logging.getLogger(__name__)


class VoiceState(Enum):
    """Logical state of the voice turn."""

    IDLE = auto()  # Nothing live
    LISTENING = auto()  # Capture session open, no utterance pending
    DEBOUNCING = auto()  # Final transcript held until the user stays quiet
    DISPATCHING = auto()  # Waiting for the assistant's reply
    SPEAKING = auto()  # Playing the reply


@dataclass
class ControllerCallbacks:
    """Callbacks for controller events."""

    on_state_change: Optional[Callable[[VoiceState], None]] = None
    on_listening_change: Optional[Callable[[bool], None]] = None
    on_input_change: Optional[Callable[[str], None]] = None
    on_alert: Optional[Callable[[str], None]] = None


@dataclass
class VoiceStatus:
    """Snapshot of the session voice state."""

    state: VoiceState = VoiceState.IDLE
    auto_chat_enabled: bool = False
    listening: bool = False
    pending_final_transcript: str = ""
    awaiting_assistant_reply: bool = False
    input_text: str = ""


class TurnController:
    """
    Coordinates capture, dispatch and speech for one chat session.

    The controller is the only writer of the session voice state and of the
    live capture session handle. At most one capture session, one debounce
    timer and one restart timer are live at any time.
    """

    def __init__(
        self,
        assistant: AssistantClient,
        capture: SpeechCapture,
        speech: SpeechOutput,
        log: MessageLog,
        settings: Optional[ChatSettings] = None,
        callbacks: Optional[ControllerCallbacks] = None,
    ):
        """
        Initialize the turn controller.

        Args:
            assistant: Client used to dispatch utterances
            capture: Speech capture capability
            speech: Speech output capability
            log: Message log the turns are appended to
            settings: Timing and text settings (defaults if not provided)
            callbacks: Optional callbacks for status changes
        """
        self._assistant = assistant
        self._capture = capture
        self._speech = speech
        self._log = log
        self._settings = settings or ChatSettings()
        self._callbacks = callbacks or ControllerCallbacks()

        self._state = VoiceState.IDLE
        self._auto_chat = False
        self._listening = False
        self._pending_final = ""
        self._awaiting_reply = False
        self._input_text = ""

        self._session: Optional[CaptureSession] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._restart_handle: Optional[asyncio.TimerHandle] = None
        self._turn_task: Optional[asyncio.Task] = None

        if self._settings.metrics_enabled:
            self._metrics = TurnMetrics.from_env()
        else:
            self._metrics = TurnMetrics()

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def auto_chat_enabled(self) -> bool:
        return self._auto_chat

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def pending_final_transcript(self) -> str:
        return self._pending_final

    @property
    def awaiting_assistant_reply(self) -> bool:
        return self._awaiting_reply

    @property
    def input_text(self) -> str:
        """Text shown in the input box (live transcript while speaking)."""
        return self._input_text

    @property
    def debounce_pending(self) -> bool:
        return self._debounce_handle is not None

    @property
    def restart_pending(self) -> bool:
        return self._restart_handle is not None

    @property
    def status(self) -> VoiceStatus:
        return VoiceStatus(
            state=self._state,
            auto_chat_enabled=self._auto_chat,
            listening=self._listening,
            pending_final_transcript=self._pending_final,
            awaiting_assistant_reply=self._awaiting_reply,
            input_text=self._input_text,
        )

    def _set_state(self, new_state: VoiceState) -> None:
        if new_state != self._state:
            old_state = self._state
            self._state = new_state
            logger.info(f"Voice state: {old_state.name} -> {new_state.name}")
            if self._callbacks.on_state_change:
                self._callbacks.on_state_change(new_state)

    def _settle_state(self) -> None:
        """Derive the state from live resources when no turn is running."""
        if self._awaiting_reply:
            return
        if self._debounce_handle is not None:
            self._set_state(VoiceState.DEBOUNCING)
        elif self._listening:
            self._set_state(VoiceState.LISTENING)
        else:
            self._set_state(VoiceState.IDLE)

    def _set_listening(self, listening: bool) -> None:
        if listening != self._listening:
            self._listening = listening
            if self._callbacks.on_listening_change:
                self._callbacks.on_listening_change(listening)

    def _set_input(self, text: str) -> None:
        if text != self._input_text:
            self._input_text = text
            if self._callbacks.on_input_change:
                self._callbacks.on_input_change(text)

    def _alert(self, message: str) -> None:
        logger.warning(message)
        if self._callbacks.on_alert:
            self._callbacks.on_alert(message)

    # =========================================================================
    # Mode and listening lifecycle
    # =========================================================================

    def toggle_auto_chat(self, on: Optional[bool] = None) -> bool:
        """
        Enable or disable auto-chat.

        Args:
            on: New mode; None flips the current mode

        Returns:
            The new mode

        Raises:
            CapabilityUnavailable: If enabling and speech capture is unsupported
        """
        if on is None:
            on = not self._auto_chat
        self._auto_chat = on
        logger.info(f"Auto-chat {'enabled' if on else 'disabled'}")

        if on:
            if not self._listening:
                self.start_listening()
        else:
            self.stop_listening()
            self._speech.cancel_all()
        return self._auto_chat

    def start_listening(self) -> bool:
        """
        Open a fresh capture session.

        Does nothing while auto-chat is off. Any existing session is stopped
        and discarded first.

        Returns:
            True if a session was opened

        Raises:
            CapabilityUnavailable: If the platform has no speech capture.
                Auto-chat is switched off so nothing retries it.
        """
        if not self._auto_chat:
            logger.debug("Auto-chat is off, not starting capture")
            return False

        self._cancel_restart()
        self._teardown_session()

        logger.info("Starting speech capture...")
        self._metrics.capture_started()
        try:
            session = self._capture.start(self._on_capture_event)
        except CapabilityUnavailable:
            self._auto_chat = False
            self._set_listening(False)
            self._settle_state()
            self._metrics.capture_unavailable()
            raise
        except Exception as e:
            logger.error(f"Error starting speech capture: {e}")
            self._set_listening(False)
            self._settle_state()
            self._schedule_restart(self._settings.error_restart_delay)
            return False

        self._session = session
        self._set_listening(True)
        self._settle_state()
        return True

    def stop_listening(self) -> None:
        """Stop capture and cancel pending timers. Idempotent."""
        self._teardown_session()
        self._cancel_debounce()
        self._cancel_restart()
        self._set_listening(False)
        self._settle_state()

    def close(self) -> None:
        """
        Tear the session down (widget unmount).

        An assistant call already in flight is not cancelled; its reply is
        still logged, but listening will not resume.
        """
        self._auto_chat = False
        self.stop_listening()
        self._speech.cancel_all()
        self._metrics.close()
        logger.info("Turn controller closed")

    async def wait_idle(self) -> None:
        """Wait for the in-flight turn, if any, to finish."""
        if self._turn_task is not None and not self._turn_task.done():
            await self._turn_task

    def _teardown_session(self) -> None:
        session, self._session = self._session, None
        self._stop_session(session)

    def _stop_session(self, session: Optional[CaptureSession]) -> None:
        if session is None:
            return
        try:
            session.stop()
        except Exception as e:
            logger.debug(f"Error stopping capture session: {e}")

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    def _schedule_restart(self, delay: float) -> None:
        self._cancel_restart()
        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(delay, self._on_restart_timer)
        self._metrics.restart_scheduled(delay)
        logger.debug(f"Capture restart scheduled in {delay:.2f}s")

    def _on_restart_timer(self) -> None:
        self._restart_handle = None
        if not self._auto_chat:
            logger.info("Auto-chat disabled before restart, not restarting")
            return
        logger.info("Restarting speech capture...")
        self._teardown_session()
        self._restart_listening()

    def _restart_listening(self) -> None:
        try:
            self.start_listening()
        except CapabilityUnavailable as e:
            self._alert(str(e))

    # =========================================================================
    # Capture events
    # =========================================================================

    def _on_capture_event(self, session: CaptureSession, event: CaptureEvent) -> None:
        if session is not self._session:
            logger.debug(f"Ignoring {event.kind.name} from a stale capture session")
            return

        if event.kind == CaptureEventKind.RESULT:
            self._handle_result(event)
        elif event.kind == CaptureEventKind.END:
            self._handle_end()
        elif event.kind == CaptureEventKind.ERROR:
            self._handle_error(event.code or "unknown")

    def _handle_result(self, event: CaptureEvent) -> None:
        final_text, interim_text = resolve_batch(event.segments)
        self._set_input(final_text or interim_text)
        self._cancel_debounce()

        if final_text.strip():
            self._pending_final = final_text
            loop = asyncio.get_running_loop()
            self._debounce_handle = loop.call_later(
                self._settings.debounce_delay, self._on_debounce
            )
        self._settle_state()

    def _handle_end(self) -> None:
        self._session = None
        self._set_listening(False)

        if not self._auto_chat:
            self._settle_state()
            return

        if self._awaiting_reply:
            delay = self._settings.busy_restart_delay
        else:
            delay = self._settings.restart_delay
        self._schedule_restart(delay)
        self._settle_state()

    def _handle_error(self, code: str) -> None:
        error = capture_error_for(code)
        logger.error(f"Speech capture error: {code}")
        self._metrics.capture_error(code)

        self._teardown_session()
        self._set_listening(False)

        if not error.recoverable:
            logger.info(f"Not restarting after '{code}', waiting for the user")
        elif self._auto_chat:
            logger.info("Attempting to recover from capture error...")
            self._schedule_restart(self._settings.error_restart_delay)
        self._settle_state()

    # =========================================================================
    # Turns
    # =========================================================================

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        text = self._pending_final

        if not text.strip():
            self._settle_state()
            return
        if self._awaiting_reply:
            logger.info("Reply still in flight, dropping utterance dispatch")
            self._metrics.turn_dropped()
            return

        self._pending_final = ""
        self._begin_turn(text)

    def submit_text(self, text: str) -> bool:
        """
        Send a typed message through the same turn as a spoken one.

        Ignored when blank or while a reply is pending.

        Returns:
            True if a turn was started
        """
        message = text.strip()
        if not message or self._awaiting_reply:
            return False
        self._begin_turn(message)
        return True

    def _begin_turn(self, text: str) -> None:
        self._awaiting_reply = True
        self._set_state(VoiceState.DISPATCHING)
        self._set_input("")
        loop = asyncio.get_running_loop()
        self._turn_task = loop.create_task(self._run_turn(text))

    async def _dispatch(self, text: str) -> str:
        try:
            reply = await self._assistant.dispatch(text)
        except Exception as e:
            logger.error(f"Assistant dispatch failed: {e}")
            self._metrics.turn_failed()
            return self._settings.apology_text

        if not isinstance(reply, str):
            logger.error(f"Assistant returned a {type(reply).__name__}, not text")
            self._metrics.turn_failed()
            return self._settings.apology_text
        return reply

    async def _run_turn(self, text: str) -> None:
        start_time = time.monotonic()
        try:
            self._log.add(text, Sender.USER)
            self._metrics.turn_dispatched()

            reply = await self._dispatch(text)

            self._log.add(reply, Sender.ASSISTANT)
            self._set_state(VoiceState.SPEAKING)
            await self._speech.speak(reply)
        except Exception as e:
            logger.error(f"Turn failed: {e}")
        finally:
            self._awaiting_reply = False
            self._metrics.turn_finished(time.monotonic() - start_time)

            if self._auto_chat:
                self._restart_listening()
            self._settle_state()
