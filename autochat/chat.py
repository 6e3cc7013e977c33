"""
Chat session: the message log, the turn controller and the typed-input path
wired together for one widget instance.
"""

import logging
from typing import Callable, Optional, Tuple

from autochat.assistant import AssistantClient
from autochat.config import ChatSettings
from autochat.errors import CapabilityUnavailable
from autochat.messages import Message, MessageLog
from autochat.voice.controller import ControllerCallbacks, TurnController
from autochat.voice.listener import SpeechCapture
from autochat.voice.speaker import SpeechOutput

logger = logging.getLogger(__name__)


class ChatSession:
    """One conversation with the assistant, typed or hands-free."""

    def __init__(
        self,
        assistant: AssistantClient,
        capture: SpeechCapture,
        speech: SpeechOutput,
        settings: Optional[ChatSettings] = None,
        renderer: Optional[Callable[[Message], None]] = None,
        callbacks: Optional[ControllerCallbacks] = None,
    ):
        """
        Initialize the chat session.

        Args:
            assistant: Assistant backend
            capture: Speech capture capability
            speech: Speech output capability
            settings: Session settings (defaults if not provided)
            renderer: Called with every message appended to the log
            callbacks: Controller callbacks; on_alert also receives
                capability errors raised while toggling auto-chat
        """
        self.settings = settings or ChatSettings()
        self.log = MessageLog()
        if renderer is not None:
            self.log.subscribe(renderer)
        self.callbacks = callbacks or ControllerCallbacks()
        self.controller = TurnController(
            assistant=assistant,
            capture=capture,
            speech=speech,
            log=self.log,
            settings=self.settings,
            callbacks=self.callbacks,
        )

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.log.snapshot()

    def submit_text(self, text: str) -> bool:
        """Submit a typed message. Returns False if it was ignored."""
        return self.controller.submit_text(text)

    def toggle_auto_chat(self, on: Optional[bool] = None) -> bool:
        """
        Toggle hands-free mode.

        A missing speech capability is reported through on_alert and leaves
        auto-chat off.
        """
        try:
            return self.controller.toggle_auto_chat(on)
        except CapabilityUnavailable as e:
            logger.error(f"Speech capture unavailable: {e}")
            if self.callbacks.on_alert:
                self.callbacks.on_alert(str(e))
            return False

    async def close(self) -> None:
        """Stop voice activity and let an in-flight turn finish."""
        self.controller.close()
        await self.controller.wait_idle()
