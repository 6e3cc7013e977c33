"""
Conversation messages for autochat.

Messages are immutable once created and the log only ever grows: the turn
controller and the text-submit path append, renderers read.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterator, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class Sender(str, Enum):
    """Who produced a message."""

    USER = "user"
    ASSISTANT = "assistant"


def _new_message_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """A single exchanged message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_message_id, description="Opaque unique id")
    text: str = Field(..., description="Message text")
    sender: Sender = Field(..., description="Who sent the message")
    timestamp: datetime = Field(default_factory=_utcnow)


class MessageLog:
    """
    Append-only ordered sequence of messages for one session.

    Listeners subscribed with :meth:`subscribe` are called after every append
    and receive the new message.
    """

    def __init__(self):
        self._messages: List[Message] = []
        self._listeners: List[Callable[[Message], None]] = []

    def subscribe(self, listener: Callable[[Message], None]) -> None:
        """Register a listener notified after each append."""
        self._listeners.append(listener)

    def append(self, message: Message) -> Message:
        """Append a message and notify listeners."""
        self._messages.append(message)
        logger.debug(f"Message appended ({message.sender.value}): {message.text[:50]}")
        for listener in list(self._listeners):
            listener(message)
        return message

    def add(self, text: str, sender: Sender) -> Message:
        """Create and append a message."""
        return self.append(Message(text=text, sender=sender))

    def snapshot(self) -> Tuple[Message, ...]:
        """Return the current contents as an immutable tuple."""
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]
