"""
autochat: a chat session with an assistant, typed or hands-free.
"""

from autochat.chat import ChatSession
from autochat.config import ChatSettings
from autochat.messages import Message, MessageLog, Sender

__version__ = "0.1.0"

__all__ = [
    "ChatSession",
    "ChatSettings",
    "Message",
    "MessageLog",
    "Sender",
]
