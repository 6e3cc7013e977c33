"""
Configuration for autochat.

Settings come from dataclass defaults, optionally overridden by AUTOCHAT_*
environment variables.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_APOLOGY = (
    "Sorry, there was an error processing your request. Please try again."
)


@dataclass
class ChatSettings:
    """Settings for a chat session and its turn controller."""

    # Assistant
    assistant_url: str = "http://localhost:5678/webhook/chat"
    request_timeout: float = 30.0
    apology_text: str = DEFAULT_APOLOGY

    # Speech
    locale: str = "en-US"
    tts_voice: Optional[str] = None  # None selects a voice for the locale

    # Turn timing (seconds)
    debounce_delay: float = 1.0
    restart_delay: float = 0.3
    busy_restart_delay: float = 1.0  # Used while a reply is in flight
    error_restart_delay: float = 1.0

    # Logging
    log_level: str = "INFO"

    # Metrics
    metrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "ChatSettings":
        """Create settings from environment variables."""
        defaults = cls()
        return cls(
            assistant_url=os.environ.get(
                "AUTOCHAT_ASSISTANT_URL", defaults.assistant_url
            ),
            request_timeout=float(
                os.environ.get("AUTOCHAT_REQUEST_TIMEOUT", defaults.request_timeout)
            ),
            apology_text=os.environ.get("AUTOCHAT_APOLOGY_TEXT", defaults.apology_text),
            locale=os.environ.get("AUTOCHAT_LOCALE", defaults.locale),
            tts_voice=os.environ.get("AUTOCHAT_TTS_VOICE") or None,
            debounce_delay=float(
                os.environ.get("AUTOCHAT_DEBOUNCE_DELAY", defaults.debounce_delay)
            ),
            restart_delay=float(
                os.environ.get("AUTOCHAT_RESTART_DELAY", defaults.restart_delay)
            ),
            busy_restart_delay=float(
                os.environ.get(
                    "AUTOCHAT_BUSY_RESTART_DELAY", defaults.busy_restart_delay
                )
            ),
            error_restart_delay=float(
                os.environ.get(
                    "AUTOCHAT_ERROR_RESTART_DELAY", defaults.error_restart_delay
                )
            ),
            log_level=os.environ.get("AUTOCHAT_LOG_LEVEL", defaults.log_level),
            metrics_enabled=os.environ.get("STATSD_ENABLED", "true").lower()
            == "true",
        )


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the CLI."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
