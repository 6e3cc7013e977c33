"""
autochat voice extension.

Speech capture, speech output and the turn controller that keeps a
hands-free conversation going.

Install with: pip install autochat[voice]
"""

from autochat.voice.controller import (
    ControllerCallbacks,
    TurnController,
    VoiceState,
    VoiceStatus,
)

try:
    import edge_tts  # noqa: F401
    import speech_recognition  # noqa: F401

    VOICE_AVAILABLE = True
except ImportError:
    VOICE_AVAILABLE = False


def check_voice_available():
    """Check if voice dependencies are installed."""
    if not VOICE_AVAILABLE:
        raise ImportError(
            "Voice dependencies not installed. "
            "Install with: pip install autochat[voice]"
        )
    return True


__all__ = [
    "VOICE_AVAILABLE",
    "check_voice_available",
    "ControllerCallbacks",
    "TurnController",
    "VoiceState",
    "VoiceStatus",
]
