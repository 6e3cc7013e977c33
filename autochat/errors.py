"""
Exceptions for autochat.
"""

from typing import Optional

# Capture reason codes that must never trigger an automatic restart
NON_RECOVERABLE_CODES = frozenset({"no-speech", "not-allowed"})


class AutochatError(Exception):
    """Base exception for autochat."""


class CapabilityUnavailable(AutochatError):
    """Raised when speech capture or output is not supported on this platform."""


class CaptureError(AutochatError):
    """A speech capture session reported an error."""

    recoverable = True

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or f"Speech capture error: {code}")
        self.code = code


class RecoverableCaptureError(CaptureError):
    """Transient capture error, retried while auto-chat stays enabled."""


class NonRecoverableCaptureError(CaptureError):
    """Capture error that requires the user to re-enable listening."""

    recoverable = False


class DispatchFailure(AutochatError):
    """Raised when the assistant call fails or returns a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def capture_error_for(code: str, message: Optional[str] = None) -> CaptureError:
    """Classify a capture reason code."""
    if code in NON_RECOVERABLE_CODES:
        return NonRecoverableCaptureError(code, message)
    return RecoverableCaptureError(code, message)
