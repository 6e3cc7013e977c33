"""
Speech capture for autochat.

A SpeechCapture opens capture sessions. While a session is active it reports
transcript result batches, zero or more errors, and exactly one END event
when it finishes for any reason. Events are always delivered on the event
loop thread through the ``on_event(session, event)`` callback given to
``start``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, List, Optional, Tuple

import httpx

from autochat.errors import CapabilityUnavailable
from autochat.voice.transcriber import (
    BYTES_PER_SAMPLE,
    SAMPLE_RATE,
    CapturedPhrase,
    Transcriber,
)

logger = logging.getLogger(__name__)


class CaptureEventKind(Enum):
    """Kind of event produced by a capture session."""

    RESULT = auto()  # Batch of transcript segments
    END = auto()  # Session ended (stop, timeout, silence, error)
    ERROR = auto()  # Capture error with a reason code


@dataclass(frozen=True)
class TranscriptSegment:
    """Accumulated text for one utterance."""

    text: str
    is_final: bool = False


@dataclass(frozen=True)
class CaptureEvent:
    """Event emitted by a capture session."""

    kind: CaptureEventKind
    segments: Tuple[TranscriptSegment, ...] = field(default_factory=tuple)
    code: Optional[str] = None

    @classmethod
    def interim(cls, text: str) -> "CaptureEvent":
        return cls(CaptureEventKind.RESULT, (TranscriptSegment(text, False),))

    @classmethod
    def final(cls, text: str) -> "CaptureEvent":
        return cls(CaptureEventKind.RESULT, (TranscriptSegment(text, True),))

    @classmethod
    def batch(cls, *segments: TranscriptSegment) -> "CaptureEvent":
        return cls(CaptureEventKind.RESULT, tuple(segments))

    @classmethod
    def end(cls) -> "CaptureEvent":
        return cls(CaptureEventKind.END)

    @classmethod
    def error(cls, code: str) -> "CaptureEvent":
        return cls(CaptureEventKind.ERROR, code=code)


def resolve_batch(segments: Tuple[TranscriptSegment, ...]) -> Tuple[str, str]:
    """
    Split a result batch into (final_text, interim_text).

    Only the most recent final segment is kept; earlier finals in the same
    batch are superseded, not concatenated. Interim text is for display only.
    """
    final_text = ""
    interim_text = ""
    for segment in segments:
        if segment.is_final:
            final_text = segment.text
        else:
            interim_text = segment.text
    return final_text, interim_text


class CaptureSession(ABC):
    """A live capture session."""

    @abstractmethod
    def stop(self) -> None:
        """
        Request termination.

        Idempotent. The END event follows asynchronously.
        """


EventCallback = Callable[[CaptureSession, CaptureEvent], None]


class SpeechCapture(ABC):
    """
    Abstract speech-to-text capability.

    Subclasses must implement the start method.
    """

    @abstractmethod
    def start(self, on_event: EventCallback) -> CaptureSession:
        """
        Begin a capture session.

        Raises:
            CapabilityUnavailable: If the platform has no speech-to-text support
        """


class MicrophoneSession(CaptureSession):
    """Single-utterance session: listen, transcribe, report, end."""

    def __init__(self, capture: "MicrophoneCapture", on_event: EventCallback):
        self._capture = capture
        self._on_event = on_event
        self._stopped = False
        self._ended = False
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def begin(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run())

    def _emit(self, event: CaptureEvent) -> None:
        if self._ended:
            return
        self._on_event(self, event)

    def _finish(self) -> None:
        if self._ended:
            return
        self._emit(CaptureEvent.end())
        self._ended = True

    async def _run(self) -> None:
        import speech_recognition as sr

        loop = asyncio.get_running_loop()
        try:
            audio = await loop.run_in_executor(None, self._capture.listen_once)
            if self._stopped:
                return

            phrase = CapturedPhrase(
                pcm=audio.get_raw_data(
                    convert_rate=SAMPLE_RATE, convert_width=BYTES_PER_SAMPLE
                ),
                locale=self._capture.locale,
            )
            text = await self._capture.transcriber.transcribe(phrase)
            if self._stopped:
                return

            if text:
                self._emit(CaptureEvent.final(text))
            else:
                self._emit(CaptureEvent.error("no-speech"))

        except sr.WaitTimeoutError:
            self._emit(CaptureEvent.error("no-speech"))
        except PermissionError as e:
            logger.error(f"Microphone access denied: {e}")
            self._emit(CaptureEvent.error("not-allowed"))
        except OSError as e:
            logger.error(f"Audio capture failed: {e}")
            self._emit(CaptureEvent.error("audio-capture"))
        except (httpx.HTTPError, sr.RequestError) as e:
            logger.error(f"Transcription request failed: {e}")
            self._emit(CaptureEvent.error("network"))
        finally:
            self._finish()

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        # The worker thread finishes its listen call on its own; its result is discarded
        if self._loop is not None and not self._ended:
            self._loop.call_soon(self._finish)


class MicrophoneCapture(SpeechCapture):
    """
    Speech capture from a local microphone.

    Uses speech_recognition to record one phrase per session and a
    Transcriber to turn it into text.
    """

    def __init__(
        self,
        transcriber: Transcriber,
        device_index: Optional[int] = None,
        locale: str = "en-US",
        listen_timeout: float = 8.0,
        phrase_time_limit: float = 30.0,
        calibration_seconds: float = 0.5,
    ):
        """
        Initialize the microphone capture.

        Args:
            transcriber: Backend used to transcribe captured phrases
            device_index: Index of the audio input device (None for default)
            locale: Recognition locale, e.g. "en-US"
            listen_timeout: Seconds to wait for speech before reporting no-speech
            phrase_time_limit: Maximum phrase duration in seconds
            calibration_seconds: Ambient noise calibration time (0 to skip)
        """
        self.transcriber = transcriber
        self.device_index = device_index
        self.locale = locale
        self.listen_timeout = listen_timeout
        self.phrase_time_limit = phrase_time_limit
        self.calibration_seconds = calibration_seconds

    def start(self, on_event: EventCallback) -> MicrophoneSession:
        try:
            import speech_recognition as sr

            sr.Microphone.get_pyaudio()
        except (ImportError, AttributeError) as e:
            raise CapabilityUnavailable(
                "Speech recognition is not available. "
                "Install with: pip install autochat[voice]"
            ) from e

        session = MicrophoneSession(self, on_event)
        session.begin()
        logger.info("Microphone capture session started")
        return session

    def listen_once(self):
        """Record a single phrase. Blocking; runs in a worker thread."""
        import speech_recognition as sr

        recognizer = sr.Recognizer()
        with sr.Microphone(device_index=self.device_index) as source:
            if self.calibration_seconds > 0:
                recognizer.adjust_for_ambient_noise(
                    source, duration=self.calibration_seconds
                )
            logger.debug("Listening for speech...")
            return recognizer.listen(
                source,
                timeout=self.listen_timeout,
                phrase_time_limit=self.phrase_time_limit,
            )


def list_microphones() -> List[Tuple[int, dict]]:
    """
    List available microphone devices.

    Returns:
        List of (device_index, device_info) tuples for input devices
    """
    from autochat.voice import check_voice_available

    check_voice_available()

    import speech_recognition as sr

    audio = sr.Microphone.get_pyaudio().PyAudio()
    try:
        result = []
        for i in range(audio.get_device_count()):
            device_info = audio.get_device_info_by_index(i)
            if device_info.get("maxInputChannels", 0) >= 1:
                result.append((i, device_info))
        return result
    finally:
        audio.terminate()
