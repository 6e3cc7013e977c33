"""
Speech output for autochat.

A SpeechOutput speaks one utterance at a time. ``speak`` cancels whatever the
port is currently saying and returns a future that resolves once the new
utterance ends, whether it finished normally, failed, or was cancelled.
"""

import asyncio
import io
import logging
import threading
import wave
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_QUALITY_MARKERS = ("Neural",)


@dataclass
class TTSResult:
    """Synthesized audio."""

    audio_data: bytes
    format: str = "mp3"  # "mp3" or "wav"


def _prepare_text_for_tts(text: str) -> str:
    """Rewrite symbols for pronunciation and strip *emphasis* markup."""
    replacements = {
        "%": " percent",
        "°C": " degrees Celsius",
        "°F": " degrees Fahrenheit",
        "°": " degrees",
    }
    for original, replacement in replacements.items():
        text = text.replace(original, replacement)

    return text.replace("*", "")


def select_voice(
    voices: Iterable[dict],
    locale: str,
    quality_markers: Sequence[str] = DEFAULT_QUALITY_MARKERS,
) -> Optional[str]:
    """
    Pick a voice for a locale.

    Prefers a voice whose name contains a quality marker and whose language
    matches the locale's language, an exact locale match first. Returns None
    when nothing matches so the platform default voice is used.

    Args:
        voices: Voice descriptions with "ShortName" and "Locale" keys
        locale: Configured locale, e.g. "en-US"
        quality_markers: Name fragments signalling a higher quality voice
    """
    language = locale.split("-")[0].lower()
    candidates = []
    for voice in voices:
        name = voice.get("ShortName") or voice.get("Name") or ""
        voice_locale = voice.get("Locale", "")
        if voice_locale.split("-")[0].lower() != language:
            continue
        if not any(marker in name for marker in quality_markers):
            continue
        candidates.append((voice_locale.lower() != locale.lower(), name))

    if not candidates:
        return None
    # Stable: exact locale matches sort first, original order otherwise
    candidates.sort(key=lambda c: c[0])
    return candidates[0][1]


class SpeechOutput(ABC):
    """
    Abstract text-to-speech capability.

    Subclasses must implement speak and cancel_all.
    """

    @abstractmethod
    def speak(self, text: str) -> "asyncio.Future[None]":
        """Cancel any current utterance and start speaking text."""

    @abstractmethod
    def cancel_all(self) -> None:
        """Cancel in-flight speech. The pending completion future resolves."""


class NullSpeechOutput(SpeechOutput):
    """Used when no speech output is available. Completes immediately."""

    def speak(self, text: str) -> "asyncio.Future[None]":
        done = asyncio.get_running_loop().create_future()
        done.set_result(None)
        return done

    def cancel_all(self) -> None:
        pass


class AudioPlayer:
    """
    Plays synthesized audio through simpleaudio.

    stop() interrupts the current playback and also marks the utterance as
    cancelled, so a worker still converting audio never starts playing it.
    """

    def __init__(self):
        self._current_playback = None
        self._cancelled: Optional[threading.Event] = None
        self._lock = threading.Lock()

    async def play(self, result: TTSResult) -> None:
        """Play audio until it finishes or stop() is called."""
        cancelled = threading.Event()
        with self._lock:
            self._cancelled = cancelled
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_sync, result, cancelled)

    def _play_sync(self, result: TTSResult, cancelled: threading.Event) -> None:
        import simpleaudio

        if result.format == "mp3":
            audio_data = self._convert_mp3_to_wav(result.audio_data)
        else:
            audio_data = result.audio_data

        with wave.open(io.BytesIO(audio_data), "rb") as wave_read:
            wave_obj = simpleaudio.WaveObject.from_wave_read(wave_read)

        with self._lock:
            if cancelled.is_set():
                logger.debug("Utterance cancelled before playback started")
                return
            play_obj = wave_obj.play()
            self._current_playback = play_obj
        try:
            play_obj.wait_done()
        finally:
            with self._lock:
                if self._current_playback is play_obj:
                    self._current_playback = None

    def _convert_mp3_to_wav(self, mp3_data: bytes) -> bytes:
        from pydub import AudioSegment

        audio = AudioSegment.from_mp3(io.BytesIO(mp3_data))
        buffer = io.BytesIO()
        audio.export(buffer, format="wav")
        return buffer.getvalue()

    def stop(self) -> None:
        """Stop current playback."""
        with self._lock:
            if self._cancelled is not None:
                self._cancelled.set()
                self._cancelled = None
            playback = self._current_playback
            self._current_playback = None
        if playback is not None:
            try:
                playback.stop()
            except Exception as e:
                logger.debug(f"Error stopping playback: {e}")


class EdgeSpeechOutput(SpeechOutput):
    """
    Speech output using Microsoft Edge TTS.

    When no voice is given, one is chosen for the locale with select_voice
    the first time something is spoken.
    """

    def __init__(
        self,
        voice: Optional[str] = None,
        locale: str = "en-US",
        rate: str = "+0%",
        player: Optional[AudioPlayer] = None,
    ):
        """
        Initialize the Edge TTS output.

        Args:
            voice: Voice name (e.g., "en-US-JennyNeural"); None to auto-select
            locale: Locale used for voice selection
            rate: Speech rate adjustment (e.g., "+10%", "-20%")
            player: Audio player (a new AudioPlayer by default)
        """
        self.voice = voice
        self.locale = locale
        self.rate = rate
        self.player = player or AudioPlayer()
        self._voice_resolved = voice is not None
        self._task: Optional[asyncio.Task] = None

    async def _resolve_voice(self) -> Optional[str]:
        import edge_tts

        if not self._voice_resolved:
            try:
                voices = await edge_tts.list_voices()
                self.voice = select_voice(voices, self.locale)
            except Exception as e:
                logger.warning(f"Could not list TTS voices, using default: {e}")
            self._voice_resolved = True
            logger.info(f"TTS voice: {self.voice or 'default'}")
        return self.voice

    async def synthesize(self, text: str) -> TTSResult:
        """Synthesize speech using Edge TTS."""
        import edge_tts

        voice = await self._resolve_voice()
        kwargs = {"rate": self.rate}
        if voice:
            kwargs["voice"] = voice
        communicate = edge_tts.Communicate(_prepare_text_for_tts(text), **kwargs)

        audio_data = b""
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                audio_data += chunk["data"]
        return TTSResult(audio_data=audio_data, format="mp3")

    async def _say(self, text: str) -> None:
        try:
            result = await self.synthesize(text)
            await self.player.play(result)
        except Exception as e:
            logger.error(f"Speech output error: {e}")

    def speak(self, text: str) -> "asyncio.Future[None]":
        self.cancel_all()

        loop = asyncio.get_running_loop()
        done = loop.create_future()
        self._task = loop.create_task(self._say(text))

        def _resolve(_task: asyncio.Task) -> None:
            if not done.done():
                done.set_result(None)

        self._task.add_done_callback(_resolve)
        return done

    def cancel_all(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.player.stop()


def create_speech_output(backend: str = "edge", **kwargs) -> SpeechOutput:
    """
    Create a speech output with the specified backend.

    Args:
        backend: Backend type ("edge", "none")
        **kwargs: Additional arguments passed to the speech output

    Returns:
        SpeechOutput instance. "edge" degrades to NullSpeechOutput when
        edge-tts is not installed.
    """
    if backend == "none":
        return NullSpeechOutput()
    if backend != "edge":
        raise ValueError(f"Unknown backend: {backend}. Available: ['edge', 'none']")

    try:
        import edge_tts  # noqa: F401
    except ImportError:
        logger.warning("edge-tts not installed, speech output disabled")
        return NullSpeechOutput()
    return EdgeSpeechOutput(**kwargs)
