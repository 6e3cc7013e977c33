"""
Speech-to-text backends for microphone capture.

A backend turns one captured phrase into text. An empty string means the
phrase held no recognizable speech.
"""

import asyncio
import io
import logging
import os
import wave
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Type

import httpx

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
BYTES_PER_SAMPLE = 2


@dataclass(frozen=True)
class CapturedPhrase:
    """One phrase of 16-bit mono PCM recorded from the microphone."""

    pcm: bytes
    locale: str = "en-US"
    sample_rate: int = SAMPLE_RATE

    @property
    def language(self) -> str:
        """Two-letter language code, e.g. "en" for "en-US"."""
        return self.locale.split("-")[0].lower()

    def to_wav(self) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(BYTES_PER_SAMPLE)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(self.pcm)
        return buffer.getvalue()


class Transcriber(ABC):
    """
    Abstract speech-to-text backend.

    Subclasses must implement transcribe.
    """

    @abstractmethod
    async def transcribe(self, phrase: CapturedPhrase) -> str:
        """
        Transcribe a captured phrase.

        Raises:
            httpx.HTTPError: If a remote backend could not be reached
        """


class WhisperHTTPTranscriber(Transcriber):
    """
    Base for Whisper-style HTTP endpoints.

    The phrase is uploaded as a WAV file in a multipart form and the reply is
    JSON with a "text" field.
    """

    def __init__(self, url: str, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout

    def form_fields(self, phrase: CapturedPhrase) -> Dict[str, str]:
        return {"language": phrase.language}

    def headers(self) -> Dict[str, str]:
        return {}

    async def transcribe(self, phrase: CapturedPhrase) -> str:
        files = {"file": ("phrase.wav", phrase.to_wav(), "audio/wav")}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.url,
                files=files,
                data=self.form_fields(phrase),
                headers=self.headers(),
            )
            response.raise_for_status()
            payload = response.json()

        text = payload.get("text", "") if isinstance(payload, dict) else ""
        logger.debug(f"Transcribed {len(phrase.pcm)} bytes: {text!r}")
        return text.strip()


class RemoteWhisperTranscriber(WhisperHTTPTranscriber):
    """Self-hosted Whisper server."""

    def __init__(
        self,
        url: str = "http://localhost:8000/transcribe",
        timeout: float = 30.0,
    ):
        super().__init__(url, timeout)


class OpenAITranscriber(WhisperHTTPTranscriber):
    """
    OpenAI audio transcription API.

    Needs OPENAI_API_KEY in the environment or an explicit api_key.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "whisper-1",
        timeout: float = 30.0,
    ):
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key required (set OPENAI_API_KEY)")
        super().__init__("https://api.openai.com/v1/audio/transcriptions", timeout)
        self.api_key = api_key
        self.model = model

    def form_fields(self, phrase: CapturedPhrase) -> Dict[str, str]:
        fields = super().form_fields(phrase)
        fields["model"] = self.model
        return fields

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


class GoogleWebSpeechTranscriber(Transcriber):
    """Free Google Web Speech recognizer bundled with speech_recognition."""

    def __init__(self):
        from autochat.voice import check_voice_available

        check_voice_available()

        import speech_recognition as sr

        self.recognizer = sr.Recognizer()

    def _recognize(self, phrase: CapturedPhrase) -> str:
        import speech_recognition as sr

        audio = sr.AudioData(phrase.pcm, phrase.sample_rate, BYTES_PER_SAMPLE)
        try:
            return self.recognizer.recognize_google(audio, language=phrase.locale)
        except sr.UnknownValueError:
            return ""

    async def transcribe(self, phrase: CapturedPhrase) -> str:
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self._recognize, phrase)
        return text.strip()


TRANSCRIBERS: Dict[str, Type[Transcriber]] = {
    "remote_whisper": RemoteWhisperTranscriber,
    "openai": OpenAITranscriber,
    "google": GoogleWebSpeechTranscriber,
}


def create_transcriber(backend: str = "google", **kwargs) -> Transcriber:
    """
    Create a transcriber by backend name.

    Args:
        backend: One of TRANSCRIBERS ("remote_whisper", "openai", "google")
        **kwargs: Passed to the backend constructor

    Raises:
        ValueError: On an unknown backend or missing credentials
    """
    try:
        cls = TRANSCRIBERS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown STT backend: {backend}. Available: {sorted(TRANSCRIBERS)}"
        ) from None
    return cls(**kwargs)
