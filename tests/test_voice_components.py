"""Tests for voice components (without audio hardware)."""

import asyncio

import pytest


def test_voice_module_import():
    """Test that voice module can be imported."""
    from autochat.voice import VOICE_AVAILABLE

    # Should be importable regardless of dependencies
    assert isinstance(VOICE_AVAILABLE, bool)


class TestCaptureEvents:
    """Test capture event construction and batch resolution."""

    def test_event_constructors(self):
        from autochat.voice.listener import CaptureEvent, CaptureEventKind

        assert CaptureEvent.final("hi").segments[0].is_final is True
        assert CaptureEvent.interim("hi").segments[0].is_final is False
        assert CaptureEvent.end().kind == CaptureEventKind.END
        error = CaptureEvent.error("network")
        assert error.kind == CaptureEventKind.ERROR
        assert error.code == "network"

    def test_most_recent_final_wins(self):
        from autochat.voice.listener import TranscriptSegment, resolve_batch

        final_text, interim_text = resolve_batch(
            (
                TranscriptSegment("one", True),
                TranscriptSegment("two", True),
                TranscriptSegment("thr", False),
            )
        )
        assert final_text == "two"
        assert interim_text == "thr"

    def test_interim_only(self):
        from autochat.voice.listener import TranscriptSegment, resolve_batch

        assert resolve_batch((TranscriptSegment("hel", False),)) == ("", "hel")


class TestMicrophoneSession:
    """Test the microphone session lifecycle with the recorder stubbed out."""

    @pytest.mark.asyncio
    async def test_final_then_end(self):
        pytest.importorskip("speech_recognition")
        from autochat.voice.listener import CaptureEventKind, MicrophoneCapture, MicrophoneSession

        class StubAudio:
            def get_raw_data(self, convert_rate=None, convert_width=None):
                return b"\x00\x00" * 160

        class StubTranscriber:
            async def transcribe(self, phrase):
                assert phrase.locale == "en-US"
                return "hello"

        capture = MicrophoneCapture(StubTranscriber())
        capture.listen_once = lambda: StubAudio()

        events = []
        session = MicrophoneSession(capture, lambda s, e: events.append(e))
        session.begin()
        await asyncio.sleep(0.05)

        assert [e.kind for e in events] == [CaptureEventKind.RESULT, CaptureEventKind.END]
        assert events[0].segments[0].text == "hello"

    @pytest.mark.asyncio
    async def test_stop_yields_single_end(self):
        pytest.importorskip("speech_recognition")
        import time

        from autochat.voice.listener import CaptureEventKind, MicrophoneCapture, MicrophoneSession

        capture = MicrophoneCapture(transcriber=None)
        capture.listen_once = lambda: time.sleep(0.1)

        events = []
        session = MicrophoneSession(capture, lambda s, e: events.append(e))
        session.begin()
        session.stop()
        session.stop()
        await asyncio.sleep(0.2)

        assert [e.kind for e in events] == [CaptureEventKind.END]


class TestTranscriberAPI:
    """Test transcriber module API."""

    def test_captured_phrase(self):
        import io
        import wave

        from autochat.voice.transcriber import CapturedPhrase

        phrase = CapturedPhrase(pcm=b"\x00\x00" * 160, locale="pt-BR")
        assert phrase.language == "pt"

        with wave.open(io.BytesIO(phrase.to_wav()), "rb") as wav_file:
            assert wav_file.getframerate() == 16000
            assert wav_file.getnframes() == 160

    @pytest.mark.asyncio
    async def test_remote_whisper_posts_phrase(self, monkeypatch):
        import httpx

        from autochat.voice.transcriber import CapturedPhrase, RemoteWhisperTranscriber

        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"text": " hello there "})

        real_client = httpx.AsyncClient
        monkeypatch.setattr(
            httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )

        transcriber = RemoteWhisperTranscriber(url="http://whisper.test/transcribe")
        text = await transcriber.transcribe(CapturedPhrase(pcm=b"\x00\x00" * 160))

        assert text == "hello there"
        assert b'name="language"' in requests[0].content

    def test_create_transcriber_factory(self):
        from autochat.voice.transcriber import create_transcriber

        t = create_transcriber("remote_whisper", url="http://localhost:8000/transcribe")
        assert t is not None

    def test_openai_requires_key(self, monkeypatch):
        from autochat.voice.transcriber import create_transcriber

        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            create_transcriber("openai")

    def test_create_transcriber_invalid_backend(self):
        from autochat.voice.transcriber import create_transcriber

        with pytest.raises(ValueError):
            create_transcriber("invalid_backend")


class TestVoiceSelection:
    """Test the preferred-voice policy."""

    VOICES = [
        {"ShortName": "de-DE-KatjaNeural", "Locale": "de-DE"},
        {"ShortName": "en-GB-Standard", "Locale": "en-GB"},
        {"ShortName": "en-GB-SoniaNeural", "Locale": "en-GB"},
        {"ShortName": "en-US-JennyNeural", "Locale": "en-US"},
    ]

    def test_exact_locale_preferred(self):
        from autochat.voice.speaker import select_voice

        assert select_voice(self.VOICES, "en-US") == "en-US-JennyNeural"

    def test_language_match_when_no_exact_locale(self):
        from autochat.voice.speaker import select_voice

        assert select_voice(self.VOICES, "en-AU") == "en-GB-SoniaNeural"

    def test_no_match_uses_default(self):
        from autochat.voice.speaker import select_voice

        assert select_voice(self.VOICES, "fr-FR") is None

    def test_quality_marker_required(self):
        from autochat.voice.speaker import select_voice

        voices = [{"ShortName": "en-US-Basic", "Locale": "en-US"}]
        assert select_voice(voices, "en-US") is None


class TestSpeechOutput:
    """Test speech output completion and cancellation."""

    @pytest.mark.asyncio
    async def test_null_output_resolves_immediately(self):
        from autochat.voice.speaker import NullSpeechOutput

        done = NullSpeechOutput().speak("hello")
        assert done.done()
        await done

    def test_create_speech_output_none(self):
        from autochat.voice.speaker import NullSpeechOutput, create_speech_output

        assert isinstance(create_speech_output("none"), NullSpeechOutput)

    def test_create_speech_output_invalid_backend(self):
        from autochat.voice.speaker import create_speech_output

        with pytest.raises(ValueError):
            create_speech_output("invalid_backend")

    @pytest.mark.asyncio
    async def test_cancel_resolves_completion(self):
        from autochat.voice.speaker import EdgeSpeechOutput, TTSResult

        class SlowPlayer:
            def __init__(self):
                self.stopped = False

            async def play(self, result):
                await asyncio.sleep(10)

            def stop(self):
                self.stopped = True

        class StubEdge(EdgeSpeechOutput):
            async def synthesize(self, text):
                return TTSResult(audio_data=b"", format="wav")

        player = SlowPlayer()
        output = StubEdge(voice="en-US-JennyNeural", player=player)

        done = output.speak("a long reply")
        player.stopped = False
        await asyncio.sleep(0.01)
        output.cancel_all()

        await asyncio.wait_for(done, timeout=1.0)
        assert player.stopped is True

    @pytest.mark.asyncio
    async def test_cancel_during_conversion_skips_playback(self, monkeypatch):
        import io
        import sys
        import time
        import types
        import wave

        from autochat.voice.speaker import AudioPlayer, EdgeSpeechOutput, TTSResult

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(16000)
            wav_file.writeframes(b"\x00\x00" * 160)
        wav_bytes = buffer.getvalue()

        played = []

        class FakePlayback:
            def wait_done(self):
                pass

            def stop(self):
                pass

        class FakeWaveObject:
            @classmethod
            def from_wave_read(cls, wave_read):
                return cls()

            def play(self):
                played.append(True)
                return FakePlayback()

        monkeypatch.setitem(
            sys.modules, "simpleaudio", types.SimpleNamespace(WaveObject=FakeWaveObject)
        )

        class SlowConversionPlayer(AudioPlayer):
            def _convert_mp3_to_wav(self, mp3_data):
                time.sleep(0.2)
                return wav_bytes

        class StubEdge(EdgeSpeechOutput):
            async def synthesize(self, text):
                return TTSResult(audio_data=b"mp3", format="mp3")

        output = StubEdge(voice="en-US-JennyNeural", player=SlowConversionPlayer())
        done = output.speak("hello")
        await asyncio.sleep(0.05)
        output.cancel_all()

        await asyncio.wait_for(done, timeout=1.0)
        await asyncio.sleep(0.3)
        assert played == []

        # A later utterance still plays
        await asyncio.wait_for(output.speak("again"), timeout=1.0)
        assert played == [True]

    @pytest.mark.asyncio
    async def test_speak_replaces_current_utterance(self):
        from autochat.voice.speaker import EdgeSpeechOutput, TTSResult

        played = []

        class RecordingPlayer:
            async def play(self, result):
                await asyncio.sleep(0.05)
                played.append(result.audio_data)

            def stop(self):
                pass

        class StubEdge(EdgeSpeechOutput):
            async def synthesize(self, text):
                return TTSResult(audio_data=text.encode(), format="wav")

        output = StubEdge(voice="en-US-JennyNeural", player=RecordingPlayer())
        first = output.speak("first")
        second = output.speak("second")

        await asyncio.wait_for(asyncio.gather(first, second), timeout=1.0)
        assert played == [b"second"]


class TestTextPreprocessing:
    """Test text preprocessing for TTS."""

    def test_prepare_text_special_chars(self):
        from autochat.voice.speaker import _prepare_text_for_tts

        assert "percent" in _prepare_text_for_tts("It's 50% complete")
        assert "degrees" in _prepare_text_for_tts("Temperature is 72°F")

    def test_prepare_text_strips_markdown(self):
        from autochat.voice.speaker import _prepare_text_for_tts

        assert _prepare_text_for_tts("This is *emphasized* text") == "This is emphasized text"


class TestMetrics:
    """Test turn metrics."""

    def test_without_client_is_noop(self):
        from autochat.voice.metrics import TurnMetrics

        metrics = TurnMetrics()
        assert metrics.enabled is False
        metrics.turn_dispatched()
        metrics.turn_finished(0.25)
        metrics.close()

    def test_disabled_by_env(self, monkeypatch):
        from autochat.voice.metrics import TurnMetrics

        monkeypatch.setenv("STATSD_ENABLED", "false")
        assert TurnMetrics.from_env().enabled is False

    def test_events_are_prefixed_statsd_lines(self):
        from autochat.voice.metrics import MetricsConfig, StatsdClient, TurnMetrics

        sent = []

        class RecordingClient(StatsdClient):
            def send(self, name, value, metric_type):
                sent.append(f"{self.qualify(name)}:{value}|{metric_type}")

        metrics = TurnMetrics(RecordingClient(MetricsConfig(prefix="test.voice")))
        metrics.capture_error("network")
        metrics.turn_finished(0.25)

        assert sent == [
            "test.voice.capture.error.network:1|c",
            "test.voice.turn.duration:250.0|ms",
        ]

    def test_closed_client_stays_closed(self):
        from autochat.voice.metrics import MetricsConfig, StatsdClient

        client = StatsdClient(MetricsConfig(port=9))
        client.close()
        client.send("turn.dispatch", 1, "c")

        assert client.closed is True
        assert client._socket is None
