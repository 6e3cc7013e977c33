"""Fake capability ports shared by the autochat tests."""

import asyncio
from typing import List, Optional

import pytest

from autochat.assistant import AssistantClient
from autochat.config import ChatSettings
from autochat.errors import CapabilityUnavailable, DispatchFailure
from autochat.messages import MessageLog
from autochat.voice.controller import TurnController
from autochat.voice.listener import CaptureEvent, CaptureSession, SpeechCapture
from autochat.voice.speaker import SpeechOutput


class FakeSession(CaptureSession):
    """Capture session driven by the test. stop() ends it asynchronously."""

    def __init__(self, on_event, fail_on_stop: bool = False):
        self.on_event = on_event
        self.fail_on_stop = fail_on_stop
        self.stop_calls = 0
        self.stopped = False
        self.ended = False

    @property
    def live(self) -> bool:
        return not (self.stopped or self.ended)

    def emit(self, event: CaptureEvent) -> None:
        if event.kind.name == "END":
            self.ended = True
        self.on_event(self, event)

    def stop(self) -> None:
        self.stop_calls += 1
        if self.fail_on_stop:
            raise RuntimeError("stop failed")
        if self.stopped:
            return
        self.stopped = True
        asyncio.get_running_loop().call_soon(self.emit, CaptureEvent.end())


class FakeCapture(SpeechCapture):
    """Records every session it opens."""

    def __init__(self):
        self.available = True
        self.start_error: Optional[Exception] = None
        self.fail_on_stop = False
        self.sessions: List[FakeSession] = []

    def start(self, on_event) -> FakeSession:
        if not self.available:
            raise CapabilityUnavailable("Speech recognition is not supported")
        if self.start_error is not None:
            error, self.start_error = self.start_error, None
            raise error
        session = FakeSession(on_event, fail_on_stop=self.fail_on_stop)
        self.sessions.append(session)
        return session

    @property
    def current(self) -> FakeSession:
        return self.sessions[-1]

    @property
    def live_sessions(self) -> List[FakeSession]:
        return [s for s in self.sessions if s.live]


class FakeAssistant(AssistantClient):
    """Replies with a fixed text; can be held open or made to fail."""

    def __init__(self, reply: str = "Hi! How can I help?"):
        self.reply = reply
        self.fail = False
        self.dispatched: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    def hold(self) -> asyncio.Event:
        self.gate = asyncio.Event()
        return self.gate

    async def dispatch(self, text: str) -> str:
        self.dispatched.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise DispatchFailure("Server responded with status: 500", 500)
        return self.reply


class FakeSpeech(SpeechOutput):
    """Speech output that completes immediately unless held."""

    def __init__(self):
        self.spoken: List[str] = []
        self.cancel_calls = 0
        self.held = False
        self._pending: Optional[asyncio.Future] = None

    def speak(self, text: str) -> asyncio.Future:
        self.cancel_all()
        self.spoken.append(text)
        done = asyncio.get_running_loop().create_future()
        if self.held:
            self._pending = done
        else:
            done.set_result(None)
        return done

    def finish(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(None)
        self._pending = None

    def cancel_all(self) -> None:
        self.cancel_calls += 1
        self.finish()


# Short real delays keep timer-driven tests fast
DEBOUNCE = 0.05
RESTART = 0.02
BUSY_RESTART = 0.15
ERROR_RESTART = 0.05


@pytest.fixture
def settings():
    return ChatSettings(
        debounce_delay=DEBOUNCE,
        restart_delay=RESTART,
        busy_restart_delay=BUSY_RESTART,
        error_restart_delay=ERROR_RESTART,
        metrics_enabled=False,
    )


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def assistant():
    return FakeAssistant()


@pytest.fixture
def speech():
    return FakeSpeech()


@pytest.fixture
def log():
    return MessageLog()


@pytest.fixture
def controller(assistant, capture, speech, log, settings):
    return TurnController(
        assistant=assistant,
        capture=capture,
        speech=speech,
        log=log,
        settings=settings,
    )
