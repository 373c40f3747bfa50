"""
Shared fixtures and in-memory fakes for the live session engine tests.

The fakes stand in for the microphone, the speaker and the Gemini Live
transport so the controller can be driven without audio hardware or network.
"""

import asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from mayra.audio.devices import AudioOutput, Microphone, PlaybackHandle
from mayra.config.models import AppConfig, LiveConfig, ToolsConfig
from mayra.core.storage import PersistentStores
from mayra.providers.base import LiveSession, LiveTransport, SessionCallbacks
from mayra.tools.context import ToolExecutionContext
from mayra.tools.registry import tool_registry


class FakeMicrophone(Microphone):

    def __init__(self, open_error: Optional[Exception] = None):
        self.open_error = open_error
        self.on_frame = None
        self.open_calls = 0
        self.close_calls = 0
        self.started = False

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error

    def start(self, on_frame) -> None:
        self.on_frame = on_frame
        self.started = True

    def stop(self) -> None:
        self.started = False
        self.on_frame = None

    def close(self) -> None:
        self.close_calls += 1

    def emit(self, samples) -> None:
        if self.on_frame is not None:
            self.on_frame(samples)


class FakeHandle(PlaybackHandle):

    def __init__(self, samples, start_at, on_ended):
        self.samples = samples
        self.start_at = start_at
        self.on_ended = on_ended
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeSpeaker(AudioOutput):
    """Output with a hand-driven clock; handles finish when the test says so."""

    def __init__(self, sample_rate: int = 24000):
        self.sample_rate = sample_rate
        self.now = 0.0
        self.gain = None
        self.open_calls = 0
        self.close_calls = 0
        self.handles: List[FakeHandle] = []

    @property
    def current_time(self) -> float:
        return self.now

    def open(self) -> None:
        self.open_calls += 1

    def play(self, samples, start_at, on_ended) -> FakeHandle:
        handle = FakeHandle(samples, start_at, on_ended)
        self.handles.append(handle)
        return handle

    def set_gain(self, gain: float) -> None:
        self.gain = gain

    def close(self) -> None:
        self.close_calls += 1

    def finish(self, handle: FakeHandle) -> None:
        handle.on_ended(handle)


class FakeLiveSession(LiveSession):

    def __init__(self, callbacks: SessionCallbacks, accept_audio: bool = True):
        self.callbacks = callbacks
        self.accept_audio = accept_audio
        self.ready = True
        self.sent_audio: List[bytes] = []
        self.tool_responses: List[List[Dict[str, Any]]] = []
        self.close_calls = 0

    @property
    def is_ready(self) -> bool:
        return self.ready

    def send_realtime_input(self, pcm: bytes) -> bool:
        if not self.accept_audio:
            return False
        self.sent_audio.append(pcm)
        return True

    async def send_tool_response(self, responses):
        self.tool_responses.append(responses)

    async def close(self) -> None:
        self.close_calls += 1
        self.ready = False


class FakeTransport(LiveTransport):
    """
    Records connect attempts. Set `error` to make the next connects fail, or
    set `gate` to an unset Event to hold a connect in CONNECTING.
    """

    def __init__(self):
        self.connect_calls = 0
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.sessions: List[FakeLiveSession] = []
        self.configs = []

    @property
    def last_session(self) -> Optional[FakeLiveSession]:
        return self.sessions[-1] if self.sessions else None

    async def connect(self, config, callbacks: SessionCallbacks) -> FakeLiveSession:
        self.connect_calls += 1
        self.configs.append(config)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        session = FakeLiveSession(callbacks)
        self.sessions.append(session)
        await callbacks.on_open(session)
        return session


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        live=LiveConfig(api_key="test-key"),
        tools=ToolsConfig(documents_dir=str(tmp_path / "downloads"), shutdown_grace_sec=0.01),
    )


@pytest.fixture
def stores(tmp_path):
    return PersistentStores.open(str(tmp_path / "mayra.db"))


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def speaker():
    return FakeSpeaker()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def mock_controller():
    """Controller stand-in for tool tests."""
    controller = Mock()
    controller.set_output_gain = Mock()
    controller.set_mode = Mock()
    controller.clear_messages = Mock()
    controller.flush_transcript = AsyncMock()
    controller.schedule_shutdown = Mock()
    return controller


@pytest.fixture
def tool_context(stores, mock_controller, app_config):
    return ToolExecutionContext(
        session_id="test-session",
        stores=stores,
        controller=mock_controller,
        battery=None,
        config=app_config,
    )


@pytest.fixture
def fresh_registry():
    """Empty the global tool registry for the test and restore it afterwards."""
    tool_registry.clear()
    yield tool_registry
    tool_registry.clear()
    tool_registry.initialize_default_tools()
