"""
Tests for the Gemini Live transport: wire message parsing, the setup
message, and session open/close behavior against a mocked WebSocket.
"""

import asyncio
import json
from unittest.mock import AsyncMock, Mock, patch

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from mayra.config.models import LiveConfig
from mayra.core.errors import TransportError
from mayra.providers.base import LiveSessionConfig, SessionCallbacks
from mayra.providers.google_live import (
    GoogleLiveSession,
    build_setup_message,
    parse_server_message,
)

from tests.helpers import settle


class FakeWebSocket:
    """Async-iterable socket fed from a queue; None ends iteration cleanly."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox = asyncio.Queue()

    def feed(self, message):
        self._inbox.put_nowait(message if message is None or isinstance(message, BaseException) else json.dumps(message))

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def session_config():
    return LiveSessionConfig(
        model="gemini-test",
        system_instruction="Be helpful.",
        voice_name="Kore",
        tools=[{"googleSearch": {}}],
    )


@pytest.fixture
def callbacks():
    return SessionCallbacks(
        on_open=AsyncMock(),
        on_message=AsyncMock(),
        on_close=AsyncMock(),
        on_error=AsyncMock(),
    )


@pytest.fixture
def settings():
    return LiveConfig(api_key="secret-key", setup_timeout_sec=0.5)


class TestParseServerMessage:

    def test_transcriptions_and_flags(self):
        message = parse_server_message({
            "serverContent": {
                "inputTranscription": {"text": "hi"},
                "outputTranscription": {"text": "hello"},
                "turnComplete": True,
            }
        })

        assert message.input_transcription == "hi"
        assert message.output_transcription == "hello"
        assert message.turn_complete is True
        assert message.interrupted is False

    def test_audio_parts_in_order(self):
        message = parse_server_message({
            "serverContent": {
                "modelTurn": {"parts": [
                    {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": "AAA="}},
                    {"text": "ignored"},
                    {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": "BBB="}},
                ]}
            }
        })

        assert message.audio == ["AAA=", "BBB="]

    def test_grounding_from_content_and_model_turn(self):
        message = parse_server_message({
            "serverContent": {
                "groundingMetadata": {"groundingChunks": [{"web": {"uri": "https://a.example", "title": "A"}}]},
                "modelTurn": {"groundingMetadata": {"groundingChunks": [
                    {"web": {"uri": "https://b.example"}},
                    {"web": {"title": "no uri"}},
                ]}},
            }
        })

        assert [(r.uri, r.title) for r in message.grounding] == [
            ("https://a.example", "A"),
            ("https://b.example", ""),
        ]

    def test_tool_calls(self):
        message = parse_server_message({
            "toolCall": {"functionCalls": [
                {"id": "1", "name": "get_current_time", "args": {}},
                {"id": "2", "name": "set_volume", "args": {"level": 40}},
            ]}
        })

        assert [(c.id, c.name, c.args) for c in message.tool_calls] == [
            ("1", "get_current_time", {}),
            ("2", "set_volume", {"level": 40}),
        ]

    def test_interrupted(self):
        assert parse_server_message({"serverContent": {"interrupted": True}}).interrupted is True

    def test_empty_message(self):
        message = parse_server_message({})
        assert message.audio == []
        assert message.tool_calls == []
        assert message.input_transcription is None


class TestBuildSetupMessage:

    def test_setup_shape(self, session_config):
        setup = build_setup_message(session_config)["setup"]

        assert setup["model"] == "models/gemini-test"
        assert setup["generation_config"]["responseModalities"] == ["AUDIO"]
        voice = setup["generation_config"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]
        assert voice == {"voiceName": "Kore"}
        assert setup["system_instruction"]["parts"][0]["text"] == "Be helpful."
        assert setup["tools"] == [{"googleSearch": {}}]
        assert setup["inputAudioTranscription"] == {}
        assert setup["outputAudioTranscription"] == {}

    def test_transcription_can_be_disabled(self, session_config):
        session_config.input_transcription = False
        session_config.tools = []
        setup = build_setup_message(session_config)["setup"]

        assert "inputAudioTranscription" not in setup
        assert "tools" not in setup


class TestGoogleLiveSession:

    @pytest.mark.asyncio
    async def test_missing_key_raises(self, session_config, callbacks):
        session = GoogleLiveSession(LiveConfig(api_key=None), session_config, callbacks)

        with pytest.raises(TransportError):
            await session.open()

    @pytest.mark.asyncio
    async def test_open_waits_for_setup_complete(self, settings, session_config, callbacks):
        ws = FakeWebSocket()
        ws.feed({"setupComplete": {}})

        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(return_value=ws)) as connect:
            session = GoogleLiveSession(settings, session_config, callbacks)
            await session.open()

        assert "key=secret-key" in connect.call_args.args[0]
        assert session.is_ready is True
        assert "setup" in ws.sent[0]
        callbacks.on_open.assert_awaited_once_with(session)
        await session.close()

    @pytest.mark.asyncio
    async def test_setup_timeout(self, settings, session_config, callbacks):
        ws = FakeWebSocket()
        settings.setup_timeout_sec = 0.05

        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(return_value=ws)):
            session = GoogleLiveSession(settings, session_config, callbacks)
            with pytest.raises(TransportError):
                await session.open()

        assert ws.closed is True
        callbacks.on_open.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connect_failure(self, settings, session_config, callbacks):
        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(side_effect=OSError("refused"))):
            session = GoogleLiveSession(settings, session_config, callbacks)
            with pytest.raises(TransportError):
                await session.open()

    @pytest.mark.asyncio
    async def test_messages_are_dispatched(self, settings, session_config, callbacks):
        ws = FakeWebSocket()
        ws.feed({"setupComplete": {}})
        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(return_value=ws)):
            session = GoogleLiveSession(settings, session_config, callbacks)
            await session.open()

        ws.feed({"serverContent": {"outputTranscription": {"text": "Hello"}}})
        await settle()

        message = callbacks.on_message.await_args.args[0]
        assert message.output_transcription == "Hello"
        await session.close()

    @pytest.mark.asyncio
    async def test_realtime_input_and_tool_response(self, settings, session_config, callbacks):
        ws = FakeWebSocket()
        ws.feed({"setupComplete": {}})
        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(return_value=ws)):
            session = GoogleLiveSession(settings, session_config, callbacks)
            await session.open()

        assert session.send_realtime_input(b"\x00\x00") is True
        await session.send_tool_response([{"id": "1", "name": "x", "response": {"result": {}}}])
        await settle()

        audio = [m for m in ws.sent if "realtimeInput" in m][0]["realtimeInput"]["audio"]
        assert audio == {"mimeType": "audio/pcm;rate=16000", "data": "AAA="}
        tool = [m for m in ws.sent if "toolResponse" in m][0]
        assert tool["toolResponse"]["functionResponses"][0]["id"] == "1"
        await session.close()

    @pytest.mark.asyncio
    async def test_clean_remote_close_reports_on_close(self, settings, session_config, callbacks):
        ws = FakeWebSocket()
        ws.feed({"setupComplete": {}})
        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(return_value=ws)):
            session = GoogleLiveSession(settings, session_config, callbacks)
            await session.open()

        ws.feed(None)
        await settle()

        callbacks.on_close.assert_awaited_once()
        callbacks.on_error.assert_not_awaited()
        assert session.is_ready is False
        assert session.send_realtime_input(b"\x00\x00") is False

    @pytest.mark.asyncio
    async def test_abnormal_close_reports_on_error(self, settings, session_config, callbacks):
        ws = FakeWebSocket()
        ws.feed({"setupComplete": {}})
        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(return_value=ws)):
            session = GoogleLiveSession(settings, session_config, callbacks)
            await session.open()

        ws.feed(ConnectionClosedError(Close(1011, "internal"), None))
        await settle()

        callbacks.on_error.assert_awaited_once()
        assert isinstance(callbacks.on_error.await_args.args[0], TransportError)
        callbacks.on_close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_local_close_fires_no_callbacks(self, settings, session_config, callbacks):
        ws = FakeWebSocket()
        ws.feed({"setupComplete": {}})
        with patch("mayra.providers.google_live.websockets.connect", AsyncMock(return_value=ws)):
            session = GoogleLiveSession(settings, session_config, callbacks)
            await session.open()

        await session.close()
        await session.close()
        await settle()

        assert ws.closed is True
        callbacks.on_close.assert_not_awaited()
        callbacks.on_error.assert_not_awaited()
