"""
Tests for SessionController.

Covers the connection state machine, auto-recovery, teardown, generation
isolation of stale sessions, transcript and playback wiring, and tool
dispatch through the live session.
"""

import asyncio
import base64
import threading
import time
from unittest.mock import Mock

import numpy as np
import pytest

from mayra.core.errors import (
    CONNECTION_FAILED,
    MISSING_KEY_ERROR,
    OFFLINE_ERROR,
    OFFLINE_NOTICE,
    MicrophoneAccessError,
    TransportError,
)
from mayra.core.models import AssistantMode, ConnectionState, MemoryItem, OwnerPreferences, Sender
from mayra.core.session_controller import SessionController
from mayra.providers.base import ServerMessage, ToolCallRequest

from tests.helpers import settle, wait_until


def _pcm_b64(samples: int) -> str:
    return base64.b64encode(np.zeros(samples, dtype="<i2").tobytes()).decode("ascii")


@pytest.fixture
def notices():
    return Mock()


@pytest.fixture
def on_shutdown():
    return Mock()


@pytest.fixture
def controller(app_config, stores, transport, microphone, speaker, notices, on_shutdown):
    return SessionController(
        config=app_config,
        stores=stores,
        transport=transport,
        microphone=microphone,
        speaker=speaker,
        notice_speaker=notices,
        on_shutdown=on_shutdown,
    )


async def _power_on(controller):
    controller.set_power(True)
    await settle()


class TestConnect:

    @pytest.mark.asyncio
    async def test_power_on_connects(self, controller, transport, microphone, speaker):
        await _power_on(controller)

        assert controller.state == ConnectionState.CONNECTED
        assert controller.error is None
        assert transport.connect_calls == 1
        assert microphone.open_calls == 1
        assert microphone.started is True
        assert speaker.open_calls == 1

    @pytest.mark.asyncio
    async def test_session_config_carries_prompt_and_tools(self, controller, transport, stores):
        stores.save_memories([MemoryItem(category="Preference", details="Likes jazz")])
        await _power_on(controller)

        config = transport.configs[0]
        assert config.model == controller.config.live.model
        assert config.voice_name == "Kore"
        assert "[ID:0] [Preference]: Likes jazz" in config.system_instruction
        assert "'save_memory'" in config.system_instruction
        assert {"googleSearch": {}} in config.tools
        names = [d["name"] for d in config.tools[-1]["functionDeclarations"]]
        assert "shutdown_mayra" in names
        assert "clear_chat" in names

    @pytest.mark.asyncio
    async def test_connect_is_noop_when_power_off(self, controller, transport):
        await controller.connect()

        assert transport.connect_calls == 0
        assert controller.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_is_noop_when_connected(self, controller, transport):
        await _power_on(controller)
        await controller.connect()

        assert transport.connect_calls == 1

    @pytest.mark.asyncio
    async def test_missing_key_sets_error_without_retry(self, controller, transport):
        controller.config.live.api_key = None
        await _power_on(controller)

        assert controller.state == ConnectionState.ERROR
        assert controller.error == MISSING_KEY_ERROR
        assert transport.connect_calls == 0
        assert controller.power_on is True

    @pytest.mark.asyncio
    async def test_offline_connect_never_opens_transport(
        self, controller, transport, notices, on_shutdown
    ):
        controller.set_network_online(False)
        await _power_on(controller)

        assert transport.connect_calls == 0
        assert controller.state == ConnectionState.ERROR
        assert controller.error == OFFLINE_ERROR
        notices.speak.assert_called_once_with(OFFLINE_NOTICE)
        on_shutdown.assert_called_once()
        assert controller.power_on is False

    @pytest.mark.asyncio
    async def test_microphone_denied_is_generic_failure(self, controller, transport, microphone):
        microphone.open_error = MicrophoneAccessError("denied")
        await _power_on(controller)

        assert controller.state == ConnectionState.ERROR
        assert controller.error == CONNECTION_FAILED
        assert transport.connect_calls == 0

    @pytest.mark.asyncio
    async def test_transport_failure_tears_down(self, controller, transport, microphone, speaker):
        transport.error = TransportError("boom")
        await _power_on(controller)

        assert controller.state == ConnectionState.ERROR
        assert controller.error == CONNECTION_FAILED
        assert microphone.started is False
        assert microphone.close_calls >= 1
        assert speaker.close_calls == 1
        assert controller.volume == 0.0

    @pytest.mark.asyncio
    async def test_reset_error(self, controller, transport):
        transport.error = TransportError("boom")
        await _power_on(controller)

        controller.reset_error()

        assert controller.error is None


class TestAutoRecovery:

    @pytest.mark.asyncio
    async def test_error_is_not_retried_internally(self, controller, transport):
        transport.error = TransportError("boom")
        await _power_on(controller)
        await settle(50)

        assert transport.connect_calls == 1
        assert controller.state == ConnectionState.ERROR

    @pytest.mark.asyncio
    async def test_network_restored_reconnects_exactly_once(self, controller, transport):
        transport.error = TransportError("boom")
        await _power_on(controller)
        assert controller.state == ConnectionState.ERROR

        transport.error = None
        controller.set_network_online(False)
        await settle()
        assert transport.connect_calls == 1

        controller.set_network_online(True)
        controller.set_network_online(True)
        await settle()

        assert transport.connect_calls == 2
        assert controller.state == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_clean_close_reconnects_while_powered(self, controller, transport):
        await _power_on(controller)
        first = transport.last_session

        await first.callbacks.on_close("server closed")
        await settle()

        assert first.close_calls == 1
        assert transport.connect_calls == 2
        assert controller.state == ConnectionState.CONNECTED
        assert transport.last_session is not first

    @pytest.mark.asyncio
    async def test_remote_error_ends_in_error(self, controller, transport, microphone):
        await _power_on(controller)
        session = transport.last_session

        await session.callbacks.on_error(TransportError("reset"))
        await settle()

        assert controller.state == ConnectionState.ERROR
        assert controller.error == CONNECTION_FAILED
        assert transport.connect_calls == 1
        assert microphone.started is False

    @pytest.mark.asyncio
    async def test_power_off_while_connecting_then_on_again(self, controller, transport):
        transport.gate = asyncio.Event()
        controller.set_power(True)
        await settle()
        assert controller.state == ConnectionState.CONNECTING

        controller.set_power(False)
        await settle()
        assert controller.state == ConnectionState.DISCONNECTED

        controller.set_power(True)
        transport.gate.set()
        await settle(50)

        assert transport.sessions[0].close_calls == 1
        assert transport.connect_calls == 2
        assert controller.state == ConnectionState.CONNECTED


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_power_off_disconnects(self, controller, transport, microphone, speaker):
        await _power_on(controller)
        session = transport.last_session

        controller.set_power(False)
        await settle()

        assert controller.state == ConnectionState.DISCONNECTED
        assert session.close_calls == 1
        assert microphone.started is False
        assert speaker.close_calls == 1
        assert controller.volume == 0.0

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, controller, transport, speaker):
        await _power_on(controller)
        session = transport.last_session

        controller.set_power(False)
        await settle()
        await controller.disconnect()

        assert session.close_calls == 1
        assert speaker.close_calls == 1
        assert controller.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_keeps_persisted_transcript(self, controller, transport, stores):
        await _power_on(controller)
        await transport.last_session.callbacks.on_message(ServerMessage(input_transcription="Hello"))

        controller.set_power(False)
        await settle()

        await controller.flush_transcript()
        assert [m.text for m in stores.load_session_messages()] == ["Hello"]

    @pytest.mark.asyncio
    async def test_close_stops_everything(self, controller, transport):
        await _power_on(controller)
        await controller.close()
        await settle()

        assert controller.state == ConnectionState.DISCONNECTED
        assert controller.power_on is False
        assert transport.connect_calls == 1


class TestStaleGeneration:

    @pytest.mark.asyncio
    async def test_stale_callbacks_are_ignored(self, controller, transport):
        await _power_on(controller)
        old = transport.last_session
        old_generation = controller.generation

        await controller.disconnect()
        await controller.connect()
        await settle()
        assert controller.generation != old_generation
        assert controller.state == ConnectionState.CONNECTED

        await old.callbacks.on_message(ServerMessage(output_transcription="ghost"))
        await old.callbacks.on_error(TransportError("late"))
        await old.callbacks.on_close(None)

        assert controller.messages == []
        assert controller.state == ConnectionState.CONNECTED
        assert controller.error is None

    @pytest.mark.asyncio
    async def test_tool_results_for_closed_session_are_dropped(self, controller, transport, stores):
        await _power_on(controller)
        session = transport.last_session
        stale = controller.generation - 1

        await controller._run_tool_calls(
            [ToolCallRequest(id="c1", name="save_memory", args={"category": "Goal", "details": "Run"})],
            stale,
        )

        assert session.tool_responses == []
        # Side effects still commit
        assert len(stores.load_memories()) == 1


class TestInboundMessages:

    @pytest.mark.asyncio
    async def test_transcription_deltas_build_messages(self, controller, transport, stores):
        await _power_on(controller)
        deliver = transport.last_session.callbacks.on_message

        await deliver(ServerMessage(input_transcription="Hel"))
        await deliver(ServerMessage(input_transcription="lo"))
        await deliver(ServerMessage(output_transcription="Hi there"))
        await deliver(ServerMessage(turn_complete=True))

        messages = controller.messages
        assert [(m.sender, m.text) for m in messages] == [
            (Sender.USER, "Hello"),
            (Sender.AGENT, "Hi there"),
        ]
        assert all(m.is_final for m in messages)
        await controller.flush_transcript()
        assert [m.text for m in stores.load_session_messages()] == ["Hello", "Hi there"]

    @pytest.mark.asyncio
    async def test_audio_is_scheduled_gaplessly(self, controller, transport, speaker):
        await _power_on(controller)

        await transport.last_session.callbacks.on_message(
            ServerMessage(audio=[_pcm_b64(2400), _pcm_b64(4800)])
        )

        starts = [h.start_at for h in speaker.handles]
        assert starts == pytest.approx([0.0, 0.1])
        assert controller.playback.next_start_time == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_interruption_stops_playback_and_finalizes(self, controller, transport, speaker):
        await _power_on(controller)
        deliver = transport.last_session.callbacks.on_message
        await deliver(ServerMessage(output_transcription="Long answer", audio=[_pcm_b64(2400)] * 3))

        await deliver(ServerMessage(interrupted=True))

        assert all(h.stopped for h in speaker.handles)
        assert controller.playback.active_count == 0
        assert controller.playback.next_start_time == 0.0
        assert controller.messages[-1].is_final is True

    @pytest.mark.asyncio
    async def test_microphone_frames_stream_to_session(self, controller, transport, microphone):
        await _power_on(controller)

        microphone.emit(np.full(4096, 0.5, dtype=np.float32))

        assert len(transport.last_session.sent_audio) == 1
        assert len(transport.last_session.sent_audio[0]) == 8192
        assert controller.volume == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_tool_call_round_trip(self, controller, transport, stores):
        await _power_on(controller)
        session = transport.last_session

        await session.callbacks.on_message(ServerMessage(tool_calls=[
            ToolCallRequest(id="call-1", name="save_memory", args={"category": "Goal", "details": "Learn Rust"}),
            ToolCallRequest(id="call-2", name="does_not_exist", args={}),
        ]))
        await wait_until(lambda: session.tool_responses)

        responses = session.tool_responses[0]
        assert [r["id"] for r in responses] == ["call-1", "call-2"]
        assert responses[0]["response"]["result"] == {"success": True, "message": "Memory saved."}
        assert responses[1]["response"]["result"]["success"] is False
        assert stores.load_memories()[0].details == "Learn Rust"


class TestToolOperations:

    @pytest.mark.asyncio
    async def test_set_mode_persists(self, controller, stores):
        events = []
        controller.add_listener(events.append)

        controller.set_mode(AssistantMode.TEACHER)

        assert controller.mode == AssistantMode.TEACHER
        assert stores.load_session_mode() == AssistantMode.TEACHER
        assert "mode" in events

    @pytest.mark.asyncio
    async def test_output_gain_survives_reconnect(self, controller, speaker):
        controller.set_output_gain(0.3)
        await _power_on(controller)

        assert speaker.gain == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_clear_messages_persists_empty_transcript(self, controller, transport, stores):
        await _power_on(controller)
        await transport.last_session.callbacks.on_message(ServerMessage(input_transcription="Hi"))

        controller.clear_messages()

        assert controller.messages == []
        await controller.flush_transcript()
        assert stores.load_session_messages() == []

    @pytest.mark.asyncio
    async def test_scheduled_shutdown_powers_down(self, controller, transport, stores, on_shutdown):
        await _power_on(controller)
        controller.set_mode(AssistantMode.LAWYER)
        await transport.last_session.callbacks.on_message(ServerMessage(output_transcription="Goodbye"))

        controller.schedule_shutdown(0.01)
        await wait_until(lambda: on_shutdown.called)
        await settle()
        await controller.flush_transcript()

        assert controller.power_on is False
        assert controller.state == ConnectionState.DISCONNECTED
        assert controller.messages == []
        assert controller.mode == AssistantMode.DEFAULT
        assert stores.load_session_messages() == []
        assert stores.load_session_mode() == AssistantMode.DEFAULT

    @pytest.mark.asyncio
    async def test_listener_can_unsubscribe(self, controller):
        events = []
        remove = controller.add_listener(events.append)
        remove()

        controller.set_mode(AssistantMode.TEACHER)

        assert events == []


def _slow_reads(stores, delay=0.05):
    """Make every store read take `delay` seconds so read-modify-write cycles overlap."""
    real_get = stores._kv.get

    def slow_get(key):
        value = real_get(key)
        time.sleep(delay)
        return value
    stores._kv.get = slow_get


class TestToolBatchConcurrency:

    @pytest.mark.asyncio
    async def test_overlapping_batches_keep_every_memory(self, controller, transport, stores):
        await _power_on(controller)
        session = transport.last_session
        generation = controller.generation
        _slow_reads(stores)

        await asyncio.gather(
            controller._run_tool_calls(
                [ToolCallRequest(id="a", name="save_memory", args={"category": "Goal", "details": "one"})],
                generation,
            ),
            controller._run_tool_calls(
                [ToolCallRequest(id="b", name="save_memory", args={"category": "Goal", "details": "two"})],
                generation,
            ),
        )

        assert [m.details for m in stores.load_memories()] == ["one", "two"]
        assert [batch[0]["id"] for batch in session.tool_responses] == ["a", "b"]
        assert all(batch[0]["response"]["result"]["success"] for batch in session.tool_responses)


class TestTranscriptPersistence:

    @pytest.mark.asyncio
    async def test_deltas_are_written_off_the_loop_and_coalesced(self, controller, transport, stores):
        await _power_on(controller)
        loop_thread = threading.get_ident()
        writes = []
        real_save = stores.save_session_messages

        def recording_save(messages):
            writes.append((threading.get_ident(), messages))
            real_save(messages)
        stores.save_session_messages = recording_save

        deliver = transport.last_session.callbacks.on_message
        for _ in range(100):
            await deliver(ServerMessage(output_transcription="a"))
        await controller.flush_transcript()

        assert 0 < len(writes) < 100
        assert all(thread != loop_thread for thread, _ in writes)
        assert writes[-1][1][-1].text == "a" * 100
        assert stores.load_session_messages()[-1].text == "a" * 100

    @pytest.mark.asyncio
    async def test_latest_snapshot_wins(self, controller, transport, stores):
        await _power_on(controller)
        deliver = transport.last_session.callbacks.on_message

        await deliver(ServerMessage(input_transcription="Hello"))
        await settle(2)
        await deliver(ServerMessage(output_transcription="Hi"))
        controller.clear_messages()
        await controller.flush_transcript()

        assert stores.load_session_messages() == []

    @pytest.mark.asyncio
    async def test_flush_without_changes_returns(self, controller):
        await controller.flush_transcript()


class TestPendingShutdown:

    @pytest.mark.asyncio
    async def test_power_cycle_cancels_pending_shutdown(self, controller, transport, stores, on_shutdown):
        await _power_on(controller)
        controller.set_mode(AssistantMode.LAWYER)
        await transport.last_session.callbacks.on_message(ServerMessage(output_transcription="Goodbye"))
        controller.schedule_shutdown(0.2)

        controller.set_power(False)
        await wait_until(lambda: controller.state == ConnectionState.DISCONNECTED)
        controller.set_power(True)
        await wait_until(lambda: controller.state == ConnectionState.CONNECTED)
        await asyncio.sleep(0.3)

        on_shutdown.assert_not_called()
        assert controller.power_on is True
        assert controller.state == ConnectionState.CONNECTED
        assert controller.messages == []
        assert controller.mode == AssistantMode.DEFAULT
        await controller.flush_transcript()
        assert stores.load_session_messages() == []


class TestClearChatEndToEnd:

    @pytest.mark.asyncio
    async def test_clear_chat_keeps_memory_and_preferences(self, controller, transport, stores):
        stores.save_memories([MemoryItem(category="Goal", details="Run a marathon")])
        stores.save_prefs(OwnerPreferences(name="Ada", onboarded=True))
        await _power_on(controller)
        session = transport.last_session

        await session.callbacks.on_message(ServerMessage(input_transcription="Forget this chat"))
        await session.callbacks.on_message(ServerMessage(tool_calls=[
            ToolCallRequest(id="1", name="get_stored_memories", args={}),
            ToolCallRequest(id="2", name="clear_chat", args={}),
            ToolCallRequest(id="3", name="get_stored_memories", args={}),
        ]))
        await wait_until(lambda: session.tool_responses)
        await controller.flush_transcript()

        before, cleared, after = [r["response"]["result"] for r in session.tool_responses[0]]
        assert cleared["success"] is True
        assert after == before
        assert after["count"] == 1
        assert controller.messages == []
        assert stores.load_session_messages() == []
        assert stores.load_prefs().name == "Ada"
        assert stores.load_prefs().onboarded is True
