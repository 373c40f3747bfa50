"""
Session controller: the root of the live session engine.

Owns the connection state machine and the single live session handle, wires
capture, playback, transcript assembly and tool dispatch together, and
applies the power/network auto-recovery rule.

Every connect and every teardown bumps a generation counter. Session
callbacks and tool results carry the generation they were created under and
are ignored once it is stale, so a superseded session can never touch the
current one.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Set

import structlog
from prometheus_client import Counter

from mayra.audio.devices import AudioOutput, Microphone
from mayra.audio.notices import NoticeSpeaker
from mayra.config.models import AppConfig
from mayra.core.capture import AudioCapturePipeline
from mayra.core.errors import (
    CONNECTION_FAILED,
    MISSING_KEY_ERROR,
    OFFLINE_ERROR,
    OFFLINE_NOTICE,
)
from mayra.core.models import AssistantMode, ConnectionState, Message
from mayra.core.playback import PlaybackScheduler
from mayra.core.prompts import build_system_instruction
from mayra.core.storage import PersistentStores
from mayra.core.transcript import TranscriptAssembler
from mayra.logging_config import clear_session_id, get_session_id, set_session_id
from mayra.providers.base import (
    LiveSession,
    LiveSessionConfig,
    LiveTransport,
    ServerMessage,
    SessionCallbacks,
    ToolCallRequest,
)
from mayra.tools.adapters.google import GoogleToolAdapter
from mayra.tools.context import ToolExecutionContext
from mayra.tools.registry import ToolRegistry, tool_registry

logger = structlog.get_logger(__name__)

_CHUNKS_DROPPED = Counter(
    "mayra_live_audio_chunks_dropped_total",
    "Captured audio chunks dropped because no ready live session was bound",
)

Listener = Callable[[str], None]


class SessionController:
    """
    Presentation-facing handle on the live session engine.

    Listeners receive the name of whatever changed: "state", "volume",
    "error", "messages", "mode", "power" or "network".

    set_power() and set_network_online() must be called from the event loop;
    they schedule connect/disconnect as tasks.
    """

    def __init__(
        self,
        config: AppConfig,
        stores: PersistentStores,
        transport: LiveTransport,
        microphone: Microphone,
        speaker: AudioOutput,
        notice_speaker: Optional[NoticeSpeaker] = None,
        battery=None,
        registry: Optional[ToolRegistry] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
        network_online: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self._stores = stores
        self._transport = transport
        self._microphone = microphone
        self._speaker = speaker
        self._notices = notice_speaker
        self._battery = battery
        self._on_shutdown = on_shutdown
        self._clock = clock

        registry = registry or tool_registry
        registry.initialize_default_tools()
        self._tools = GoogleToolAdapter(registry, default_timeout=config.tools.timeout_sec)

        self._state = ConnectionState.DISCONNECTED
        self._error: Optional[str] = None
        self._power_on = False
        self._network_online = network_online
        self._mode = stores.load_session_mode()
        self._transcript = TranscriptAssembler(
            stores.load_session_messages(),
            on_change=self._on_transcript_change,
        )
        self._capture = AudioCapturePipeline(
            microphone,
            self._send_chunk,
            smoothing=config.audio.smoothing,
            on_volume=lambda _value: self._notify("volume"),
        )
        self._playback = PlaybackScheduler(config.audio.output_sample_rate)

        self._session: Optional[LiveSession] = None
        self._generation = 0
        self._connect_task: Optional[asyncio.Task] = None
        self._disconnect_task: Optional[asyncio.Task] = None
        self._tool_tasks: Set[asyncio.Task] = set()
        self._tool_lock = asyncio.Lock()
        self._pending_transcript: Optional[List[Message]] = None
        self._transcript_writer: Optional[asyncio.Task] = None
        self._shutdown_handle: Optional[asyncio.TimerHandle] = None
        self._reconcile_pending = False
        self._listeners: List[Listener] = []
        self._closed = False

    # Observable state

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def volume(self) -> float:
        return self._capture.volume

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def messages(self) -> List[Message]:
        return self._transcript.messages

    @property
    def mode(self) -> AssistantMode:
        return self._mode

    @property
    def power_on(self) -> bool:
        return self._power_on

    @property
    def network_online(self) -> bool:
        return self._network_online

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def playback(self) -> PlaybackScheduler:
        return self._playback

    @property
    def capture(self) -> AudioCapturePipeline:
        return self._capture

    def add_listener(self, callback: Listener) -> Callable[[], None]:
        """Subscribe to change notifications; returns an unsubscribe function."""
        self._listeners.append(callback)

        def _remove():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return _remove

    def _notify(self, what: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(what)
            except Exception as e:
                logger.warning("Session listener failed", event=what, error=str(e))

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info("Connection state changed", old=self._state.value, new=state.value)
        self._state = state
        self._notify("state")
        self._schedule_reconcile()

    def _set_error(self, error: Optional[str]) -> None:
        if error == self._error:
            return
        self._error = error
        self._notify("error")

    def reset_error(self) -> None:
        """Dismiss the visible error."""
        self._set_error(None)

    # Host inputs and auto-recovery

    def set_power(self, on: bool) -> None:
        on = bool(on)
        if on == self._power_on:
            return
        self._power_on = on
        logger.info("Power toggled", power_on=on)
        self._notify("power")
        self._reconcile()

    def set_network_online(self, online: bool) -> None:
        online = bool(online)
        restored = online and not self._network_online
        if online != self._network_online:
            self._network_online = online
            logger.info("Network restored" if online else "Network lost")
            self._notify("network")
        self._reconcile(network_restored=restored)

    def _schedule_reconcile(self) -> None:
        if self._reconcile_pending or self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reconcile_pending = True

        def _run():
            self._reconcile_pending = False
            self._reconcile()
        loop.call_soon(_run)

    def _reconcile(self, network_restored: bool = False) -> None:
        """
        Power on and DISCONNECTED (or ERROR right after the network came back)
        starts a connect; power off while CONNECTED/CONNECTING starts a
        disconnect. At most one connect or disconnect task runs at a time.
        """
        if self._closed:
            return
        connecting = self._connect_task is not None and not self._connect_task.done()
        disconnecting = self._disconnect_task is not None and not self._disconnect_task.done()

        if self._power_on:
            if connecting or disconnecting:
                return
            if self._state == ConnectionState.DISCONNECTED or (
                network_restored and self._state == ConnectionState.ERROR
            ):
                logger.debug("Auto-connect", state=self._state.value, network_restored=network_restored)
                self._connect_task = asyncio.get_running_loop().create_task(self.connect())
                self._connect_task.add_done_callback(lambda _task: self._schedule_reconcile())
        elif self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING) and not disconnecting:
            logger.debug("Auto-disconnect", state=self._state.value)
            self._disconnect_task = asyncio.get_running_loop().create_task(self.disconnect())
            self._disconnect_task.add_done_callback(lambda _task: self._schedule_reconcile())

    # Connect / disconnect

    async def connect(self) -> None:
        """Open a live session; no-op unless powered on and DISCONNECTED or ERROR."""
        if self._closed or not self._power_on:
            return
        if self._state not in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            return

        self._generation += 1
        generation = self._generation

        if not self._network_online:
            logger.warning("Connect attempted while offline")
            self._set_error(OFFLINE_ERROR)
            self._speak_notice(OFFLINE_NOTICE)
            self._set_state(ConnectionState.ERROR)
            self._request_shutdown()
            return

        if not self.config.live.api_key:
            logger.error("Cannot connect: Gemini API key is missing")
            self._set_error(MISSING_KEY_ERROR)
            self._set_state(ConnectionState.ERROR)
            return

        self._set_error(None)
        self._set_state(ConnectionState.CONNECTING)
        session_id = set_session_id()
        logger.info("Connecting live session", generation=generation, session_id=session_id)

        session = None
        try:
            await self._microphone.open()
            if generation != self._generation:
                self._microphone.close()
                return
            self._playback.bind(self._speaker)
            self._capture.start()
            session = await self._transport.connect(
                self._build_session_config(),
                self._make_callbacks(generation),
            )
        except Exception as e:
            if generation != self._generation:
                logger.debug("Superseded connect attempt failed", error=str(e))
                return
            logger.error("Live session connect failed", error=str(e), error_type=type(e).__name__)
            self._set_error(CONNECTION_FAILED)
            await self._teardown()
            self._set_state(ConnectionState.ERROR)
            return

        if generation != self._generation:
            # A disconnect won the race; this session is already orphaned
            await self._close_quietly(session)

    async def disconnect(self) -> None:
        """Idempotent: close the session, release audio, state DISCONNECTED.

        Persisted messages and mode are kept, unless a scheduled shutdown was
        pending: it is cancelled and its session wipe is applied now, so it
        can never fire into a later session.
        """
        if self._shutdown_handle is not None:
            self._shutdown_handle.cancel()
            self._shutdown_handle = None
            logger.info("Pending shutdown superseded by disconnect")
            self._wipe_session()
        await self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)
        await self.flush_transcript()

    async def close(self) -> None:
        """Final shutdown of the controller (process exit)."""
        self._closed = True
        self._power_on = False
        if self._shutdown_handle is not None:
            self._shutdown_handle.cancel()
            self._shutdown_handle = None
        for task in list(self._tool_tasks):
            task.cancel()
        await self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)
        await self.flush_transcript()

    async def _teardown(self) -> None:
        """Release every session resource. Safe to call repeatedly from any trigger."""
        self._generation += 1
        session, self._session = self._session, None
        self._capture.stop()
        self._microphone.close()
        self._playback.release()
        if session is not None:
            await self._close_quietly(session)
        if get_session_id():
            logger.info("Live session torn down")
        clear_session_id()

    async def _close_quietly(self, session: LiveSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning("Closing live session failed", error=str(e))

    def _build_session_config(self) -> LiveSessionConfig:
        live = self.config.live
        instruction = build_system_instruction(
            prefs=self._stores.load_prefs(),
            memories=self._stores.load_memories(),
            has_history=len(self._transcript) > 0,
            mode=self._mode,
            screen_width=self.config.display.screen_width,
            tool_names=self._tools.tool_names(live.google_search),
            now=self._clock(),
        )
        return LiveSessionConfig(
            model=live.model,
            system_instruction=instruction,
            voice_name=live.voice_name,
            response_modalities=list(live.response_modalities),
            tools=self._tools.get_tools_config(live.google_search),
            input_transcription=live.input_transcription,
            output_transcription=live.output_transcription,
        )

    def _make_callbacks(self, generation: int) -> SessionCallbacks:

        async def on_open(session: LiveSession) -> None:
            if generation != self._generation:
                return
            self._session = session
            self._set_state(ConnectionState.CONNECTED)

        async def on_message(message: ServerMessage) -> None:
            if generation != self._generation:
                return
            self._handle_message(message, generation)

        async def on_close(reason: Optional[str]) -> None:
            if generation != self._generation:
                return
            logger.info("Live session closed by remote", reason=reason)
            await self._teardown()
            self._set_state(ConnectionState.DISCONNECTED)

        async def on_error(exc: BaseException) -> None:
            if generation != self._generation:
                return
            logger.error("Live session failed", error=str(exc))
            self._set_error(CONNECTION_FAILED)
            await self._teardown()
            self._set_state(ConnectionState.ERROR)

        return SessionCallbacks(on_open=on_open, on_message=on_message, on_close=on_close, on_error=on_error)

    # Inbound and outbound traffic

    def _send_chunk(self, pcm: bytes) -> bool:
        session = self._session
        if session is None or not session.is_ready:
            _CHUNKS_DROPPED.inc()
            return False
        if not session.send_realtime_input(pcm):
            _CHUNKS_DROPPED.inc()
            return False
        return True

    def _handle_message(self, message: ServerMessage, generation: int) -> None:
        if message.interrupted:
            logger.debug("Agent speech interrupted")
            self._playback.interrupt()
            self._transcript.finalize_all()

        if message.input_transcription:
            self._transcript.apply_input(message.input_transcription)
        if message.output_transcription:
            self._transcript.apply_output(message.output_transcription, message.grounding or None)
        elif message.grounding:
            self._transcript.attach_references(message.grounding)

        if message.turn_complete:
            self._transcript.finalize_all()

        if message.tool_calls:
            task = asyncio.get_running_loop().create_task(self._run_tool_calls(message.tool_calls, generation))
            self._tool_tasks.add(task)
            task.add_done_callback(self._tool_tasks.discard)

        for payload in message.audio:
            self._playback.schedule(payload)

    async def _run_tool_calls(self, calls: List[ToolCallRequest], generation: int) -> None:
        context = ToolExecutionContext(
            session_id=get_session_id(),
            stores=self._stores,
            controller=self,
            battery=self._battery,
            config=self.config,
        )
        # Batches run one at a time, in arrival order
        async with self._tool_lock:
            responses = await self._tools.handle_tool_calls(calls, context)
        session = self._session
        if generation != self._generation or session is None:
            logger.info("Dropping tool results for a closed session", count=len(responses))
            return
        try:
            await session.send_tool_response(responses)
        except Exception as e:
            logger.warning("Sending tool response failed", error=str(e))

    # Operations used by tools

    def set_mode(self, mode: AssistantMode) -> None:
        self._stores.save_session_mode(mode)
        if mode != self._mode:
            logger.info("Assistant mode changed", old=self._mode.value, new=mode.value)
            self._mode = mode
            self._notify("mode")

    def set_output_gain(self, ratio: float) -> None:
        self._playback.set_gain(ratio)

    def clear_messages(self) -> None:
        """Empty the transcript and its persisted copy; memory is untouched."""
        self._transcript.clear()

    def schedule_shutdown(self, delay: float) -> None:
        """Power down after delay seconds, letting a farewell finish playing."""
        if self._shutdown_handle is not None:
            self._shutdown_handle.cancel()
        self._shutdown_handle = asyncio.get_running_loop().call_later(delay, self._fire_shutdown)

    def _fire_shutdown(self) -> None:
        self._shutdown_handle = None
        logger.info("Scheduled shutdown firing")
        self._wipe_session()
        self._request_shutdown()

    def _wipe_session(self) -> None:
        # Farewell transcript deltas may have re-persisted the session
        self._transcript.clear()
        self._stores.clear_session()
        if self._mode != AssistantMode.DEFAULT:
            self._mode = AssistantMode.DEFAULT
            self._notify("mode")

    def _request_shutdown(self) -> None:
        self.set_power(False)
        if self._on_shutdown is not None:
            try:
                self._on_shutdown()
            except Exception as e:
                logger.error("Shutdown callback failed", error=str(e), exc_info=True)

    def _speak_notice(self, text: str) -> None:
        if self._notices is None:
            return
        try:
            self._notices.speak(text)
        except Exception as e:
            logger.warning("Offline notice could not be spoken", error=str(e))

    # Transcript persistence

    def _on_transcript_change(self, messages: List[Message]) -> None:
        self._pending_transcript = messages
        self._notify("messages")
        if self._transcript_writer is not None and not self._transcript_writer.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._pending_transcript = None
            self._stores.save_session_messages(messages)
            return
        self._transcript_writer = loop.create_task(self._write_transcripts())

    async def _write_transcripts(self) -> None:
        """Single writer: snapshots land in order and only the latest pending one is written."""
        loop = asyncio.get_running_loop()
        while self._pending_transcript is not None:
            snapshot, self._pending_transcript = self._pending_transcript, None
            try:
                await loop.run_in_executor(None, self._stores.save_session_messages, snapshot)
            except Exception as e:
                logger.error("Persisting transcript failed", error=str(e), count=len(snapshot))

    async def flush_transcript(self) -> None:
        """Wait until every transcript change so far is committed to the store."""
        writer = self._transcript_writer
        if writer is not None and not writer.done():
            await asyncio.shield(writer)
