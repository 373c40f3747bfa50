"""
Google Gemini Live API transport.

Speaks the BidiGenerateContent WebSocket protocol: a setup message carrying
model, voice, system instruction, tools and transcription settings, then
realtime PCM16 input at 16 kHz; the server streams back PCM16 speech at
24 kHz, transcription deltas, grounding metadata and tool calls.

Lifecycle:
1. connect() -> opens the WebSocket, starts the receive loop, sends setup
2. setupComplete ACK -> session is ready, on_open fires
3. send_realtime_input() / send_tool_response() while ready
4. close() -> cancels the receive loop and closes the WebSocket
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
from typing import Any, Dict, List, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from structlog import get_logger
from prometheus_client import Counter, Gauge

from mayra.audio import encode_base64
from mayra.config.models import LiveConfig
from mayra.core.errors import TransportError
from mayra.core.models import GroundingReference
from mayra.providers.base import (
    LiveSession,
    LiveSessionConfig,
    LiveTransport,
    ServerMessage,
    SessionCallbacks,
    ToolCallRequest,
)

logger = get_logger(__name__)

_GEMINI_INPUT_RATE = 16000
_MAX_PENDING_SENDS = 8

# Metrics
_LIVE_SESSIONS = Gauge(
    "mayra_live_active_sessions",
    "Number of active Gemini Live sessions",
)
_LIVE_AUDIO_SENT = Counter(
    "mayra_live_audio_bytes_sent_total",
    "Total PCM bytes sent to the Gemini Live API",
)
_LIVE_AUDIO_RECEIVED = Counter(
    "mayra_live_audio_bytes_received_total",
    "Total PCM bytes received from the Gemini Live API",
)

_CLOSE_CODE_MEANINGS = {
    1000: "Normal closure",
    1001: "Going away",
    1002: "Protocol error",
    1003: "Unsupported data",
    1006: "Abnormal closure (no close frame)",
    1007: "Invalid frame payload data",
    1008: "Policy violation (likely auth/permission issue)",
    1009: "Message too big",
    1011: "Internal server error",
}


def _close_frame(exc: Exception):
    """(code, reason) of the close frame we received, if any."""
    rcvd = getattr(exc, "rcvd", None)
    if rcvd is None:
        return None, None
    return rcvd.code, rcvd.reason or None


def _grounding_from(container: Dict[str, Any]) -> List[GroundingReference]:
    refs = []
    metadata = container.get("groundingMetadata") or {}
    for chunk in metadata.get("groundingChunks") or []:
        web = (chunk or {}).get("web") or {}
        uri = web.get("uri")
        if uri:
            refs.append(GroundingReference(uri=uri, title=web.get("title") or ""))
    return refs


def parse_server_message(data: Dict[str, Any]) -> ServerMessage:
    """Translate one decoded server JSON message into a ServerMessage."""
    message = ServerMessage()
    content = data.get("serverContent") or {}
    model_turn = content.get("modelTurn") or {}

    message.interrupted = bool(content.get("interrupted"))
    message.turn_complete = bool(content.get("turnComplete"))

    input_tx = (content.get("inputTranscription") or {}).get("text")
    if input_tx:
        message.input_transcription = input_tx
    output_tx = (content.get("outputTranscription") or {}).get("text")
    if output_tx:
        message.output_transcription = output_tx

    # Grounding may be reported on serverContent or on the model turn
    message.grounding = _grounding_from(content) + _grounding_from(model_turn)

    for part in model_turn.get("parts") or []:
        inline = (part or {}).get("inlineData") or {}
        if inline.get("data") and inline.get("mimeType", "audio/pcm").startswith("audio/pcm"):
            message.audio.append(inline["data"])

    for call in (data.get("toolCall") or {}).get("functionCalls") or []:
        message.tool_calls.append(ToolCallRequest(
            id=call.get("id") or "",
            name=call.get("name") or "",
            args=call.get("args") or {},
        ))

    message.go_away = "goAway" in data
    return message


def build_setup_message(config: LiveSessionConfig) -> Dict[str, Any]:
    setup: Dict[str, Any] = {
        "model": f"models/{config.model}",
        "generation_config": {
            "responseModalities": config.response_modalities,
            "speechConfig": {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {"voiceName": config.voice_name}
                }
            },
        },
        "system_instruction": {"parts": [{"text": config.system_instruction}]},
    }
    if config.tools:
        setup["tools"] = config.tools
    # Empty objects enable transcription with default settings
    if config.input_transcription:
        setup["inputAudioTranscription"] = {}
    if config.output_transcription:
        setup["outputAudioTranscription"] = {}
    return {"setup": setup}


class GoogleLiveSession(LiveSession):
    """One BidiGenerateContent WebSocket session."""

    def __init__(self, settings: LiveConfig, config: LiveSessionConfig, callbacks: SessionCallbacks):
        self.settings = settings
        self.config = config
        self.callbacks = callbacks
        self.websocket = None
        self._receive_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self._pending_sends: Set[asyncio.Task] = set()
        self._setup_ack_event = asyncio.Event()
        self._ready = False
        self._closing = False
        self._counted = False
        self._session_start_time: Optional[float] = None

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._closing

    async def open(self) -> None:
        if not self.settings.api_key:
            raise TransportError("Gemini API key is required")

        ws_url = f"{self.settings.endpoint}?key={self.settings.api_key}"
        logger.info("Connecting to Gemini Live", model=self.config.model, voice=self.config.voice_name)
        try:
            self.websocket = await websockets.connect(ws_url, max_size=self.settings.max_message_bytes)
        except Exception as e:
            # Exception text can echo the URL, so only the type is logged
            logger.error("Gemini Live WebSocket connect failed", error_type=type(e).__name__)
            raise TransportError(f"WebSocket connect failed: {type(e).__name__}") from e

        _LIVE_SESSIONS.inc()
        self._counted = True
        self._session_start_time = time.time()

        self._receive_task = asyncio.create_task(self._receive_loop(), name="gemini-live-receive")
        try:
            await self._send_message(build_setup_message(self.config))
            await asyncio.wait_for(self._setup_ack_event.wait(), timeout=self.settings.setup_timeout_sec)
        except asyncio.TimeoutError:
            await self.close()
            raise TransportError("Timed out waiting for setupComplete")
        except Exception as e:
            await self.close()
            raise TransportError(f"Session setup failed: {e}") from e

        if not self._ready:
            await self.close()
            raise TransportError("Connection closed before setupComplete")

        logger.info("Gemini Live setup complete")
        await self.callbacks.on_open(self)

    async def _send_message(self, message: Dict[str, Any]) -> None:
        if self.websocket is None or self._closing:
            return
        async with self._send_lock:
            await self.websocket.send(json.dumps(message))

    def send_realtime_input(self, pcm: bytes) -> bool:
        if not self.is_ready or len(self._pending_sends) >= _MAX_PENDING_SENDS:
            return False
        message = {
            "realtimeInput": {
                "audio": {
                    "mimeType": f"audio/pcm;rate={_GEMINI_INPUT_RATE}",
                    "data": encode_base64(pcm),
                }
            }
        }
        task = asyncio.create_task(self._send_audio(message, len(pcm)))
        self._pending_sends.add(task)
        task.add_done_callback(self._pending_sends.discard)
        return True

    async def _send_audio(self, message: Dict[str, Any], size: int) -> None:
        try:
            await self._send_message(message)
            _LIVE_AUDIO_SENT.inc(size)
        except (ConnectionClosedError, ConnectionClosedOK):
            # The receive loop reports the close
            pass
        except Exception as e:
            logger.debug("Audio chunk send failed", error=str(e))

    async def send_tool_response(self, responses: List[Dict[str, Any]]) -> None:
        if not responses:
            return
        await self._send_message({"toolResponse": {"functionResponses": responses}})
        logger.info("Sent Gemini Live tool response", count=len(responses),
                    tools=[r.get("name") for r in responses])

    async def _receive_loop(self) -> None:
        """Receive and dispatch server messages until the socket closes."""
        try:
            async for raw in self.websocket:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    logger.error("Failed to decode Gemini Live message", error=str(e))
                    continue

                if "setupComplete" in data:
                    self._ready = True
                    self._setup_ack_event.set()
                    continue

                message = parse_server_message(data)
                if message.go_away:
                    logger.warning("Gemini Live server sent goAway", detail=data.get("goAway"))
                for payload in message.audio:
                    _LIVE_AUDIO_RECEIVED.inc(len(payload) * 3 // 4)
                try:
                    await self.callbacks.on_message(message)
                except Exception as e:
                    logger.error("Error handling Gemini Live message", error=str(e), exc_info=True)
        except ConnectionClosedOK as e:
            self._log_close(e)
            await self._finish(clean=True, reason=_close_frame(e)[1])
            return
        except ConnectionClosedError as e:
            self._log_close(e)
            await self._finish(clean=False, error=TransportError(f"Connection closed with code {_close_frame(e)[0]}"))
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Gemini Live receive loop error", error=str(e), exc_info=True)
            await self._finish(clean=False, error=TransportError(str(e)))
            return
        # Iteration ends without an exception on a clean close
        await self._finish(clean=True, reason=None)

    def _log_close(self, exc: Exception) -> None:
        code, reason = _close_frame(exc)
        logger.warning(
            "Gemini Live WebSocket closed",
            code=code,
            meaning=_CLOSE_CODE_MEANINGS.get(code, "Unknown"),
            reason=reason,
        )
        if code == 1008:
            logger.error("Policy violation (1008) - check the API key and Gemini Live API access")

    async def _finish(self, clean: bool, reason: Optional[str] = None, error: Optional[Exception] = None) -> None:
        was_ready = self._ready
        self._ready = False
        # Unblock open() when the socket dies before setupComplete
        self._setup_ack_event.set()
        if self._closing or not was_ready:
            return
        self._closing = True
        self._release_metrics()
        if clean:
            await self.callbacks.on_close(reason)
        else:
            await self.callbacks.on_error(error)

    def _release_metrics(self) -> None:
        if self._counted:
            self._counted = False
            _LIVE_SESSIONS.dec()
            if self._session_start_time:
                logger.info("Gemini Live session ended",
                            duration_seconds=round(time.time() - self._session_start_time, 2))

    async def close(self) -> None:
        if self._closing and self.websocket is None:
            return
        self._closing = True
        self._ready = False

        current = asyncio.current_task()
        if self._receive_task and not self._receive_task.done() and self._receive_task is not current:
            self._receive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._receive_task

        for task in list(self._pending_sends):
            task.cancel()

        websocket, self.websocket = self.websocket, None
        if websocket is not None:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug("WebSocket close failed", error=str(e))
        self._release_metrics()
        logger.info("Gemini Live session closed")


class GoogleLiveTransport(LiveTransport):

    def __init__(self, settings: LiveConfig):
        self.settings = settings

    async def connect(self, config: LiveSessionConfig, callbacks: SessionCallbacks) -> LiveSession:
        session = GoogleLiveSession(self.settings, config, callbacks)
        await session.open()
        return session
