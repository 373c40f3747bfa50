"""
Live conversation transport interface.

A transport opens one LiveSession per connect. Inbound traffic is delivered
as parsed ServerMessage objects through SessionCallbacks, all of which are
coroutines awaited on the event loop.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mayra.core.models import GroundingReference


@dataclass
class ToolCallRequest:
    id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ServerMessage:
    """One inbound message; every field is optional on the wire."""
    interrupted: bool = False
    turn_complete: bool = False
    input_transcription: Optional[str] = None
    output_transcription: Optional[str] = None
    grounding: List[GroundingReference] = field(default_factory=list)
    audio: List[str] = field(default_factory=list)  # base64 PCM16 payloads, in order
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    go_away: bool = False


@dataclass
class LiveSessionConfig:
    model: str
    system_instruction: str
    voice_name: str = "Kore"
    response_modalities: List[str] = field(default_factory=lambda: ["AUDIO"])
    tools: List[Dict[str, Any]] = field(default_factory=list)
    input_transcription: bool = True
    output_transcription: bool = True


@dataclass
class SessionCallbacks:
    on_open: Callable[["LiveSession"], Awaitable[None]]
    on_message: Callable[[ServerMessage], Awaitable[None]]
    on_close: Callable[[Optional[str]], Awaitable[None]]
    on_error: Callable[[BaseException], Awaitable[None]]


class LiveSession(ABC):
    """Handle to one open remote session."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    def send_realtime_input(self, pcm: bytes) -> bool:
        """Submit one PCM16 chunk without waiting. Returns False if the chunk was dropped."""

    @abstractmethod
    async def send_tool_response(self, responses: List[Dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the session. No callbacks fire after a locally initiated close."""


class LiveTransport(ABC):

    @abstractmethod
    async def connect(self, config: LiveSessionConfig, callbacks: SessionCallbacks) -> LiveSession:
        """
        Open a session and wait until it is ready.

        callbacks.on_open runs before this returns.

        Raises:
            TransportError: If the session cannot be established.
        """
