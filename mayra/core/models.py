"""
Core data models for the Mayra live session engine.

Persisted records are pydantic models so stored JSON is validated on load
instead of being trusted blindly.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


class AssistantMode(str, Enum):
    """Persona the agent adopts; persisted as the raw value."""
    DEFAULT = "DEFAULT"
    LAWYER = "LAWYER"
    TEACHER = "TEACHER"
    INTERVIEW_COACH = "INTERVIEW_COACH"
    MOTIVATIONAL_COACH = "MOTIVATIONAL_COACH"
    LIFE_ASSISTANT = "LIFE_ASSISTANT"

    @classmethod
    def parse(cls, value) -> Optional["AssistantMode"]:
        """Return the member for value, or None if it is not a recognized mode."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return None
        return None


class Sender(str, Enum):
    USER = "user"
    AGENT = "agent"


class GroundingReference(BaseModel):
    """Web citation attached to an agent message."""
    uri: str
    title: str = ""


class Message(BaseModel):
    """One transcript entry. Text only grows while is_final is False."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str = ""
    sender: Sender
    is_final: bool = Field(default=False, alias="isFinal")
    grounding_references: Optional[List[GroundingReference]] = Field(
        default=None, alias="groundingReferences"
    )

    @field_validator("sender", mode="before")
    @classmethod
    def _legacy_sender(cls, value):
        # Older transcripts name the agent after the assistant
        if value == "mayra":
            return Sender.AGENT
        return value


class MemoryItem(BaseModel):
    """Long-term memory entry; immutable once stored, addressed by position."""
    model_config = ConfigDict(frozen=True)

    category: str
    details: str
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )


class OwnerPreferences(BaseModel):
    schema_version: int = 1
    name: Optional[str] = None
    onboarded: bool = False
