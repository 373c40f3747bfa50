"""
Base classes for the assistant's tool calling system.

This module defines the core abstractions that every tool the live agent can
invoke must implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class ToolCategory(Enum):
    """Category of tool, used for grouping and logging."""
    DEVICE = "device"        # Reads or adjusts the local device (battery, clock, volume)
    SESSION = "session"      # Changes the live session (mode, transcript, power)
    MEMORY = "memory"        # Long-term memory and owner preferences
    MEDIA = "media"          # Opens external media in a browser
    DOCUMENT = "document"    # Renders files for the owner


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str
    required: bool = False
    enum: Optional[List[str]] = None
    items_type: Optional[str] = None  # element type when type == "array"

    def to_gemini_dict(self) -> Dict[str, Any]:
        """Gemini schema uses upper-case OpenAPI type names."""
        result = {
            "type": self.type.upper(),
            "description": self.description,
        }
        if self.enum:
            result["enum"] = self.enum
        if self.type == "array":
            result["items"] = {"type": (self.items_type or "string").upper()}
        return result


@dataclass
class ToolDefinition:
    """
    Provider-agnostic tool definition.

    Contains all metadata needed to declare a tool to the live service.
    """
    name: str
    description: str
    category: ToolCategory
    parameters: List[ToolParameter] = field(default_factory=list)
    max_execution_time: int = 10    # Timeout in seconds

    def to_gemini_schema(self) -> Dict[str, Any]:
        """
        Convert to a Gemini function declaration.

        Gemini format:
        {
            "name": "tool_name",
            "description": "Tool description",
            "parameters": {
                "type": "OBJECT",
                "properties": {...},
                "required": [...]
            }
        }

        Tools without parameters omit the "parameters" key entirely.
        """
        schema: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
        }
        if self.parameters:
            schema["parameters"] = {
                "type": "OBJECT",
                "properties": {p.name: p.to_gemini_dict() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            }
        return schema


class Tool(ABC):
    """
    Abstract base class for all tools.

    All tools must inherit from this class and implement:
    - definition property: Returns ToolDefinition with metadata
    - execute method: Performs the action and commits its side effects
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return tool definition with metadata."""
        pass

    @abstractmethod
    async def execute(
        self,
        parameters: Dict[str, Any],
        context: 'ToolExecutionContext'
    ) -> Dict[str, Any]:
        """
        Execute the tool with given parameters and context.

        Persistent side effects must be committed before this returns.

        Returns:
            Result dictionary sent back to the agent, usually with
            "success" plus "message" or "error".

        Raises:
            ValueError: If parameters are invalid
            RuntimeError: If execution fails
        """
        pass

    async def validate_parameters(self, parameters: Dict[str, Any]) -> bool:
        """
        Validate parameters before execution.

        Raises:
            ValueError: If validation fails with specific error message
        """
        for param in self.definition.parameters:
            if param.required and param.name not in parameters:
                raise ValueError(f"Missing required parameter: {param.name}")

            if param.enum and param.name in parameters:
                if parameters[param.name] not in param.enum:
                    raise ValueError(
                        f"Invalid value for {param.name}. "
                        f"Must be one of: {', '.join(param.enum)}"
                    )

        return True
