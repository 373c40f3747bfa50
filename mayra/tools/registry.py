"""
Tool registry - central repository for all available tools.

Singleton pattern ensures only one registry exists across the application.
The registry is the name -> handler lookup table the dispatcher uses.
"""

from typing import Dict, List, Type, Optional
from mayra.tools.base import Tool, ToolCategory
import logging

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Singleton registry for all available tools.

    Manages tool registration, lookup, and schema generation.
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern - only one instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._tools = {}
            cls._instance._initialized = False
        return cls._instance

    def register(self, tool_class: Type[Tool]) -> None:
        """
        Register a tool class.

        Args:
            tool_class: Tool class (not instance) to register

        Example:
            registry.register(SaveMemoryTool)
        """
        tool = tool_class()
        tool_name = tool.definition.name

        if tool_name in self._tools:
            logger.warning(f"Tool {tool_name} already registered, overwriting")

        self._tools[tool_name] = tool
        logger.debug(f"Registered tool: {tool_name} ({tool.definition.category.value})")

    def get(self, name: str) -> Optional[Tool]:
        """Get tool by name, or None if not registered."""
        return self._tools.get(name)

    def get_all(self) -> List[Tool]:
        return list(self._tools.values())

    def get_by_category(self, category: ToolCategory) -> List[Tool]:
        return [
            tool for tool in self._tools.values()
            if tool.definition.category == category
        ]

    def to_gemini_schema(self) -> List[Dict]:
        """
        Export all tools as Gemini function declarations.

        Returns:
            List of function declaration dicts
        """
        return [
            tool.definition.to_gemini_schema()
            for tool in self._tools.values()
        ]

    def initialize_default_tools(self) -> None:
        """
        Register all built-in tools.

        Called once during startup; repeated calls are no-ops.
        """
        if self._initialized:
            logger.debug("Tools already initialized, skipping")
            return

        from mayra.tools.device.battery import GetBatteryStatusTool
        from mayra.tools.device.clock import GetCurrentTimeTool
        from mayra.tools.device.volume import SetVolumeTool
        from mayra.tools.session.switch_mode import SwitchModeTool
        from mayra.tools.session.shutdown import ShutdownTool
        from mayra.tools.session.clear_chat import ClearChatTool
        from mayra.tools.documents.create_document import CreateDocumentTool
        from mayra.tools.memory.save_memory import SaveMemoryTool
        from mayra.tools.memory.delete_memory import DeleteMemoryTool
        from mayra.tools.memory.set_user_name import SetUserNameTool
        from mayra.tools.memory.get_memories import GetStoredMemoriesTool
        from mayra.tools.media.youtube import OpenYouTubeTool
        from mayra.tools.media.play_media import PlayMediaTool

        for tool_class in (
            GetBatteryStatusTool,
            GetCurrentTimeTool,
            SwitchModeTool,
            SetVolumeTool,
            ShutdownTool,
            CreateDocumentTool,
            SaveMemoryTool,
            DeleteMemoryTool,
            SetUserNameTool,
            GetStoredMemoriesTool,
            OpenYouTubeTool,
            PlayMediaTool,
            ClearChatTool,
        ):
            self.register(tool_class)

        self._initialized = True
        logger.info(f"Initialized {len(self._tools)} tools")

    def list_tools(self) -> List[str]:
        return list(self._tools.keys())

    def clear(self) -> None:
        """
        Clear all registered tools.

        Mainly for testing purposes.
        """
        self._tools.clear()
        self._initialized = False
        logger.debug("Cleared all registered tools")


# Global singleton instance
tool_registry = ToolRegistry()
