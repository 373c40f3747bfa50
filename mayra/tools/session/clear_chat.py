"""
Clear Chat Tool - empty the visible transcript without touching memory.
"""

from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolCategory
from mayra.tools.context import ToolExecutionContext


class ClearChatTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="clear_chat",
            description="Clears the visible chat history on the screen without affecting memory.",
            category=ToolCategory.SESSION,
            max_execution_time=2,
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        controller = context.require('controller')
        controller.clear_messages()
        await controller.flush_transcript()
        return {"success": True, "message": "Chat cleared."}
