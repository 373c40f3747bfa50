"""
Get Stored Memories Tool - list long-term memory with positions.
"""

from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolCategory
from mayra.tools.context import ToolExecutionContext


class GetStoredMemoriesTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_stored_memories",
            description="Retrieves the list of all stored memories. Use this when the user asks what you remember.",
            category=ToolCategory.MEMORY,
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        memories = await context.run_blocking(context.require('stores').load_memories)
        listing = "\n".join(f"[{i}] {m.category}: {m.details}" for i, m in enumerate(memories))
        return {
            "success": True,
            "memories": listing or "No memories stored.",
            "count": len(memories),
        }
