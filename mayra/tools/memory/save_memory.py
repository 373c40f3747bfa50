"""
Save Memory Tool - append a fact to long-term memory.
"""

from typing import Dict, Any
from mayra.core.models import MemoryItem
from mayra.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


class SaveMemoryTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="save_memory",
            description="Saves a specific fact, preference, or goal to long-term memory.",
            category=ToolCategory.MEMORY,
            parameters=[
                ToolParameter(
                    name="category",
                    type="string",
                    description="Category (e.g., Preference, Goal, Personal Info)",
                    required=True,
                ),
                ToolParameter(
                    name="details",
                    type="string",
                    description="The information to remember.",
                    required=True,
                ),
            ]
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        stores = context.require('stores')
        item = MemoryItem(
            category=str(parameters.get('category') or "General"),
            details=str(parameters.get('details') or ""),
        )

        memories = await context.run_blocking(stores.update_memories, lambda items: items + [item])
        logger.info("Memory saved", category=item.category, count=len(memories))
        return {"success": True, "message": "Memory saved."}
