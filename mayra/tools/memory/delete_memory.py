"""
Delete Memory Tool - remove memories by position or clear them all.
"""

from typing import Dict, Any, List
from mayra.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


def _as_index(value: Any):
    """Accept whole numbers (the agent sends NUMBER); anything else is skipped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def delete_indices(items: List[Any], indices: List[Any]) -> List[Any]:
    """
    Return items without the given positions.

    Positions are removed highest first so earlier removals never shift the
    ones still pending. Duplicates and out-of-range positions are ignored.
    """
    remaining = list(items)
    valid = {i for i in (_as_index(v) for v in indices) if i is not None}
    for index in sorted(valid, reverse=True):
        if 0 <= index < len(remaining):
            del remaining[index]
    return remaining


class DeleteMemoryTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="delete_memory",
            description="Deletes specific memories by index or clears all memory.",
            category=ToolCategory.MEMORY,
            parameters=[
                ToolParameter(
                    name="indices",
                    type="array",
                    items_type="number",
                    description="Array of memory indices to delete.",
                ),
                ToolParameter(
                    name="clear_all",
                    type="boolean",
                    description="If true, deletes all memories.",
                ),
            ]
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        stores = context.require('stores')

        if parameters.get('clear_all') is True:
            await context.run_blocking(stores.save_memories, [])
            logger.info("All memories cleared")
            return {"success": True, "message": "All memories cleared."}

        indices = parameters.get('indices')
        if not isinstance(indices, list):
            return {"success": False, "error": "Provide indices to delete or set clear_all."}

        remaining = await context.run_blocking(
            stores.update_memories, lambda items: delete_indices(items, indices)
        )
        logger.info("Memories deleted", requested=len(indices), remaining=len(remaining))
        return {"success": True, "message": "Selected memories deleted."}
