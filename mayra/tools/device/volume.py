"""
Set Volume Tool - adjust the assistant's output gain.
"""

from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


class SetVolumeTool(Tool):
    """
    Clamp the requested level to 0-100 and apply it as an output gain ratio.

    The gain survives reconnects; it is re-applied whenever a new output
    device is bound.
    """

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="set_volume",
            description="Set the device output volume level.",
            category=ToolCategory.DEVICE,
            max_execution_time=2,
            parameters=[
                ToolParameter(
                    name="level",
                    type="number",
                    description="Volume level from 0 to 100.",
                    required=True,
                )
            ]
        )

    async def validate_parameters(self, parameters: Dict[str, Any]) -> bool:
        # Non-numeric levels produce a result, not a validation error
        return True

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        level = parameters.get('level')
        if isinstance(level, bool) or not isinstance(level, (int, float)) or level != level:
            return {"success": False, "error": "Invalid level"}

        clamped = max(0, min(100, level))
        context.require('controller').set_output_gain(clamped / 100)
        logger.info("Output volume set", requested=level, level=clamped)
        return {"success": True, "level": clamped}
