"""
Switch Mode Tool - change the assistant persona.
"""

from typing import Dict, Any
from mayra.core.models import AssistantMode
from mayra.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


class SwitchModeTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="switch_mode",
            description="Switch the assistant personality mode.",
            category=ToolCategory.SESSION,
            max_execution_time=2,
            parameters=[
                ToolParameter(
                    name="mode",
                    type="string",
                    description="The mode to switch to.",
                    required=True,
                    enum=[mode.value for mode in AssistantMode],
                )
            ]
        )

    async def validate_parameters(self, parameters: Dict[str, Any]) -> bool:
        # Unrecognized modes are reported in the result
        return True

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        mode = AssistantMode.parse(parameters.get('mode'))
        if mode is None:
            logger.warning("Unrecognized assistant mode", requested=parameters.get('mode'))
            return {"success": False, "error": "Invalid mode"}

        context.require('controller').set_mode(mode)
        return {"success": True, "mode": mode.value}
