"""
Shutdown Tool - power the assistant down after a farewell.
"""

from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


class ShutdownTool(Tool):
    """
    Clear the ephemeral session store, then ask the host to turn the power
    toggle off after a grace delay so the farewell utterance can finish.

    Long-term memory and owner preferences are untouched.
    """

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="shutdown_mayra",
            description="Turn off the assistant, power down, or stop listening.",
            category=ToolCategory.SESSION,
            max_execution_time=5,
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        stores = context.require('stores')
        controller = context.require('controller')
        grace = float(context.get_config_value('tools.shutdown_grace_sec', 3.5))

        await context.run_blocking(stores.clear_session)
        controller.schedule_shutdown(grace)
        logger.info("Shutdown scheduled", grace_sec=grace)
        return {"success": True, "status": "powering_down"}
