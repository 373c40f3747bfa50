"""
Battery Status Tool - report the device battery level.
"""

from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolCategory
from mayra.tools.context import ToolExecutionContext
from mayra.utils.battery import BatterySnapshot
import structlog

logger = structlog.get_logger(__name__)


class GetBatteryStatusTool(Tool):
    """Answer from the cached battery snapshot; never fails."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_battery_status",
            description="Get the current battery percentage and charging status of the device.",
            category=ToolCategory.DEVICE,
            max_execution_time=2,
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        snapshot = context.battery.snapshot() if context.battery is not None else BatterySnapshot()
        result = {
            "level": int(round(snapshot.level * 100)),
            "charging": snapshot.charging,
        }
        logger.debug("Battery status reported", supported=snapshot.supported, **result)
        return result
