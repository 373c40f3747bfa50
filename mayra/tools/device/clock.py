"""
Current Time Tool - report local time and timezone.
"""

from datetime import datetime
from typing import Dict, Any, Optional
from mayra.tools.base import Tool, ToolDefinition, ToolCategory
from mayra.tools.context import ToolExecutionContext


class GetCurrentTimeTool(Tool):

    def __init__(self, now: Optional[datetime] = None):
        # Fixed clock for tests; None reads the system clock
        self._now = now

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_current_time",
            description="Get the current local time and timezone of the device.",
            category=ToolCategory.DEVICE,
            max_execution_time=2,
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        now = (self._now or datetime.now()).astimezone()
        return {
            "time": now.strftime("%H:%M"),
            "timezone": now.tzname() or "UTC",
            "full_string": now.strftime("%a %b %d %Y %H:%M:%S GMT%z"),
        }
