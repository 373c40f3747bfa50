"""
Open YouTube Tool - open YouTube in a new browser tab.
"""

import webbrowser
from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


class OpenYouTubeTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="open_youtube",
            description="Opens the YouTube website or app.",
            category=ToolCategory.MEDIA,
            max_execution_time=5,
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        url = context.get_config_value('tools.youtube_url', "https://www.youtube.com")
        opened = await context.run_blocking(webbrowser.open_new_tab, url)
        if not opened:
            return {"success": False, "error": "No browser available."}
        logger.info("YouTube opened", url=url)
        return {"success": True, "message": "YouTube opened."}
