"""
Play Media Tool - open a video or song URL in a new browser tab.
"""

import webbrowser
from typing import Dict, Any
from urllib.parse import urlparse
from mayra.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


class PlayMediaTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="play_media",
            description="Plays a video or song from a specific URL.",
            category=ToolCategory.MEDIA,
            max_execution_time=5,
            parameters=[
                ToolParameter(
                    name="url",
                    type="string",
                    description="The fully qualified URL to open (e.g., YouTube video link).",
                    required=True,
                )
            ]
        )

    async def validate_parameters(self, parameters: Dict[str, Any]) -> bool:
        # A missing url is reported as "Invalid URL." in the result
        return True

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        url = parameters.get('url')
        if not isinstance(url, str) or urlparse(url.strip()).scheme not in ("http", "https"):
            return {"success": False, "error": "Invalid URL."}

        opened = await context.run_blocking(webbrowser.open_new_tab, url.strip())
        if not opened:
            return {"success": False, "error": "No browser available."}
        logger.info("Media opened", url=url)
        return {"success": True, "message": "Media playing in new tab."}
