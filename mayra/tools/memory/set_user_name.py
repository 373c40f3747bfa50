"""
Set User Name Tool - record the owner's preferred name during onboarding.
"""

from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mayra.tools.context import ToolExecutionContext
import structlog

logger = structlog.get_logger(__name__)


class SetUserNameTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="set_user_name",
            description="Sets the owner's preferred name during onboarding.",
            category=ToolCategory.MEMORY,
            parameters=[
                ToolParameter(
                    name="name",
                    type="string",
                    description="The name the user wants to be called.",
                    required=True,
                )
            ]
        )

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        name = str(parameters.get('name') or "").strip()
        if not name:
            raise ValueError("Name must not be empty")
        stores = context.require('stores')

        await context.run_blocking(
            stores.update_prefs,
            lambda prefs: prefs.model_copy(update={"name": name, "onboarded": True}),
        )
        logger.info("Owner name set")
        return {"success": True, "message": f"User name set to {name}."}
