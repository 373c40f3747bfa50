"""
Gemini Live API adapter for tool calling.

Handles translation between the unified tool format and Gemini's
functionDeclarations / toolResponse shapes, and isolates failures so one
broken call never aborts its batch or the session.
"""

import asyncio
from typing import Any, Dict, List, Optional

import structlog
from prometheus_client import Counter

from mayra.providers.base import ToolCallRequest
from mayra.tools.context import ToolExecutionContext
from mayra.tools.registry import ToolRegistry

logger = structlog.get_logger(__name__)

_TOOL_CALLS = Counter(
    "mayra_tool_calls_total",
    "Tool calls executed for the live agent",
    labelnames=("tool", "outcome"),
)


class GoogleToolAdapter:
    """
    Adapter for Gemini Live tool calling.

    Builds the setup "tools" block and executes toolCall batches.
    """

    def __init__(self, registry: ToolRegistry, default_timeout: Optional[float] = None):
        self.registry = registry
        self.default_timeout = default_timeout

    def get_tools_config(self, google_search: bool = True) -> List[Dict[str, Any]]:
        """
        Get the tools block for the setup message.

        Example:
            [
                {"googleSearch": {}},
                {"functionDeclarations": [{"name": "save_memory", ...}]}
            ]
        """
        tools: List[Dict[str, Any]] = []
        if google_search:
            tools.append({"googleSearch": {}})
        declarations = self.registry.to_gemini_schema()
        if declarations:
            tools.append({"functionDeclarations": declarations})
        logger.debug("Generated Gemini tool config", declarations=len(declarations), google_search=google_search)
        return tools

    def tool_names(self, google_search: bool = True) -> List[str]:
        names = self.registry.list_tools()
        if google_search:
            names = names + ["googleSearch"]
        return names

    async def execute_tool(
        self,
        function_name: str,
        parameters: Dict[str, Any],
        context: ToolExecutionContext,
    ) -> Dict[str, Any]:
        """
        Execute one tool call and return its result object.

        Unknown tools, invalid parameters, timeouts and exceptions all become
        {"success": False, "error": ...}.
        """
        tool = self.registry.get(function_name)
        if tool is None:
            logger.error("Unknown tool requested", function=function_name)
            _TOOL_CALLS.labels(tool="unknown", outcome="error").inc()
            return {"success": False, "error": f"Unknown tool: {function_name}"}

        parameters = parameters if isinstance(parameters, dict) else {}
        timeout = tool.definition.max_execution_time or self.default_timeout
        try:
            await tool.validate_parameters(parameters)
            result = await asyncio.wait_for(tool.execute(parameters, context), timeout=timeout)
        except ValueError as e:
            logger.warning("Tool parameters rejected", function=function_name, error=str(e))
            result = {"success": False, "error": str(e)}
        except asyncio.TimeoutError:
            logger.error("Tool execution timed out", function=function_name, timeout=timeout)
            result = {"success": False, "error": f"{function_name} timed out"}
        except Exception as e:
            logger.error("Tool execution failed", function=function_name, error=str(e), exc_info=True)
            result = {"success": False, "error": f"Tool execution failed: {e}"}

        outcome = "success" if result.get("success", True) else "error"
        _TOOL_CALLS.labels(tool=function_name, outcome=outcome).inc()
        logger.info("Tool executed", function=function_name, outcome=outcome)
        return result

    async def handle_tool_calls(
        self,
        calls: List[ToolCallRequest],
        context: ToolExecutionContext,
    ) -> List[Dict[str, Any]]:
        """
        Execute a batch in request order and build functionResponses.

        Returns:
            [{"id": ..., "name": ..., "response": {"result": {...}}}, ...]
        """
        responses = []
        for call in calls:
            logger.info("Gemini tool call", function=call.name, tool_call_id=call.id)
            result = await self.execute_tool(call.name, call.args, context)
            responses.append({
                "id": call.id,
                "name": call.name,
                "response": {"result": result},
            })
        return responses
