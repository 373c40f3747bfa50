"""
Create Document Tool - render agent-written content to PDF, DOCX or TXT.

The file is written to the configured documents directory, which plays the
role of the owner's Downloads folder.
"""

import asyncio
import threading
from typing import Dict, Any
from mayra.tools.base import Tool, ToolDefinition, ToolParameter, ToolCategory
from mayra.tools.context import ToolExecutionContext
from mayra.tools.documents.exporters import EXPORTERS, export_document
import structlog

logger = structlog.get_logger(__name__)

_FORMAT_LABELS = {"PDF": "PDF document", "DOCX": "DOCX document", "TXT": "Text document"}


class CreateDocumentTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="create_document",
            description="Generates and downloads a document (PDF, DOCX, TXT) with specified content.",
            category=ToolCategory.DOCUMENT,
            max_execution_time=30,
            parameters=[
                ToolParameter(
                    name="title",
                    type="string",
                    description="The title of the document (e.g., Application_Letter_Feb2026).",
                    required=True,
                ),
                ToolParameter(
                    name="content",
                    type="string",
                    description="The full text content. Ensure professional formatting with newlines.",
                    required=True,
                ),
                ToolParameter(
                    name="format",
                    type="string",
                    description="The file format to generate.",
                    required=True,
                    enum=list(EXPORTERS),
                ),
            ]
        )

    async def validate_parameters(self, parameters: Dict[str, Any]) -> bool:
        # Missing fields get defaults and unknown formats render as PDF
        return True

    async def execute(
        self,
        parameters: Dict[str, Any],
        context: ToolExecutionContext
    ) -> Dict[str, Any]:
        title = str(parameters.get('title') or "Document")
        content = str(parameters.get('content') or "")
        fmt = str(parameters.get('format') or "PDF").upper()
        if fmt not in EXPORTERS:
            fmt = "PDF"
        directory = context.get_config_value('tools.documents_dir', "downloads")

        # Set when this call times out; the worker then discards its output
        cancelled = threading.Event()
        try:
            path = await context.run_blocking(
                export_document, directory, title, content, fmt, cancelled=cancelled
            )
        except asyncio.CancelledError:
            cancelled.set()
            logger.warning("Document generation abandoned", format=fmt)
            raise
        except Exception as e:
            logger.error("Document generation failed", format=fmt, error=str(e), exc_info=True)
            return {"success": False, "error": "Failed to generate document."}

        return {"success": True, "message": f"{_FORMAT_LABELS[fmt]} saved as {path.name}"}
