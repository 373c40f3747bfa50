"""
Document exporters for create_document.

Each exporter writes (title, content) to a path. python-docx and fpdf2 are
imported on use so the engine starts without them installed.
"""

import os
import re
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

_UNSAFE_TITLE_CHARS = re.compile(r"[^A-Za-z0-9]")


def safe_title(title: str) -> str:
    """File stem for a title: every non-alphanumeric character becomes '_'."""
    return _UNSAFE_TITLE_CHARS.sub("_", title or "Document")


def export_txt(path: Path, title: str, content: str) -> None:
    path.write_text(content or "", encoding="utf-8")


def export_docx(path: Path, title: str, content: str) -> None:
    from docx import Document
    from docx.shared import Pt

    document = Document()
    heading = document.add_paragraph()
    run = heading.add_run(title or "Document")
    run.bold = True
    run.font.size = Pt(16)
    heading.paragraph_format.space_after = Pt(10)
    for line in (content or "").split("\n"):
        document.add_paragraph(line)
    document.save(str(path))


def _latin1(text: str) -> str:
    # Core PDF fonts only cover latin-1
    return text.encode("latin-1", "replace").decode("latin-1")


def export_pdf(path: Path, title: str, content: str) -> None:
    from fpdf import FPDF

    pdf = FPDF(format="A4")
    pdf.set_margins(15, 15, 15)
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    pdf.set_font("helvetica", style="B", size=18)
    pdf.multi_cell(0, 10, _latin1(title or "Document"), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(5)
    pdf.set_font("helvetica", size=12)
    pdf.multi_cell(0, 7, _latin1(content or ""), new_x="LMARGIN", new_y="NEXT")
    pdf.output(str(path))


EXPORTERS: Dict[str, Callable[[Path, str, str], None]] = {
    "PDF": export_pdf,
    "DOCX": export_docx,
    "TXT": export_txt,
}

EXTENSIONS = {"PDF": "pdf", "DOCX": "docx", "TXT": "txt"}


class ExportCancelled(Exception):
    """The caller gave up on the export; nothing was written."""


def export_document(
    directory: str,
    title: str,
    content: str,
    fmt: str,
    cancelled: Optional[threading.Event] = None,
) -> Path:
    """Render a document into directory and return its path.

    Unknown formats fall back to PDF. The file is rendered to a hidden
    partial path and only moved into place if `cancelled` is still clear.
    """
    fmt = (fmt or "PDF").upper()
    if fmt not in EXPORTERS:
        fmt = "PDF"
    target_dir = Path(directory).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / f"{safe_title(title)}.{EXTENSIONS[fmt]}"
    partial = target_dir / f".{path.name}.part"
    try:
        EXPORTERS[fmt](partial, title, content)
        if cancelled is not None and cancelled.is_set():
            raise ExportCancelled(path.name)
        os.replace(partial, path)
    finally:
        if partial.exists():
            partial.unlink()
    logger.info("Document exported", path=str(path), format=fmt)
    return path
