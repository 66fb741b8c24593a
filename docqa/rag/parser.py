"""Upload Parser for RAG Engine

Turns stored uploads (PDF, Word, Excel, plain text) into a ParsedDocument whose
segments are ready for indexing. Format libraries are confined to this module;
the rest of the engine only sees the text/segments contract.
"""

from pathlib import Path
from typing import Any, List, Sequence, Tuple, Union

import structlog

from docqa.core.exceptions import DocumentParseError
from docqa.rag.models import ParsedDocument, Segment
from docqa.rag import segmenter

logger = structlog.get_logger(__name__)

PDF_EXTENSIONS = {".pdf"}
WORD_EXTENSIONS = {".docx"}
SHEET_EXTENSIONS = {".xlsx", ".xlsm"}


def parse_file(
    path: Union[str, Path],
    original_name: str,
    max_chars: int = segmenter.DEFAULT_MAX_CHARS,
    overlap_lines: int = segmenter.DEFAULT_OVERLAP_LINES,
) -> ParsedDocument:
    """Parse a stored upload by its original extension.

    Args:
        path: Location of the stored file
        original_name: Filename used to pick the format and label segments
        max_chars: Character budget per segment
        overlap_lines: Line overlap between consecutive segments

    Returns:
        Parsed document with its segments

    Raises:
        DocumentParseError: If the file cannot be read or decoded
    """
    path = Path(path)
    extension = Path(original_name).suffix.lower()

    try:
        if extension in PDF_EXTENSIONS:
            parsed = _parse_pdf(path, original_name, max_chars, overlap_lines)
        elif extension in WORD_EXTENSIONS:
            parsed = _parse_docx(path, original_name, max_chars, overlap_lines)
        elif extension in SHEET_EXTENSIONS:
            parsed = _parse_xlsx(path, original_name, max_chars, overlap_lines)
        else:
            text = path.read_text(encoding="utf-8", errors="replace")
            parsed = parse_text(text, original_name, max_chars, overlap_lines)
    except DocumentParseError:
        raise
    except Exception as e:
        raise DocumentParseError(original_name, str(e)) from e

    logger.info(
        "Document parsed",
        filename=original_name,
        format=extension or "text",
        segments=len(parsed.segments),
        text_length=len(parsed.text)
    )
    return parsed


def parse_text(
    content: str,
    name: str = "inline.txt",
    max_chars: int = segmenter.DEFAULT_MAX_CHARS,
    overlap_lines: int = segmenter.DEFAULT_OVERLAP_LINES,
) -> ParsedDocument:
    """Parse raw text content that did not come from a stored file."""
    content = content or ""
    return ParsedDocument(
        filename=name,
        text=content,
        segments=segmenter.segment_text(content, max_chars, overlap_lines),
    )


def _parse_pdf(path: Path, name: str, max_chars: int, overlap_lines: int) -> ParsedDocument:
    from pypdf import PdfReader

    reader = PdfReader(str(path))
    pages = [(page.extract_text() or "").strip() for page in reader.pages]

    if not any(pages):
        logger.warning("PDF has no extractable text", filename=name, pages=len(pages))
        message = (
            f"This PDF has {len(pages)} pages but no extractable text. "
            "It may be a scanned image or protected document."
        )
        return ParsedDocument(
            filename=name,
            text=f"[PDF file with {len(pages)} pages - no extractable text]",
            segments=[Segment(text=message, line_start=1, line_end=1)],
        )

    return ParsedDocument(
        filename=name,
        text="\n".join(pages),
        segments=segmenter.segment_pages(pages, max_chars, overlap_lines),
    )


def _parse_docx(path: Path, name: str, max_chars: int, overlap_lines: int) -> ParsedDocument:
    from docx import Document

    document = Document(str(path))
    paragraphs = [para.text for para in document.paragraphs]

    for table in document.tables:
        for row in table.rows:
            paragraphs.append(" | ".join(cell.text.strip() for cell in row.cells))

    return parse_text("\n".join(paragraphs).strip(), name, max_chars, overlap_lines)


def _parse_xlsx(path: Path, name: str, max_chars: int, overlap_lines: int) -> ParsedDocument:
    from openpyxl import load_workbook

    workbook = load_workbook(str(path), read_only=True, data_only=True)
    try:
        sheets: List[Tuple[str, Sequence[Sequence[Any]]]] = [
            (sheet_name, [tuple(row) for row in workbook[sheet_name].iter_rows(values_only=True)])
            for sheet_name in workbook.sheetnames
        ]
    finally:
        workbook.close()

    blocks = []
    for sheet_name, rows in sheets:
        lines = [
            line for line in (
                segmenter.render_row(row_number, row)
                for row_number, row in enumerate(rows, start=1)
            )
            if line is not None
        ]
        if lines:
            blocks.append(f"[Sheet: {sheet_name}]\n" + "\n".join(lines))

    return ParsedDocument(
        filename=name,
        text="\n\n".join(blocks),
        segments=segmenter.segment_sheets(sheets, max_chars, overlap_lines),
    )
