"""Segmenter for RAG Engine

This module splits extracted document text into line-addressable segments that
fit a character budget, with a small line overlap between neighbours. Tabular
and paged sources are segmented per sheet and per page.
"""

from typing import Any, Iterable, List, Optional, Sequence, Tuple
import re

import structlog

from docqa.rag.models import Segment

logger = structlog.get_logger(__name__)

DEFAULT_MAX_CHARS = 800
DEFAULT_OVERLAP_LINES = 2
EMPTY_DOCUMENT_TEXT = "[empty document]"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def split_into_lines(text: str) -> List[str]:
    """Split text on any line terminator, keeping empty lines.

    Args:
        text: Raw text

    Returns:
        List of lines (never empty; an empty string yields one empty line)
    """
    return _LINE_BREAK.split(text or "")


def chunk_lines(
    lines: Sequence[str],
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_lines: int = DEFAULT_OVERLAP_LINES,
    first_line_number: int = 1,
) -> List[Tuple[str, int, int]]:
    """Greedily group whole lines into windows of at most ``max_chars``.

    Args:
        lines: Lines to group
        max_chars: Character budget per window
        overlap_lines: Lines repeated at the start of the next window
        first_line_number: Line number of ``lines[0]`` in the whole document

    Returns:
        List of (text, line_start, line_end) tuples with 1-based inclusive ranges
    """
    if max_chars < 1:
        raise ValueError("max_chars must be greater than zero")
    overlap_lines = max(0, overlap_lines)

    windows = []
    n = len(lines)
    start = 0

    while start < n:
        end = start
        size = 0
        while end < n:
            cost = len(lines[end]) + 1
            # A line that alone exceeds the budget still forms its own window
            if size + cost > max_chars and end > start:
                break
            size += cost
            end += 1
            if size > max_chars:
                break

        text = "\n".join(lines[start:end])
        if text.strip():
            windows.append((text, first_line_number + start, first_line_number + end - 1))

        if end >= n:
            break
        start = max(end - overlap_lines, start + 1)

    return windows


def segment_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_lines: int = DEFAULT_OVERLAP_LINES,
) -> List[Segment]:
    """Segment plain text.

    Args:
        text: Raw text
        max_chars: Character budget per segment
        overlap_lines: Line overlap between consecutive segments

    Returns:
        Ordered segments; blank input yields a single sentinel segment
    """
    if not text or not text.strip():
        return [_empty_segment()]

    segments = [
        Segment(text=chunk, line_start=line_start, line_end=line_end)
        for chunk, line_start, line_end in chunk_lines(
            split_into_lines(text), max_chars, overlap_lines
        )
    ]
    return segments or [_empty_segment()]


def column_letter(index: int) -> str:
    """Convert a 1-based column index into spreadsheet letters (1 -> A, 27 -> AA)."""
    if index < 1:
        raise ValueError("column index must be 1-based")
    letters = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def render_row(row_number: int, values: Iterable[Any]) -> Optional[str]:
    """Render one sheet row as ``<ColLetter><RowNumber>: v1 | v2``.

    The letter is that of the first non-empty cell. Returns None for empty rows.
    """
    first_column = None
    rendered = []
    for column, value in enumerate(values, start=1):
        if value is None:
            continue
        cell = str(value).strip()
        if not cell:
            continue
        if first_column is None:
            first_column = column
        rendered.append(cell)

    if first_column is None:
        return None
    return f"{column_letter(first_column)}{row_number}: " + " | ".join(rendered)


def segment_sheets(
    sheets: Sequence[Tuple[str, Sequence[Sequence[Any]]]],
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_lines: int = DEFAULT_OVERLAP_LINES,
) -> List[Segment]:
    """Segment tabular data sheet by sheet.

    Args:
        sheets: (sheet name, rows) pairs in workbook order
        max_chars: Character budget per segment
        overlap_lines: Line overlap between consecutive segments

    Returns:
        Segments tagged with sheet name and 0-based sheet index
    """
    segments = []
    for sheet_index, (sheet_name, rows) in enumerate(sheets):
        lines = []
        for row_number, row in enumerate(rows, start=1):
            line = render_row(row_number, row)
            if line is not None:
                lines.append(line)
        if not lines:
            continue

        for chunk, line_start, line_end in chunk_lines(lines, max_chars, overlap_lines):
            segments.append(Segment(
                text=chunk,
                line_start=line_start,
                line_end=line_end,
                sheet=sheet_name,
                sheet_index=sheet_index,
            ))

    logger.debug("Sheets segmented", sheets=len(sheets), segments=len(segments))
    return segments or [_empty_segment()]


def segment_pages(
    pages: Sequence[str],
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_lines: int = DEFAULT_OVERLAP_LINES,
) -> List[Segment]:
    """Segment paged text, numbering lines continuously across pages.

    Args:
        pages: Page texts in order
        max_chars: Character budget per segment
        overlap_lines: Line overlap between consecutive segments within a page

    Returns:
        Segments tagged with their 1-based page number
    """
    segments = []
    next_line = 1
    for page_number, page_text in enumerate(pages, start=1):
        lines = split_into_lines(page_text or "")
        for chunk, line_start, line_end in chunk_lines(
            lines, max_chars, overlap_lines, first_line_number=next_line
        ):
            segments.append(Segment(
                text=chunk,
                line_start=line_start,
                line_end=line_end,
                page=page_number,
            ))
        next_line += len(lines)

    return segments or [_empty_segment()]


def _empty_segment() -> Segment:
    return Segment(text=EMPTY_DOCUMENT_TEXT, line_start=1, line_end=1)
