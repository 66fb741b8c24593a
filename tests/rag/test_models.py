"""Unit tests for the RAG data models."""

import pytest
from pydantic import ValidationError

from docqa.rag.models import Chunk, SearchHit, Segment, SourceReference


def make_chunk(text="content", **kwargs):
    return Chunk(
        document_id="doc-1",
        filename="report.pdf",
        text=text,
        line_start=kwargs.pop("line_start", 3),
        line_end=kwargs.pop("line_end", 9),
        embedding=(0.0, 1.0),
        **kwargs
    )


def test_segment_line_range_is_validated():
    with pytest.raises(ValidationError):
        Segment(text="x", line_start=5, line_end=4)
    with pytest.raises(ValidationError):
        Segment(text="x", line_start=0, line_end=1)


def test_citation_includes_page_and_sheet():
    assert make_chunk().citation() == "report.pdf lines 3-9"
    assert make_chunk(page=2).citation() == "report.pdf p2 lines 3-9"
    assert make_chunk(sheet="Q1").citation() == "report.pdf sheet:Q1 lines 3-9"


def test_source_reference_preview_is_truncated():
    long_hit = SearchHit(chunk=make_chunk(text="a" * 400), score=0.75)
    short_hit = SearchHit(chunk=make_chunk(text="short", sheet="Q1"), score=0.5)

    long_ref = SourceReference.from_hit(long_hit)
    short_ref = SourceReference.from_hit(short_hit)

    assert long_ref.text_preview == "a" * 320 + "…"
    assert short_ref.text_preview == "short"
    assert short_ref.sheet == "Q1"
    assert (long_ref.line_start, long_ref.line_end, long_ref.score) == (3, 9, 0.75)


def test_chunks_are_immutable():
    chunk = make_chunk()

    with pytest.raises(ValidationError):
        chunk.text = "changed"
