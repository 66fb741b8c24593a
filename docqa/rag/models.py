"""RAG Engine Data Models

This module defines the data models used by the RAG engine for document parsing,
segmenting, embedding, and retrieval operations.
"""

from typing import Dict, List, Optional, Tuple
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Segment(BaseModel):
    """A line-addressable slice of extracted text, prior to embedding."""
    model_config = ConfigDict(frozen=True)

    text: str
    line_start: int = Field(..., ge=1)
    line_end: int = Field(..., ge=1)
    page: Optional[int] = None
    sheet: Optional[str] = None
    sheet_index: Optional[int] = None

    @model_validator(mode="after")
    def check_line_range(self):
        if self.line_end < self.line_start:
            raise ValueError("line_end must not precede line_start")
        return self


class ParsedDocument(BaseModel):
    """Output contract of the upload parser."""
    filename: str
    text: str
    segments: List[Segment] = Field(default_factory=list)


class Chunk(BaseModel):
    """Indexed chunk: a segment bound to its document, with its embedding."""
    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    text: str
    line_start: int
    line_end: int
    page: Optional[int] = None
    sheet: Optional[str] = None
    sheet_index: Optional[int] = None
    embedding: Tuple[float, ...]
    ordinal: int = 0

    def citation(self) -> str:
        """Render the human-readable locator used in prompts."""
        cite = self.filename
        if self.page:
            cite += f" p{self.page}"
        if self.sheet:
            cite += f" sheet:{self.sheet}"
        return f"{cite} lines {self.line_start}-{self.line_end}"


class DocumentRecord(BaseModel):
    """Document-level metadata kept alongside its chunks."""
    id: str
    filename: str
    chunk_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stored: bool = Field(False, description="Backed by a file in the workspace")
    transient: bool = Field(False, description="Scoped to one answer cycle; never listed or persisted")


class SearchHit(BaseModel):
    """A chunk returned by similarity search, with its score."""
    chunk: Chunk
    score: float

    @property
    def filename(self) -> str:
        return self.chunk.filename

    @property
    def document_id(self) -> str:
        return self.chunk.document_id

    @property
    def text(self) -> str:
        return self.chunk.text


class SourceReference(BaseModel):
    """Source entry in the chat response shape."""
    document_id: str
    filename: str
    score: float
    text_preview: str
    page: Optional[int] = None
    sheet: Optional[str] = None
    line_start: int
    line_end: int

    @classmethod
    def from_hit(cls, hit: SearchHit, preview_chars: int = 320) -> "SourceReference":
        text = hit.chunk.text
        preview = text[:preview_chars] + ("…" if len(text) > preview_chars else "")
        return cls(
            document_id=hit.chunk.document_id,
            filename=hit.chunk.filename,
            score=hit.score,
            text_preview=preview,
            page=hit.chunk.page,
            sheet=hit.chunk.sheet,
            line_start=hit.chunk.line_start,
            line_end=hit.chunk.line_end,
        )


class IngestionResult(BaseModel):
    """Outcome of storing and indexing an upload."""
    document_id: str
    filename: str
    status: str = "indexed"
    chunks_created: int = 0
    warning: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
