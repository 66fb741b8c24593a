"""Document Service Module

Stores uploads in the workspace, parses them and keeps the vector index in
sync with the stored files.
"""

from functools import partial
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Dict, Iterable, List, Optional
import asyncio
import time
import uuid

import structlog

from docqa.core.exceptions import DocumentParseError, InputValidationError
from docqa.rag.models import DocumentRecord, IngestionResult, SearchHit
from docqa.rag.parser import parse_file, parse_text
from docqa.rag.vector_store import VectorIndex
from docqa.tools.workspace import Workspace

logger = structlog.get_logger(__name__)


def safe_basename(name: str) -> str:
    """Strip any directory components a client put in an upload name."""
    base = PurePosixPath(PureWindowsPath(name or "").name).name.strip()
    base = base.replace("\x00", "")
    if base in ("", ".", ".."):
        raise InputValidationError("A filename is required", details={"filename": name})
    return base


class DocumentService:
    """Ingestion, deletion and listing of workspace documents."""

    def __init__(
        self,
        index: VectorIndex,
        workspace: Workspace,
        chunk_size: int = 800,
        chunk_overlap_lines: int = 2
    ):
        """Initialize the document service.

        Args:
            index: Vector index that holds the chunks
            workspace: Sandbox where uploads are stored
            chunk_size: Character budget per segment
            chunk_overlap_lines: Line overlap between segments
        """
        self.index = index
        self.workspace = workspace
        self.chunk_size = chunk_size
        self.chunk_overlap_lines = chunk_overlap_lines

    async def ingest_upload(self, original_name: str, data: bytes) -> IngestionResult:
        """Store an uploaded file as ``<epoch-ms>-<basename>`` and index it.

        A file that cannot be parsed is kept and reported with status
        ``uploaded`` and a warning.
        """
        stored_name = f"{int(time.time() * 1000)}-{safe_basename(original_name)}"
        path = self.workspace.resolve(stored_name)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, path.write_bytes, data)
        logger.info("Upload stored", filename=stored_name, size=len(data))

        try:
            return await self.index_stored_file(stored_name)
        except DocumentParseError as e:
            logger.warning("Upload stored but not indexed", filename=stored_name, error=e.message)
            return IngestionResult(
                document_id=str(uuid.uuid4()),
                filename=stored_name,
                status="uploaded",
                warning=f"File uploaded but parsing failed: {e.message}",
            )

    async def index_stored_file(self, relative_path: str) -> IngestionResult:
        """Parse and (re-)index a file that already lives in the workspace."""
        path = self.workspace.resolve(relative_path)
        filename = self.workspace.relative(path)

        loop = asyncio.get_running_loop()
        parsed = await loop.run_in_executor(
            None,
            partial(parse_file, path, filename, self.chunk_size, self.chunk_overlap_lines)
        )

        existing = [d for d in self.index.find_by_filename(filename) if d.stored]
        document_id = existing[0].id if existing else str(uuid.uuid4())
        chunks = await self.index.index(document_id, filename, parsed.segments, stored=True)

        return IngestionResult(document_id=document_id, filename=filename, chunks_created=chunks)

    async def refresh_stored_file(self, relative_path: str) -> Optional[IngestionResult]:
        """Re-index a stored file after an edit; files that were never indexed are skipped."""
        filename = self.workspace.relative(self.workspace.resolve(relative_path))
        if not any(d.stored for d in self.index.find_by_filename(filename)):
            return None
        return await self.index_stored_file(filename)

    async def ingest_text(
        self,
        filename: str,
        content: str,
        document_id: Optional[str] = None,
        transient: bool = False
    ) -> IngestionResult:
        """Index raw text under a display filename without storing a file.

        Transient text is only searchable by restricting a search to its id.
        """
        if not filename or not content:
            raise InputValidationError("filename and content required")

        parsed = parse_text(content, filename, self.chunk_size, self.chunk_overlap_lines)
        document_id = document_id or str(uuid.uuid4())
        chunks = await self.index.index(document_id, filename, parsed.segments, transient=transient)

        return IngestionResult(document_id=document_id, filename=filename, chunks_created=chunks)

    async def ingest_batch(self, items: Iterable[Dict[str, Any]]) -> int:
        """Index several ``{filename, content}`` items; invalid items are skipped."""
        count = 0
        for item in items:
            if not isinstance(item, dict) or not item.get("filename") or not item.get("content"):
                logger.debug("Skipping invalid batch item")
                continue
            await self.ingest_text(str(item["filename"]), str(item["content"]))
            count += 1
        return count

    def resolve_document(self, id_or_filename: str) -> Optional[DocumentRecord]:
        """Find a document by id, then by filename, preferring stored files."""
        record = self.index.get_document(id_or_filename)
        if record is not None and not record.transient:
            return record
        matches = sorted(self.index.find_by_filename(id_or_filename), key=lambda d: not d.stored)
        return matches[0] if matches else None

    async def delete(self, id_or_filename: str) -> bool:
        """Remove a document from the index and its stored file.

        Returns:
            False if no such document exists
        """
        record = self.resolve_document(id_or_filename)
        if record is None:
            return False

        deleted = await self.index.delete(record.id)
        if not record.stored:
            return deleted

        path = self.workspace.root / record.filename
        if self.workspace.contains(path) and path.is_file():
            path.unlink()
            logger.info("Stored file deleted", filename=record.filename)
        return deleted

    async def clear_all(self) -> Dict[str, int]:
        """Drop every indexed document and every stored top-level file."""
        removed = await self.index.clear()

        files_deleted = 0
        for entry in self.workspace.root.iterdir():
            if entry.is_file() and not entry.is_symlink():
                try:
                    entry.unlink()
                    files_deleted += 1
                except OSError as e:
                    logger.warning("Failed to delete stored file", filename=entry.name, error=str(e))

        logger.info("All documents cleared", documents_removed=removed, files_deleted=files_deleted)
        return {"documents_removed": removed, "files_deleted": files_deleted}

    def list_documents(self) -> List[DocumentRecord]:
        return self.index.list_documents()

    async def search(
        self,
        query: str,
        top_k: int = 5,
        document_ids: Optional[List[str]] = None
    ) -> List[SearchHit]:
        if not query or not query.strip():
            raise InputValidationError("query required")
        return await self.index.search(query, top_k, document_ids)
