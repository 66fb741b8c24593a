"""Vector Index for RAG Engine

In-process similarity index over document chunks. Writers serialize on an
asyncio lock and publish a new immutable snapshot; readers take whichever
snapshot is current without locking.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
import asyncio
import json
import os
import tempfile
import time

import numpy as np
import structlog

from docqa.core.exceptions import ConfigurationError, EmbeddingError, InputValidationError
from docqa.core.metrics import (
    RAG_CHUNKS_INDEXED,
    RAG_DOCUMENTS_INDEXED,
    RAG_INDEXED_DOCUMENTS,
    RAG_SEARCH_TIME,
    RAG_SEARCHES,
)
from docqa.rag.embeddings import EmbeddingProvider
from docqa.rag.models import Chunk, DocumentRecord, SearchHit, Segment

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IndexSnapshot:
    """Immutable view of the index at one point in time."""
    chunks: Tuple[Chunk, ...] = ()
    matrix: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.float32))
    documents: Dict[str, DocumentRecord] = field(default_factory=dict)
    next_ordinal: int = 0


class VectorIndex:
    """Chunk store with dot-product similarity search."""

    def __init__(self, embedder: EmbeddingProvider, index_path: Optional[str] = None):
        """Initialize the index.

        Args:
            embedder: Embedding provider; its dimension is fixed for this index
            index_path: Optional JSON file to load from and persist to
        """
        self.embedder = embedder
        self.dimension = embedder.dimension
        self.index_path = Path(index_path) if index_path else None
        self._write_lock = asyncio.Lock()
        self._snapshot = IndexSnapshot(matrix=np.zeros((0, self.dimension), dtype=np.float32))

        if self.index_path and self.index_path.exists():
            self._snapshot = self._load(self.index_path)

        RAG_INDEXED_DOCUMENTS.set(self.count())

    @property
    def snapshot(self) -> IndexSnapshot:
        return self._snapshot

    def count(self) -> int:
        """Number of indexed documents, not counting transient ones."""
        return len(self.list_documents())

    def chunk_count(self) -> int:
        return len(self._snapshot.chunks)

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return self._snapshot.documents.get(document_id)

    def list_documents(self) -> List[DocumentRecord]:
        documents = (d for d in self._snapshot.documents.values() if not d.transient)
        return sorted(documents, key=lambda d: d.created_at)

    def find_by_filename(self, filename: str) -> List[DocumentRecord]:
        """Find documents whose stored filename matches exactly."""
        return [d for d in self.list_documents() if d.filename == filename]

    def get_chunks(self, document_id: str) -> List[Chunk]:
        return [c for c in self._snapshot.chunks if c.document_id == document_id]

    async def index(
        self,
        document_id: str,
        filename: str,
        segments: Sequence[Segment],
        stored: bool = False,
        transient: bool = False
    ) -> int:
        """Embed and store a document's segments, replacing any previous version.

        Args:
            document_id: Owning document id
            filename: Display filename for citations
            segments: Segments produced by the parser
            stored: Whether the document is backed by a workspace file
            transient: Only searchable when named in a restricted search;
                never listed, counted or persisted

        Returns:
            Number of chunks stored

        Raises:
            EmbeddingError: If embedding fails or returns the wrong dimension;
                nothing is committed in that case
        """
        texts = [segment.text for segment in segments]

        try:
            loop = asyncio.get_running_loop()
            matrix = await loop.run_in_executor(None, self.embedder.embed_many, texts)
        except EmbeddingError:
            RAG_DOCUMENTS_INDEXED.labels(status="error").inc()
            raise
        except Exception as e:
            RAG_DOCUMENTS_INDEXED.labels(status="error").inc()
            raise EmbeddingError(str(e), details={"document_id": document_id}) from e

        matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float32))
        if matrix.shape != (len(texts), self.dimension):
            RAG_DOCUMENTS_INDEXED.labels(status="error").inc()
            raise EmbeddingError(
                f"expected {len(texts)} vectors of dimension {self.dimension}, "
                f"got shape {matrix.shape}",
                details={"document_id": document_id}
            )

        async with self._write_lock:
            current = self._snapshot
            keep = [i for i, c in enumerate(current.chunks) if c.document_id != document_id]

            ordinal = current.next_ordinal
            new_chunks = []
            for offset, (segment, vector) in enumerate(zip(segments, matrix)):
                new_chunks.append(Chunk(
                    document_id=document_id,
                    filename=filename,
                    text=segment.text,
                    line_start=segment.line_start,
                    line_end=segment.line_end,
                    page=segment.page,
                    sheet=segment.sheet,
                    sheet_index=segment.sheet_index,
                    embedding=tuple(float(x) for x in vector),
                    ordinal=ordinal + offset,
                ))

            documents = dict(current.documents)
            previous = documents.get(document_id)
            documents[document_id] = DocumentRecord(
                id=document_id,
                filename=filename,
                chunk_count=len(new_chunks),
                stored=stored,
                transient=transient,
                **({"created_at": previous.created_at} if previous else {})
            )

            snapshot = IndexSnapshot(
                chunks=tuple(current.chunks[i] for i in keep) + tuple(new_chunks),
                matrix=np.vstack([current.matrix[keep], matrix]),
                documents=documents,
                next_ordinal=ordinal + len(new_chunks),
            )
            if not transient:
                await self._persist(snapshot)
            self._snapshot = snapshot

        RAG_DOCUMENTS_INDEXED.labels(status="success").inc()
        RAG_CHUNKS_INDEXED.inc(len(new_chunks))
        RAG_INDEXED_DOCUMENTS.set(self.count())

        logger.info(
            "Document indexed",
            document_id=document_id,
            filename=filename,
            chunks=len(new_chunks),
            replaced=previous is not None,
            transient=transient
        )
        return len(new_chunks)

    async def search(
        self,
        query: str,
        top_k: int = 5,
        restrict_to_document_ids: Optional[Sequence[str]] = None,
    ) -> List[SearchHit]:
        """Return the ``top_k`` chunks most similar to ``query``.

        Args:
            query: Natural-language query
            top_k: Maximum hits to return
            restrict_to_document_ids: Only score chunks of these documents;
                empty or None means no restriction

        Returns:
            Hits sorted by descending score, ties in insertion order
        """
        if top_k < 1:
            raise InputValidationError("top_k must be at least 1", details={"top_k": top_k})

        start_time = time.time()
        restricted = bool(restrict_to_document_ids)
        RAG_SEARCHES.labels(restricted=str(restricted).lower()).inc()

        snapshot = self._snapshot
        if not snapshot.chunks:
            return []

        try:
            loop = asyncio.get_running_loop()
            query_vector = await loop.run_in_executor(None, self.embedder.embed, query)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(str(e)) from e

        query_vector = np.asarray(query_vector, dtype=np.float32).ravel()
        if query_vector.shape[0] != self.dimension:
            raise EmbeddingError(
                f"query vector has dimension {query_vector.shape[0]}, expected {self.dimension}"
            )

        # Transient documents are only visible to searches that name them
        hidden = {doc_id for doc_id, record in snapshot.documents.items() if record.transient}
        candidates = np.arange(len(snapshot.chunks))
        if restricted:
            allowed = set(restrict_to_document_ids)
            candidates = np.array(
                [i for i, c in enumerate(snapshot.chunks) if c.document_id in allowed],
                dtype=np.int64
            )
        elif hidden:
            candidates = np.array(
                [i for i, c in enumerate(snapshot.chunks) if c.document_id not in hidden],
                dtype=np.int64
            )
        if candidates.size == 0:
            return []

        scores = snapshot.matrix[candidates] @ query_vector
        order = np.argsort(-scores, kind="stable")[:top_k]

        hits = [
            SearchHit(chunk=snapshot.chunks[int(candidates[i])], score=float(scores[i]))
            for i in order
        ]

        RAG_SEARCH_TIME.observe(time.time() - start_time)
        logger.debug(
            "Vector search completed",
            results=len(hits),
            restricted=restricted,
            top_score=hits[0].score if hits else None
        )
        return hits

    async def delete(self, document_id: str) -> bool:
        """Remove a document and all its chunks.

        Returns:
            True if the document existed
        """
        async with self._write_lock:
            current = self._snapshot
            record = current.documents.get(document_id)
            if record is None:
                return False

            keep = [i for i, c in enumerate(current.chunks) if c.document_id != document_id]
            documents = {k: v for k, v in current.documents.items() if k != document_id}
            snapshot = IndexSnapshot(
                chunks=tuple(current.chunks[i] for i in keep),
                matrix=current.matrix[keep],
                documents=documents,
                next_ordinal=current.next_ordinal,
            )
            if not record.transient:
                await self._persist(snapshot)
            self._snapshot = snapshot

        RAG_INDEXED_DOCUMENTS.set(self.count())
        logger.info("Document deleted from index", document_id=document_id)
        return True

    async def clear(self) -> int:
        """Drop every document. Returns how many were removed."""
        async with self._write_lock:
            removed = self.count()
            snapshot = IndexSnapshot(matrix=np.zeros((0, self.dimension), dtype=np.float32))
            await self._persist(snapshot)
            self._snapshot = snapshot

        RAG_INDEXED_DOCUMENTS.set(0)
        logger.info("Index cleared", documents_removed=removed)
        return removed

    async def _persist(self, snapshot: IndexSnapshot):
        if not self.index_path:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._save, self.index_path, snapshot)

    def _save(self, path: Path, snapshot: IndexSnapshot):
        hidden = {doc_id for doc_id, record in snapshot.documents.items() if record.transient}
        payload = {
            "embedding_version": self.embedder.version,
            "dimension": self.dimension,
            "documents": {
                doc_id: record.model_dump(mode="json")
                for doc_id, record in snapshot.documents.items()
                if doc_id not in hidden
            },
            "chunks": [
                chunk.model_dump(mode="json")
                for chunk in snapshot.chunks
                if chunk.document_id not in hidden
            ],
        }

        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
            os.replace(tmp_path, path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def _load(self, path: Path) -> IndexSnapshot:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError("vector_index", f"cannot read {path}: {e}") from e

        if payload.get("dimension") != self.dimension:
            raise ConfigurationError(
                "vector_index",
                f"stored index has dimension {payload.get('dimension')}, "
                f"embedder produces {self.dimension}",
                details={"path": str(path)}
            )
        if payload.get("embedding_version") != self.embedder.version:
            logger.warning(
                "Stored index was built with a different embedder",
                stored=payload.get("embedding_version"),
                current=self.embedder.version
            )

        chunks = tuple(
            Chunk.model_validate(raw)
            for raw in sorted(payload.get("chunks", []), key=lambda c: c.get("ordinal", 0))
        )
        documents = {
            doc_id: DocumentRecord.model_validate(raw)
            for doc_id, raw in payload.get("documents", {}).items()
        }
        matrix = (
            np.array([c.embedding for c in chunks], dtype=np.float32)
            if chunks else np.zeros((0, self.dimension), dtype=np.float32)
        )

        logger.info("Index loaded", path=str(path), documents=len(documents), chunks=len(chunks))
        return IndexSnapshot(
            chunks=chunks,
            matrix=matrix,
            documents=documents,
            next_ordinal=(chunks[-1].ordinal + 1) if chunks else 0,
        )
