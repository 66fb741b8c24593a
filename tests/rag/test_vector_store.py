"""Unit tests for the vector index.

Tests indexing, replacement on re-index, restricted search, deletion,
persistence and concurrent writers.
"""

import asyncio
import json
from unittest.mock import MagicMock

import numpy as np
import pytest

from docqa.core.exceptions import ConfigurationError, EmbeddingError, InputValidationError
from docqa.rag.embeddings import HashingEmbeddingProvider
from docqa.rag.models import Segment
from docqa.rag.vector_store import VectorIndex


def segments(*texts):
    return [Segment(text=text, line_start=i, line_end=i) for i, text in enumerate(texts, start=1)]


@pytest.mark.asyncio
async def test_index_and_search_ranks_by_similarity(index):
    await index.index("doc-1", "invoices.txt", segments("The invoice total amount is 500 dollars"))
    await index.index("doc-2", "fruit.txt", segments("Bananas are a yellow fruit"))

    hits = await index.search("invoice total amount", top_k=2)

    assert len(hits) == 2
    assert hits[0].document_id == "doc-1"
    assert hits[0].filename == "invoices.txt"
    assert hits[0].score > hits[1].score
    assert index.count() == 2
    assert index.chunk_count() == 2


@pytest.mark.asyncio
async def test_search_empty_index_returns_nothing(index):
    assert await index.search("anything") == []


@pytest.mark.asyncio
async def test_search_rejects_invalid_top_k(index):
    with pytest.raises(InputValidationError):
        await index.search("query", top_k=0)


@pytest.mark.asyncio
async def test_reindex_replaces_previous_chunks(index):
    await index.index("doc-1", "notes.txt", segments("old alpha", "old beta", "old gamma"))
    created_at = index.get_document("doc-1").created_at

    stored = await index.index("doc-1", "notes.txt", segments("new content"))

    assert stored == 1
    chunks = index.get_chunks("doc-1")
    assert [c.text for c in chunks] == ["new content"]
    assert index.get_document("doc-1").chunk_count == 1
    assert index.get_document("doc-1").created_at == created_at
    assert index.snapshot.matrix.shape == (1, index.dimension)


@pytest.mark.asyncio
async def test_search_restricted_to_documents(index):
    await index.index("doc-1", "a.txt", segments("shared words about budgets"))
    await index.index("doc-2", "b.txt", segments("shared words about budgets and more"))

    hits = await index.search("shared words about budgets", top_k=5, restrict_to_document_ids=["doc-2"])

    assert [h.document_id for h in hits] == ["doc-2"]
    assert await index.search("budgets", restrict_to_document_ids=["missing"]) == []


@pytest.mark.asyncio
async def test_equal_scores_keep_insertion_order(index):
    await index.index("doc-1", "first.txt", segments("identical text"))
    await index.index("doc-2", "second.txt", segments("identical text"))

    hits = await index.search("identical text", top_k=2)

    assert [h.document_id for h in hits] == ["doc-1", "doc-2"]
    assert hits[0].score == pytest.approx(hits[1].score)


@pytest.mark.asyncio
async def test_delete_and_clear(index):
    await index.index("doc-1", "a.txt", segments("alpha"))
    await index.index("doc-2", "b.txt", segments("beta"))

    assert await index.delete("doc-1") is True
    assert await index.delete("doc-1") is False
    assert index.get_chunks("doc-1") == []
    assert [d.id for d in index.list_documents()] == ["doc-2"]

    assert await index.clear() == 1
    assert index.count() == 0
    assert await index.search("beta") == []


@pytest.mark.asyncio
async def test_find_by_filename(index):
    await index.index("doc-1", "report.pdf", segments("pages"))

    assert [d.id for d in index.find_by_filename("report.pdf")] == ["doc-1"]
    assert index.find_by_filename("other.pdf") == []


@pytest.mark.asyncio
async def test_embedding_dimension_mismatch_commits_nothing():
    embedder = MagicMock()
    embedder.dimension = 8
    embedder.version = "broken:8"
    embedder.embed_many.return_value = np.ones((1, 4), dtype=np.float32)
    index = VectorIndex(embedder)

    with pytest.raises(EmbeddingError):
        await index.index("doc-1", "a.txt", segments("text"))

    assert index.count() == 0
    assert index.chunk_count() == 0


@pytest.mark.asyncio
async def test_embedding_failure_is_wrapped():
    embedder = MagicMock()
    embedder.dimension = 8
    embedder.version = "broken:8"
    embedder.embed_many.side_effect = RuntimeError("model crashed")
    index = VectorIndex(embedder)

    with pytest.raises(EmbeddingError):
        await index.index("doc-1", "a.txt", segments("text"))


@pytest.mark.asyncio
async def test_persistence_round_trip(tmp_path, embedder):
    path = tmp_path / "index" / "vectors.json"
    index = VectorIndex(embedder, str(path))
    await index.index("doc-1", "a.txt", [Segment(text="persisted text", line_start=3, line_end=5, page=2)])

    reloaded = VectorIndex(embedder, str(path))

    assert reloaded.count() == 1
    chunk = reloaded.get_chunks("doc-1")[0]
    assert chunk.text == "persisted text"
    assert (chunk.line_start, chunk.line_end, chunk.page) == (3, 5, 2)
    hits = await reloaded.search("persisted text", top_k=1)
    assert hits[0].score == pytest.approx(1.0, abs=1e-5)


@pytest.mark.asyncio
async def test_load_rejects_dimension_mismatch(tmp_path):
    path = tmp_path / "vectors.json"
    index = VectorIndex(HashingEmbeddingProvider(dimension=16), str(path))
    await index.index("doc-1", "a.txt", segments("text"))

    with pytest.raises(ConfigurationError):
        VectorIndex(HashingEmbeddingProvider(dimension=32), str(path))


def test_load_rejects_unreadable_file(tmp_path, embedder):
    path = tmp_path / "vectors.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        VectorIndex(embedder, str(path))


@pytest.mark.asyncio
async def test_persisted_file_is_plain_json(tmp_path, embedder):
    path = tmp_path / "vectors.json"
    index = VectorIndex(embedder, str(path))
    await index.index("doc-1", "a.txt", segments("text"))

    payload = json.loads(path.read_text(encoding="utf-8"))

    assert payload["dimension"] == embedder.dimension
    assert payload["embedding_version"] == embedder.version
    assert list(payload["documents"]) == ["doc-1"]
    assert len(payload["chunks"]) == 1


@pytest.mark.asyncio
async def test_concurrent_writers_and_readers(index):
    async def write(n):
        await index.index(f"doc-{n}", f"file-{n}.txt", segments(f"document number {n}", "common line"))

    async def read():
        hits = await index.search("common line", top_k=50)
        for hit in hits:
            assert hit.chunk.document_id.startswith("doc-")

    await asyncio.gather(*(write(n) for n in range(20)), *(read() for _ in range(20)))

    assert index.count() == 20
    assert index.chunk_count() == 40
    assert index.snapshot.matrix.shape == (40, index.dimension)
    ordinals = [c.ordinal for c in index.snapshot.chunks]
    assert len(set(ordinals)) == len(ordinals)


@pytest.mark.asyncio
async def test_transient_documents_only_match_restricted_searches(tmp_path, embedder):
    path = tmp_path / "vectors.json"
    index = VectorIndex(embedder, str(path))
    await index.index("doc-1", "shared.txt", segments("team offsite agenda"))
    await index.index("transient-1", "private.txt", segments("payroll for Alice with bonus"), transient=True)

    assert [h.document_id for h in await index.search("payroll Alice bonus", top_k=5)] == ["doc-1"]
    restricted = await index.search("payroll Alice bonus", top_k=5, restrict_to_document_ids=["transient-1"])
    assert [h.document_id for h in restricted] == ["transient-1"]
    assert [d.id for d in index.list_documents()] == ["doc-1"]
    assert index.count() == 1

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert list(stored["documents"]) == ["doc-1"]
    assert {c["document_id"] for c in stored["chunks"]} == {"doc-1"}

    assert await index.delete("transient-1") is True
    assert index.chunk_count() == 1
