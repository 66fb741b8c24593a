"""Unit tests for the document service."""

import pytest

from docqa.core.exceptions import InputValidationError
from docqa.rag.service import safe_basename


@pytest.mark.parametrize("raw,expected", [
    ("report.pdf", "report.pdf"),
    ("../../etc/passwd", "passwd"),
    ("C:\\Users\\me\\notes.txt", "notes.txt"),
    ("dir/sub/data.xlsx", "data.xlsx"),
])
def test_safe_basename(raw, expected):
    assert safe_basename(raw) == expected


@pytest.mark.parametrize("raw", ["", "..", "   ", "dir/.."])
def test_safe_basename_rejects_empty_names(raw):
    with pytest.raises(InputValidationError):
        safe_basename(raw)


@pytest.mark.asyncio
async def test_ingest_upload_stores_and_indexes(document_service, workspace):
    result = await document_service.ingest_upload("../secret/plan.txt", b"Launch plan for the rocket project")

    assert result.status == "indexed"
    assert result.chunks_created == 1
    assert result.filename.endswith("-plan.txt")
    assert result.filename.split("-", 1)[0].isdigit()
    assert (workspace.root / result.filename).read_bytes() == b"Launch plan for the rocket project"

    hits = await document_service.search("rocket launch plan")
    assert hits[0].document_id == result.document_id


@pytest.mark.asyncio
async def test_unparseable_upload_is_kept_with_warning(document_service, workspace):
    result = await document_service.ingest_upload("broken.xlsx", b"not a workbook")

    assert result.status == "uploaded"
    assert result.chunks_created == 0
    assert "parsing failed" in result.warning
    assert (workspace.root / result.filename).exists()
    assert document_service.list_documents() == []


@pytest.mark.asyncio
async def test_index_stored_file_reuses_document_id(document_service, workspace):
    (workspace.root / "notes.txt").write_text("version one", encoding="utf-8")
    first = await document_service.index_stored_file("notes.txt")

    (workspace.root / "notes.txt").write_text("version two", encoding="utf-8")
    second = await document_service.index_stored_file("notes.txt")

    assert first.document_id == second.document_id
    assert [c.text for c in document_service.index.get_chunks(first.document_id)] == ["version two"]


@pytest.mark.asyncio
async def test_ingest_text_requires_filename_and_content(document_service):
    with pytest.raises(InputValidationError):
        await document_service.ingest_text("", "content")
    with pytest.raises(InputValidationError):
        await document_service.ingest_text("a.txt", "")


@pytest.mark.asyncio
async def test_ingest_batch_skips_invalid_items(document_service):
    count = await document_service.ingest_batch([
        {"filename": "a.txt", "content": "alpha"},
        {"filename": "b.txt"},
        "not a dict",
        {"filename": "c.txt", "content": "gamma"},
    ])

    assert count == 2
    assert sorted(d.filename for d in document_service.list_documents()) == ["a.txt", "c.txt"]


@pytest.mark.asyncio
async def test_delete_by_id_or_filename(document_service, workspace):
    (workspace.root / "keep.txt").write_text("keep me", encoding="utf-8")
    (workspace.root / "drop.txt").write_text("drop me", encoding="utf-8")
    keep = await document_service.index_stored_file("keep.txt")
    await document_service.index_stored_file("drop.txt")

    assert await document_service.delete("drop.txt") is True
    assert not (workspace.root / "drop.txt").exists()

    assert await document_service.delete(keep.document_id) is True
    assert not (workspace.root / "keep.txt").exists()

    assert await document_service.delete("missing.txt") is False


@pytest.mark.asyncio
async def test_delete_text_only_document_leaves_files_alone(document_service, workspace):
    (workspace.root / "other.txt").write_text("unrelated", encoding="utf-8")
    result = await document_service.ingest_text("../outside.txt", "indexed only")

    assert await document_service.delete(result.document_id) is True
    assert (workspace.root / "other.txt").exists()


@pytest.mark.asyncio
async def test_clear_all_removes_files_and_index(document_service, workspace):
    (workspace.root / "a.txt").write_text("alpha", encoding="utf-8")
    (workspace.root / "nested").mkdir()
    await document_service.index_stored_file("a.txt")
    await document_service.ingest_text("b.txt", "beta")

    summary = await document_service.clear_all()

    assert summary == {"documents_removed": 2, "files_deleted": 1}
    assert document_service.list_documents() == []
    assert (workspace.root / "nested").is_dir()


@pytest.mark.asyncio
async def test_search_rejects_blank_query(document_service):
    with pytest.raises(InputValidationError):
        await document_service.search("   ")


@pytest.mark.asyncio
async def test_deleting_text_document_keeps_upload_with_same_name(document_service, workspace):
    upload = await document_service.ingest_upload("report.txt", b"Quarterly report on sales")
    text = await document_service.ingest_text(upload.filename, "Pasted notes about the report")

    assert await document_service.delete(text.document_id) is True

    assert (workspace.root / upload.filename).exists()
    assert document_service.index.get_document(upload.document_id).stored is True


@pytest.mark.asyncio
async def test_delete_by_filename_prefers_stored_upload(document_service, workspace):
    upload = await document_service.ingest_upload("report.txt", b"Quarterly report on sales")
    text = await document_service.ingest_text(upload.filename, "Pasted notes about the report")

    assert await document_service.delete(upload.filename) is True

    assert not (workspace.root / upload.filename).exists()
    assert [d.id for d in document_service.list_documents()] == [text.document_id]


@pytest.mark.asyncio
async def test_reindexing_a_file_does_not_adopt_text_document_id(document_service, workspace):
    (workspace.root / "notes.txt").write_text("from disk", encoding="utf-8")
    text = await document_service.ingest_text("notes.txt", "pasted text")

    stored = await document_service.index_stored_file("notes.txt")

    assert stored.document_id != text.document_id
    assert document_service.index.get_document(text.document_id).stored is False


@pytest.mark.asyncio
async def test_transient_text_cannot_be_deleted_through_the_service(document_service):
    await document_service.ingest_text("pasted.txt", "inline content", document_id="transient-1", transient=True)

    assert await document_service.delete("transient-1") is False
    assert await document_service.delete("pasted.txt") is False
    assert document_service.index.get_document("transient-1") is not None
