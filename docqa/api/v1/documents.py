"""
Document API endpoints: upload, indexing, search and deletion.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field
import structlog

from docqa.api.dependencies import get_services
from docqa.services.container import ServiceContainer

logger = structlog.get_logger(__name__)
router = APIRouter()


class IndexTextRequest(BaseModel):
    filename: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class SearchResult(BaseModel):
    document_id: str
    filename: str
    score: float
    text: str
    page: Optional[int] = None
    sheet: Optional[str] = None
    line_start: int
    line_end: int


@router.post("/upload")
async def upload_document(
    file: UploadFile = File(...),
    services: ServiceContainer = Depends(get_services)
):
    """Store an uploaded file in the workspace and index it."""
    data = await file.read()
    logger.info("Processing upload", filename=file.filename, content_type=file.content_type, size=len(data))

    result = await services.documents.ingest_upload(file.filename or "", data)

    body = {
        "id": result.document_id,
        "status": result.status,
        "filename": result.filename,
        "chunks": result.chunks_created,
    }
    if result.warning:
        body["warning"] = result.warning
    return body


@router.post("/index")
async def index_text(
    request: IndexTextRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Index raw text content under a filename."""
    result = await services.documents.ingest_text(request.filename, request.content)
    return {"id": result.document_id, "status": result.status, "chunks": result.chunks_created}


@router.post("/index-batch")
async def index_batch(
    documents: List[dict],
    services: ServiceContainer = Depends(get_services)
):
    """Index several {filename, content} items; incomplete items are skipped."""
    count = await services.documents.ingest_batch(documents)
    return {"count": count}


@router.get("")
async def list_documents(services: ServiceContainer = Depends(get_services)):
    """List indexed documents."""
    records = services.documents.list_documents()
    return {
        "documents": [record.model_dump(mode="json") for record in records],
        "count": len(records)
    }


@router.get("/search")
async def search_documents(
    query: str = Query(..., min_length=1),
    top_k: int = Query(5, ge=1, le=100),
    services: ServiceContainer = Depends(get_services)
):
    """Similarity search across all indexed documents."""
    hits = await services.documents.search(query, top_k)
    return {
        "results": [
            SearchResult(
                document_id=hit.chunk.document_id,
                filename=hit.chunk.filename,
                score=hit.score,
                text=hit.chunk.text,
                page=hit.chunk.page,
                sheet=hit.chunk.sheet,
                line_start=hit.chunk.line_start,
                line_end=hit.chunk.line_end,
            ).model_dump()
            for hit in hits
        ]
    }


@router.post("/clear-all")
async def clear_all_documents(services: ServiceContainer = Depends(get_services)):
    """Delete every stored file and empty the index."""
    summary = await services.documents.clear_all()
    return {
        "success": True,
        "deleted_files": summary["files_deleted"],
        "documents_removed": summary["documents_removed"],
        "message": "All documents and index cleared successfully"
    }


@router.delete("/{id_or_filename:path}")
async def delete_document(
    id_or_filename: str,
    services: ServiceContainer = Depends(get_services)
):
    """Delete a document by id or stored filename."""
    deleted = await services.documents.delete(id_or_filename)
    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"success": True, "document_id": id_or_filename}
