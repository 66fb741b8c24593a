"""
RAG API endpoints: single-call answers over retrieved chunks.
"""
import time
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
import structlog

from docqa.api.dependencies import get_header_session_id, get_services
from docqa.services.chat_service import DirectReply, DocumentQuery
from docqa.services.container import ServiceContainer

logger = structlog.get_logger(__name__)
router = APIRouter()


class RAGQueryRequest(BaseModel):
    query: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    document_ids: List[str] = Field(default_factory=list)
    top_k: Optional[int] = Field(None, ge=1, le=50)


class RAGQueryResponse(DirectReply):
    timestamp: float


@router.post("/query", response_model=RAGQueryResponse)
async def rag_query(
    request: RAGQueryRequest,
    header_session_id: Optional[str] = Depends(get_header_session_id),
    services: ServiceContainer = Depends(get_services)
):
    """Answer from the most similar chunks, citing them, without tool calls."""
    reply = await services.chat.query_documents(DocumentQuery(
        query=request.query,
        session_id=header_session_id or request.session_id,
        document_ids=request.document_ids,
        top_k=request.top_k,
    ))
    return RAGQueryResponse(**reply.model_dump(), timestamp=time.time())
