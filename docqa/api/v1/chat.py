"""
Chat API endpoints: agent chat, plain chat and session reset.
"""
import time
from typing import List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
import structlog

from docqa.api.dependencies import get_header_session_id, get_services
from docqa.services.chat_service import ChatReply, ChatRequest, DirectReply, InlineDocument
from docqa.services.container import ServiceContainer

logger = structlog.get_logger(__name__)
router = APIRouter()


class AgentChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    document: Optional[InlineDocument] = None
    document_ids: List[str] = Field(default_factory=list)
    active_document: Optional[str] = None


class AgentChatResponse(ChatReply):
    timestamp: float


class PlainChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    use_rag: bool = False
    top_k: Optional[int] = Field(None, ge=1, le=50)


class PlainChatResponse(DirectReply):
    timestamp: float


class SessionResetRequest(BaseModel):
    session_id: Optional[str] = None


@router.post("/agent/chat", response_model=AgentChatResponse)
async def agent_chat(
    request: AgentChatRequest,
    header_session_id: Optional[str] = Depends(get_header_session_id),
    services: ServiceContainer = Depends(get_services)
):
    """Answer a question over the workspace documents."""
    start_time = time.time()
    session_id = header_session_id or request.session_id

    reply = await services.chat.answer(ChatRequest(
        message=request.message,
        session_id=session_id,
        document_ids=request.document_ids,
        document=request.document,
        active_document=request.active_document,
    ))

    logger.info(
        "Chat answered",
        session_id=session_id,
        sources=len(reply.sources),
        tool_calls=len(reply.tool_calls),
        used_general_knowledge=reply.used_general_knowledge,
        duration=time.time() - start_time
    )
    return AgentChatResponse(**reply.model_dump(), timestamp=time.time())


@router.post("/chat", response_model=PlainChatResponse)
async def plain_chat(
    request: PlainChatRequest,
    header_session_id: Optional[str] = Depends(get_header_session_id),
    services: ServiceContainer = Depends(get_services)
):
    """Chat with the model directly; use_rag adds retrieved context."""
    reply = await services.chat.chat(
        request.message,
        session_id=header_session_id or request.session_id,
        use_rag=request.use_rag,
        top_k=request.top_k,
    )
    return PlainChatResponse(**reply.model_dump(), timestamp=time.time())


@router.post("/session/reset")
async def reset_session(
    request: Optional[SessionResetRequest] = Body(default=None),
    header_session_id: Optional[str] = Depends(get_header_session_id),
    services: ServiceContainer = Depends(get_services)
):
    """Forget the conversation history of a session."""
    session_id = header_session_id or (request.session_id if request else None)
    if session_id:
        await services.chat.reset_session(session_id)
    return {"status": "cleared"}
