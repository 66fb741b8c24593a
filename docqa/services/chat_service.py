"""
Chat Service

One answer cycle: intent routing, retrieval, agent loop, memory. Plain chat and
document queries make a single tool-free model call instead. The service owns
no global state; every collaborator is injected.
"""

from typing import Any, Dict, List, Optional
import uuid

import structlog
from pydantic import BaseModel, Field

from docqa.agents.agent_loop import AgentLoop, AgentRunRequest, ToolCallRecord
from docqa.agents.intent import IntentClassifier, strip_timestamp_prefix
from docqa.agents.prompts import PromptPlan, build_single_call_plan
from docqa.config.settings import AgentSettings, RAGSettings
from docqa.core.exceptions import DocQAException, InputValidationError
from docqa.rag.models import SearchHit, SourceReference
from docqa.rag.service import DocumentService
from docqa.services.llm_service import LLMMessage, LLMRequest
from docqa.services.memory_store import MemoryStore
from docqa.tools.base_tool import ToolContext, ToolKind
from docqa.tools.filesystem_tools import EMPTY_DIRECTORY
from docqa.tools.tool_registry import ToolRegistry

logger = structlog.get_logger(__name__)

MIN_INLINE_DOCUMENT_CHARS = 30
UPLOAD_PLACEHOLDER_PREFIX = "[Uploaded file:"
EMPTY_WORKSPACE_REPLY = "Your workspace is empty. Upload some documents to get started!"


class InlineDocument(BaseModel):
    """A document the client sends along with the question."""
    filename: str
    content: str = ""

    def is_meaningful(self) -> bool:
        text = self.content.strip()
        return len(text) >= MIN_INLINE_DOCUMENT_CHARS and not text.startswith(UPLOAD_PLACEHOLDER_PREFIX)


class ChatRequest(BaseModel):
    """A user question and its document context."""
    message: str
    session_id: Optional[str] = None
    document_ids: List[str] = Field(default_factory=list)
    document: Optional[InlineDocument] = None
    active_document: Optional[str] = None


class ToolCallSummary(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    is_error: bool = False

    @classmethod
    def from_record(cls, record: ToolCallRecord) -> "ToolCallSummary":
        return cls(name=record.name, arguments=record.arguments, is_error=record.is_error)


class ChatReply(BaseModel):
    """Response shape of one answer cycle."""
    reply: str
    sources: List[SourceReference] = Field(default_factory=list)
    used_general_knowledge: bool = False
    tool_calls: List[ToolCallSummary] = Field(default_factory=list)
    created_files: List[Dict[str, Any]] = Field(default_factory=list)


class DocumentQuery(BaseModel):
    """A question answered from retrieved chunks in a single model call."""
    query: str
    session_id: Optional[str] = None
    document_ids: List[str] = Field(default_factory=list)
    top_k: Optional[int] = None


class DirectReply(BaseModel):
    """Answer of a single-call endpoint."""
    reply: str
    sources: List[SourceReference] = Field(default_factory=list)


class ChatService:
    """Orchestrates retrieval and the agent loop for chat requests."""

    def __init__(
        self,
        documents: DocumentService,
        agent: AgentLoop,
        registry: ToolRegistry,
        tool_context: ToolContext,
        memory: MemoryStore,
        rag_settings: Optional[RAGSettings] = None,
        agent_settings: Optional[AgentSettings] = None,
        classifier: Optional[IntentClassifier] = None
    ):
        self.documents = documents
        self.agent = agent
        self.registry = registry
        self.tool_context = tool_context
        self.memory = memory
        self.rag_settings = rag_settings or RAGSettings()
        self.agent_settings = agent_settings or AgentSettings()
        self.classifier = classifier or agent.classifier

    async def answer(self, request: ChatRequest) -> ChatReply:
        """
        Answer a question.

        Args:
            request: Question, session and document context

        Returns:
            Reply with sources, tool-call log and created files

        Raises:
            InputValidationError: If the message is empty
            UpstreamFailureError: If embedding or the model fails
        """
        message = (request.message or "").strip()
        if not message:
            raise InputValidationError("message required")

        intent = self.classifier.classify(message)
        if intent.is_meta_question and self.agent_settings.meta_question_fast_path:
            reply = await self._list_workspace()
            if reply is not None:
                await self._remember(request.session_id, message, reply.reply)
                return reply

        transient_id = None
        try:
            restrict_ids = list(request.document_ids)
            inline = request.document
            if not restrict_ids and inline is not None and inline.is_meaningful():
                transient_id = f"transient-{uuid.uuid4()}"
                await self.documents.ingest_text(
                    inline.filename, inline.content, document_id=transient_id, transient=True
                )
                restrict_ids = [transient_id]

            retrieved: List[SearchHit] = []
            has_relevant_docs = True
            if restrict_ids:
                retrieved = await self.documents.search(message, self.rag_settings.top_k, restrict_ids)
            elif not intent.is_meta_question:
                retrieved, has_relevant_docs = await self._retrieve(message)

            active_document = self._active_document(request, restrict_ids, retrieved)
            known = [record.filename for record in self.documents.list_documents()]
            mentioned = self.classifier.mentioned_documents(message, known, active_document)

            history = self.memory.get(request.session_id) if request.session_id else []
            result = await self.agent.run(AgentRunRequest(
                message=message,
                history=history,
                retrieved=retrieved,
                active_document=active_document,
                has_relevant_docs=has_relevant_docs,
                mentioned_documents=mentioned,
            ))
        finally:
            if transient_id is not None:
                await self.documents.index.delete(transient_id)

        await self._remember(request.session_id, message, result.answer)

        return ChatReply(
            reply=result.answer,
            sources=[] if intent.is_meta_question else [SourceReference.from_hit(hit) for hit in result.sources],
            used_general_knowledge=not has_relevant_docs and not intent.is_meta_question,
            tool_calls=[ToolCallSummary.from_record(record) for record in result.tool_calls],
            created_files=result.created_files,
        )

    async def query_documents(self, query: DocumentQuery) -> DirectReply:
        """
        Answer from retrieved chunks without tools.

        Args:
            query: Question, optional document restriction and hit budget

        Returns:
            Answer with every retrieved chunk as a source

        Raises:
            InputValidationError: If the query is empty or top_k is below 1
            UpstreamFailureError: If embedding or the model fails
        """
        message = (query.query or "").strip()
        if not message:
            raise InputValidationError("query required")

        top_k = query.top_k if query.top_k is not None else self.rag_settings.top_k
        retrieved = await self.documents.search(message, top_k, query.document_ids)
        plan = build_single_call_plan(
            retrieved,
            grounded=True,
            temperature=self.agent_settings.query_temperature,
            max_tokens=self.agent_settings.query_max_tokens,
        )
        answer = await self._single_call(plan, message, query.session_id)

        logger.info("Document query answered", sources=len(retrieved), restricted=bool(query.document_ids))
        return DirectReply(reply=answer, sources=[SourceReference.from_hit(hit) for hit in retrieved])

    async def chat(
        self,
        message: str,
        session_id: Optional[str] = None,
        use_rag: bool = False,
        top_k: Optional[int] = None
    ) -> DirectReply:
        """Plain model chat, optionally with retrieved context and no tools."""
        message = (message or "").strip()
        if not message:
            raise InputValidationError("message required")

        retrieved: List[SearchHit] = []
        if use_rag:
            retrieved = await self.documents.search(
                message, top_k if top_k is not None else self.rag_settings.top_k
            )
        plan = build_single_call_plan(
            retrieved,
            grounded=False,
            temperature=self.agent_settings.chat_temperature,
            max_tokens=self.agent_settings.chat_max_tokens,
        )
        answer = await self._single_call(plan, message, session_id)
        return DirectReply(reply=answer, sources=[SourceReference.from_hit(hit) for hit in retrieved])

    async def _single_call(self, plan: PromptPlan, message: str, session_id: Optional[str]) -> str:
        window = self.agent_settings.history_window
        history = self.memory.get(session_id)[-window:] if session_id and window > 0 else []
        response = await self.agent.llm.generate(LLMRequest(
            messages=[
                LLMMessage(role="system", content=plan.system_prompt),
                *(LLMMessage(role=turn.role, content=turn.content) for turn in history),
                LLMMessage(role="user", content=message),
            ],
            temperature=plan.temperature,
            max_tokens=plan.max_tokens,
        ))
        await self._remember(session_id, message, response.content)
        return response.content

    async def _retrieve(self, message: str):
        """Search the whole index and keep hits above the relevance cutoff."""
        settings = self.rag_settings
        pool = await self.documents.search(message, max(settings.search_pool_size, settings.top_k))

        relevant = [hit for hit in pool if hit.score >= settings.relevance_threshold]
        if relevant:
            return relevant[:settings.top_k], True
        if pool and settings.low_score_fallback:
            logger.info("Using low-score matches", best_score=pool[0].score)
            return pool[:settings.fallback_top_k], True

        logger.info(
            "No relevant documents found",
            candidates=len(pool),
            best_score=pool[0].score if pool else None,
            threshold=settings.relevance_threshold
        )
        return [], False

    def _active_document(
        self,
        request: ChatRequest,
        restrict_ids: List[str],
        retrieved: List[SearchHit]
    ) -> Optional[str]:
        if request.active_document:
            return request.active_document
        if request.document is not None and request.document.filename:
            return request.document.filename
        for document_id in restrict_ids:
            record = self.documents.index.get_document(document_id)
            if record is not None:
                return record.filename
        if retrieved:
            return retrieved[0].filename
        return None

    async def _list_workspace(self) -> Optional[ChatReply]:
        try:
            response = await self.registry.execute(
                ToolKind.LIST_DIR.value, {"path": ".", "recursive": False}, self.tool_context
            )
        except DocQAException as e:
            logger.warning("Workspace listing failed, using the agent loop", error=e.message)
            return None

        entries = [
            strip_timestamp_prefix(line.strip())
            for line in response.data.splitlines()
            if line.strip() and line.strip() != EMPTY_DIRECTORY
        ]
        if entries:
            reply = "Here are the documents in your workspace:\n\n" + "\n".join(f"• {e}" for e in entries)
        else:
            reply = EMPTY_WORKSPACE_REPLY

        return ChatReply(
            reply=reply,
            tool_calls=[ToolCallSummary(name=ToolKind.LIST_DIR.value, arguments={"path": "."})],
        )

    async def _remember(self, session_id: Optional[str], message: str, answer: str):
        if session_id:
            await self.memory.append(session_id, message, answer)

    async def reset_session(self, session_id: str):
        self.memory.clear(session_id)
