"""
Service Container

Builds and owns every long-lived collaborator (index, memory, tools, agent)
for one process. The HTTP app and the interactive CLI both go through
build_services; nothing lives at module level.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from docqa.agents.agent_loop import AgentLoop
from docqa.agents.intent import IntentClassifier
from docqa.config.settings import Settings, get_settings
from docqa.rag.embeddings import EmbeddingProvider, get_embedding_provider
from docqa.rag.service import DocumentService
from docqa.rag.vector_store import VectorIndex
from docqa.services.chat_service import ChatService
from docqa.services.llm_service import LLMService
from docqa.services.memory_store import MemoryStore
from docqa.tools.base_tool import ToolContext
from docqa.tools.tool_registry import ToolRegistry, create_default_registry
from docqa.tools.workspace import Workspace

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    workspace: Workspace
    index: VectorIndex
    documents: DocumentService
    memory: MemoryStore
    registry: ToolRegistry
    tool_context: ToolContext
    llm: LLMService
    agent: AgentLoop
    chat: ChatService


def build_services(
    settings: Optional[Settings] = None,
    embedder: Optional[EmbeddingProvider] = None,
    llm: Optional[LLMService] = None
) -> ServiceContainer:
    """
    Wire up all services from settings.

    Args:
        settings: Settings to use (defaults to the process settings)
        embedder: Embedding provider override
        llm: LLM service override

    Returns:
        Fully wired container
    """
    settings = settings or get_settings()

    workspace = Workspace(settings.workspace.root)
    index = VectorIndex(embedder or get_embedding_provider(), settings.rag.index_path)
    documents = DocumentService(
        index,
        workspace,
        chunk_size=settings.rag.chunk_size,
        chunk_overlap_lines=settings.rag.chunk_overlap_lines,
    )
    memory = MemoryStore(settings.memory.max_entries)
    registry = create_default_registry(settings.agent.tool_timeout_seconds)
    tool_context = ToolContext(
        workspace=workspace,
        indexer=documents,
        max_line_length=settings.workspace.max_line_length,
        read_limit=settings.workspace.read_limit,
        grep_limit=settings.workspace.grep_limit,
        grep_timeout_seconds=settings.agent.tool_timeout_seconds,
        use_ripgrep=settings.workspace.use_ripgrep,
        chunk_size=settings.rag.chunk_size,
        chunk_overlap_lines=settings.rag.chunk_overlap_lines,
    )
    llm = llm or LLMService.from_settings(settings.llm)
    classifier = IntentClassifier()
    agent = AgentLoop(llm, registry, tool_context, settings.agent, classifier)
    chat = ChatService(
        documents=documents,
        agent=agent,
        registry=registry,
        tool_context=tool_context,
        memory=memory,
        rag_settings=settings.rag,
        agent_settings=settings.agent,
        classifier=classifier,
    )

    logger.info(
        "Services initialized",
        workspace=str(workspace.root),
        documents=index.count(),
        embedding=index.embedder.version,
        llm_configured=llm.configured
    )

    return ServiceContainer(
        settings=settings,
        workspace=workspace,
        index=index,
        documents=documents,
        memory=memory,
        registry=registry,
        tool_context=tool_context,
        llm=llm,
        agent=agent,
        chat=chat,
    )
