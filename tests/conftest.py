"""Test configuration for pytest.

This module sets up the Python path for tests and provides fixtures shared by
the rag, tools, agents, services and api suites.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Union

import pytest

# Add the project root directory to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from docqa.rag.embeddings import HashingEmbeddingProvider
from docqa.rag.service import DocumentService
from docqa.rag.vector_store import VectorIndex
from docqa.services.llm_service import BaseLLMProvider, LLMRequest, LLMResponse, LLMService
from docqa.tools.base_tool import ToolContext
from docqa.tools.workspace import Workspace


class ScriptedProvider(BaseLLMProvider):
    """LLM provider that replays queued responses and records every request."""

    model = "scripted-model"

    def __init__(self, responses: Optional[List[Union[LLMResponse, Exception]]] = None):
        self.responses = list(responses or [])
        self.requests: List[LLMRequest] = []
        self.entered: Optional[asyncio.Event] = None
        self.release: Optional[asyncio.Event] = None

    def hold(self):
        """Make the next calls wait on ``release`` after setting ``entered``."""
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    def validate_config(self) -> bool:
        return True

    async def generate(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if self.release is not None:
            self.entered.set()
            await self.release.wait()
        if not self.responses:
            return LLMResponse(content="done", model=self.model)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def workspace(tmp_path):
    """Empty workspace rooted in a temporary directory."""
    return Workspace(tmp_path / "uploads")


@pytest.fixture
def embedder():
    return HashingEmbeddingProvider(dimension=384)


@pytest.fixture
def index(embedder):
    """In-memory vector index without persistence."""
    return VectorIndex(embedder)


@pytest.fixture
def document_service(index, workspace):
    return DocumentService(index, workspace, chunk_size=200, chunk_overlap_lines=1)


@pytest.fixture
def tool_context(workspace, document_service):
    """Tool context using the pure Python grep so results do not depend on rg."""
    return ToolContext(workspace=workspace, indexer=document_service, use_ripgrep=False)


@pytest.fixture
def llm_factory():
    """Build an LLMService over a ScriptedProvider.

    Returns:
        Callable taking queued responses and returning (service, provider)
    """
    def _make(*responses):
        provider = ScriptedProvider(list(responses))
        return LLMService(provider), provider
    return _make
