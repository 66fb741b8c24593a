"""Unit tests for configuration settings."""

import pytest
from pydantic import ValidationError

from docqa.config.settings import AgentSettings, MemorySettings, RAGSettings, Settings


def test_defaults():
    settings = Settings()

    assert settings.rag.top_k == 5
    assert settings.rag.search_pool_size == 10
    assert settings.rag.relevance_threshold == 0.3
    assert settings.rag.low_score_fallback is False
    assert settings.agent.max_iterations == 10
    assert settings.agent.history_window == 6
    assert settings.memory.max_entries == 20
    assert settings.workspace.max_line_length == 500


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RAG_TOP_K", "7")
    monkeypatch.setenv("RAG_EMBEDDING_STRATEGY", "sentence-transformer")
    monkeypatch.setenv("AGENT_MAX_ITERATIONS", "3")
    monkeypatch.setenv("WORKSPACE_ROOT", "/srv/uploads")

    settings = Settings()

    assert settings.rag.top_k == 7
    assert settings.rag.embedding_strategy == "sentence_transformer"
    assert settings.agent.max_iterations == 3
    assert settings.workspace.root == "/srv/uploads"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        RAGSettings(embedding_strategy="word2vec")
    with pytest.raises(ValidationError):
        RAGSettings(top_k=0)
    with pytest.raises(ValidationError):
        AgentSettings(max_iterations=0)
    with pytest.raises(ValidationError):
        MemorySettings(max_entries=1)
