"""
Configuration settings for the DocQA service.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceSettings(BaseSettings):
    """Main service configuration settings."""

    model_config = SettingsConfigDict(env_prefix="SERVICE_", extra="ignore")

    name: str = Field(default="docqa")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # HTTP server settings
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)


class LLMSettings(BaseSettings):
    """LLM provider configuration settings.

    Any OpenAI-compatible chat completions endpoint works; the default points at
    Groq.
    """

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore")

    api_key: Optional[str] = Field(default=None)
    base_url: str = Field(default="https://api.groq.com/openai/v1")
    model: str = Field(default="llama-3.3-70b-versatile")
    request_timeout: float = Field(default=60.0)


class RAGSettings(BaseSettings):
    """RAG (Retrieval-Augmented Generation) configuration settings."""

    model_config = SettingsConfigDict(env_prefix="RAG_", extra="ignore")

    embedding_strategy: str = Field(default="hashing")
    embedding_model: str = Field(default="all-MiniLM-L6-v2")
    embedding_dimension: int = Field(default=384)
    chunk_size: int = Field(default=800)
    chunk_overlap_lines: int = Field(default=2)
    top_k: int = Field(default=5)
    search_pool_size: int = Field(default=10)
    relevance_threshold: float = Field(default=0.3)
    low_score_fallback: bool = Field(default=False)
    fallback_top_k: int = Field(default=3)
    index_path: Optional[str] = Field(default=None)

    @field_validator("embedding_strategy")
    @classmethod
    def validate_strategy(cls, v):
        """Only the two supported embedding strategies are accepted."""
        v = v.lower().replace("-", "_")
        if v not in ("hashing", "sentence_transformer"):
            raise ValueError("embedding_strategy must be 'hashing' or 'sentence_transformer'")
        return v

    @field_validator("chunk_size", "embedding_dimension", "top_k", "search_pool_size", "fallback_top_k")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be greater than zero")
        return v


class AgentSettings(BaseSettings):
    """Agent loop configuration settings."""

    model_config = SettingsConfigDict(env_prefix="AGENT_", extra="ignore")

    max_iterations: int = Field(default=10)
    history_window: int = Field(default=6)
    tool_timeout_seconds: float = Field(default=30.0)
    meta_question_fast_path: bool = Field(default=True)

    # Sampling budgets per prompt mode
    grounded_temperature: float = Field(default=0.2)
    grounded_max_tokens: int = Field(default=1200)
    general_temperature: float = Field(default=0.5)
    general_max_tokens: int = Field(default=1200)
    drafting_temperature: float = Field(default=0.7)
    drafting_max_tokens: int = Field(default=4000)

    # Single-call endpoints without tools
    query_temperature: float = Field(default=0.2)
    query_max_tokens: int = Field(default=800)
    chat_temperature: float = Field(default=0.3)
    chat_max_tokens: int = Field(default=800)

    @field_validator("max_iterations")
    @classmethod
    def validate_max_iterations(cls, v):
        if v < 1:
            raise ValueError("max_iterations must be at least 1")
        return v


class WorkspaceSettings(BaseSettings):
    """Sandboxed workspace configuration settings."""

    model_config = SettingsConfigDict(env_prefix="WORKSPACE_", extra="ignore")

    root: str = Field(default="data/uploads")
    max_line_length: int = Field(default=500)
    read_limit: int = Field(default=2000)
    grep_limit: int = Field(default=100)
    use_ripgrep: Optional[bool] = Field(default=None)


class MemorySettings(BaseSettings):
    """Conversation memory configuration settings."""

    model_config = SettingsConfigDict(env_prefix="MEMORY_", extra="ignore")

    max_entries: int = Field(default=20)

    @field_validator("max_entries")
    @classmethod
    def validate_max_entries(cls, v):
        if v < 2:
            raise ValueError("max_entries must hold at least one user/assistant pair")
        return v


class MonitoringSettings(BaseSettings):
    """Monitoring and logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="MONITORING_", extra="ignore")

    log_level: str = Field(default="info")
    log_format: str = Field(default="json")
    metrics_enabled: bool = Field(default=True)


class Settings(BaseSettings):
    """Main settings class that combines all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service: ServiceSettings = Field(default_factory=ServiceSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    rag: RAGSettings = Field(default_factory=RAGSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings, loaded once from the environment."""
    return Settings()
