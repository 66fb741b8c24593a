"""
LLM Service

Provides a single interface for chat-completion calls with function calling.
Any OpenAI-compatible endpoint (Groq by default, OpenAI, local gateways) is
reached through the openai client with a configurable base URL.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import time

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from docqa.config.settings import LLMSettings
from docqa.core.exceptions import AIModelError
from docqa.core.metrics import AI_MODEL_REQUESTS, AI_MODEL_RESPONSE_TIME, AI_MODEL_TOKENS_USED

logger = structlog.get_logger(__name__)


class ToolCallRequest(BaseModel):
    """A function call emitted by the model."""
    id: str
    name: str
    arguments: str = "{}"


class LLMMessage(BaseModel):
    """Message format for LLM interactions"""
    role: str  # 'system', 'user', 'assistant', 'tool'
    content: Optional[str] = None
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_openai(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        if self.tool_call_id:
            message["tool_call_id"] = self.tool_call_id
        return message


class LLMRequest(BaseModel):
    """Request model for LLM calls"""
    messages: List[LLMMessage]
    model: Optional[str] = None
    temperature: float = 0.2
    max_tokens: int = 1200
    tools: Optional[List[Dict[str, Any]]] = None


class LLMResponse(BaseModel):
    """Response model for LLM calls"""
    content: str = ""
    model: str
    tokens_used: int = 0
    finish_reason: Optional[str] = None
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers"""

    model: str = ""

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate a response from the LLM"""

    @abstractmethod
    def validate_config(self) -> bool:
        """Validate that the provider is properly configured"""


class OpenAICompatibleProvider(BaseLLMProvider):
    """Chat completions over any OpenAI-compatible API"""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        model: str = "llama-3.3-70b-versatile",
        timeout: float = 60.0
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.client = None
        if self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, base_url=base_url, timeout=timeout)

    def validate_config(self) -> bool:
        return self.client is not None

    async def generate(self, request: LLMRequest) -> LLMResponse:
        if not self.client:
            raise AIModelError("LLM client not initialized; set LLM_API_KEY", model=self.model)

        model = request.model or self.model
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": [message.to_openai() for message in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.tools:
            kwargs["tools"] = request.tools
            kwargs["tool_choice"] = "auto"

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            raise AIModelError(f"API error: {str(e)}", model=model) from e

        choice = response.choices[0]
        tool_calls = [
            ToolCallRequest(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}"
            )
            for call in (choice.message.tool_calls or [])
        ]

        return LLMResponse(
            content=choice.message.content or "",
            model=response.model or model,
            tokens_used=response.usage.total_tokens if response.usage else 0,
            finish_reason=choice.finish_reason,
            tool_calls=tool_calls,
            metadata={"provider": "openai_compatible", "base_url": self.base_url}
        )


class LLMService:
    """
    Entry point for model calls, adding metrics and logging around a provider.
    """

    def __init__(self, provider: BaseLLMProvider):
        self.provider = provider

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "LLMService":
        provider = OpenAICompatibleProvider(
            api_key=settings.api_key,
            base_url=settings.base_url,
            model=settings.model,
            timeout=settings.request_timeout,
        )
        if not provider.validate_config():
            logger.warning("LLM API key not configured; model calls will fail")
        return cls(provider)

    @property
    def configured(self) -> bool:
        return self.provider.validate_config()

    @property
    def model(self) -> str:
        return self.provider.model

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate a response, recording latency and token usage.

        Raises:
            AIModelError: On any provider failure
        """
        model = request.model or self.provider.model
        start_time = time.time()
        try:
            response = await self.provider.generate(request)
        except AIModelError:
            AI_MODEL_REQUESTS.labels(model=model, status="error").inc()
            raise
        except Exception as e:
            AI_MODEL_REQUESTS.labels(model=model, status="error").inc()
            raise AIModelError(str(e), model=model) from e

        elapsed = time.time() - start_time
        AI_MODEL_REQUESTS.labels(model=model, status="success").inc()
        AI_MODEL_RESPONSE_TIME.labels(model=model).observe(elapsed)
        AI_MODEL_TOKENS_USED.labels(model=model).inc(response.tokens_used)

        logger.info(
            "LLM response received",
            model=response.model,
            tokens_used=response.tokens_used,
            tool_calls=len(response.tool_calls),
            finish_reason=response.finish_reason,
            response_time=elapsed
        )
        return response
