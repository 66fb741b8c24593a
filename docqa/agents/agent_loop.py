"""
Agent Loop

Bounded tool-calling loop around the chat model:

    BUILD_PROMPT -> CALL_MODEL -> (TERMINAL | EXECUTE_TOOLS -> CALL_MODEL)

At most ``max_iterations`` model calls are made per cycle; past that the loop
ends with a fixed "could not complete" answer whatever the model does.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import json
import time

import structlog
from pydantic import BaseModel, Field

from docqa.agents.intent import IntentClassifier
from docqa.agents.prompts import PromptMode, PromptPlan, build_prompt_plan
from docqa.config.settings import AgentSettings
from docqa.core.exceptions import DocQAException
from docqa.core.metrics import AGENT_ITERATIONS, AGENT_RUNS
from docqa.rag.models import SearchHit
from docqa.services.llm_service import LLMMessage, LLMRequest, LLMService, ToolCallRequest
from docqa.services.memory_store import ConversationTurn
from docqa.tools.base_tool import ToolContext
from docqa.tools.tool_registry import ToolRegistry

logger = structlog.get_logger(__name__)

ITERATION_LIMIT_MESSAGE = "I could not complete this request within the allowed number of steps."
TOOLS_DISABLED_MESSAGE = (
    "Error: Tools are not available for this question. "
    "Answer from the sources provided in the system prompt."
)


class LoopState(str, Enum):
    BUILD_PROMPT = "build_prompt"
    CALL_MODEL = "call_model"
    EXECUTE_TOOLS = "execute_tools"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class Conversation:
    """Append-only message log; every append returns a new value."""
    messages: Tuple[LLMMessage, ...] = ()

    def append(self, *messages: LLMMessage) -> "Conversation":
        return Conversation(self.messages + tuple(messages))

    def __len__(self) -> int:
        return len(self.messages)


class ToolCallRecord(BaseModel):
    """One executed (or rejected) tool call."""
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: str = ""
    is_error: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def created_file(self) -> Optional[Dict[str, Any]]:
        return self.metadata.get("created_file")


class AgentRunRequest(BaseModel):
    """Inputs to one answer cycle."""
    message: str
    history: List[ConversationTurn] = Field(default_factory=list)
    retrieved: List[SearchHit] = Field(default_factory=list)
    active_document: Optional[str] = None
    has_relevant_docs: bool = True
    mentioned_documents: List[str] = Field(default_factory=list)


class AgentRunResult(BaseModel):
    """Outcome of one answer cycle."""
    answer: str
    mode: PromptMode
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
    sources: List[SearchHit] = Field(default_factory=list)
    iterations: int = 0
    completed: bool = True

    @property
    def created_files(self) -> List[Dict[str, Any]]:
        return [call.created_file for call in self.tool_calls if call.created_file]


@dataclass
class _CycleState:
    plan: Optional[PromptPlan] = None
    conversation: Conversation = field(default_factory=Conversation)
    pending: List[ToolCallRequest] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    iterations: int = 0
    answer: Optional[str] = None


class AgentLoop:
    """Runs answer cycles. Safe to share across concurrent cycles."""

    def __init__(
        self,
        llm: LLMService,
        registry: ToolRegistry,
        tool_context: ToolContext,
        settings: Optional[AgentSettings] = None,
        classifier: Optional[IntentClassifier] = None
    ):
        self.llm = llm
        self.registry = registry
        self.tool_context = tool_context
        self.settings = settings or AgentSettings()
        self.classifier = classifier or IntentClassifier()

    async def run(self, request: AgentRunRequest) -> AgentRunResult:
        """
        Run one answer cycle to completion.

        Args:
            request: Message, history, retrieval state and document focus

        Returns:
            Final answer with tool-call log and the sources supplied

        Raises:
            AIModelError: If the model provider fails; the cycle is aborted
        """
        cycle = _CycleState()
        state = LoopState.BUILD_PROMPT
        start_time = time.time()
        outcome = "error"

        try:
            while state != LoopState.TERMINAL:
                if state == LoopState.BUILD_PROMPT:
                    cycle.plan, cycle.conversation = self._build_prompt(request)
                    state = LoopState.CALL_MODEL

                elif state == LoopState.CALL_MODEL:
                    if cycle.iterations >= self.settings.max_iterations:
                        logger.warning(
                            "Agent iteration limit reached",
                            iterations=cycle.iterations,
                            tool_calls=len(cycle.tool_calls)
                        )
                        cycle.answer = ITERATION_LIMIT_MESSAGE
                        state = LoopState.TERMINAL
                        continue
                    state = await self._call_model(cycle)

                elif state == LoopState.EXECUTE_TOOLS:
                    await self._execute_tools(cycle)
                    state = LoopState.CALL_MODEL

            completed = cycle.answer != ITERATION_LIMIT_MESSAGE
            outcome = "completed" if completed else "iteration_limit"
        finally:
            mode = cycle.plan.mode.value if cycle.plan else "unknown"
            AGENT_RUNS.labels(mode=mode, outcome=outcome).inc()
            AGENT_ITERATIONS.observe(cycle.iterations)

        logger.info(
            "Agent cycle finished",
            mode=cycle.plan.mode.value,
            outcome=outcome,
            iterations=cycle.iterations,
            tool_calls=len(cycle.tool_calls),
            duration=time.time() - start_time
        )

        return AgentRunResult(
            answer=cycle.answer or "",
            mode=cycle.plan.mode,
            tool_calls=cycle.tool_calls,
            sources=list(request.retrieved),
            iterations=cycle.iterations,
            completed=completed,
        )

    def _build_prompt(self, request: AgentRunRequest) -> Tuple[PromptPlan, Conversation]:
        plan = build_prompt_plan(
            intent=self.classifier.classify(request.message),
            retrieved=request.retrieved,
            has_relevant_docs=request.has_relevant_docs,
            active_document=request.active_document,
            mentioned_documents=request.mentioned_documents,
            settings=self.settings,
        )

        window = self.settings.history_window
        history = request.history[-window:] if window > 0 else []
        conversation = Conversation().append(
            LLMMessage(role="system", content=plan.system_prompt),
            *(LLMMessage(role=turn.role, content=turn.content) for turn in history),
            LLMMessage(role="user", content=request.message),
        )

        logger.debug(
            "Prompt built",
            mode=plan.mode.value,
            tools_enabled=plan.tools_enabled,
            history=len(history),
            retrieved=len(request.retrieved)
        )
        return plan, conversation

    async def _call_model(self, cycle: _CycleState) -> LoopState:
        plan = cycle.plan
        cycle.iterations += 1

        response = await self.llm.generate(LLMRequest(
            messages=list(cycle.conversation.messages),
            temperature=plan.temperature,
            max_tokens=plan.max_tokens,
            tools=self.registry.function_specs() if plan.tools_enabled else None,
        ))

        cycle.conversation = cycle.conversation.append(LLMMessage(
            role="assistant",
            content=response.content or None,
            tool_calls=response.tool_calls,
        ))

        if not response.tool_calls:
            cycle.answer = response.content
            return LoopState.TERMINAL

        cycle.pending = list(response.tool_calls)
        return LoopState.EXECUTE_TOOLS

    async def _execute_tools(self, cycle: _CycleState):
        for call in cycle.pending:
            record = await self._execute_one(call, cycle.plan.tools_enabled)
            cycle.tool_calls.append(record)
            cycle.conversation = cycle.conversation.append(LLMMessage(
                role="tool",
                tool_call_id=call.id,
                content=record.result,
            ))
        cycle.pending = []

    async def _execute_one(self, call: ToolCallRequest, tools_enabled: bool) -> ToolCallRecord:
        if not tools_enabled:
            logger.warning("Tool call rejected while tools are disabled", tool_name=call.name)
            return ToolCallRecord(id=call.id, name=call.name, result=TOOLS_DISABLED_MESSAGE, is_error=True)

        try:
            arguments = json.loads(call.arguments or "{}")
        except ValueError as e:
            return ToolCallRecord(
                id=call.id,
                name=call.name,
                result=f"Error: Invalid JSON arguments for {call.name}: {e}",
                is_error=True
            )
        if not isinstance(arguments, dict):
            return ToolCallRecord(
                id=call.id,
                name=call.name,
                result=f"Error: Arguments for {call.name} must be a JSON object",
                is_error=True
            )

        try:
            response = await self.registry.execute(call.name, arguments, self.tool_context)
        except DocQAException as e:
            return ToolCallRecord(
                id=call.id, name=call.name, arguments=arguments,
                result=f"Error: {e.message}", is_error=True
            )
        except Exception as e:
            logger.warning("Tool raised an unexpected error", tool_name=call.name, error=str(e))
            return ToolCallRecord(
                id=call.id, name=call.name, arguments=arguments,
                result=f"Error: {e}", is_error=True
            )

        return ToolCallRecord(
            id=call.id,
            name=call.name,
            arguments=arguments,
            result=response.data,
            metadata=response.metadata,
        )
