"""
Tool Registry

Name-keyed dispatcher for the agent's sandboxed tools. The dispatch table is
built once at construction from ToolKind; unknown names are hard errors.
"""

from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import asyncio
import threading
import time

import structlog

from docqa.core.exceptions import ConfigurationError, DocQAException, ToolTimeoutError, UnknownToolError
from docqa.core.metrics import TOOL_EXECUTION_TIME, TOOL_EXECUTIONS
from docqa.tools.base_tool import BaseTool, ToolContext, ToolKind, ToolResponse
from docqa.tools.document_tools import CreateLatexFileTool, ExtractDocumentTool
from docqa.tools.filesystem_tools import GrepFilesTool, InsertTextTool, ListDirTool, ReadFileTool

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """
    Central registry for the agent's tools.

    Features:
    - Dispatch table keyed by ToolKind, validated at construction
    - Parameter validation before any side effect
    - Per-call timeout
    - Execution statistics
    """

    def __init__(self, tools: Iterable[BaseTool], timeout_seconds: float = 30.0):
        self.timeout_seconds = timeout_seconds
        self._tools: Dict[ToolKind, BaseTool] = {}

        for tool in tools:
            try:
                kind = ToolKind(tool.metadata.name)
            except ValueError as e:
                raise ConfigurationError(
                    "tool_registry", f"'{tool.metadata.name}' is not a known tool kind"
                ) from e
            if kind in self._tools:
                raise ConfigurationError("tool_registry", f"duplicate tool '{kind.value}'")
            self._tools[kind] = tool

        self._execution_stats: Dict[str, Dict[str, Any]] = defaultdict(lambda: {
            "total_executions": 0,
            "successful_executions": 0,
            "failed_executions": 0,
            "average_execution_time": 0.0,
            "last_execution": None
        })
        logger.info("Tool registry initialized", tools=[k.value for k in self._tools])

    @property
    def names(self) -> List[str]:
        return [kind.value for kind in self._tools]

    def get_tool(self, name: str) -> Optional[BaseTool]:
        """Look up a tool by wire name, or None if it is not registered."""
        try:
            return self._tools.get(ToolKind(name))
        except ValueError:
            return None

    def function_specs(self) -> List[Dict[str, Any]]:
        """OpenAI function-calling specs for every registered tool."""
        return [tool.to_function_spec() for tool in self._tools.values()]

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                **tool.get_schema(),
                "execution_count": self._execution_stats[tool.name]["total_executions"]
            }
            for tool in self._tools.values()
        ]

    async def execute(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        context: ToolContext
    ) -> ToolResponse:
        """
        Validate arguments and run a tool.

        Args:
            name: Tool wire name
            arguments: Structured arguments
            context: Workspace and collaborators for this call

        Returns:
            Tool response

        Raises:
            UnknownToolError: If no tool has this name
            InputValidationError: If arguments do not match the declaration
            ToolTimeoutError: If the tool exceeds the timeout
            DocQAException: Any typed error the tool raises
        """
        tool = self.get_tool(name)
        if tool is None:
            TOOL_EXECUTIONS.labels(tool="unknown", status="unknown_tool").inc()
            raise UnknownToolError(name)

        start_time = time.time()
        status = "error"
        try:
            params = tool.validate_parameters(arguments)
            logger.info("Executing tool", tool_name=name, parameters=params)

            call_context = replace(context, cancelled=threading.Event())
            try:
                response = await asyncio.wait_for(
                    tool.execute(params, call_context), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                # The executor thread keeps running; stop it from committing writes
                call_context.cancelled.set()
                status = "timeout"
                raise ToolTimeoutError(name, self.timeout_seconds)

            status = "success"
            response.execution_time = time.time() - start_time
            return response
        except DocQAException as e:
            if status != "timeout":
                status = e.error_code.lower()
            raise
        finally:
            elapsed = time.time() - start_time
            self._record(name, status == "success", elapsed)
            TOOL_EXECUTIONS.labels(tool=name, status=status).inc()
            TOOL_EXECUTION_TIME.labels(tool=name).observe(elapsed)
            logger.info("Tool finished", tool_name=name, status=status, execution_time=elapsed)

    def _record(self, name: str, success: bool, elapsed: float):
        stats = self._execution_stats[name]
        stats["total_executions"] += 1
        if success:
            stats["successful_executions"] += 1
        else:
            stats["failed_executions"] += 1
        stats["last_execution"] = datetime.now(timezone.utc)

        total = stats["total_executions"]
        stats["average_execution_time"] = (
            stats["average_execution_time"] * (total - 1) + elapsed
        ) / total

    def get_execution_stats(self) -> Dict[str, Dict[str, Any]]:
        """Execution statistics per tool name."""
        return {name: dict(stats) for name, stats in self._execution_stats.items()}


def create_default_registry(timeout_seconds: float = 30.0) -> ToolRegistry:
    """Registry with every built-in tool."""
    return ToolRegistry(
        [
            ListDirTool(),
            ReadFileTool(),
            GrepFilesTool(),
            ExtractDocumentTool(),
            InsertTextTool(),
            CreateLatexFileTool(),
        ],
        timeout_seconds=timeout_seconds,
    )
