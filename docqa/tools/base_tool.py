"""
Base Tool System

Provides the foundational classes for the sandboxed tools the agent can call:
parameter declarations, coercion, the execution context, and the
OpenAI function-calling spec each tool exports.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
import asyncio
import re
import threading

from pydantic import BaseModel, Field

from docqa.core.exceptions import InputValidationError
from docqa.tools.workspace import Workspace

_INTEGER_TEXT = re.compile(r"-?\d+")


class ToolKind(str, Enum):
    """Wire names of every tool the agent may call."""
    LIST_DIR = "list_dir"
    READ_FILE = "read_file"
    GREP_FILES = "grep_files"
    EXTRACT_DOCUMENT = "extract_document"
    INSERT_TEXT = "insert_text"
    CREATE_LATEX_FILE = "create_latex_file"


class ToolParameterType(str, Enum):
    """Types of tool parameters"""
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"


class ToolParameter(BaseModel):
    """Definition of a tool parameter"""
    name: str = Field(..., description="Parameter name")
    type: ToolParameterType = Field(..., description="Parameter type")
    description: str = Field(..., description="Parameter description")
    required: bool = Field(True, description="Whether parameter is required")
    default: Any = Field(None, description="Default value if not required")


class ToolMetadata(BaseModel):
    """Metadata about a tool"""
    name: str = Field(..., description="Tool name")
    description: str = Field(..., description="Tool description shown to the model")
    category: str = Field(..., description="Tool category")
    version: str = Field("1.0.0", description="Tool version")
    parameters: List[ToolParameter] = Field(default_factory=list, description="Tool parameters")


class ToolResponse(BaseModel):
    """Response object from tool execution"""
    success: bool = Field(True, description="Whether execution was successful")
    data: str = Field("", description="Text handed back to the model")
    error: Optional[str] = Field(None, description="Error message if failed")
    execution_time: float = Field(0.0, description="Execution time in seconds")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Side-effect metadata")


class DocumentIndexer(Protocol):
    """Anything that can parse and index a file already stored in the workspace."""

    async def index_stored_file(self, relative_path: str) -> Any:
        ...

    async def refresh_stored_file(self, relative_path: str) -> Any:
        ...


@dataclass
class ToolContext:
    """Per-call environment handed to tools."""
    workspace: Workspace
    indexer: Optional[DocumentIndexer] = None
    max_line_length: int = 500
    read_limit: int = 2000
    grep_limit: int = 100
    grep_timeout_seconds: float = 30.0
    use_ripgrep: Optional[bool] = None
    chunk_size: int = 800
    chunk_overlap_lines: int = 2
    # Set by the registry when a call times out; writes check it before committing
    cancelled: Optional[threading.Event] = None


def _coerce(param: ToolParameter, value: Any) -> Any:
    if param.type == ToolParameterType.STRING:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    elif param.type == ToolParameterType.INTEGER:
        if isinstance(value, bool):
            pass
        elif isinstance(value, int):
            return value
        elif isinstance(value, float) and value.is_integer():
            return int(value)
        elif isinstance(value, str) and _INTEGER_TEXT.fullmatch(value.strip()):
            return int(value.strip())
    elif param.type == ToolParameterType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"

    raise InputValidationError(
        f"Parameter '{param.name}' must be {'an' if param.type == ToolParameterType.INTEGER else 'a'} "
        f"{param.type.value}",
        details={"parameter": param.name, "value": repr(value)}
    )


class BaseTool(ABC):
    """
    Abstract base class for all agent tools.

    Subclasses declare their metadata and implement ``run``, which does blocking
    filesystem work and is executed off the event loop. Tools that need their
    own async flow override ``execute`` instead.
    """

    kind: ToolKind

    def __init__(self):
        self.metadata = self._get_metadata()

    @property
    def name(self) -> str:
        return self.metadata.name

    @abstractmethod
    def _get_metadata(self) -> ToolMetadata:
        """Get tool metadata"""

    def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        """Synchronous tool body."""
        raise NotImplementedError(f"{self.__class__.__name__} does not implement run()")

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        """Run the tool with already validated parameters."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.run, params, context)

    def validate_parameters(self, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Check and coerce arguments against the declared parameters.

        Args:
            arguments: Raw arguments, usually decoded from model JSON

        Returns:
            Parameters with defaults applied and values coerced

        Raises:
            InputValidationError: On missing, null or mistyped parameters
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InputValidationError(
                f"Arguments for {self.name} must be an object",
                details={"tool_name": self.name}
            )

        params = {}
        for param in self.metadata.parameters:
            value = arguments.get(param.name)
            if value is None:
                if param.required:
                    raise InputValidationError(
                        f"Required parameter '{param.name}' is missing",
                        details={"tool_name": self.name, "parameter": param.name}
                    )
                params[param.name] = param.default
                continue
            params[param.name] = _coerce(param, value)
        return params

    def to_function_spec(self) -> Dict[str, Any]:
        """OpenAI function-calling description of this tool."""
        properties = {}
        for param in self.metadata.parameters:
            prop: Dict[str, Any] = {"type": param.type.value, "description": param.description}
            if param.default is not None:
                prop["default"] = param.default
            properties[param.name] = prop

        return {
            "type": "function",
            "function": {
                "name": self.metadata.name,
                "description": self.metadata.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": [p.name for p in self.metadata.parameters if p.required],
                },
            },
        }

    def get_schema(self) -> Dict[str, Any]:
        """Get tool schema for documentation"""
        return {
            "name": self.metadata.name,
            "description": self.metadata.description,
            "category": self.metadata.category,
            "version": self.metadata.version,
            "parameters": [
                {
                    "name": param.name,
                    "type": param.type.value,
                    "description": param.description,
                    "required": param.required,
                    "default": param.default,
                }
                for param in self.metadata.parameters
            ],
        }
