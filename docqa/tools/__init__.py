"""
Tool System Package

Provides the workspace tools the agent can call:
- Base tool framework and sandboxed workspace
- Filesystem tools for listing, reading, searching and editing files
- Document tools for extraction and LaTeX article creation
"""

from .base_tool import (
    BaseTool,
    ToolContext,
    ToolKind,
    ToolMetadata,
    ToolParameter,
    ToolParameterType,
    ToolResponse,
)

from .tool_registry import ToolRegistry, create_default_registry
from .workspace import Workspace

from .filesystem_tools import (
    GrepFilesTool,
    InsertTextTool,
    ListDirTool,
    ReadFileTool,
)

from .document_tools import CreateLatexFileTool, ExtractDocumentTool

__all__ = [
    "BaseTool",
    "ToolContext",
    "ToolKind",
    "ToolMetadata",
    "ToolParameter",
    "ToolParameterType",
    "ToolResponse",
    "ToolRegistry",
    "create_default_registry",
    "Workspace",
    "GrepFilesTool",
    "InsertTextTool",
    "ListDirTool",
    "ReadFileTool",
    "CreateLatexFileTool",
    "ExtractDocumentTool",
]
