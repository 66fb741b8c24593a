"""
Centralized exception handling for the DocQA service.
"""
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class DocQAException(Exception):
    """Base exception for the DocQA service."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        user_message: Optional[str] = None,
        log: bool = True
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.status_code = status_code
        self.user_message = user_message or message

        super().__init__(self.message)

        if log:
            emit = logger.error if status_code >= 500 else logger.warning
            emit(
                "DocQA exception raised",
                error_code=self.error_code,
                message=self.message,
                details=self.details,
                status_code=self.status_code
            )


class InputValidationError(DocQAException):
    """Bad arguments rejected before any side effect."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="INPUT_VALIDATION_ERROR",
            details=details,
            status_code=400
        )


class WorkspaceSecurityError(DocQAException):
    """A path tried to leave the workspace sandbox."""

    def __init__(self, path: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Access denied: '{path}' is outside the workspace",
            error_code="WORKSPACE_SECURITY_ERROR",
            details=details or {"path": path},
            status_code=403,
            log=False
        )


class UpstreamFailureError(DocQAException):
    """An external provider (embedding model, LLM) failed."""

    def __init__(
        self,
        service: str,
        message: str,
        error_code: str = "UPSTREAM_FAILURE",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"{service} failed: {message}",
            error_code=error_code,
            details=details or {"service": service},
            status_code=502
        )


class EmbeddingError(UpstreamFailureError):
    """Embedding generation errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("Embedding", message, error_code="EMBEDDING_ERROR", details=details)


class AIModelError(UpstreamFailureError):
    """AI model operation errors."""

    def __init__(self, message: str, model: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"AI model {model}" if model else "AI model",
            message,
            error_code="AI_MODEL_ERROR",
            details=details or {"model": model}
        )


class DocumentParseError(DocQAException):
    """An uploaded file could not be parsed into text."""

    def __init__(self, filename: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Failed to parse {filename}: {message}",
            error_code="DOCUMENT_PARSE_ERROR",
            details=details or {"filename": filename},
            status_code=422
        )


class UnknownToolError(DocQAException):
    """The dispatcher was asked for a tool it does not have."""

    def __init__(self, tool_name: str):
        super().__init__(
            message=f"Unknown tool: {tool_name}",
            error_code="UNKNOWN_TOOL",
            details={"tool_name": tool_name},
            status_code=400
        )


class ToolExecutionError(DocQAException):
    """A tool ran but could not complete its operation."""

    def __init__(self, tool_name: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="TOOL_EXECUTION_ERROR",
            details=details or {"tool_name": tool_name},
            status_code=422
        )


class ToolTimeoutError(DocQAException):
    """Tool execution exceeded its time budget."""

    def __init__(self, tool_name: str, timeout_seconds: float):
        super().__init__(
            message=f"Tool {tool_name} timed out after {timeout_seconds} seconds",
            error_code="TOOL_TIMEOUT",
            details={"tool_name": tool_name, "timeout_seconds": timeout_seconds},
            status_code=504
        )


class ConfigurationError(DocQAException):
    """Configuration and setup errors."""

    def __init__(self, component: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Configuration error in {component}: {message}",
            error_code="CONFIGURATION_ERROR",
            details=details or {"component": component},
            status_code=500
        )


def handle_exception(exc: Exception) -> Dict[str, Any]:
    """Convert any exception to a standardized error response."""
    if isinstance(exc, DocQAException):
        return {
            "error": exc.error_code,
            "message": exc.user_message,
            "details": exc.details,
            "status_code": exc.status_code
        }

    logger.error("Unexpected exception", error=str(exc), exc_info=True)

    return {
        "error": "INTERNAL_ERROR",
        "message": "An unexpected error occurred",
        "details": {"original_error": str(exc)},
        "status_code": 500
    }
