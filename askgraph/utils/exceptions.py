"""
Custom exception hierarchy for Ask Your Graph.

Provides structured error types for the query pipeline and its infrastructure.
All exceptions inherit from AskGraphError for easy catching.
"""

from enum import Enum


class AskGraphError(Exception):
    """
    Base exception for all Ask Your Graph errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize Ask Your Graph error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class QueryError(AskGraphError):
    """
    Base exception for everything run_query reports to a collaborator.
    """

    pass


class ParseError(QueryError):
    """
    Malformed symbolic query.
    Carries the character position and the offending token so the caller can
    report it or fall back to natural-language mode.
    """

    def __init__(self, message: str, position: int, token: str = "", context: dict | None = None):
        super().__init__(
            f"{message} at position {position}" + (f" (near '{token}')" if token else ""),
            context={"position": position, "token": token, **(context or {})},
        )
        self.reason = message
        self.position = position
        self.token = token


class PlanError(QueryError):
    """
    Unsupported combination detected while planning.
    Always surfaced, raised before any graph store call.
    """

    pass


class QueryExecutionError(QueryError):
    """
    Tool failure that could not be degraded to a partial result.
    """

    pass


class ToolErrorKind(str, Enum):
    """Failure kinds of a single search tool call."""

    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    EMPTY = "empty"
    FORBIDDEN = "forbidden"


class ToolError(AskGraphError):
    """
    Failure local to one tool call.
    Raised by the tool wrapper, handled by the plan executor.
    """

    def __init__(self, kind: ToolErrorKind, tool: str, message: str = "", context: dict | None = None):
        super().__init__(
            message or f"{tool} failed: {kind.value}",
            context={"kind": kind.value, "tool": tool, **(context or {})},
        )
        self.kind = kind
        self.tool = tool


class BudgetExceeded(AskGraphError):
    """
    Content budget exhausted during context expansion.
    Not a hard failure: the expander truncates and logs it.
    """

    pass


class StoreError(AskGraphError):
    """
    Base exception for store operations.
    Used for errors related to data storage operations.
    """

    pass


class GraphStoreError(StoreError):
    """
    Graph store operation errors.
    Raised when graph database operations fail.
    """

    pass


class ValidationError(AskGraphError):
    """
    Validation errors.
    Raised when input validation fails or data is invalid.
    """

    pass


class LLMError(AskGraphError):
    """
    LLM operation errors.
    Raised when LLM operations fail (API errors, timeouts, etc.).
    """

    pass
