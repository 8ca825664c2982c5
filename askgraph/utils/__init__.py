"""Utility modules for Ask Your Graph."""

from askgraph.utils.exceptions import (
    AskGraphError,
    BudgetExceeded,
    GraphStoreError,
    LLMError,
    ParseError,
    PlanError,
    QueryError,
    QueryExecutionError,
    StoreError,
    ToolError,
    ToolErrorKind,
    ValidationError,
)
from askgraph.utils.id_generator import (
    generate_block_uid,
    generate_request_id,
    generate_result_set_id,
    generate_session_id,
)
from askgraph.utils.logger import get_logger, request_context, setup_logging

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "request_context",
    # ID Generators
    "generate_block_uid",
    "generate_result_set_id",
    "generate_session_id",
    "generate_request_id",
    # Exceptions
    "AskGraphError",
    "QueryError",
    "ParseError",
    "PlanError",
    "QueryExecutionError",
    "ToolError",
    "ToolErrorKind",
    "BudgetExceeded",
    "StoreError",
    "GraphStoreError",
    "ValidationError",
    "LLMError",
]
