"""
Services for Ask Your Graph.

High-level query pipeline:
- AskGraphEngine: Single entry point (run_query)
- IntentParser: Natural language -> structured intent
- QueryPlanner: Complexity classification and tool selection
- PlanExecutor: Tool execution and multi-step combination
- AutomaticExpansion: Escalating retries of zero-result searches
- ContextExpander: Depth and budget controlled context expansion
- ResultLifecycleManager / ConversationState: Published results per conversation
"""

from askgraph.services.automatic_expansion import AutomaticExpansion, apply_strategy, next_state
from askgraph.services.combinator import PlanExecutor, PlanOutcome, combine
from askgraph.services.context_expander import ContextExpander
from askgraph.services.intent_parser import IntentParser, resolve_date_phrase, rule_extract
from askgraph.services.planner import QueryPlanner, classify
from askgraph.services.query_engine import AskGraphEngine
from askgraph.services.result_lifecycle import (
    ConcurrencyPolicy,
    ConversationState,
    ResultLifecycleManager,
)
from askgraph.services.semantic_expansion import SemanticExpander

__all__ = [
    "AskGraphEngine",
    "IntentParser",
    "QueryPlanner",
    "PlanExecutor",
    "PlanOutcome",
    "AutomaticExpansion",
    "ContextExpander",
    "ResultLifecycleManager",
    "ConversationState",
    "ConcurrencyPolicy",
    "SemanticExpander",
    "apply_strategy",
    "classify",
    "combine",
    "next_state",
    "resolve_date_phrase",
    "rule_extract",
]
