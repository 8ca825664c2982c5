"""Data models for Ask Your Graph."""

from askgraph.models.intent import (
    AutomaticExpansionMode,
    ExpansionState,
    ExpansionStrategy,
    IntentExtraction,
    ParsedIntent,
    Sampling,
)
from askgraph.models.node import Block, Node, NodeKind, Page
from askgraph.models.plan import (
    CombineNode,
    ExecuteRawQueryParams,
    ExtractHierarchyContentParams,
    ExtractPageReferencesParams,
    FindBlocksByContentParams,
    FindBlocksWithHierarchyParams,
    FindDailyNotesByPeriodParams,
    FindPagesByContentParams,
    FindPagesByTitleParams,
    GetNodeDetailsParams,
    PlanStep,
    PriorResultsParams,
    QueryPlan,
    ScopeRestriction,
    SortField,
    SortOrder,
    Strategy,
    ToolName,
    ToolParams,
)
from askgraph.models.policy import AccessMode, AccessPolicy, DepthBucket
from askgraph.models.query import (
    Combinator,
    CompositeQuery,
    Condition,
    ConditionGroup,
    ConditionKind,
    ConditionNode,
    ConditionTree,
    DateField,
    DateFilter,
    HierarchyCondition,
    HierarchyOp,
    LogicOp,
    MatchType,
    PageScope,
    PriorResults,
    QueryExpression,
    SearchQuery,
    SearchTarget,
)
from askgraph.models.results import (
    ContextNode,
    MergeMode,
    ResultSet,
    ResultSummary,
    ResultTag,
    SearchResult,
)

__all__ = [
    # Nodes
    "Block",
    "Page",
    "Node",
    "NodeKind",
    # Conditions and queries
    "Condition",
    "ConditionGroup",
    "ConditionKind",
    "ConditionNode",
    "ConditionTree",
    "HierarchyCondition",
    "HierarchyOp",
    "LogicOp",
    "MatchType",
    "Combinator",
    "CompositeQuery",
    "DateField",
    "DateFilter",
    "PageScope",
    "PriorResults",
    "QueryExpression",
    "SearchQuery",
    "SearchTarget",
    # Plans
    "Strategy",
    "ToolName",
    "ToolParams",
    "PlanStep",
    "CombineNode",
    "QueryPlan",
    "ScopeRestriction",
    "FindPagesByTitleParams",
    "FindBlocksByContentParams",
    "FindBlocksWithHierarchyParams",
    "FindPagesByContentParams",
    "FindDailyNotesByPeriodParams",
    "ExtractPageReferencesParams",
    "ExecuteRawQueryParams",
    "GetNodeDetailsParams",
    "ExtractHierarchyContentParams",
    "SortField",
    "SortOrder",
    "PriorResultsParams",
    # Results
    "ContextNode",
    "MergeMode",
    "ResultSet",
    "ResultSummary",
    "ResultTag",
    "SearchResult",
    # Policy
    "AccessMode",
    "AccessPolicy",
    "DepthBucket",
    # Intent and expansion
    "AutomaticExpansionMode",
    "ExpansionState",
    "ExpansionStrategy",
    "IntentExtraction",
    "ParsedIntent",
    "Sampling",
]
