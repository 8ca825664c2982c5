"""
Condition trees and query expressions.

A request compiles to a QueryExpression:
- SearchQuery: one retrieval (condition tree + target + scope filters)
- CompositeQuery: UNION / INTERSECTION / DIFFERENCE / PIPE over expressions
- PriorResults: the conversation's current result set (`@results`)

Condition trees combine leaf Conditions with AND / OR / NOT, optionally split
at the top level by a single directional hierarchy operator.
"""

from collections.abc import Iterator
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConditionKind(str, Enum):
    """Leaf predicate kinds."""

    TEXT = "text"
    PAGE_REF = "page_ref"
    BLOCK_REF = "block_ref"
    REGEX = "regex"
    ATTRIBUTE = "attribute"


class MatchType(str, Enum):
    """How a leaf value is matched."""

    EXACT = "exact"
    CONTAINS = "contains"
    FUZZY = "fuzzy"
    SEMANTIC = "semantic"


class LogicOp(str, Enum):
    """Leaf-level combinators."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class HierarchyOp(str, Enum):
    """Directional operators between two condition subtrees."""

    CHILD = ">"
    DESCENDANT = ">>"
    PARENT = "<"
    ANCESTOR = "<<"
    FLEXIBLE = "=>"
    BIDIRECTIONAL = "<=>"

    @property
    def default_depth(self) -> int | None:
        """Depth bound implied by the operator (None = unlimited)."""
        if self in (HierarchyOp.CHILD, HierarchyOp.PARENT, HierarchyOp.BIDIRECTIONAL):
            return 1
        return None


class Combinator(str, Enum):
    """Query-level combinators for multi-step requests."""

    UNION = "UNION"
    INTERSECTION = "INTERSECTION"
    DIFFERENCE = "DIFFERENCE"
    PIPE = "PIPE"


class SearchTarget(str, Enum):
    """What a SearchQuery retrieves."""

    BLOCKS = "blocks"
    PAGE_TITLES = "page_titles"
    PAGE_CONTENT = "page_content"  # conditions may hold in different blocks
    PAGE_BLOCKS = "page_blocks"  # all conditions must hold in one block
    REFERENCES = "references"  # reference counts of matching blocks


class DateField(str, Enum):
    """Timestamp a DateFilter applies to."""

    CREATED = "created"
    MODIFIED = "modified"
    DATE = "date"  # calendar day of a daily note


class Condition(BaseModel):
    """Leaf predicate over nodes."""

    model_config = ConfigDict(frozen=True)

    kind: ConditionKind
    value: str
    match_type: MatchType = MatchType.CONTAINS
    negated: bool = False
    # 1 = synonyms (~), 2 = broader semantic (~~)
    semantic_level: int = Field(default=0, ge=0, le=2)
    flags: str = ""
    attribute_key: str | None = None
    attribute_kind: ConditionKind | None = None
    # Runtime expansion terms, never serialized
    variants: tuple[str, ...] = Field(default=(), exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _align_semantic_level(cls, data: Any) -> Any:
        if isinstance(data, dict):
            match_type = data.get("match_type", MatchType.CONTAINS)
            if MatchType(match_type) == MatchType.SEMANTIC:
                if not data.get("semantic_level"):
                    data = {**data, "semantic_level": 1}
            elif data.get("semantic_level"):
                data = {**data, "semantic_level": 0}
        return data

    @model_validator(mode="after")
    def _check_attribute(self) -> "Condition":
        if self.kind == ConditionKind.ATTRIBUTE and not self.attribute_key:
            raise ValueError("attribute condition requires attribute_key")
        return self

    @property
    def expandable(self) -> bool:
        """Whether fuzzy/semantic loosening applies to this leaf."""
        return self.kind in (ConditionKind.TEXT, ConditionKind.PAGE_REF, ConditionKind.ATTRIBUTE)


class ConditionGroup(BaseModel):
    """AND / OR / NOT combination of subtrees."""

    model_config = ConfigDict(frozen=True)

    op: LogicOp
    children: tuple["ConditionNode", ...]

    @model_validator(mode="after")
    def _check_arity(self) -> "ConditionGroup":
        if self.op == LogicOp.NOT and len(self.children) != 1:
            raise ValueError("NOT takes exactly one operand")
        if not self.children:
            raise ValueError(f"{self.op.value} requires at least one operand")
        return self


ConditionNode = Union[Condition, ConditionGroup]


class HierarchyCondition(BaseModel):
    """
    `scope` must hold on a node that has a descendant/ancestor satisfying
    `target`, within `max_depth` levels (None = unlimited).
    """

    model_config = ConfigDict(frozen=True)

    scope: ConditionNode
    op: HierarchyOp
    target: ConditionNode
    max_depth: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_depth(cls, data: Any) -> Any:
        if isinstance(data, dict) and "max_depth" not in data and "op" in data:
            data = {**data, "max_depth": HierarchyOp(data["op"]).default_depth}
        return data


ConditionTree = Union[ConditionNode, HierarchyCondition]


class PageScope(BaseModel):
    """Restricts a search to daily notes or to pages matching a title."""

    model_config = ConfigDict(frozen=True)

    daily_only: bool = False
    title_pattern: str | None = None
    title_is_regex: bool = False
    # regex flags of an in:/regex/flags scope (titles always match case-insensitively)
    title_flags: str = ""


class DateFilter(BaseModel):
    """Inclusive timestamp window."""

    model_config = ConfigDict(frozen=True)

    field: DateField = DateField.MODIFIED
    start: datetime | None = None
    end: datetime | None = None


class SearchQuery(BaseModel):
    """A single retrieval, executed by one search tool."""

    model_config = ConfigDict(frozen=True)

    target: SearchTarget = SearchTarget.BLOCKS
    tree: ConditionTree | None = None
    page_scope: PageScope | None = None
    date_filter: DateFilter | None = None
    raw: str | None = None

    @model_validator(mode="after")
    def _check_body(self) -> "SearchQuery":
        if self.raw is not None and self.tree is not None:
            raise ValueError("raw query cannot carry a condition tree")
        if self.tree is None and self.raw is None:
            daily = self.page_scope is not None and self.page_scope.daily_only
            if not (daily or self.date_filter is not None):
                raise ValueError("query needs a condition tree, a raw query or a daily-notes window")
        return self


class PriorResults(BaseModel):
    """Operand standing for the conversation's current result set."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["prior_results"] = "prior_results"


class CompositeQuery(BaseModel):
    """Multi-step request combining independent sub-queries."""

    model_config = ConfigDict(frozen=True)

    combinator: Combinator
    operands: tuple["QueryExpression", ...]


QueryExpression = Union[SearchQuery, CompositeQuery, PriorResults]

ConditionGroup.model_rebuild()
HierarchyCondition.model_rebuild()
SearchQuery.model_rebuild()
CompositeQuery.model_rebuild()


# ═══════════════════════════════════════════════════════════
# TREE HELPERS
# ═══════════════════════════════════════════════════════════


def iter_conditions(node: ConditionTree | None) -> Iterator[Condition]:
    """Yield every leaf Condition of a tree, left to right."""
    if node is None:
        return
    if isinstance(node, Condition):
        yield node
    elif isinstance(node, ConditionGroup):
        for child in node.children:
            yield from iter_conditions(child)
    else:
        yield from iter_conditions(node.scope)
        yield from iter_conditions(node.target)


def map_conditions(node: ConditionTree, fn) -> ConditionTree:
    """Rebuild a tree with every leaf replaced by fn(leaf) (fn may return a group)."""
    if isinstance(node, Condition):
        return fn(node)
    if isinstance(node, ConditionGroup):
        return ConditionGroup(op=node.op, children=tuple(map_conditions(c, fn) for c in node.children))
    return node.model_copy(
        update={"scope": map_conditions(node.scope, fn), "target": map_conditions(node.target, fn)}
    )


def map_positive_conditions(node: ConditionTree, fn) -> ConditionTree:
    """Like map_conditions, but leaves under a NOT are kept untouched."""
    if isinstance(node, Condition):
        return node if node.negated else fn(node)
    if isinstance(node, ConditionGroup):
        if node.op == LogicOp.NOT:
            return node
        return ConditionGroup(
            op=node.op, children=tuple(map_positive_conditions(c, fn) for c in node.children)
        )
    return node.model_copy(
        update={
            "scope": map_positive_conditions(node.scope, fn),
            "target": map_positive_conditions(node.target, fn),
        }
    )


def normalize(node: ConditionTree) -> ConditionTree:
    """
    Canonical form of a tree.

    - Condition(negated=True) becomes NOT(Condition)
    - single-child AND/OR groups collapse to their child
    - nested groups with the same AND/OR operator are flattened
    """
    if isinstance(node, HierarchyCondition):
        return node.model_copy(update={"scope": normalize(node.scope), "target": normalize(node.target)})
    if isinstance(node, Condition):
        if node.negated:
            return ConditionGroup(op=LogicOp.NOT, children=(node.model_copy(update={"negated": False}),))
        return node

    children = [normalize(c) for c in node.children]
    if node.op == LogicOp.NOT:
        return ConditionGroup(op=LogicOp.NOT, children=tuple(children))

    flat: list[ConditionNode] = []
    for child in children:
        if isinstance(child, ConditionGroup) and child.op == node.op:
            flat.extend(child.children)
        else:
            flat.append(child)
    if len(flat) == 1:
        return flat[0]
    return ConditionGroup(op=node.op, children=tuple(flat))


def and_legs(node: ConditionTree | None) -> tuple[ConditionNode, ...]:
    """Top-level AND legs of a non-hierarchical tree (a lone node is one leg)."""
    if node is None or isinstance(node, HierarchyCondition):
        return ()
    if isinstance(node, ConditionGroup) and node.op == LogicOp.AND:
        return node.children
    return (node,)


def is_negative(node: ConditionNode) -> bool:
    """True for NOT groups."""
    return isinstance(node, ConditionGroup) and node.op == LogicOp.NOT
