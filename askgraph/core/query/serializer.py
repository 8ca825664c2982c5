"""
Canonical symbolic rendering of query expressions.

For any request S accepted by the parser:
    parse(to_symbolic(parse(S))) == parse(S)

Date filters are request-level intent modifiers with no symbolic syntax and
are not rendered.
"""

import re

from askgraph.models.query import (
    CompositeQuery,
    Condition,
    ConditionGroup,
    ConditionKind,
    ConditionTree,
    HierarchyCondition,
    LogicOp,
    MatchType,
    PageScope,
    PriorResults,
    QueryExpression,
    SearchQuery,
    SearchTarget,
)

_BARE_WORD = re.compile(r"^\w[\w.'-]*$")
_UNESCAPED_SLASH = re.compile(r"(?<!\\)/")

_SUFFIX = {MatchType.FUZZY: "*"}
_SEMANTIC_SUFFIX = {1: "~", 2: "~~"}

_TARGET_PREFIX = {
    SearchTarget.PAGE_TITLES: "page:(title:({}))",
    SearchTarget.PAGE_CONTENT: "page:(content:({}))",
    SearchTarget.PAGE_BLOCKS: "page:(block:({}))",
    SearchTarget.REFERENCES: "refs:({})",
}


def _is_bare(value: str) -> bool:
    return bool(_BARE_WORD.match(value))


def _escape_slashes(pattern: str) -> str:
    return _UNESCAPED_SLASH.sub(r"\\/", pattern)


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _text(value: str) -> str:
    return value if _is_bare(value) else _quote(value)


def _suffix(condition: Condition) -> str:
    if condition.match_type == MatchType.SEMANTIC:
        return _SEMANTIC_SUFFIX.get(condition.semantic_level, "~")
    return _SUFFIX.get(condition.match_type, "")


def condition_to_symbolic(condition: Condition) -> str:
    """Render one leaf (negation is rendered by the enclosing NOT)."""
    kind = condition.kind
    if kind == ConditionKind.TEXT:
        body = _text(condition.value)
    elif kind == ConditionKind.PAGE_REF:
        body = f"[[{condition.value}]]"
    elif kind == ConditionKind.BLOCK_REF:
        body = f"(({condition.value}))"
    elif kind == ConditionKind.REGEX:
        body = f"/{_escape_slashes(condition.value)}/{condition.flags}"
    else:
        attr_kind = "ref" if condition.attribute_kind == ConditionKind.PAGE_REF else "text"
        body = f"attr:{condition.attribute_key}:{attr_kind}:{_quote(condition.value)}"

    body += _suffix(condition)
    return f"-{body}" if condition.negated else body


def tree_to_symbolic(node: ConditionTree) -> str:
    """Render a condition tree."""
    if isinstance(node, Condition):
        return condition_to_symbolic(node)

    if isinstance(node, HierarchyCondition):
        return f"{tree_to_symbolic(node.scope)} {node.op.value} {tree_to_symbolic(node.target)}"

    if node.op == LogicOp.NOT:
        child = node.children[0]
        if isinstance(child, ConditionGroup) and child.op != LogicOp.NOT:
            return f"-({tree_to_symbolic(child)})"
        return f"-{tree_to_symbolic(child)}"

    joiner = " + " if node.op == LogicOp.AND else " | "
    parts = []
    for child in node.children:
        text = tree_to_symbolic(child)
        if isinstance(child, ConditionGroup) and child.op in (LogicOp.AND, LogicOp.OR):
            text = f"({text})"
        parts.append(text)
    return joiner.join(parts)


def _scope_to_symbolic(scope: PageScope) -> str:
    if scope.daily_only:
        return "in:dnp"
    if scope.title_is_regex:
        return f"in:/{_escape_slashes(scope.title_pattern)}/{scope.title_flags}"
    return f"in:[[{scope.title_pattern}]]"


def to_symbolic(expression: QueryExpression) -> str:
    """
    Render a query expression in the canonical symbolic syntax.

    Args:
        expression: Parsed or programmatically built expression

    Returns:
        Request string that parses back to an equal expression
    """
    if isinstance(expression, PriorResults):
        return "@results"

    if isinstance(expression, CompositeQuery):
        operands = ", ".join(to_symbolic(op) for op in expression.operands)
        return f"{expression.combinator.value}({operands})"

    query: SearchQuery = expression
    if query.raw is not None:
        return f"raw:{query.raw}"

    parts = []
    if query.tree is not None:
        body = tree_to_symbolic(query.tree)
        if query.target != SearchTarget.BLOCKS:
            body = _TARGET_PREFIX[query.target].format(body)
        parts.append(body)
    if query.page_scope is not None and (query.page_scope.daily_only or query.page_scope.title_pattern):
        parts.append(_scope_to_symbolic(query.page_scope))
    return " ".join(parts)
