"""
Regex builders for text matching.

Every pattern is used with the SQL `regexp()` function registered by the
graph store and is case-insensitive.
"""

import re

from askgraph.models.query import Condition, ConditionKind, MatchType

_SHORT_TERM = 4


def fuzzy_pattern(term: str) -> str:
    """
    Trailing-edit pattern for a term.

    Terms longer than four characters drop their last character before
    accepting any word ending, so "practice" also matches "practical" and
    "practiced"; short terms only accept extra endings.
    """
    return rf"\b{re.escape(_stem(term))}\w*"


def _stem(term: str) -> str:
    term = term.strip()
    return term[:-1] if len(term) > _SHORT_TERM else term


def _term_pattern(term: str, match_type: MatchType) -> str:
    if match_type == MatchType.FUZZY:
        return fuzzy_pattern(term)
    if match_type == MatchType.EXACT:
        return rf"^\s*{re.escape(term)}\s*$"
    return re.escape(term)


def term_alternatives(condition: Condition) -> list[str]:
    """Regex alternatives for a leaf value and its semantic variants."""
    alternatives = [_term_pattern(condition.value, condition.match_type)]
    for variant in condition.variants:
        pattern = re.escape(variant)
        if pattern not in alternatives:
            alternatives.append(pattern)
    return alternatives


def text_pattern(condition: Condition) -> str:
    """Content pattern for a text condition."""
    return "(?i)(?:" + "|".join(term_alternatives(condition)) + ")"


def title_pattern(condition: Condition) -> str:
    """
    Whole-title pattern for a page reference.

    Page references match titles exactly (case-insensitive); fuzzy references
    match titles starting with the fuzzy stem.
    """
    alternatives = term_alternatives(condition)
    if condition.match_type == MatchType.FUZZY:
        alternatives[0] = re.escape(_stem(condition.value)) + ".*"
    return r"(?i)^(?:" + "|".join(alternatives) + r")$"


def regex_pattern(condition: Condition) -> str:
    """Pattern of a regex condition with its inline flags."""
    flags = condition.flags
    return f"(?{flags}){condition.value}" if flags else condition.value


def attribute_pattern(condition: Condition) -> str:
    """
    Pattern for an attribute block `key:: value`.

    Reference-valued attributes require the value as a whole term
    (`status:: [[pending]]`, `status:: #pending`); text values are substrings.
    """
    key = re.escape(condition.attribute_key or "")
    values = "|".join(term_alternatives(condition))
    if condition.attribute_kind == ConditionKind.PAGE_REF:
        return rf"(?im)^\s*{key}::.*(?<![\w])(?:{values})(?![\w])"
    return rf"(?im)^\s*{key}::.*(?:{values})"
