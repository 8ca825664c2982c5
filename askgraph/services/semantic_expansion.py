"""
Semantic term expansion.

Resolves `~` (synonyms) and `~~` (broader terms) into concrete variant terms
attached to each semantic Condition before a tool call. An LLM proposes the
terms when one is configured; otherwise, or when it fails, a deterministic
morphological fallback is used. Expansions are cached per (term, level).
"""

import asyncio

from pydantic import BaseModel, Field

from askgraph.core.llm.base import LLMProvider
from askgraph.models.plan import (
    ExtractPageReferencesParams,
    FindBlocksByContentParams,
    FindBlocksWithHierarchyParams,
    FindPagesByContentParams,
    FindPagesByTitleParams,
    ToolParams,
)
from askgraph.models.query import (
    Condition,
    ConditionTree,
    MatchType,
    iter_conditions,
    map_conditions,
)
from askgraph.utils.exceptions import LLMError
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

MAX_VARIANTS = 8

_SUFFIXES = ("s", "es", "ed", "ing", "er", "ers", "ion", "ions", "ment", "ness", "al", "ly")


class TermExpansions(BaseModel):
    """Alternative search terms (structured output)."""

    model_config = {"extra": "ignore"}

    terms: list[str] = Field(
        default_factory=list,
        description="Single words or short phrases, most relevant first, max 8",
    )


_LEVEL_INSTRUCTIONS = {
    1: (
        "Generate synonyms and alternative terms for: \"{term}\". Include words with "
        "similar meanings and common morphological variations (plural, verbal forms)."
    ),
    2: (
        "Generate broader, higher-level terms and related concepts for: \"{term}\". "
        "Think of parent categories, umbrella concepts and commonly co-occurring ideas "
        "that significantly widen the search."
    ),
}


def morphological_variants(term: str, level: int = 1) -> tuple[str, ...]:
    """
    Deterministic word-form variants of a term.

    Level 1 adds or removes common inflections; level 2 also derives forms
    from the bare stem. The original term is never included.
    """
    word = term.strip().lower()
    if not word:
        return ()

    stems = {word}
    for suffix in _SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            stems.add(word[: -len(suffix)])
    if word.endswith("ies") and len(word) > 4:
        stems.add(word[:-3] + "y")
    if word.endswith("e"):
        stems.add(word[:-1])

    variants: list[str] = []

    def add(candidate: str) -> None:
        if candidate != word and candidate not in variants:
            variants.append(candidate)

    for stem in sorted(stems, key=len, reverse=True):
        add(stem)
        if stem.endswith("y") and len(stem) > 3:
            add(stem[:-1] + "ies")
        else:
            add(stem + "s")
        if level >= 2:
            base = stem[:-1] if stem.endswith("e") else stem
            for suffix in ("ing", "ed", "ion", "ment"):
                add(base + suffix)

    return tuple(variants[:MAX_VARIANTS])


class SemanticExpander:
    """
    Attaches semantic variants to the conditions of a query.

    Usage:
        expander = SemanticExpander(llm)
        params = await expander.resolve_params(params)
    """

    def __init__(self, llm_provider: LLMProvider | None = None, max_terms: int = MAX_VARIANTS):
        """
        Initialize semantic expander.

        Args:
            llm_provider: Optional LLM proposing terms (None = morphological only)
            max_terms: Maximum variants per term
        """
        self.llm = llm_provider
        self.max_terms = max_terms
        self._cache: dict[tuple[str, int], tuple[str, ...]] = {}

    async def expand_term(self, term: str, level: int = 1) -> tuple[str, ...]:
        """
        Variant terms for a term at a semantic level (1 = synonyms, 2 = broader).

        Args:
            term: Original term
            level: Semantic intensity

        Returns:
            Variants, never containing the original term
        """
        key = (term.strip().lower(), level)
        if key in self._cache:
            return self._cache[key]

        variants: tuple[str, ...] = ()
        if self.llm is not None:
            try:
                variants = await self._expand_with_llm(term, level)
            except LLMError as e:
                logger.warning(f"Semantic expansion fell back to word forms for '{term}': {e}")

        if not variants:
            variants = morphological_variants(term, level)

        self._cache[key] = variants
        logger.debug(f"Expanded '{term}' (level {level}) to {len(variants)} terms")
        return variants

    async def _expand_with_llm(self, term: str, level: int) -> tuple[str, ...]:
        prompt = f"""{_LEVEL_INSTRUCTIONS.get(level, _LEVEL_INSTRUCTIONS[1]).format(term=term)}

Requirements:
- Respond in the same language as the term
- Prefer single words over phrases
- Focus on terms likely to appear in page titles or note content
- Avoid very generic terms (like "thing", "item", "stuff")
- Do not repeat the original term
- At most {self.max_terms} terms

Respond with JSON:
- terms: list of terms
"""
        result = await self.llm.extract(prompt, TermExpansions)

        original = term.strip().lower()
        terms: list[str] = []
        for candidate in result.terms:
            candidate = candidate.strip()
            if candidate and len(candidate) < 50 and candidate.lower() != original:
                if candidate.lower() not in (t.lower() for t in terms):
                    terms.append(candidate)
        return tuple(terms[: self.max_terms])

    async def resolve_tree(self, tree: ConditionTree) -> ConditionTree:
        """Attach variants to every semantic leaf of a tree."""
        pending = {
            (c.value, c.semantic_level)
            for c in iter_conditions(tree)
            if c.match_type == MatchType.SEMANTIC and not c.variants
        }
        if not pending:
            return tree

        keys = sorted(pending)
        expansions = await asyncio.gather(*(self.expand_term(v, lvl) for v, lvl in keys))
        resolved = dict(zip(keys, expansions, strict=True))

        def attach(condition: Condition) -> Condition:
            key = (condition.value, condition.semantic_level)
            if condition.match_type != MatchType.SEMANTIC or key not in resolved:
                return condition
            return condition.model_copy(update={"variants": resolved[key]})

        return map_conditions(tree, attach)

    async def resolve_params(self, params: ToolParams) -> ToolParams:
        """Return tool parameters whose semantic leaves carry their variants."""
        if isinstance(
            params,
            FindPagesByTitleParams
            | FindBlocksByContentParams
            | FindPagesByContentParams
            | ExtractPageReferencesParams,
        ):
            if params.tree is None:
                return params
            return params.model_copy(update={"tree": await self.resolve_tree(params.tree)})

        if isinstance(params, FindBlocksWithHierarchyParams):
            update: dict = {}
            if params.scope is not None:
                update["scope"] = await self.resolve_tree(params.scope)
            if params.target is not None:
                update["target"] = await self.resolve_tree(params.target)
            if params.legs:
                update["legs"] = tuple([await self.resolve_tree(leg) for leg in params.legs])
            return params.model_copy(update=update)

        return params
