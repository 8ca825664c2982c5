"""
Automatic expansion of zero-result searches.

The escalation is an explicit state machine: `next_state` is a pure
transition over ExpansionState and `apply_strategy` a pure rewrite of the
query. AutomaticExpansion drives both against an executor callback.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from askgraph.models.intent import (
    EXPANSION_SEQUENCE,
    MAX_EXPANSION_ATTEMPTS,
    AutomaticExpansionMode,
    ExpansionState,
    ExpansionStrategy,
)
from askgraph.models.plan import Strategy
from askgraph.models.query import (
    Condition,
    ConditionGroup,
    HierarchyCondition,
    LogicOp,
    MatchType,
    SearchQuery,
    map_positive_conditions,
)
from askgraph.services.combinator import PlanOutcome
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

EXPANDABLE_STRATEGIES = (Strategy.SIMPLE, Strategy.LOGICAL)

# Strategy applied up front by the "always" modes
_UPFRONT = {
    AutomaticExpansionMode.ALWAYS_FUZZY: ExpansionStrategy.FUZZY,
    AutomaticExpansionMode.ALWAYS_SYNONYMS: ExpansionStrategy.FUZZY_SYNONYMS,
}


def next_state(state: ExpansionState) -> ExpansionState | None:
    """
    Next step of the escalation, or None once every attempt is used.

    none -> fuzzy -> fuzzy_synonyms -> broad_semantic -> widen_scope
    """
    attempt = state.attempt + 1
    if attempt >= MAX_EXPANSION_ATTEMPTS:
        return None
    return ExpansionState(attempt=attempt, strategy=EXPANSION_SEQUENCE[attempt])


def state_for(strategy: ExpansionStrategy) -> ExpansionState:
    return ExpansionState(attempt=EXPANSION_SEQUENCE.index(strategy), strategy=strategy)


def _loosen(condition: Condition, strategy: ExpansionStrategy) -> Condition | ConditionGroup:
    if not condition.expandable or condition.match_type == MatchType.EXACT:
        return condition

    base = condition.model_copy(update={"variants": ()})
    fuzzy = Condition(**{**base.model_dump(), "match_type": MatchType.FUZZY})
    synonyms = Condition(**{**base.model_dump(), "match_type": MatchType.SEMANTIC, "semantic_level": 1})
    broad = Condition(**{**base.model_dump(), "match_type": MatchType.SEMANTIC, "semantic_level": 2})

    if strategy == ExpansionStrategy.FUZZY:
        return fuzzy if condition.match_type == MatchType.CONTAINS else condition
    if strategy == ExpansionStrategy.FUZZY_SYNONYMS:
        return ConditionGroup(op=LogicOp.OR, children=(fuzzy, synonyms))
    return broad


def apply_strategy(query: SearchQuery, strategy: ExpansionStrategy) -> tuple[SearchQuery, bool]:
    """
    Rewrite a query for an expansion strategy.

    Only positive text, page reference and attribute leaves are loosened;
    negated leaves keep excluding exactly what they named.

    Args:
        query: Query as written
        strategy: Strategy to apply

    Returns:
        (rewritten query, widen flag for the planner)
    """
    if strategy == ExpansionStrategy.NONE or query.tree is None:
        return query, False

    loosen_as = (
        ExpansionStrategy.BROAD_SEMANTIC if strategy == ExpansionStrategy.WIDEN_SCOPE else strategy
    )
    tree = map_positive_conditions(query.tree, lambda c: _loosen(c, loosen_as))

    update: dict = {"tree": tree}
    widen = strategy == ExpansionStrategy.WIDEN_SCOPE
    if widen and query.page_scope is not None and query.page_scope.title_pattern:
        update["page_scope"] = None
    return query.model_copy(update=update), widen


def is_expandable(query: SearchQuery) -> bool:
    return query.tree is not None and not isinstance(query.tree, HierarchyCondition)


@dataclass
class ExpansionOutcome:
    """Final outcome of a search and its automatic expansions."""

    outcome: PlanOutcome
    state: ExpansionState
    attempted: list[str] = field(default_factory=list)
    query: SearchQuery | None = None


Executor = Callable[[SearchQuery, bool], Awaitable[tuple[Strategy, PlanOutcome]]]


class AutomaticExpansion:
    """
    Retries zero-result simple and logical searches with looser strategies.

    Usage:
        expansion = AutomaticExpansion(AutomaticExpansionMode.AUTO_UNTIL_RESULT)
        result = await expansion.run(query, execute)
    """

    def __init__(self, mode: AutomaticExpansionMode = AutomaticExpansionMode.AUTO_UNTIL_RESULT):
        self.mode = AutomaticExpansionMode(mode)

    async def run(self, query: SearchQuery, execute: Executor, exact: bool = False) -> ExpansionOutcome:
        """
        Execute a query, escalating on empty results according to the mode.

        Args:
            query: Search query as written
            execute: Callback planning and executing (query, widen)
            exact: Explicit "exact" qualifier (disables every expansion)

        Returns:
            ExpansionOutcome with the strategies actually attempted
        """
        state = ExpansionState()
        if not exact and self.mode in _UPFRONT and is_expandable(query):
            state = state_for(_UPFRONT[self.mode])

        current, widen = apply_strategy(query, state.strategy)
        strategy, outcome = await execute(current, widen)
        attempted = [state.strategy.value] if state.strategy != ExpansionStrategy.NONE else []

        escalate = (
            not exact
            and self.mode == AutomaticExpansionMode.AUTO_UNTIL_RESULT
            and strategy in EXPANDABLE_STRATEGIES
            and is_expandable(query)
        )

        while escalate and not outcome.results:
            following = next_state(state)
            if following is None:
                break
            state = following

            candidate, widen = apply_strategy(query, state.strategy)
            if candidate == current and not widen:
                logger.debug(f"Expansion {state.strategy.value} leaves the query unchanged")
                continue

            current = candidate
            attempted.append(state.strategy.value)
            logger.info(
                f"Automatic expansion attempt {state.attempt}: {state.strategy.value}",
                extra={"attempt": state.attempt, "strategy": state.strategy.value},
            )
            _, outcome = await execute(current, widen)

        if not outcome.results and attempted:
            message = f"No results after trying: {', '.join(attempted)}"
            logger.warning(message)
            outcome.warnings.append(message)

        return ExpansionOutcome(outcome=outcome, state=state, attempted=attempted, query=current)
