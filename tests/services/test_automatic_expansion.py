"""
Tests for the automatic expansion state machine.
"""

import pytest

from askgraph.core.query import parse_query
from askgraph.models.intent import (
    AutomaticExpansionMode,
    ExpansionState,
    ExpansionStrategy,
)
from askgraph.models.plan import Strategy
from askgraph.models.query import (
    Condition,
    ConditionGroup,
    ConditionKind,
    LogicOp,
    MatchType,
    PageScope,
)
from askgraph.services.automatic_expansion import (
    AutomaticExpansion,
    apply_strategy,
    is_expandable,
    next_state,
    state_for,
)
from askgraph.services.combinator import PlanOutcome


class RecordingExecutor:
    """Executor callback answering only once the query matches `succeeds_when`."""

    def __init__(self, results=None, succeeds_when=None, strategy=Strategy.SIMPLE):
        self.results = results or []
        self.succeeds_when = succeeds_when or (lambda query: False)
        self.strategy = strategy
        self.calls: list[tuple] = []

    async def __call__(self, query, widen):
        self.calls.append((query, widen))
        results = list(self.results) if self.succeeds_when(query) else []
        return self.strategy, PlanOutcome(results=results)


def is_fuzzy(query) -> bool:
    return query.tree.match_type == MatchType.FUZZY


@pytest.mark.unit
class TestTransitions:
    """Tests for the pure transition function."""

    def test_sequence(self):
        """Test the escalation order and its end."""
        state = ExpansionState()
        seen = []
        while (state := next_state(state)) is not None:
            seen.append(state.strategy)

        assert seen == [
            ExpansionStrategy.FUZZY,
            ExpansionStrategy.FUZZY_SYNONYMS,
            ExpansionStrategy.BROAD_SEMANTIC,
            ExpansionStrategy.WIDEN_SCOPE,
        ]

    def test_last_state_has_no_successor(self):
        assert next_state(state_for(ExpansionStrategy.WIDEN_SCOPE)) is None

    def test_state_for(self):
        assert state_for(ExpansionStrategy.FUZZY_SYNONYMS).attempt == 2


@pytest.mark.unit
class TestApplyStrategy:
    """Tests for query rewriting."""

    def test_fuzzy(self):
        query, widen = apply_strategy(parse_query("practice"), ExpansionStrategy.FUZZY)
        assert query.tree.match_type == MatchType.FUZZY
        assert widen is False

    def test_fuzzy_synonyms_is_an_or(self):
        query, _ = apply_strategy(parse_query("practice"), ExpansionStrategy.FUZZY_SYNONYMS)
        assert query.tree.op == LogicOp.OR
        assert [c.match_type for c in query.tree.children] == [MatchType.FUZZY, MatchType.SEMANTIC]

    def test_broad_semantic(self):
        query, _ = apply_strategy(parse_query("practice"), ExpansionStrategy.BROAD_SEMANTIC)
        assert query.tree.semantic_level == 2

    def test_negated_leaves_untouched(self):
        """Test exclusions keep excluding exactly what they named."""
        query, _ = apply_strategy(parse_query("budget -draft"), ExpansionStrategy.FUZZY)

        budget, negation = query.tree.children
        assert budget.match_type == MatchType.FUZZY
        assert negation == ConditionGroup(
            op=LogicOp.NOT, children=(Condition(kind=ConditionKind.TEXT, value="draft"),)
        )

    def test_regex_and_block_refs_untouched(self):
        source = parse_query(r"/todo\d/ + ((blk-cyc-a))")
        query, _ = apply_strategy(source, ExpansionStrategy.BROAD_SEMANTIC)
        assert query.tree == source.tree

    def test_widen_scope_drops_title_scope(self):
        source = parse_query("budget in:[[Ledger]]")
        query, widen = apply_strategy(source, ExpansionStrategy.WIDEN_SCOPE)

        assert widen is True
        assert query.page_scope is None

    def test_widen_scope_keeps_daily_scope(self):
        query, _ = apply_strategy(parse_query("budget in:dnp"), ExpansionStrategy.WIDEN_SCOPE)
        assert query.page_scope == PageScope(daily_only=True)

    def test_hierarchy_is_not_expandable(self):
        assert not is_expandable(parse_query("Goals > UX"))
        assert is_expandable(parse_query("Goals + UX"))


@pytest.mark.unit
@pytest.mark.asyncio
class TestAutomaticExpansion:
    """Tests for the expansion driver."""

    async def test_ask_user_runs_once(self):
        """Test ask_user reports empty results without retrying."""
        execute = RecordingExecutor()
        result = await AutomaticExpansion(AutomaticExpansionMode.ASK_USER).run(
            parse_query("practice"), execute
        )

        assert len(execute.calls) == 1
        assert result.attempted == []
        assert result.outcome.results == []
        assert result.outcome.warnings == []

    async def test_auto_tries_every_strategy(self):
        """Test the full escalation on a search that never matches."""
        execute = RecordingExecutor()
        result = await AutomaticExpansion().run(parse_query("practice"), execute)

        assert len(execute.calls) == 5
        assert result.attempted == ["fuzzy", "fuzzy_synonyms", "broad_semantic", "widen_scope"]
        assert result.outcome.warnings == [
            "No results after trying: fuzzy, fuzzy_synonyms, broad_semantic, widen_scope"
        ]
        assert execute.calls[-1][1] is True

    async def test_auto_stops_at_first_result(self, make_result):
        execute = RecordingExecutor(results=[make_result("blk-dnp-015")], succeeds_when=is_fuzzy)
        result = await AutomaticExpansion().run(parse_query("practice"), execute)

        assert len(execute.calls) == 2
        assert result.attempted == ["fuzzy"]
        assert result.state.strategy == ExpansionStrategy.FUZZY
        assert [r.uid for r in result.outcome.results] == ["blk-dnp-015"]

    async def test_results_first_time_no_expansion(self, make_result):
        execute = RecordingExecutor(results=[make_result("a")], succeeds_when=lambda q: True)
        result = await AutomaticExpansion().run(parse_query("practice"), execute)

        assert len(execute.calls) == 1
        assert result.attempted == []

    async def test_exact_disables_expansion(self):
        execute = RecordingExecutor()
        result = await AutomaticExpansion(AutomaticExpansionMode.ALWAYS_FUZZY).run(
            parse_query("practice"), execute, exact=True
        )

        assert len(execute.calls) == 1
        assert execute.calls[0][0].tree.match_type == MatchType.CONTAINS
        assert result.attempted == []

    async def test_hierarchical_strategy_does_not_escalate(self):
        execute = RecordingExecutor(strategy=Strategy.HIERARCHICAL)
        result = await AutomaticExpansion().run(parse_query("a + b + c"), execute)

        assert len(execute.calls) == 1
        assert result.attempted == []

    async def test_always_fuzzy_applies_up_front(self, make_result):
        execute = RecordingExecutor(results=[make_result("a")], succeeds_when=is_fuzzy)
        result = await AutomaticExpansion(AutomaticExpansionMode.ALWAYS_FUZZY).run(
            parse_query("practice"), execute
        )

        assert len(execute.calls) == 1
        assert result.attempted == ["fuzzy"]
        assert len(result.outcome.results) == 1

    async def test_disabled(self):
        execute = RecordingExecutor()
        result = await AutomaticExpansion(AutomaticExpansionMode.DISABLED).run(
            parse_query("practice"), execute
        )
        assert len(execute.calls) == 1
        assert result.attempted == []

    async def test_unchanged_query_is_skipped(self):
        """Test a strategy that cannot change the query is not executed."""
        execute = RecordingExecutor()
        result = await AutomaticExpansion().run(parse_query(r"/todo\d/"), execute)

        # Only widen_scope runs again (it changes planning, not the query)
        assert result.attempted == ["widen_scope"]
        assert len(execute.calls) == 2
