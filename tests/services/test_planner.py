"""
Tests for the complexity classifier and query planner.
"""

import pytest

from askgraph.core.query import parse_query
from askgraph.models.plan import (
    CombineNode,
    ExecuteRawQueryParams,
    ExtractPageReferencesParams,
    FindBlocksByContentParams,
    FindBlocksWithHierarchyParams,
    FindDailyNotesByPeriodParams,
    FindPagesByContentParams,
    FindPagesByTitleParams,
    Strategy,
    ToolName,
)
from askgraph.models.query import (
    Combinator,
    CompositeQuery,
    Condition,
    ConditionKind,
    HierarchyCondition,
    HierarchyOp,
    SearchQuery,
    SearchTarget,
)
from askgraph.services.planner import QueryPlanner, classify
from askgraph.utils.exceptions import PlanError


@pytest.fixture
def planner() -> QueryPlanner:
    return QueryPlanner()


@pytest.mark.unit
class TestClassify:
    """Tests for the complexity classifier."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("budget", Strategy.SIMPLE),
            ("[[finance]]", Strategy.SIMPLE),
            ("in:dnp", Strategy.SIMPLE),
            ("raw:SELECT uid FROM nodes", Strategy.SIMPLE),
            ("budget | finance", Strategy.LOGICAL),
            ("budget + finance", Strategy.LOGICAL),
            ("budget -draft", Strategy.LOGICAL),
            ("a + b + c", Strategy.HIERARCHICAL),
            ("Goals > frontend", Strategy.HIERARCHICAL),
            ("Goals => frontend", Strategy.HIERARCHICAL),
            ("UNION(budget, finance)", Strategy.MULTI_STEP),
            ("PIPE(@results, audit)", Strategy.MULTI_STEP),
        ],
    )
    def test_strategies(self, source, expected):
        """Test each expression shape maps to exactly one strategy."""
        assert classify(parse_query(source)) == expected

    def test_page_target_with_three_legs_is_logical(self):
        """Test the leg threshold only applies to block searches."""
        assert classify(parse_query("page:(a + b + c)")) == Strategy.LOGICAL

    def test_widen_lowers_threshold(self):
        """Test two AND legs become hierarchical when widened."""
        query = parse_query("budget + finance")
        assert classify(query) == Strategy.LOGICAL
        assert classify(query, widen=True) == Strategy.HIERARCHICAL

    def test_negated_single_condition_is_logical(self):
        """Test a lone negation is a logical query."""
        assert classify(parse_query("-draft")) == Strategy.LOGICAL

    @pytest.mark.parametrize("source", ["-a -b -c", "a -b -c -d", "-budget -draft -archive -old"])
    def test_negated_legs_do_not_count_toward_hierarchy(self, source):
        """Test AND groups with fewer than three positive legs stay logical."""
        assert classify(parse_query(source)) == Strategy.LOGICAL

    def test_widened_negations_stay_logical(self):
        assert classify(parse_query("budget -draft -archive"), widen=True) == Strategy.LOGICAL


@pytest.mark.unit
class TestPlans:
    """Tests for plan construction."""

    def test_meeting_query_single_hierarchy_step(self, planner):
        """Test the four-leg meeting query is one hierarchy-aware tool call."""
        plan = planner.plan(parse_query("[[meeting]] & [[John]] & frontend|UX -[[DONE]]"))

        assert plan.strategy == Strategy.HIERARCHICAL
        assert plan.tool_names == [ToolName.FIND_BLOCKS_WITH_HIERARCHY]
        params = plan.steps[0].params
        assert isinstance(params, FindBlocksWithHierarchyParams)
        assert params.op is None
        assert len(params.legs) == 4
        assert plan.combine is None

    def test_all_negative_query_uses_content_search(self, planner):
        """Test negated legs alone become one content search with NOT filters."""
        plan = planner.plan(parse_query("-finance -Risks -Goals"))

        assert plan.strategy == Strategy.LOGICAL
        assert plan.tool_names == [ToolName.FIND_BLOCKS_BY_CONTENT]
        assert isinstance(plan.steps[0].params, FindBlocksByContentParams)

    def test_composite_plan(self, planner):
        """Test one step per operand and a combine node over their indexes."""
        plan = planner.plan(parse_query("UNION(ref:finance, page:(attr:status:ref:pending))"))

        assert plan.strategy == Strategy.MULTI_STEP
        assert plan.tool_names == [ToolName.FIND_BLOCKS_BY_CONTENT, ToolName.FIND_PAGES_BY_CONTENT]
        assert plan.combine == CombineNode(combinator=Combinator.UNION, operands=(0, 1))

    def test_nested_composite_plan(self, planner):
        """Test nested combinators become nested combine nodes."""
        plan = planner.plan(parse_query("UNION(a, INTERSECTION(b, c))"))

        assert len(plan.steps) == 3
        assert plan.combine.operands[0] == 0
        nested = plan.combine.operands[1]
        assert nested.combinator == Combinator.INTERSECTION
        assert nested.operands == (1, 2)

    def test_step_labels_are_symbolic(self, planner):
        """Test steps carry their canonical query text."""
        plan = planner.plan(parse_query("UNION(ref:finance, budget)"))
        assert [step.label for step in plan.steps] == ["[[finance]]", "budget"]

    def test_prior_results_step(self, planner):
        """Test @results becomes a prior-results step when results exist."""
        plan = planner.plan(parse_query("PIPE(@results, audit)"), has_prior_results=True)
        assert plan.tool_names == [ToolName.PRIOR_RESULTS, ToolName.FIND_BLOCKS_BY_CONTENT]

    def test_request_is_kept(self, planner):
        plan = planner.plan(parse_query("budget"), request="budget")
        assert plan.request == "budget"


@pytest.mark.unit
class TestPlanErrors:
    """Unsupported combinations are rejected before execution."""

    def test_prior_results_without_results(self, planner):
        """Test @results on a fresh conversation."""
        with pytest.raises(PlanError):
            planner.plan(parse_query("INTERSECTION(@results, audit)"))

    def test_hierarchy_in_page_target(self, planner):
        """Test a hierarchy condition inside a page search."""
        query = SearchQuery(
            target=SearchTarget.PAGE_CONTENT,
            tree=HierarchyCondition(
                scope=Condition(kind=ConditionKind.TEXT, value="Goals"),
                op=HierarchyOp.CHILD,
                target=Condition(kind=ConditionKind.TEXT, value="frontend"),
            ),
        )
        with pytest.raises(PlanError, match="not supported"):
            planner.plan(query)

    def test_composite_with_one_operand(self, planner):
        """Test a programmatically built one-operand combinator."""
        query = CompositeQuery(combinator=Combinator.UNION, operands=(parse_query("budget"),))
        with pytest.raises(PlanError):
            planner.plan(query)


@pytest.mark.unit
class TestToolSelection:
    """Tests for step_params tool dispatch."""

    @pytest.mark.parametrize(
        ("source", "params_type"),
        [
            ("raw:SELECT uid FROM nodes", ExecuteRawQueryParams),
            ("in:dnp", FindDailyNotesByPeriodParams),
            ("page:(title:(meeting))", FindPagesByTitleParams),
            ("refs:(budget)", ExtractPageReferencesParams),
            ("page:(a + b)", FindPagesByContentParams),
            ("budget | finance", FindBlocksByContentParams),
            ("Goals >> UX", FindBlocksWithHierarchyParams),
        ],
    )
    def test_dispatch(self, planner, source, params_type):
        assert isinstance(planner.step_params(parse_query(source)), params_type)

    def test_same_block_pages(self, planner):
        """Test page:(block:(...)) requires one block to match all conditions."""
        params = planner.step_params(parse_query("page:(block:(a + b))"))
        assert isinstance(params, FindPagesByContentParams)
        assert params.same_block is True

        params = planner.step_params(parse_query("page:(content:(a + b))"))
        assert params.same_block is False

    def test_hierarchy_params(self, planner):
        """Test the operator and its depth bound are carried to the tool."""
        params = planner.step_params(parse_query("Goals > frontend"))
        assert params.op == HierarchyOp.CHILD
        assert params.max_depth == 1
        assert params.scope == Condition(kind=ConditionKind.TEXT, value="Goals")

    def test_raw_query_text(self, planner):
        params = planner.step_params(parse_query("raw: SELECT uid FROM nodes"))
        assert params.query == "SELECT uid FROM nodes"

    def test_page_scope_is_forwarded(self, planner):
        """Test in: scopes reach content searches."""
        params = planner.step_params(parse_query("budget in:dnp"))
        assert isinstance(params, FindBlocksByContentParams)
        assert params.page_scope.daily_only is True
