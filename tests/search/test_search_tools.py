"""
Tests for the search tool set against a real SQLite graph.

Tests cover:
1. Page, block, daily-note and reference tools
2. Directional and flexible hierarchy search
3. Raw queries and the access policy
4. Tool failure kinds (empty, malformed, forbidden, timeout)
"""

import asyncio
import re
from datetime import datetime

import pytest
from pydantic import ValidationError

from askgraph.config import SearchConfig
from askgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from askgraph.core.query import parse_query
from askgraph.core.search.fuzzy import (
    attribute_pattern,
    fuzzy_pattern,
    text_pattern,
    title_pattern,
)
from askgraph.core.search.tools import SearchToolSet
from askgraph.models.node import NodeKind
from askgraph.models.plan import (
    ExecuteRawQueryParams,
    ExtractHierarchyContentParams,
    ExtractPageReferencesParams,
    FindBlocksByContentParams,
    FindDailyNotesByPeriodParams,
    FindPagesByContentParams,
    FindPagesByTitleParams,
    GetNodeDetailsParams,
    ScopeRestriction,
    SortField,
    SortOrder,
    ToolName,
)
from askgraph.models.policy import AccessMode, AccessPolicy
from askgraph.models.query import Condition, ConditionKind, MatchType
from askgraph.services.planner import QueryPlanner
from askgraph.utils.exceptions import ToolError, ToolErrorKind


def text(value: str, **fields) -> Condition:
    return Condition(kind=ConditionKind.TEXT, value=value, **fields)


def ref(value: str, **fields) -> Condition:
    return Condition(kind=ConditionKind.PAGE_REF, value=value, **fields)


class SlowGraphStore(SQLiteGraphStore):
    """Store whose query primitive stalls."""

    async def query(self, statement, params=()):
        await asyncio.sleep(0.5)
        return await super().query(statement, params)


@pytest.fixture
def tools(sample_graph) -> SearchToolSet:
    return SearchToolSet(sample_graph)


async def run(tools: SearchToolSet, source: str, **kwargs) -> list[str]:
    """Plan a one-step query and return result uids."""
    params = QueryPlanner().step_params(parse_query(source))
    output = await tools.execute(params, **kwargs)
    return [r.uid for r in output.results]


@pytest.mark.unit
class TestFuzzyPatterns:
    """Tests for regex builders."""

    def test_long_terms_drop_last_character(self):
        """Test 'practice' also matches 'practical'."""
        assert fuzzy_pattern("practice") == r"\bpractic\w*"
        pattern = text_pattern(text("practice", match_type=MatchType.FUZZY))
        assert re.search(pattern, "Practical tips")

    def test_short_terms_keep_all_characters(self):
        assert fuzzy_pattern("UX") == r"\bUX\w*"
        assert fuzzy_pattern("plan") == r"\bplan\w*"

    def test_text_pattern_escapes_and_ignores_case(self):
        assert text_pattern(text("c++")) == r"(?i)(?:c\+\+)"

    def test_variants_are_alternatives(self):
        condition = text("meeting", variants=("call", "sync"))
        assert text_pattern(condition) == "(?i)(?:meeting|call|sync)"

    def test_page_reference_matches_whole_title(self):
        assert title_pattern(ref("finance")) == "(?i)^(?:finance)$"
        assert title_pattern(ref("finances", match_type=MatchType.FUZZY)) == "(?i)^(?:finance.*)$"

    def test_reference_attribute_needs_whole_term(self):
        """Test attr:status:ref:pending does not match 'pendingx'."""
        pattern = attribute_pattern(
            Condition(
                kind=ConditionKind.ATTRIBUTE,
                value="pending",
                attribute_key="status",
                attribute_kind=ConditionKind.PAGE_REF,
            )
        )
        assert re.search(pattern, "status:: [[pending]]")
        assert re.search(pattern, "status:: #pending")
        assert not re.search(pattern, "status:: [[pendingx]]")
        assert not re.search(pattern, "owner:: [[pending]]")


@pytest.mark.integration
@pytest.mark.asyncio
class TestPageTools:
    """Tests for page-level tools."""

    async def test_find_pages_by_title(self, tools):
        """Test title search in creation order."""
        output = await tools.execute(FindPagesByTitleParams(tree=text("Project")))

        assert output.tool == ToolName.FIND_PAGES_BY_TITLE
        assert [r.uid for r in output.results] == ["pg-alpha", "pg-beta", "pg-planning"]
        assert all(r.kind == NodeKind.PAGE for r in output.results)

    async def test_page_reference_is_exact_title(self, tools):
        output = await tools.execute(FindPagesByTitleParams(tree=ref("project alpha")))
        assert [r.uid for r in output.results] == ["pg-alpha"]

    async def test_find_pages_by_content(self, tools):
        """Test the attribute search finds both pending projects."""
        uids = await run(tools, "page:(attr:status:ref:pending)")
        assert uids == ["pg-alpha", "pg-beta"]

    async def test_same_block_vs_any_block(self, tools):
        """Test conditions spread over two blocks only match page:(content:...)."""
        assert await run(tools, "page:(content:(Quarterly + audit))") == ["pg-ledger"]

        with pytest.raises(ToolError) as exc_info:
            await run(tools, "page:(block:(Quarterly + audit))")
        assert exc_info.value.kind == ToolErrorKind.EMPTY

    async def test_daily_notes_by_period(self, tools):
        params = FindDailyNotesByPeriodParams(
            start=datetime(2024, 1, 15), end=datetime(2024, 1, 15, 23, 59)
        )
        output = await tools.execute(params)

        assert [r.uid for r in output.results] == ["01-15-2024"]
        assert output.results[0].is_daily is True

    async def test_all_daily_notes(self, tools):
        output = await tools.execute(FindDailyNotesByPeriodParams())
        assert [r.uid for r in output.results] == ["01-15-2024", "01-16-2024"]

    async def test_reversed_period_is_malformed(self, tools):
        params = FindDailyNotesByPeriodParams(
            start=datetime(2024, 1, 16), end=datetime(2024, 1, 15)
        )
        with pytest.raises(ToolError) as exc_info:
            await tools.execute(params)
        assert exc_info.value.kind == ToolErrorKind.MALFORMED

    async def test_extract_page_references(self, tools):
        """Test reference counts over the blocks mentioning finance."""
        output = await tools.execute(ExtractPageReferencesParams(tree=text("finance")))

        assert [r.uid for r in output.results] == ["pg-finance"]
        assert output.results[0].reference_count == 3


@pytest.mark.integration
@pytest.mark.asyncio
class TestBlockTools:
    """Tests for content search."""

    async def test_page_reference_search(self, tools):
        """Test [[finance]] and #finance both count as references."""
        assert await run(tools, "ref:finance") == ["blk-fin-001", "blk-fin-002", "blk-fin-003"]

    async def test_logical_query(self, tools):
        assert await run(tools, "finance -audit") == ["blk-fin-001", "blk-fin-002"]
        assert await run(tools, "audit | Risks") == ["blk-fin-003", "blk-risks"]

    async def test_block_reference(self, tools):
        assert await run(tools, "((blk-cyc-a))") == ["blk-cyc-b"]

    async def test_empty_result_is_a_tool_error(self, tools):
        with pytest.raises(ToolError) as exc_info:
            await run(tools, "nonexistentterm")
        assert exc_info.value.kind == ToolErrorKind.EMPTY
        assert exc_info.value.tool == ToolName.FIND_BLOCKS_BY_CONTENT.value

    async def test_include_children_and_parents(self, tools):
        """Test direct children and the parent are attached to results."""
        output = await tools.execute(
            FindBlocksByContentParams(tree=text("Goals"), include_children=True, include_parents=True)
        )

        result = output.results[0]
        assert result.uid == "blk-goals"
        assert [c.uid for c in result.children] == ["blk-goal-1"]
        assert result.parents[0].content == "Project Planning"

    @pytest.mark.parametrize(
        ("sort_by", "sort_order", "expected"),
        [
            (SortField.CREATION, SortOrder.ASC, ["blk-fin-001", "blk-fin-002", "blk-fin-003"]),
            (SortField.CREATION, SortOrder.DESC, ["blk-fin-003", "blk-fin-002", "blk-fin-001"]),
            (SortField.MODIFICATION, SortOrder.DESC, ["blk-fin-003", "blk-fin-002", "blk-fin-001"]),
            (SortField.ALPHABETICAL, SortOrder.ASC, ["blk-fin-003", "blk-fin-002", "blk-fin-001"]),
        ],
    )
    async def test_sorting(self, tools, sort_by, sort_order, expected):
        """Test '#finance audit' < 'budget ...' < 'quarterly ...' alphabetically."""
        output = await tools.execute(
            FindBlocksByContentParams(tree=ref("finance"), sort_by=sort_by, sort_order=sort_order)
        )
        assert [r.uid for r in output.results] == expected

    async def test_exclude_block_uid(self, tools):
        output = await tools.execute(
            FindBlocksByContentParams(tree=ref("finance"), exclude_block_uid="blk-fin-002")
        )
        assert [r.uid for r in output.results] == ["blk-fin-001", "blk-fin-003"]

    async def test_scope_restriction(self, tools):
        """Test a PIPE restriction limits results to the given pages."""
        restriction = ScopeRestriction(page_uids=frozenset({"pg-planning"}))
        with pytest.raises(ToolError) as exc_info:
            await run(tools, "audit", scope=restriction)
        assert exc_info.value.kind == ToolErrorKind.EMPTY

        restriction = ScopeRestriction(page_uids=frozenset({"pg-ledger"}))
        assert await run(tools, "audit", scope=restriction) == ["blk-fin-003"]

    async def test_daily_scope(self, tools):
        assert await run(tools, "UX in:dnp") == ["blk-dnp-016"]

    async def test_title_scope(self, tools):
        assert await run(tools, "finance in:[[ledger]]") == [
            "blk-fin-001",
            "blk-fin-002",
            "blk-fin-003",
        ]

    async def test_regex_scope_flags(self, tools):
        """Test /x drops unescaped whitespace from the title pattern."""
        assert await run(tools, r"status in:/project\ alpha$/x") == ["blk-alpha-st"]
        with pytest.raises(ToolError) as exc_info:
            await run(tools, "status in:/project alpha$/x")
        assert exc_info.value.kind == ToolErrorKind.EMPTY


@pytest.mark.integration
@pytest.mark.asyncio
class TestHierarchyTool:
    """Tests for the hierarchy-aware tool."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("Goals > frontend", ["blk-goals"]),
            ("Goals >> UX", ["blk-goals"]),
            ("UX < frontend", ["blk-goal-1a"]),
            ("UX << Goals", ["blk-goal-1a"]),
            ("frontend <=> UX", ["blk-goal-1"]),
            ("frontend <=> Goals", ["blk-goal-1"]),
            ("frontend => redesign", ["blk-goal-1"]),
            ("Goals => UX", ["blk-goals"]),
        ],
    )
    async def test_operators(self, tools, source, expected):
        assert await run(tools, source) == expected

    async def test_child_is_direct_only(self, tools):
        """Test > does not reach grandchildren."""
        with pytest.raises(ToolError) as exc_info:
            await run(tools, "Goals > UX")
        assert exc_info.value.kind == ToolErrorKind.EMPTY

    async def test_legs_across_levels(self, tools):
        """Test three AND legs may be satisfied at different levels."""
        assert await run(tools, "Goals + frontend + UX") == [
            "blk-goals",
            "blk-goal-1",
            "blk-goal-1a",
        ]

    async def test_negated_leg_applies_to_block(self, tools):
        uids = await run(tools, "Goals + frontend + UX -designers")
        assert uids == ["blk-goals", "blk-goal-1"]

    async def test_slow_search_warning(self, sample_graph):
        """Test hierarchical calls over the latency threshold carry a warning."""
        tools = SearchToolSet(sample_graph, SearchConfig(slow_hierarchy_threshold=0))
        params = QueryPlanner().step_params(parse_query("Goals + frontend + UX"))

        output = await tools.execute(params)

        assert output.tool == ToolName.FIND_BLOCKS_WITH_HIERARCHY
        assert len(output.warnings) == 1
        assert output.warnings[0].startswith("Hierarchical search took")

    async def test_fast_search_has_no_warning(self, tools):
        params = QueryPlanner().step_params(parse_query("Goals + frontend + UX"))
        assert (await tools.execute(params)).warnings == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestRawQuery:
    """Tests for directly supplied queries."""

    async def test_raw_select(self, tools):
        output = await tools.execute(
            ExecuteRawQueryParams(query="SELECT uid FROM nodes WHERE string LIKE '%finance%'")
        )
        assert {r.uid for r in output.results} == {"blk-fin-001", "blk-fin-002", "blk-fin-003"}
        assert output.results[0].page_title == "Ledger"

    async def test_raw_page_rows(self, tools):
        output = await tools.execute(
            ExecuteRawQueryParams(query="SELECT uid FROM nodes WHERE kind = 'page' AND is_daily = 1")
        )
        assert {r.uid for r in output.results} == {"01-15-2024", "01-16-2024"}

    async def test_write_statement_is_malformed(self, tools):
        with pytest.raises(ToolError) as exc_info:
            await tools.execute(ExecuteRawQueryParams(query="DELETE FROM nodes"))
        assert exc_info.value.kind == ToolErrorKind.MALFORMED

    async def test_content_query_forbidden_in_private_mode(self, sample_graph):
        """Test private mode rejects raw queries reading block content."""
        tools = SearchToolSet(sample_graph, access_policy=AccessPolicy.for_mode(AccessMode.PRIVATE))

        with pytest.raises(ToolError) as exc_info:
            await tools.execute(
                ExecuteRawQueryParams(query="SELECT uid FROM nodes WHERE string LIKE '%a%'")
            )
        assert exc_info.value.kind == ToolErrorKind.FORBIDDEN

        output = await tools.execute(
            ExecuteRawQueryParams(query="SELECT uid FROM nodes WHERE title = 'Ledger'")
        )
        assert [r.uid for r in output.results] == ["pg-ledger"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestNodeTools:
    """Tests for node details and hierarchy outlines."""

    async def test_node_details_keep_selection_order(self, tools):
        output = await tools.execute(
            GetNodeDetailsParams(uids=("blk-risks", "pg-ledger", "missing-uid", "blk-goals"))
        )

        assert [r.uid for r in output.results] == ["blk-risks", "pg-ledger", "blk-goals"]
        assert output.results[0].content == "Risks"
        assert output.results[0].page_title == "Project Planning"
        assert output.results[1].kind == NodeKind.PAGE
        assert output.results[1].title == "Ledger"

    async def test_node_details_limit(self, tools):
        output = await tools.execute(
            GetNodeDetailsParams(uids=("blk-fin-001", "blk-fin-002", "blk-fin-003"), limit=2)
        )
        assert [r.uid for r in output.results] == ["blk-fin-001", "blk-fin-002"]

    async def test_node_details_with_hierarchy(self, tools):
        output = await tools.execute(GetNodeDetailsParams(uids=("blk-goal-1",), include_hierarchy=True))

        [result] = output.results
        assert [c.uid for c in result.children] == ["blk-goal-1a"]
        assert result.parents[0].uid == "blk-goals"
        assert result.parents[0].content == "Goals for Q3"

    async def test_node_details_without_content(self, tools):
        output = await tools.execute(GetNodeDetailsParams(uids=("blk-risks",), include_content=False))
        assert output.results[0].content is None

    async def test_node_details_hide_content_in_private_mode(self, sample_graph):
        tools = SearchToolSet(sample_graph, access_policy=AccessPolicy.for_mode(AccessMode.PRIVATE))

        output = await tools.execute(
            GetNodeDetailsParams(uids=("blk-goals",), include_hierarchy=True)
        )

        [result] = output.results
        assert result.content is None
        assert [(c.uid, c.content) for c in result.children] == [("blk-goal-1", "")]

    async def test_selection_is_required(self):
        with pytest.raises(ValidationError):
            GetNodeDetailsParams()
        with pytest.raises(ValidationError):
            ExtractHierarchyContentParams(uids=(), from_prior_results=False)

    async def test_unresolved_prior_results_are_malformed(self, tools):
        """Test the tool set itself never sees the conversation's results."""
        with pytest.raises(ToolError) as exc_info:
            await tools.execute(GetNodeDetailsParams(from_prior_results=True))
        assert exc_info.value.kind == ToolErrorKind.MALFORMED

    async def test_hierarchy_outline(self, tools):
        output = await tools.execute(ExtractHierarchyContentParams(uids=("blk-goals",)))

        [result] = output.results
        assert result.expanded_content == (
            "Goals for Q3\n  - Ship the frontend redesign\n    - Coordinate with UX designers"
        )
        assert result.expansion_level == 2
        assert result.truncated is False

    async def test_hierarchy_outline_of_page(self, tools):
        output = await tools.execute(ExtractHierarchyContentParams(uids=("pg-planning",), max_depth=1))

        assert output.results[0].expanded_content == "Project Planning\n  - Goals for Q3\n  - Risks"

    async def test_hierarchy_outline_block_cap(self, tools):
        output = await tools.execute(
            ExtractHierarchyContentParams(uids=("pg-planning",), max_blocks=2)
        )

        result = output.results[0]
        assert result.expanded_content == "Project Planning\n  - Goals for Q3\n  - Risks"
        assert result.truncated is True

    async def test_hierarchy_outline_forbidden_in_private_mode(self, sample_graph):
        tools = SearchToolSet(sample_graph, access_policy=AccessPolicy.for_mode(AccessMode.PRIVATE))

        with pytest.raises(ToolError) as exc_info:
            await tools.execute(ExtractHierarchyContentParams(uids=("blk-goals",)))
        assert exc_info.value.kind == ToolErrorKind.FORBIDDEN


@pytest.mark.integration
@pytest.mark.asyncio
class TestTimeout:
    """Tests for per-tool timeouts."""

    async def test_slow_tool_times_out(self, tmp_path):
        store = SlowGraphStore(db_path=str(tmp_path / "slow.db"))
        await store.initialize()
        try:
            tools = SearchToolSet(store, SearchConfig(tool_timeout=0.01))
            with pytest.raises(ToolError) as exc_info:
                await tools.execute(FindPagesByContentParams(tree=text("anything")))
            assert exc_info.value.kind == ToolErrorKind.TIMEOUT
        finally:
            await store.close()
