"""
Query plans and search tool parameters.

The tool catalogue is a closed set: each tool has one frozen parameter model
tagged by its `tool` field, and `ToolParams` is the discriminated union the
planner emits and the tool set dispatches on.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from askgraph.models.query import (
    Combinator,
    ConditionNode,
    DateField,
    DateFilter,
    HierarchyOp,
    PageScope,
)


class Strategy(str, Enum):
    """Execution strategies chosen by the complexity classifier."""

    SIMPLE = "simple"
    LOGICAL = "logical"
    HIERARCHICAL = "hierarchical"
    MULTI_STEP = "multi_step"


class ToolName(str, Enum):
    """Search tool catalogue."""

    FIND_PAGES_BY_TITLE = "find_pages_by_title"
    FIND_BLOCKS_BY_CONTENT = "find_blocks_by_content"
    FIND_BLOCKS_WITH_HIERARCHY = "find_blocks_with_hierarchy"
    FIND_PAGES_BY_CONTENT = "find_pages_by_content"
    FIND_DAILY_NOTES_BY_PERIOD = "find_daily_notes_by_period"
    EXTRACT_PAGE_REFERENCES = "extract_page_references"
    EXECUTE_RAW_QUERY = "execute_raw_query"
    GET_NODE_DETAILS = "get_node_details"
    EXTRACT_HIERARCHY_CONTENT = "extract_hierarchy_content"
    PRIOR_RESULTS = "prior_results"


class SortField(str, Enum):
    """Orderings of block search results."""

    CREATION = "creation"
    MODIFICATION = "modification"
    ALPHABETICAL = "alphabetical"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class _Params(BaseModel):
    model_config = ConfigDict(frozen=True)


class FindPagesByTitleParams(_Params):
    """Pages whose title satisfies `tree`."""

    tool: Literal["find_pages_by_title"] = "find_pages_by_title"
    tree: ConditionNode
    page_scope: PageScope | None = None
    date_filter: DateFilter | None = None


class FindBlocksByContentParams(_Params):
    """Blocks whose own content satisfies a non-hierarchical `tree`."""

    tool: Literal["find_blocks_by_content"] = "find_blocks_by_content"
    tree: ConditionNode
    include_children: bool = False
    include_parents: bool = False
    sort_by: SortField = SortField.CREATION
    sort_order: SortOrder = SortOrder.ASC
    exclude_block_uid: str | None = None
    page_scope: PageScope | None = None
    date_filter: DateFilter | None = None


class FindBlocksWithHierarchyParams(_Params):
    """
    Hierarchy-aware block search.

    With `op` set: blocks satisfying `scope` that have a node satisfying
    `target` at the position implied by `op`, within `max_depth` levels.
    With `op` unset: every leg in `legs` must hold on the block, one of its
    ancestors or one of its descendants, and the block itself must satisfy at
    least one positive leg. Negated legs apply to the block itself.
    """

    tool: Literal["find_blocks_with_hierarchy"] = "find_blocks_with_hierarchy"
    scope: ConditionNode | None = None
    op: HierarchyOp | None = None
    target: ConditionNode | None = None
    max_depth: int | None = None
    legs: tuple[ConditionNode, ...] = ()
    page_scope: PageScope | None = None
    date_filter: DateFilter | None = None


class FindPagesByContentParams(_Params):
    """
    Pages whose blocks satisfy `tree`.

    `same_block` requires the whole tree to hold in a single block; otherwise
    each positive leaf may be satisfied by a different block of the page.
    """

    tool: Literal["find_pages_by_content"] = "find_pages_by_content"
    tree: ConditionNode
    same_block: bool = False
    page_scope: PageScope | None = None
    date_filter: DateFilter | None = None


class FindDailyNotesByPeriodParams(_Params):
    """Daily Note Pages in an inclusive window."""

    tool: Literal["find_daily_notes_by_period"] = "find_daily_notes_by_period"
    start: datetime | None = None
    end: datetime | None = None
    field: DateField = DateField.DATE


class ExtractPageReferencesParams(_Params):
    """Reference counts of pages referenced by blocks matching `tree`."""

    tool: Literal["extract_page_references"] = "extract_page_references"
    tree: ConditionNode | None = None
    page_scope: PageScope | None = None
    date_filter: DateFilter | None = None


class ExecuteRawQueryParams(_Params):
    """Directly supplied read-only store query."""

    tool: Literal["execute_raw_query"] = "execute_raw_query"
    query: str


class _NodeSelection(_Params):
    """Explicit uids, or the conversation's current results."""

    uids: tuple[str, ...] = ()
    from_prior_results: bool = False

    @model_validator(mode="after")
    def _has_source(self):
        if not self.uids and not self.from_prior_results:
            raise ValueError("either uids or from_prior_results is required")
        return self


class GetNodeDetailsParams(_NodeSelection):
    """Details of the selected nodes, in selection order."""

    tool: Literal["get_node_details"] = "get_node_details"
    include_content: bool = True
    include_hierarchy: bool = False
    limit: int = Field(default=50, ge=1, le=100)


class ExtractHierarchyContentParams(_NodeSelection):
    """Indented outline of the subtree under each selected node."""

    tool: Literal["extract_hierarchy_content"] = "extract_hierarchy_content"
    max_depth: int = Field(default=5, ge=1, le=10)
    max_blocks: int = Field(default=100, ge=1, le=1000)
    truncate_length: int = Field(default=500, ge=50, le=1000)


class PriorResultsParams(_Params):
    """The conversation's current result set (`@results`)."""

    tool: Literal["prior_results"] = "prior_results"


ToolParams = Annotated[
    Union[
        FindPagesByTitleParams,
        FindBlocksByContentParams,
        FindBlocksWithHierarchyParams,
        FindPagesByContentParams,
        FindDailyNotesByPeriodParams,
        ExtractPageReferencesParams,
        ExecuteRawQueryParams,
        GetNodeDetailsParams,
        ExtractHierarchyContentParams,
        PriorResultsParams,
    ],
    Field(discriminator="tool"),
]


class PlanStep(BaseModel):
    """One tool invocation of a plan."""

    model_config = ConfigDict(frozen=True)

    index: int
    label: str
    params: ToolParams

    @property
    def tool(self) -> ToolName:
        return ToolName(self.params.tool)


class CombineNode(BaseModel):
    """Combinator over step indexes or nested combine nodes."""

    model_config = ConfigDict(frozen=True)

    combinator: Combinator
    operands: tuple[Union[int, "CombineNode"], ...]


CombineNode.model_rebuild()


class QueryPlan(BaseModel):
    """Immutable plan produced once per request."""

    model_config = ConfigDict(frozen=True)

    strategy: Strategy
    steps: tuple[PlanStep, ...]
    combine: CombineNode | None = None
    request: str = ""

    @property
    def tool_names(self) -> list[ToolName]:
        return [step.tool for step in self.steps]


class ScopeRestriction(BaseModel):
    """Runtime narrowing of a tool call to a set of pages (PIPE refinement)."""

    model_config = ConfigDict(frozen=True)

    page_uids: frozenset[str]
