"""
Complexity classifier and query planner.

The classifier is a pure function of expression shape. The planner turns an
expression into an immutable QueryPlan: one tool call per leaf query plus, for
multi-step requests, a combine tree over the step indexes. Unsupported
combinations are rejected here, before any store call.
"""

from askgraph.core.query.serializer import to_symbolic
from askgraph.models.plan import (
    CombineNode,
    ExecuteRawQueryParams,
    ExtractPageReferencesParams,
    FindBlocksByContentParams,
    FindBlocksWithHierarchyParams,
    FindDailyNotesByPeriodParams,
    FindPagesByContentParams,
    FindPagesByTitleParams,
    PlanStep,
    PriorResultsParams,
    QueryPlan,
    Strategy,
    ToolParams,
)
from askgraph.models.query import (
    CompositeQuery,
    Condition,
    HierarchyCondition,
    LogicOp,
    PriorResults,
    QueryExpression,
    SearchQuery,
    SearchTarget,
    and_legs,
    is_negative,
    normalize,
)
from askgraph.utils.exceptions import PlanError
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

# AND legs routed to the hierarchy-aware tool
HIERARCHICAL_LEG_THRESHOLD = 3
WIDENED_LEG_THRESHOLD = 2


def classify(expression: QueryExpression, widen: bool = False) -> Strategy:
    """
    Classify an expression into an execution strategy.

    - composite (UNION/INTERSECTION/DIFFERENCE/PIPE) -> multi_step
    - hierarchy operator -> hierarchical
    - single positive condition, raw query or date-only query -> simple
    - AND of 3+ positive legs on blocks (2+ when widened) -> hierarchical;
      negated legs only filter and never count toward the threshold
    - any other AND/OR/NOT combination -> logical

    Args:
        expression: Parsed query expression
        widen: Lower the leg threshold (last automatic expansion strategy)

    Returns:
        Exactly one Strategy
    """
    if isinstance(expression, CompositeQuery):
        return Strategy.MULTI_STEP
    if isinstance(expression, PriorResults):
        return Strategy.SIMPLE

    tree = expression.tree
    if tree is None:
        return Strategy.SIMPLE
    if isinstance(tree, HierarchyCondition):
        return Strategy.HIERARCHICAL

    tree = normalize(tree)
    if isinstance(tree, Condition):
        return Strategy.SIMPLE

    if expression.target == SearchTarget.BLOCKS and tree.op == LogicOp.AND:
        threshold = WIDENED_LEG_THRESHOLD if widen else HIERARCHICAL_LEG_THRESHOLD
        positive = [leg for leg in tree.children if not is_negative(leg)]
        if len(positive) >= threshold:
            return Strategy.HIERARCHICAL
    return Strategy.LOGICAL


class QueryPlanner:
    """
    Builds query plans.

    Usage:
        planner = QueryPlanner()
        plan = planner.plan(parse_query("UNION(ref:finance, [[budget]])"))
    """

    def plan(
        self,
        expression: QueryExpression,
        request: str = "",
        has_prior_results: bool = False,
        widen: bool = False,
    ) -> QueryPlan:
        """
        Plan an expression.

        Args:
            expression: Parsed query expression
            request: Original request text (kept on the plan for provenance)
            has_prior_results: Whether the conversation has a current result set
            widen: Route AND groups of two or more legs to the hierarchy tool

        Returns:
            Immutable QueryPlan

        Raises:
            PlanError: Unsupported combination
        """
        strategy = classify(expression, widen=widen)
        steps: list[PlanStep] = []

        if isinstance(expression, CompositeQuery):
            combine = self._plan_composite(expression, steps, has_prior_results, widen)
        else:
            combine = None
            self._add_step(expression, steps, has_prior_results, widen)

        plan = QueryPlan(strategy=strategy, steps=tuple(steps), combine=combine, request=request)
        logger.info(
            f"Planned {strategy.value} query with {len(steps)} step(s): "
            f"{', '.join(t.value for t in plan.tool_names)}",
            extra={"strategy": strategy.value, "steps": len(steps)},
        )
        return plan

    def _plan_composite(
        self,
        expression: CompositeQuery,
        steps: list[PlanStep],
        has_prior_results: bool,
        widen: bool,
    ) -> CombineNode:
        if len(expression.operands) < 2:
            raise PlanError(
                f"{expression.combinator.value} needs at least two operands",
                {"combinator": expression.combinator.value},
            )

        operands: list[int | CombineNode] = []
        for operand in expression.operands:
            if isinstance(operand, CompositeQuery):
                operands.append(self._plan_composite(operand, steps, has_prior_results, widen))
            else:
                operands.append(self._add_step(operand, steps, has_prior_results, widen))
        return CombineNode(combinator=expression.combinator, operands=tuple(operands))

    def _add_step(
        self,
        expression: SearchQuery | PriorResults,
        steps: list[PlanStep],
        has_prior_results: bool,
        widen: bool,
    ) -> int:
        index = len(steps)
        if isinstance(expression, PriorResults):
            if not has_prior_results:
                raise PlanError("@results used but the conversation has no current results")
            params: ToolParams = PriorResultsParams()
        else:
            params = self.step_params(expression, widen=widen)

        steps.append(PlanStep(index=index, label=to_symbolic(expression), params=params))
        return index

    def step_params(self, query: SearchQuery, widen: bool = False) -> ToolParams:
        """
        Select the tool and its parameters for one search query.

        Args:
            query: Single search query
            widen: Route AND groups of two or more legs to the hierarchy tool

        Returns:
            Tool parameters

        Raises:
            PlanError: Hierarchy operator in a page or reference target
        """
        if query.raw is not None:
            return ExecuteRawQueryParams(query=query.raw)

        scope, dates = query.page_scope, query.date_filter
        tree = query.tree

        if tree is None:
            return FindDailyNotesByPeriodParams(
                start=dates.start if dates else None,
                end=dates.end if dates else None,
                **({"field": dates.field} if dates else {}),
            )

        if isinstance(tree, HierarchyCondition):
            if query.target != SearchTarget.BLOCKS:
                raise PlanError(
                    f"Hierarchy operator {tree.op.value} is not supported in a "
                    f"{query.target.value} search",
                    {"target": query.target.value, "operator": tree.op.value},
                )
            return FindBlocksWithHierarchyParams(
                scope=normalize(tree.scope),
                op=tree.op,
                target=normalize(tree.target),
                max_depth=tree.max_depth,
                page_scope=scope,
                date_filter=dates,
            )

        tree = normalize(tree)
        target = query.target
        if target == SearchTarget.PAGE_TITLES:
            return FindPagesByTitleParams(tree=tree, page_scope=scope, date_filter=dates)
        if target in (SearchTarget.PAGE_CONTENT, SearchTarget.PAGE_BLOCKS):
            return FindPagesByContentParams(
                tree=tree,
                same_block=target == SearchTarget.PAGE_BLOCKS,
                page_scope=scope,
                date_filter=dates,
            )
        if target == SearchTarget.REFERENCES:
            return ExtractPageReferencesParams(tree=tree, page_scope=scope, date_filter=dates)

        if classify(query, widen=widen) == Strategy.HIERARCHICAL:
            return FindBlocksWithHierarchyParams(
                legs=tuple(and_legs(tree)), page_scope=scope, date_filter=dates
            )
        return FindBlocksByContentParams(tree=tree, page_scope=scope, date_filter=dates)
