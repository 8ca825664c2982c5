"""
Plan execution and result combination.

PlanExecutor runs the steps of a QueryPlan through the search tool set and
folds multi-step outputs with UNION / INTERSECTION / DIFFERENCE / PIPE.
Independent operands run concurrently and are joined before combining;
PIPE operands run in order, each narrowed to the pages of its predecessor.
"""

import asyncio
from dataclasses import dataclass, field

from askgraph.core.search.tools import SearchToolSet
from askgraph.models.plan import (
    CombineNode,
    ExtractHierarchyContentParams,
    GetNodeDetailsParams,
    PriorResultsParams,
    QueryPlan,
    ScopeRestriction,
)
from askgraph.models.query import Combinator
from askgraph.models.results import ResultTag, SearchResult
from askgraph.services.semantic_expansion import SemanticExpander
from askgraph.utils.exceptions import (
    PlanError,
    QueryExecutionError,
    ToolError,
    ToolErrorKind,
)
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)


# ═══════════════════════════════════════════════════════════
# SET OPERATIONS
# ═══════════════════════════════════════════════════════════


def union(*operands: list[SearchResult]) -> list[SearchResult]:
    """uid-deduplicated concatenation; the earliest occurrence wins."""
    seen: set[str] = set()
    merged: list[SearchResult] = []
    for operand in operands:
        for result in operand:
            if result.uid not in seen:
                seen.add(result.uid)
                merged.append(result)
    return merged


def intersection(*operands: list[SearchResult]) -> list[SearchResult]:
    """uids present in every operand, in first-operand order and with its copies."""
    if not operands:
        return []
    common = set.intersection(*({r.uid for r in operand} for operand in operands))
    return union([r for r in operands[0] if r.uid in common])


def difference(*operands: list[SearchResult]) -> list[SearchResult]:
    """uids of the first operand absent from every later operand."""
    if not operands:
        return []
    excluded = {r.uid for operand in operands[1:] for r in operand}
    return union([r for r in operands[0] if r.uid not in excluded])


def combine(combinator: Combinator, *operands: list[SearchResult]) -> list[SearchResult]:
    """
    Combine already evaluated operands left to right.

    PIPE narrowing happens while evaluating, so its combined output is the
    last operand.
    """
    if combinator == Combinator.UNION:
        return union(*operands)
    if combinator == Combinator.INTERSECTION:
        return intersection(*operands)
    if combinator == Combinator.DIFFERENCE:
        return difference(*operands)
    return union(operands[-1]) if operands else []


def restriction_of(results: list[SearchResult]) -> ScopeRestriction:
    """Pages owning a set of results."""
    return ScopeRestriction(page_uids=frozenset(r.owning_page_uid for r in results))


@dataclass
class PlanOutcome:
    """Combined output of a plan plus per-step provenance."""

    results: list[SearchResult]
    warnings: list[str] = field(default_factory=list)
    step_results: dict[int, list[SearchResult]] = field(default_factory=dict)
    failed_steps: list[int] = field(default_factory=list)


class PlanExecutor:
    """
    Executes query plans.

    Usage:
        executor = PlanExecutor(tools, SemanticExpander(llm))
        outcome = await executor.execute(plan, prior=current_results)
    """

    def __init__(self, tools: SearchToolSet, semantic_expander: SemanticExpander | None = None):
        """
        Initialize plan executor.

        Args:
            tools: Search tool set bound to the request's access policy
            semantic_expander: Resolves `~`/`~~` variants before each tool call
        """
        self.tools = tools
        self.semantic_expander = semantic_expander or SemanticExpander()

    async def execute(
        self, plan: QueryPlan, prior: list[SearchResult] | None = None
    ) -> PlanOutcome:
        """
        Execute a plan.

        Args:
            plan: Plan to execute
            prior: Current results of the conversation (`@results`)

        Returns:
            PlanOutcome whose results are tagged final

        Raises:
            QueryExecutionError: A step failed outside a UNION branch
            PlanError: `@results` without prior results
        """
        outcome = PlanOutcome(results=[])

        if plan.combine is None:
            results = await self._run_step(plan, 0, None, prior, outcome)
        else:
            results = await self._evaluate(plan, plan.combine, None, prior, outcome)

        outcome.results = [r.with_tag(ResultTag.FINAL) for r in union(results)]
        logger.info(
            f"Executed {plan.strategy.value} plan: {len(outcome.results)} results",
            extra={"strategy": plan.strategy.value, "count": len(outcome.results)},
        )
        return outcome

    async def _evaluate(
        self,
        plan: QueryPlan,
        node: CombineNode | int,
        scope: ScopeRestriction | None,
        prior: list[SearchResult] | None,
        outcome: PlanOutcome,
    ) -> list[SearchResult]:
        if isinstance(node, int):
            return await self._run_step(plan, node, scope, prior, outcome)

        if node.combinator == Combinator.PIPE:
            results: list[SearchResult] = []
            current = scope
            for operand in node.operands:
                results = await self._evaluate(plan, operand, current, prior, outcome)
                current = restriction_of(results)
                if not results:
                    break
            return results

        branches = await asyncio.gather(
            *(self._evaluate(plan, operand, scope, prior, outcome) for operand in node.operands),
            return_exceptions=True,
        )

        evaluated: list[list[SearchResult]] = []
        for operand, branch in zip(node.operands, branches, strict=True):
            if not isinstance(branch, BaseException):
                evaluated.append(branch)
                continue
            if node.combinator != Combinator.UNION or not isinstance(
                branch, QueryExecutionError
            ):
                raise branch
            warning = f"UNION branch {self._label(plan, operand)} failed: {branch.message}"
            logger.warning(warning)
            outcome.warnings.append(warning)

        if not evaluated:
            raise QueryExecutionError(
                "Every UNION branch failed", {"operands": len(node.operands)}
            )
        return combine(node.combinator, *evaluated)

    async def _run_step(
        self,
        plan: QueryPlan,
        index: int,
        scope: ScopeRestriction | None,
        prior: list[SearchResult] | None,
        outcome: PlanOutcome,
    ) -> list[SearchResult]:
        step = plan.steps[index]

        if isinstance(step.params, PriorResultsParams):
            if prior is None:
                raise PlanError("@results used but the conversation has no current results")
            results = prior
            if scope is not None:
                results = [r for r in prior if r.owning_page_uid in scope.page_uids]
        else:
            params = await self.semantic_expander.resolve_params(step.params)
            if (
                isinstance(params, GetNodeDetailsParams | ExtractHierarchyContentParams)
                and params.from_prior_results
            ):
                if prior is None:
                    raise PlanError(f"{params.tool} needs current results")
                params = params.model_copy(
                    update={"uids": tuple(r.uid for r in prior), "from_prior_results": False}
                )
            try:
                output = await self.tools.execute(params, scope)
                results = output.results
                outcome.warnings.extend(output.warnings)
            except ToolError as e:
                if e.kind != ToolErrorKind.EMPTY:
                    outcome.failed_steps.append(index)
                    raise QueryExecutionError(
                        f"{e.tool} failed ({e.kind.value}): {e.message}",
                        {"step": index, "tool": e.tool, "kind": e.kind.value},
                    ) from e
                results = []

        tagged = [r.with_tag(ResultTag.INTERMEDIATE, step_index=index) for r in results]
        outcome.step_results[index] = tagged
        logger.debug(f"Step {index} ({step.label}) returned {len(tagged)} results")
        return tagged

    @staticmethod
    def _label(plan: QueryPlan, node: CombineNode | int) -> str:
        if isinstance(node, int):
            return f"'{plan.steps[node].label}'"
        return node.combinator.value
