"""
Ask Your Graph engine - the single entry point for collaborators.

Pipeline per request:
    parse (symbolic, or natural language) -> apply intent modifiers -> plan
    -> execute (with automatic expansion) -> sample/limit -> expand -> publish
"""

import random
import time
from datetime import datetime

from askgraph.config import Config
from askgraph.core.graph_store.base import GraphStore
from askgraph.core.llm.base import LLMProvider
from askgraph.core.query.parser import SymbolicQueryParser, looks_symbolic
from askgraph.core.search.tools import SearchToolSet
from askgraph.core.tokenizer import Tokenizer
from askgraph.models.intent import AutomaticExpansionMode, ParsedIntent, Sampling
from askgraph.models.plan import PlanStep, QueryPlan, Strategy, ToolParams
from askgraph.models.policy import AccessMode, AccessPolicy
from askgraph.models.query import (
    Combinator,
    CompositeQuery,
    PriorResults,
    QueryExpression,
    SearchQuery,
)
from askgraph.models.results import MergeMode, ResultSet, SearchResult
from askgraph.services.automatic_expansion import AutomaticExpansion
from askgraph.services.combinator import PlanExecutor, PlanOutcome
from askgraph.services.context_expander import ContextExpander
from askgraph.services.intent_parser import IntentParser
from askgraph.services.planner import QueryPlanner
from askgraph.services.result_lifecycle import ConversationState
from askgraph.services.semantic_expansion import SemanticExpander
from askgraph.utils.exceptions import ParseError
from askgraph.utils.id_generator import generate_request_id
from askgraph.utils.logger import get_logger, request_context

logger = get_logger(__name__)

_NARROWING = (Combinator.INTERSECTION, Combinator.DIFFERENCE, Combinator.PIPE)


def apply_modifiers(expression: QueryExpression, intent: ParsedIntent) -> QueryExpression:
    """
    Attach request-level page scope and date window to every search of an
    expression, without overriding what the query states itself.
    """
    if isinstance(expression, CompositeQuery):
        return expression.model_copy(
            update={"operands": tuple(apply_modifiers(op, intent) for op in expression.operands)}
        )
    if isinstance(expression, PriorResults) or expression.raw is not None:
        return expression

    update: dict = {}
    if intent.page_scope is not None and expression.page_scope is None:
        update["page_scope"] = intent.page_scope
    if intent.date_filter is not None and expression.date_filter is None:
        update["date_filter"] = intent.date_filter
    return expression.model_copy(update=update) if update else expression


def uses_prior_results(expression: QueryExpression) -> bool:
    if isinstance(expression, PriorResults):
        return True
    if isinstance(expression, CompositeQuery):
        return any(uses_prior_results(op) for op in expression.operands)
    return False


class AskGraphEngine:
    """
    Query compilation and adaptive retrieval over a block graph.

    Usage:
        engine = AskGraphEngine(graph_store, llm, config)
        await engine.initialize()
        state = ConversationState()
        results = await engine.run_query("[[meeting]] + frontend|UX", policy, state)
    """

    def __init__(
        self,
        graph_store: GraphStore,
        llm: LLMProvider | None = None,
        config: Config | None = None,
        tokenizer: Tokenizer | None = None,
    ):
        """
        Initialize the engine.

        Args:
            graph_store: Graph store adapter (read-only from here)
            llm: Optional LLM for intent extraction and semantic expansion
            config: Configuration object
            tokenizer: Token counter for budgets (default from config)
        """
        self.graph_store = graph_store
        self.llm = llm
        self.config = config or Config()
        self.tokenizer = tokenizer or Tokenizer(self.config.tokenizer)

        self.symbolic_parser = SymbolicQueryParser()
        self.intent_parser = IntentParser(llm, self.symbolic_parser)
        self.planner = QueryPlanner()
        self.semantic_expander = SemanticExpander(llm)
        self.context_expander = ContextExpander(
            graph_store, self.tokenizer, context_window=self.config.llm.context_window
        )
        self._random = random.Random(self.config.search.random_seed)

    async def initialize(self) -> None:
        """Initialize the graph store."""
        logger.info("Initializing Ask Your Graph engine")
        await self.graph_store.initialize()
        logger.info("Ask Your Graph engine ready")

    async def close(self) -> None:
        """Close the store and the LLM client."""
        logger.info("Shutting down Ask Your Graph engine")
        await self.graph_store.close()
        if self.llm is not None:
            await self.llm.close()

    def default_policy(self, mode: AccessMode | str | None = None) -> AccessPolicy:
        """Access policy of `mode` (default: the configured mode) with configured budgets."""
        access = self.config.access
        mode = AccessMode(mode or access.default_mode)
        fractions = {
            AccessMode.BALANCED: access.balanced_budget_fraction,
            AccessMode.FULL: access.full_budget_fraction,
        }
        return AccessPolicy.for_mode(
            mode,
            content_budget_fraction=fractions.get(mode),
            min_result_budget=access.min_result_budget,
            max_result_budget=access.max_result_budget,
        )

    async def run_query(
        self,
        request_text: str,
        access_policy: AccessPolicy | None = None,
        conversation_state: ConversationState | None = None,
        *,
        merge_mode: MergeMode | str = MergeMode.REPLACE,
        expansion_mode: AutomaticExpansionMode | str | None = None,
        now: datetime | None = None,
    ) -> ResultSet:
        """
        Run one request end to end and publish its results.

        Args:
            request_text: Symbolic or natural-language request
            access_policy: Policy of this request (default: configured mode)
            conversation_state: Explicit conversation state (a fresh one if None)
            merge_mode: add or replace the conversation's current results
            expansion_mode: Automatic expansion mode (default: configured mode)
            now: Invocation-time clock for relative dates

        Returns:
            The published ResultSet; zero-result sets are returned without
            replacing the current results

        Raises:
            ParseError: Malformed request (after the natural-language fallback)
            PlanError: Unsupported combination, raised before any store call
            QueryExecutionError: A tool failure that could not be degraded
        """
        policy = access_policy or self.default_policy()
        state = conversation_state or ConversationState(concurrency=self.config.search.concurrent_requests)
        mode = AutomaticExpansionMode(expansion_mode or self.config.search.automatic_expansion_mode)

        return await state.run(
            lambda: self._run(request_text, policy, state, MergeMode(merge_mode), mode, now)
        )

    async def _run(
        self,
        request_text: str,
        policy: AccessPolicy,
        state: ConversationState,
        merge_mode: MergeMode,
        expansion_mode: AutomaticExpansionMode,
        now: datetime | None,
    ) -> ResultSet:
        with request_context(generate_request_id()):
            return await self._run_request(
                request_text, policy, state, merge_mode, expansion_mode, now
            )

    async def _run_request(
        self,
        request_text: str,
        policy: AccessPolicy,
        state: ConversationState,
        merge_mode: MergeMode,
        expansion_mode: AutomaticExpansionMode,
        now: datetime | None,
    ) -> ResultSet:
        start = time.perf_counter()
        logger.info(f"Request ({policy.mode.value}): {request_text!r}")

        intent = await self.interpret(request_text, now)
        expression = apply_modifiers(intent.expression, intent)

        prior = state.lifecycle.current()
        prior_results = prior.results if prior is not None else None
        executor = PlanExecutor(
            SearchToolSet(self.graph_store, self.config.search, policy), self.semantic_expander
        )
        plans: list[QueryPlan] = []

        async def execute(query: QueryExpression, widen: bool = False) -> tuple[Strategy, PlanOutcome]:
            plan = self.planner.plan(
                query,
                request=request_text,
                has_prior_results=prior_results is not None,
                widen=widen,
            )
            plans.append(plan)
            return plan.strategy, await executor.execute(plan, prior_results)

        attempted: list[str] = []
        if isinstance(expression, SearchQuery):
            expansion = AutomaticExpansion(expansion_mode)
            expanded_run = await expansion.run(expression, execute, exact=intent.exact)
            outcome, attempted = expanded_run.outcome, expanded_run.attempted
        else:
            _, outcome = await execute(expression)

        found = outcome.results
        selected = self.select(found, intent.result_limit, intent.sampling)
        expanded = await self.context_expander.expand(selected, policy)

        result_set = ResultSet(
            request=request_text,
            strategy=plans[-1].strategy,
            results=expanded,
            attempted_expansions=attempted,
            warnings=outcome.warnings,
            total_found=len(found),
        )

        if not result_set.results:
            published = result_set
        elif (
            isinstance(expression, CompositeQuery)
            and expression.combinator in _NARROWING
            and uses_prior_results(expression)
            and prior is not None
            and set(result_set.uids) <= set(prior.uids)
        ):
            published = state.lifecycle.narrow(result_set.uids, request_text)
        else:
            published = state.lifecycle.merge(result_set, merge_mode)

        elapsed = time.perf_counter() - start
        logger.info(
            f"Request done: {len(published.results)} results "
            f"({result_set.total_found} found) in {elapsed:.2f}s"
        )
        return published

    async def run_tool(
        self,
        params: ToolParams,
        access_policy: AccessPolicy | None = None,
        conversation_state: ConversationState | None = None,
    ) -> ResultSet:
        """
        Run one catalogue tool directly, bypassing parsing and planning.

        Used for inspection tools (node details, hierarchy outlines) over
        explicit uids or the conversation's current results. The returned set
        is not published and is not context-expanded.

        Args:
            params: Tool parameters
            access_policy: Policy of this call (default: configured mode)
            conversation_state: Conversation whose current results
                `from_prior_results` and `@results` refer to

        Returns:
            ResultSet of the tool's results

        Raises:
            PlanError: Prior results requested but the conversation has none
            QueryExecutionError: The tool failed
        """
        policy = access_policy or self.default_policy()
        prior = conversation_state.lifecycle.current() if conversation_state else None
        request = f"tool:{params.tool}"
        plan = QueryPlan(
            strategy=Strategy.SIMPLE,
            steps=(PlanStep(index=0, label=params.tool, params=params),),
            request=request,
        )
        executor = PlanExecutor(
            SearchToolSet(self.graph_store, self.config.search, policy), self.semantic_expander
        )
        with request_context(generate_request_id()):
            logger.info(f"Running {params.tool} directly")
            outcome = await executor.execute(plan, prior.results if prior is not None else None)
        return ResultSet(
            request=request,
            strategy=plan.strategy,
            results=outcome.results,
            warnings=outcome.warnings,
            total_found=len(outcome.results),
        )

    async def interpret(self, request_text: str, now: datetime | None = None) -> ParsedIntent:
        """
        Turn a request into a ParsedIntent.

        Symbolic-looking requests go to the symbolic parser; on ParseError
        they fall back to natural language when configured to.

        Raises:
            ParseError: The request cannot be interpreted
        """
        if looks_symbolic(request_text):
            try:
                return ParsedIntent(expression=self.symbolic_parser.parse(request_text))
            except ParseError as e:
                if not self.config.search.fallback_to_natural_language:
                    raise
                logger.warning(
                    f"Symbolic parse failed at {e.position} ({e.reason}); "
                    "trying natural language"
                )
                try:
                    return await self.intent_parser.parse(request_text, now)
                except ParseError:
                    raise e from None

        return await self.intent_parser.parse(request_text, now)

    def select(
        self, results: list[SearchResult], limit: int | None, sampling: Sampling
    ) -> list[SearchResult]:
        """Apply the requested (or default) result limit, sequentially or at random."""
        limit = limit or self.config.search.default_result_limit
        if len(results) <= limit:
            return results
        if sampling == Sampling.RANDOM:
            picked = sorted(self._random.sample(range(len(results)), limit))
            return [results[i] for i in picked]
        return results[:limit]
