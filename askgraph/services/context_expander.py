"""
Context expansion and budgeting.

Enriches results with parent and child content under a character budget
derived from the access policy and the result count:

    total budget      = content_budget_fraction x context window (in chars)
    per-result budget = total / result count, clamped to [floor, ceiling]
    parent slot       = 20% of the per-result budget (blocks only)
    child ceiling     = 500 chars at level 1, x0.7 per level, floor 50

Block references `((uid))` are resolved inline; a reference to a node already
on the current expansion path, or already expanded for this result, stays a
uid-only citation.
"""

import asyncio
from dataclasses import dataclass

from askgraph.core.graph_store.base import GraphStore
from askgraph.core.search.outline import render, truncate_text
from askgraph.core.tokenizer import Tokenizer
from askgraph.models.node import BLOCK_REF, NodeKind, Page, extract_block_refs
from askgraph.models.policy import AccessPolicy
from askgraph.models.results import ContextNode, SearchResult
from askgraph.utils.exceptions import BudgetExceeded
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

PARENT_SHARE = 0.2
CHILD_CEILING = 500
CHILD_DECAY = 0.7
CHILD_FLOOR = 50
MAX_CHILDREN = 10


def child_ceiling(level: int) -> int:
    """Character ceiling of a child at a depth level (1 = direct child)."""
    return max(CHILD_FLOOR, round(CHILD_CEILING * CHILD_DECAY ** (level - 1)))


@dataclass
class _Budget:
    remaining: int
    exhausted: bool = False

    def allowance(self, ceiling: int) -> int:
        if self.remaining <= 0:
            self.exhausted = True
            raise BudgetExceeded("per-result budget exhausted", {"ceiling": ceiling})
        return min(ceiling, self.remaining)

    def spend(self, chars: int) -> None:
        self.remaining -= chars


class ContextExpander:
    """
    Expands and budgets a result list for the downstream model.

    Usage:
        expander = ContextExpander(store, tokenizer, context_window=128000)
        results = await expander.expand(results, AccessPolicy.for_mode("balanced"))
    """

    def __init__(
        self,
        graph_store: GraphStore,
        tokenizer: Tokenizer | None = None,
        context_window: int = 128000,
    ):
        """
        Initialize context expander.

        Args:
            graph_store: Store providing parents, children and referenced nodes
            tokenizer: Converts the token context window to characters
            context_window: Context window of the consuming model, in tokens
        """
        self.graph_store = graph_store
        self.tokenizer = tokenizer or Tokenizer()
        self.context_window = context_window

    def total_budget(self, policy: AccessPolicy) -> int:
        """Character budget of a whole result set."""
        return int(policy.content_budget_fraction * self.tokenizer.chars_for_tokens(self.context_window))

    def per_result_budget(self, policy: AccessPolicy, result_count: int) -> int:
        """Character budget of one result, never below the policy floor."""
        if result_count <= 0 or not policy.shows_content:
            return 0
        share = self.total_budget(policy) // result_count
        return max(policy.min_result_budget, min(share, policy.max_result_budget))

    async def expand(self, results: list[SearchResult], policy: AccessPolicy) -> list[SearchResult]:
        """
        Expand results under the policy.

        Args:
            results: Raw results, in published order
            policy: Access policy of the request

        Returns:
            New result objects; private mode returns uids and titles only
        """
        count = len(results)
        if count == 0:
            return []
        if not policy.shows_content:
            return [self._strip(r) for r in results]

        budget = self.per_result_budget(policy, count)
        block_depth = policy.depth_limit(count)
        page_depth = policy.page_depth_limit(count)
        if count > policy.max_results_before_no_expansion:
            block_depth = page_depth = 0

        logger.info(
            f"Expanding {count} results: block depth {block_depth}, page depth {page_depth}, "
            f"{budget} chars per result",
            extra={"count": count, "mode": policy.mode.value, "budget": budget},
        )

        expanded = await asyncio.gather(
            *(
                self._expand_one(r, page_depth if r.kind == NodeKind.PAGE else block_depth, budget)
                for r in results
            )
        )
        return self._fit_total(list(expanded), self.total_budget(policy))

    async def _expand_one(self, result: SearchResult, depth: int, budget_chars: int) -> SearchResult:
        budget = _Budget(remaining=budget_chars)
        path = frozenset({result.uid})
        visited = {result.uid}
        parents: list[ContextNode] = []

        if result.kind == NodeKind.PAGE:
            body = result.title or ""
        else:
            body = await self.resolve_references(result.content or "", path, visited)
            budget.spend(len(body))
            if depth >= 1:
                parents = await self._parent(result.uid, int(budget_chars * PARENT_SHARE), budget)

        children: list[ContextNode] = []
        if depth >= 1:
            children = await self._children(result.uid, depth, 1, budget, path, visited)

        if budget.exhausted:
            logger.debug(f"Budget of {budget_chars} chars exhausted while expanding {result.uid}")

        return result.model_copy(
            update={
                "parents": parents,
                "children": children,
                "expansion_level": depth,
                "expanded_content": render(body, parents, children),
                "truncated": budget.exhausted or _any_truncated(parents + children),
            }
        )

    async def _parent(self, uid: str, limit: int, budget: _Budget) -> list[ContextNode]:
        chain = await self.graph_store.get_parents(uid)
        if not chain:
            return []
        parent = chain[0]
        text = parent.title if isinstance(parent, Page) else parent.content
        cut, truncated = truncate_text(text, limit)
        budget.spend(len(cut))
        return [ContextNode(uid=parent.uid, content=cut, level=1, truncated=truncated)]

    async def _children(
        self,
        uid: str,
        depth: int,
        level: int,
        budget: _Budget,
        path: frozenset[str],
        visited: set[str],
    ) -> list[ContextNode]:
        if level > depth:
            return []

        blocks = await self.graph_store.get_children(uid)
        nodes: list[ContextNode] = []
        for block in blocks[:MAX_CHILDREN]:
            try:
                allowance = budget.allowance(child_ceiling(level))
            except BudgetExceeded:
                break
            child_path = path | {block.uid}
            text = await self.resolve_references(block.content, child_path, visited)
            cut, truncated = truncate_text(text, allowance)
            budget.spend(len(cut))
            grandchildren = await self._children(
                block.uid, depth, level + 1, budget, child_path, visited
            )
            nodes.append(
                ContextNode(
                    uid=block.uid,
                    content=cut,
                    level=level,
                    truncated=truncated,
                    children=grandchildren,
                )
            )
        if len(blocks) > MAX_CHILDREN and nodes:
            nodes[-1] = nodes[-1].model_copy(update={"truncated": True})
        return nodes

    async def resolve_references(self, text: str, path: frozenset[str], visited: set[str]) -> str:
        """
        Replace `((uid))` references with their target content.

        Args:
            text: Block string
            path: Uids on the current expansion path (rendered as citations)
            visited: Uids already expanded for this result (updated in place)

        Returns:
            Text with resolvable references inlined
        """
        uids = [u for u in dict.fromkeys(extract_block_refs(text)) if u not in path and u not in visited]
        if not uids:
            return text

        nodes = await self.graph_store.get_nodes(uids)
        resolved: dict[str, str] = {}
        for ref_uid in uids:
            node = nodes.get(ref_uid)
            if node is None:
                continue
            visited.add(ref_uid)
            target = node.title if isinstance(node, Page) else node.content
            resolved[ref_uid] = await self.resolve_references(target, path | {ref_uid}, visited)

        return BLOCK_REF.sub(lambda m: resolved.get(m.group(1), m.group(0)), text)

    def _fit_total(self, results: list[SearchResult], total_budget: int) -> list[SearchResult]:
        total = sum(len(r.expanded_content or "") for r in results)
        if total_budget <= 0 or total <= total_budget:
            return results

        factor = total_budget / total
        logger.warning(
            f"Expanded results use {total} chars of a {total_budget} char budget; "
            f"truncating to {factor:.0%}",
            extra={"total": total, "budget": total_budget},
        )
        fitted = []
        for result in results:
            text = result.expanded_content or ""
            cut, truncated = truncate_text(text, int(len(text) * factor))
            fitted.append(
                result.model_copy(
                    update={"expanded_content": cut, "truncated": result.truncated or truncated}
                )
            )
        return fitted

    @staticmethod
    def _strip(result: SearchResult) -> SearchResult:
        return result.model_copy(
            update={
                "content": None,
                "expanded_content": None,
                "parents": [],
                "children": [],
                "expansion_level": 0,
            }
        )


def _any_truncated(nodes: list[ContextNode]) -> bool:
    return any(node.truncated or _any_truncated(node.children) for node in nodes)
