"""
Search tool set.

A closed catalogue of read-only retrieval operations. `SearchToolSet.execute`
is the single dispatch point: it compiles the tool's parameters into SQL over
the graph store, runs it under the per-tool timeout and maps rows to raw
SearchResults (no context expansion yet).
"""

import asyncio
import re
import time
from dataclasses import dataclass, field

from askgraph.config import SearchConfig
from askgraph.core.graph_store.base import GraphStore
from askgraph.core.graph_store.sqlite_store import from_millis
from askgraph.core.search.compiler import UNLIMITED_DEPTH, ConditionCompiler, DAILY_DATE_SQL
from askgraph.core.search.outline import render, truncate_text
from askgraph.models.node import NodeKind
from askgraph.models.plan import (
    ExecuteRawQueryParams,
    ExtractHierarchyContentParams,
    ExtractPageReferencesParams,
    FindBlocksByContentParams,
    FindBlocksWithHierarchyParams,
    FindDailyNotesByPeriodParams,
    FindPagesByContentParams,
    FindPagesByTitleParams,
    GetNodeDetailsParams,
    PriorResultsParams,
    ScopeRestriction,
    SortField,
    ToolName,
    ToolParams,
)
from askgraph.models.policy import AccessPolicy
from askgraph.models.query import ConditionNode, DateField, DateFilter, HierarchyOp, is_negative
from askgraph.models.results import ContextNode, SearchResult
from askgraph.utils.exceptions import GraphStoreError, ToolError, ToolErrorKind
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

# uid, kind, title, string, page_uid, page_title, page_is_daily, created, modified, parent_uid
BLOCK_COLUMNS = (
    "n.uid, n.kind, n.title, n.string, n.page_uid, pg.title, pg.is_daily, "
    "n.created, n.modified, n.parent_uid"
)
PAGE_COLUMNS = (
    "p.uid, p.kind, p.title, NULL, p.uid, p.title, p.is_daily, p.created, p.modified, NULL"
)

_CONTENT_COLUMN = re.compile(r"\bstring\b", re.IGNORECASE)

_SORT_COLUMNS = {
    SortField.CREATION: "n.created",
    SortField.MODIFICATION: "n.modified",
    SortField.ALPHABETICAL: "lower(n.string)",
}


@dataclass
class ToolOutput:
    """Results of one tool call."""

    tool: ToolName
    results: list[SearchResult]
    elapsed: float = 0.0
    warnings: list[str] = field(default_factory=list)


def row_to_result(row: tuple) -> SearchResult:
    """Map a BLOCK_COLUMNS/PAGE_COLUMNS row to a raw SearchResult."""
    uid, kind, title, string, page_uid, page_title, is_daily, created, modified, _ = row[:10]
    return SearchResult(
        uid=uid,
        kind=NodeKind(kind),
        content=string,
        title=title,
        page_uid=page_uid,
        page_title=page_title,
        is_daily=bool(is_daily),
        created=from_millis(created),
        modified=from_millis(modified),
    )


class SearchToolSet:
    """
    Executes search tools against a graph store.

    Usage:
        tools = SearchToolSet(store, config.search, policy)
        output = await tools.execute(FindBlocksByContentParams(tree=tree))
    """

    def __init__(
        self,
        graph_store: GraphStore,
        config: SearchConfig | None = None,
        access_policy: AccessPolicy | None = None,
        compiler: ConditionCompiler | None = None,
    ):
        """
        Initialize the tool set.

        Args:
            graph_store: Store exposing the read-only query primitive
            config: Timeouts and result caps
            access_policy: Policy of the current request (raw query visibility)
            compiler: Condition compiler (default: ConditionCompiler())
        """
        self.graph_store = graph_store
        self.config = config or SearchConfig()
        self.access_policy = access_policy
        self.compiler = compiler or ConditionCompiler()

    async def execute(
        self, params: ToolParams, scope: ScopeRestriction | None = None
    ) -> ToolOutput:
        """
        Run one tool call.

        Args:
            params: Tool parameters (the `tool` field selects the tool)
            scope: Optional page restriction from a PIPE predecessor

        Returns:
            ToolOutput with raw results, ordered by creation time then uid

        Raises:
            ToolError: timeout, malformed (bad query), empty (no results) or
                forbidden (raw query rejected by the access policy)
        """
        tool = ToolName(params.tool)
        if isinstance(params, PriorResultsParams):
            raise ToolError(
                ToolErrorKind.MALFORMED, tool.value, "prior results are resolved by the executor"
            )

        hierarchical = tool == ToolName.FIND_BLOCKS_WITH_HIERARCHY
        timeout = self.config.hierarchy_timeout if hierarchical else self.config.tool_timeout

        start = time.perf_counter()
        try:
            results = await asyncio.wait_for(self._dispatch(params, scope), timeout=timeout)
        except TimeoutError as e:
            logger.warning(
                f"Tool {tool.value} timed out after {timeout}s",
                extra={"tool": tool.value, "timeout": timeout},
            )
            raise ToolError(ToolErrorKind.TIMEOUT, tool.value, context={"timeout": timeout}) from e
        except GraphStoreError as e:
            raise ToolError(ToolErrorKind.MALFORMED, tool.value, e.message, e.context) from e
        elapsed = time.perf_counter() - start

        output = ToolOutput(tool=tool, results=results, elapsed=elapsed)
        if hierarchical and elapsed > self.config.slow_hierarchy_threshold:
            output.warnings.append(
                f"Hierarchical search took {elapsed:.1f}s; results may be slow on large graphs"
            )
            logger.warning(f"Slow hierarchical search: {elapsed:.2f}s")

        logger.info(
            f"Tool {tool.value} returned {len(results)} results in {elapsed * 1000:.0f}ms",
            extra={"tool": tool.value, "count": len(results), "elapsed": elapsed},
        )
        if not results:
            raise ToolError(ToolErrorKind.EMPTY, tool.value, context={"elapsed": elapsed})
        return output

    async def _dispatch(self, params: ToolParams, scope: ScopeRestriction | None) -> list[SearchResult]:
        if isinstance(params, FindPagesByTitleParams):
            return await self.find_pages_by_title(params, scope)
        if isinstance(params, FindBlocksByContentParams):
            return await self.find_blocks_by_content(params, scope)
        if isinstance(params, FindBlocksWithHierarchyParams):
            return await self.find_blocks_with_hierarchy(params, scope)
        if isinstance(params, FindPagesByContentParams):
            return await self.find_pages_by_content(params, scope)
        if isinstance(params, FindDailyNotesByPeriodParams):
            return await self.find_daily_notes_by_period(params, scope)
        if isinstance(params, ExtractPageReferencesParams):
            return await self.extract_page_references(params, scope)
        if isinstance(params, ExecuteRawQueryParams):
            return await self.execute_raw_query(params)
        if isinstance(params, GetNodeDetailsParams):
            return await self.get_node_details(params)
        if isinstance(params, ExtractHierarchyContentParams):
            return await self.extract_hierarchy_content(params)
        raise ToolError(ToolErrorKind.MALFORMED, str(params.tool), "unknown tool")

    # ═══════════════════════════════════════════════════════════
    # PAGE TOOLS
    # ═══════════════════════════════════════════════════════════

    async def find_pages_by_title(
        self, params: FindPagesByTitleParams, scope: ScopeRestriction | None = None
    ) -> list[SearchResult]:
        """Pages whose title satisfies the tree."""
        where, where_params = self.compiler.title_where(params.tree, "p")
        return await self._pages(where, where_params, params.page_scope, params.date_filter, scope)

    async def find_pages_by_content(
        self, params: FindPagesByContentParams, scope: ScopeRestriction | None = None
    ) -> list[SearchResult]:
        """Pages whose blocks satisfy the tree (per leaf, or all in one block)."""
        if params.same_block:
            where, where_params = self.compiler.page_block_where(params.tree, "p")
        else:
            where, where_params = self.compiler.page_content_where(params.tree, "p")
        return await self._pages(where, where_params, params.page_scope, params.date_filter, scope)

    async def find_daily_notes_by_period(
        self, params: FindDailyNotesByPeriodParams, scope: ScopeRestriction | None = None
    ) -> list[SearchResult]:
        """Daily Note Pages in the window, in one batched query."""
        if params.start and params.end and params.start > params.end:
            raise ToolError(
                ToolErrorKind.MALFORMED,
                ToolName.FIND_DAILY_NOTES_BY_PERIOD.value,
                "period start is after its end",
            )

        date_filter = DateFilter(field=params.field, start=params.start, end=params.end)
        filters, filter_params = self.compiler.page_filters(
            "p", "p", date_filter=date_filter, restriction=scope
        )
        order = DAILY_DATE_SQL.format(a="p") if params.field == DateField.DATE else "p.created"
        rows = await self.graph_store.query(
            f"SELECT {PAGE_COLUMNS} FROM nodes p "
            f"WHERE p.kind = 'page' AND p.is_daily = 1 AND {filters} "
            f"ORDER BY {order}, p.uid LIMIT ?",
            [*filter_params, self.config.max_results],
        )
        return [row_to_result(row) for row in rows]

    async def extract_page_references(
        self, params: ExtractPageReferencesParams, scope: ScopeRestriction | None = None
    ) -> list[SearchResult]:
        """Pages referenced by matching blocks, with reference counts."""
        where, where_params = ("1", [])
        if params.tree is not None:
            where, where_params = self.compiler.block_where(params.tree, "n")
        filters, filter_params = self.compiler.page_filters(
            "pg", "n", params.page_scope, params.date_filter, scope
        )
        rows = await self.graph_store.query(
            f"SELECT {PAGE_COLUMNS}, COUNT(*) AS ref_count "
            f"FROM nodes n "
            f"JOIN nodes pg ON pg.uid = n.page_uid "
            f"JOIN refs r ON r.source_uid = n.uid "
            f"JOIN nodes p ON p.uid = r.target_uid AND p.kind = 'page' "
            f"WHERE n.kind = 'block' AND {where} AND {filters} "
            f"GROUP BY p.uid ORDER BY ref_count DESC, p.title LIMIT ?",
            [*where_params, *filter_params, self.config.max_results],
        )
        results = []
        for row in rows:
            result = row_to_result(row)
            result.reference_count = row[10]
            results.append(result)
        return results

    async def _pages(self, where, where_params, page_scope, date_filter, scope) -> list[SearchResult]:
        filters, filter_params = self.compiler.page_filters(
            "p", "p", page_scope, date_filter, scope
        )
        rows = await self.graph_store.query(
            f"SELECT {PAGE_COLUMNS} FROM nodes p "
            f"WHERE p.kind = 'page' AND {where} AND {filters} "
            f"ORDER BY p.created, p.uid LIMIT ?",
            [*where_params, *filter_params, self.config.max_results],
        )
        return [row_to_result(row) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # BLOCK TOOLS
    # ═══════════════════════════════════════════════════════════

    async def find_blocks_by_content(
        self, params: FindBlocksByContentParams, scope: ScopeRestriction | None = None
    ) -> list[SearchResult]:
        """Blocks whose own content satisfies the tree, in the requested order."""
        where, where_params = self.compiler.block_where(params.tree, "n")
        filters, filter_params = self.compiler.page_filters(
            "pg", "n", params.page_scope, params.date_filter, scope
        )
        if params.exclude_block_uid:
            filters += " AND n.uid != ?"
            filter_params = [*filter_params, params.exclude_block_uid]
        order = f"{_SORT_COLUMNS[params.sort_by]} {params.sort_order.value.upper()}, n.uid"

        rows = await self.graph_store.query(
            f"SELECT {BLOCK_COLUMNS} FROM nodes n JOIN nodes pg ON pg.uid = n.page_uid "
            f"WHERE n.kind = 'block' AND {where} AND {filters} "
            f"ORDER BY {order} LIMIT ?",
            [*where_params, *filter_params, self.config.max_results],
        )
        results = [row_to_result(row) for row in rows]

        if params.include_children:
            await self._attach_children(results)
        if params.include_parents:
            await self._attach_parents(results, {row[0]: row[9] for row in rows})
        return results

    async def find_blocks_with_hierarchy(
        self, params: FindBlocksWithHierarchyParams, scope: ScopeRestriction | None = None
    ) -> list[SearchResult]:
        """Blocks satisfying a directional or flexible hierarchy condition."""
        filters, filter_params = self.compiler.page_filters(
            "pg", "n", params.page_scope, params.date_filter, scope
        )
        if params.op is None:
            ctes, match, cte_params = self._flexible_legs(params.legs)
        else:
            ctes, match, cte_params = self._directional(params)

        rows = await self.graph_store.query(
            f"WITH RECURSIVE {ctes} "
            f"SELECT {BLOCK_COLUMNS} FROM nodes n JOIN nodes pg ON pg.uid = n.page_uid "
            f"WHERE n.kind = 'block' AND {match} AND {filters} "
            f"ORDER BY n.created, n.uid LIMIT ?",
            [*cte_params, *filter_params, self.config.max_results],
        )
        return [row_to_result(row) for row in rows]

    def _directional(self, params: FindBlocksWithHierarchyParams) -> tuple[str, str, list]:
        """CTEs walking from scope matches to nodes at the operator's positions."""
        if params.scope is None or params.target is None:
            raise ToolError(
                ToolErrorKind.MALFORMED,
                ToolName.FIND_BLOCKS_WITH_HIERARCHY.value,
                "directional hierarchy search needs scope and target",
            )
        op = params.op
        depth = params.max_depth if params.max_depth is not None else UNLIMITED_DEPTH
        if op == HierarchyOp.FLEXIBLE:
            depth = UNLIMITED_DEPTH

        scope_sql, scope_params = self.compiler.block_where(params.scope, "s")
        target_sql, target_params = self.compiler.block_where(params.target, "t")

        down = (
            "down(root, uid, depth) AS ("
            "SELECT c.uid, c.uid, 0 FROM cand c "
            "UNION ALL "
            "SELECT d.root, k.uid, d.depth + 1 FROM down d JOIN nodes k ON k.parent_uid = d.uid "
            "WHERE d.depth < ?)"
        )
        up = (
            "up(root, uid, depth) AS ("
            "SELECT c.uid, c.uid, 0 FROM cand c "
            "UNION ALL "
            "SELECT u.root, k.parent_uid, u.depth + 1 FROM up u JOIN nodes k ON k.uid = u.uid "
            "WHERE k.parent_uid IS NOT NULL AND u.depth < ?)"
        )
        cand = f"cand(uid) AS (SELECT s.uid FROM nodes s WHERE s.kind = 'block' AND {scope_sql})"

        if op in (HierarchyOp.CHILD, HierarchyOp.DESCENDANT, HierarchyOp.FLEXIBLE):
            min_depth = 0 if op == HierarchyOp.FLEXIBLE else 1
            ctes = f"{cand}, {down}"
            walk = f"SELECT d.root FROM down d JOIN nodes t ON t.uid = d.uid WHERE d.depth >= {min_depth}"
            params_ = [*scope_params, depth]
        elif op in (HierarchyOp.PARENT, HierarchyOp.ANCESTOR):
            ctes = f"{cand}, {up}"
            walk = "SELECT u.root FROM up u JOIN nodes t ON t.uid = u.uid WHERE u.depth >= 1"
            params_ = [*scope_params, depth]
        else:
            ctes = f"{cand}, {down}, {up}"
            walk = (
                "SELECT x.root FROM (SELECT root, uid, depth FROM down "
                "UNION ALL SELECT root, uid, depth FROM up) x "
                "JOIN nodes t ON t.uid = x.uid WHERE x.depth >= 1"
            )
            params_ = [*scope_params, 1, 1]

        match = f"n.uid IN ({walk} AND t.kind = 'block' AND {target_sql})"
        return ctes, match, [*params_, *target_params]

    def _flexible_legs(self, legs: tuple[ConditionNode, ...]) -> tuple[str, str, list]:
        """
        Every positive leg holds on the block, an ancestor or a descendant; the
        block itself satisfies at least one positive leg and every negated leg.
        """
        positive = [leg for leg in legs if not is_negative(leg)]
        negative = [leg for leg in legs if is_negative(leg)]
        if not positive:
            raise ToolError(
                ToolErrorKind.MALFORMED,
                ToolName.FIND_BLOCKS_WITH_HIERARCHY.value,
                "hierarchical search needs at least one positive condition",
            )

        own = [self.compiler.block_where(leg, "s") for leg in positive]
        cand_sql = "(" + " OR ".join(sql for sql, _ in own) + ")"
        cand_params = [p for _, leg_params in own for p in leg_params]
        for leg in negative:
            sql, leg_params = self.compiler.block_where(leg, "s")
            cand_sql += f" AND {sql}"
            cand_params.extend(leg_params)

        ctes = (
            f"cand(uid) AS (SELECT s.uid FROM nodes s WHERE s.kind = 'block' AND {cand_sql}), "
            "up(root, uid, depth) AS ("
            "SELECT c.uid, c.uid, 0 FROM cand c "
            "UNION ALL "
            "SELECT u.root, k.parent_uid, u.depth + 1 FROM up u JOIN nodes k ON k.uid = u.uid "
            f"WHERE k.parent_uid IS NOT NULL AND u.depth < {UNLIMITED_DEPTH}), "
            "down(root, uid, depth) AS ("
            "SELECT c.uid, c.uid, 0 FROM cand c "
            "UNION ALL "
            "SELECT d.root, k.uid, d.depth + 1 FROM down d JOIN nodes k ON k.parent_uid = d.uid "
            f"WHERE d.depth < {UNLIMITED_DEPTH}), "
            "related(root, uid) AS (SELECT root, uid FROM up UNION SELECT root, uid FROM down)"
        )

        clauses = ["n.uid IN (SELECT uid FROM cand)"]
        match_params: list = []
        for leg in positive:
            sql, leg_params = self.compiler.block_where(leg, "t")
            clauses.append(
                "EXISTS (SELECT 1 FROM related rel JOIN nodes t ON t.uid = rel.uid "
                f"WHERE rel.root = n.uid AND {sql})"
            )
            match_params.extend(leg_params)
        return ctes, " AND ".join(clauses), [*cand_params, *match_params]

    async def _attach_children(self, results: list[SearchResult]) -> None:
        uids = [r.uid for r in results]
        if not uids:
            return
        rows = await self.graph_store.query(
            f"SELECT uid, string, parent_uid FROM nodes "
            f"WHERE parent_uid IN ({','.join('?' * len(uids))}) ORDER BY ord, uid",
            uids,
        )
        children: dict[str, list[ContextNode]] = {}
        for uid, string, parent in rows:
            children.setdefault(parent, []).append(ContextNode(uid=uid, content=string or ""))
        for result in results:
            result.children = children.get(result.uid, [])

    async def _attach_parents(self, results: list[SearchResult], parent_of: dict[str, str]) -> None:
        parent_uids = sorted({p for p in parent_of.values() if p})
        if not parent_uids:
            return
        rows = await self.graph_store.query(
            f"SELECT uid, kind, title, string FROM nodes "
            f"WHERE uid IN ({','.join('?' * len(parent_uids))})",
            parent_uids,
        )
        parents = {
            uid: ContextNode(uid=uid, content=(title if kind == "page" else string) or "")
            for uid, kind, title, string in rows
        }
        for result in results:
            parent = parents.get(parent_of.get(result.uid))
            result.parents = [parent] if parent else []

    # ═══════════════════════════════════════════════════════════
    # RAW QUERY
    # ═══════════════════════════════════════════════════════════

    async def execute_raw_query(self, params: ExecuteRawQueryParams) -> list[SearchResult]:
        """
        Run a directly supplied read-only query.

        The first column of every row is read as a node uid. In private mode,
        queries touching block content are rejected.
        """
        if not self._shows_content() and _CONTENT_COLUMN.search(params.query):
            raise ToolError(
                ToolErrorKind.FORBIDDEN,
                ToolName.EXECUTE_RAW_QUERY.value,
                "Raw queries reading block content are not allowed in private mode",
            )

        rows = await self.graph_store.query(params.query)
        uids = list(dict.fromkeys(row[0] for row in rows if row and isinstance(row[0], str)))
        node_rows = await self._rows_by_uid(uids[: self.config.max_results])
        return [row_to_result(row) for row in node_rows]

    # ═══════════════════════════════════════════════════════════
    # NODE TOOLS
    # ═══════════════════════════════════════════════════════════

    async def get_node_details(self, params: GetNodeDetailsParams) -> list[SearchResult]:
        """
        Details of explicitly selected nodes, in selection order.

        Content is left out when not requested or when the access policy
        hides it; with `include_hierarchy`, direct parents and children are
        attached (uids only when content is hidden).
        """
        rows = await self._rows_by_uid(self._selection(params)[: params.limit])
        results = [row_to_result(row) for row in rows]

        if params.include_hierarchy:
            await self._attach_children(results)
            await self._attach_parents(results, {row[0]: row[9] for row in rows})

        if params.include_content and self._shows_content():
            return results
        return [
            result.model_copy(
                update={
                    "content": None,
                    "parents": [p.model_copy(update={"content": ""}) for p in result.parents],
                    "children": [c.model_copy(update={"content": ""}) for c in result.children],
                }
            )
            for result in results
        ]

    async def extract_hierarchy_content(
        self, params: ExtractHierarchyContentParams
    ) -> list[SearchResult]:
        """
        Outline of the subtree under each selected node.

        Descendants are read breadth-first up to `max_depth` levels and
        `max_blocks` blocks per root; each block is cut to `truncate_length`
        characters. The outline lands in `expanded_content`.
        """
        if not self._shows_content():
            raise ToolError(
                ToolErrorKind.FORBIDDEN,
                ToolName.EXTRACT_HIERARCHY_CONTENT.value,
                "Hierarchy content is not available in private mode",
            )

        rows = await self._rows_by_uid(self._selection(params))
        if not rows:
            return []
        roots = [row[0] for row in rows]
        descendant_rows = await self.graph_store.query(
            "WITH RECURSIVE sub(root, uid, depth) AS ("
            f"SELECT uid, uid, 0 FROM nodes WHERE uid IN ({','.join('?' * len(roots))}) "
            "UNION ALL "
            "SELECT s.root, k.uid, s.depth + 1 FROM sub s JOIN nodes k ON k.parent_uid = s.uid "
            "WHERE s.depth < ?) "
            "SELECT s.root, k.uid, k.parent_uid, k.string, s.depth "
            "FROM sub s JOIN nodes k ON k.uid = s.uid "
            "WHERE s.depth >= 1 AND k.kind = 'block' "
            "ORDER BY s.root, s.depth, k.ord, k.uid",
            [*roots, params.max_depth],
        )

        trees: dict[str, dict[str, ContextNode]] = {root: {} for root in roots}
        top: dict[str, list[str]] = {root: [] for root in roots}
        clipped: set[str] = set()
        for root, uid, parent, string, depth in descendant_rows:
            nodes = trees[root]
            if len(nodes) >= params.max_blocks:
                clipped.add(root)
                continue
            if parent != root and parent not in nodes:
                continue
            content, truncated = truncate_text(string or "", params.truncate_length)
            if truncated:
                clipped.add(root)
            nodes[uid] = ContextNode(uid=uid, content=content, level=depth)
            if parent == root:
                top[root].append(uid)
            else:
                nodes[parent].children.append(nodes[uid])

        results = []
        for row in rows:
            result = row_to_result(row)
            nodes = trees[result.uid]
            children = [nodes[uid] for uid in top[result.uid]]
            body = result.title if result.kind == NodeKind.PAGE else result.content
            results.append(
                result.model_copy(
                    update={
                        "children": children,
                        "expansion_level": max((n.level for n in nodes.values()), default=0),
                        "expanded_content": render(body or "", [], children),
                        "truncated": result.uid in clipped,
                    }
                )
            )
        logger.debug(
            f"Extracted hierarchy of {len(results)} nodes "
            f"({sum(len(nodes) for nodes in trees.values())} blocks)"
        )
        return results

    def _selection(self, params: GetNodeDetailsParams | ExtractHierarchyContentParams) -> list[str]:
        if params.from_prior_results:
            raise ToolError(
                ToolErrorKind.MALFORMED,
                ToolName(params.tool).value,
                "prior results are resolved by the executor",
            )
        return list(dict.fromkeys(params.uids))

    def _shows_content(self) -> bool:
        return self.access_policy is None or self.access_policy.shows_content

    async def _rows_by_uid(self, uids: list[str]) -> list[tuple]:
        """BLOCK_COLUMNS rows of blocks and pages, in the order of `uids`."""
        if not uids:
            return []
        rows = await self.graph_store.query(
            f"SELECT {BLOCK_COLUMNS} FROM nodes n LEFT JOIN nodes pg "
            f"ON pg.uid = CASE WHEN n.kind = 'page' THEN n.uid ELSE n.page_uid END "
            f"WHERE n.uid IN ({','.join('?' * len(uids))})",
            uids,
        )
        by_uid = {row[0]: row for row in rows}
        return [by_uid[uid] for uid in uids if uid in by_uid]
