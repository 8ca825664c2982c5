"""
Condition tree -> SQL compilation over the graph store schema.

Schema (see SQLiteGraphStore):
    nodes(uid, kind, title, string, page_uid, parent_uid, ord, created, modified, is_daily)
    refs(source_uid, target_uid)

Every compiled fragment is a boolean SQL expression over one table alias plus
its positional parameters. Text, regex and attribute leaves use the
`regexp(pattern, value)` function; references use EXISTS over `refs`.
"""

from collections.abc import Callable

from askgraph.core.search.fuzzy import (
    attribute_pattern,
    regex_pattern,
    text_pattern,
    title_pattern,
)
from askgraph.core.graph_store.sqlite_store import to_millis
from askgraph.models.query import (
    Condition,
    ConditionGroup,
    ConditionKind,
    ConditionNode,
    DateField,
    DateFilter,
    LogicOp,
    PageScope,
)
from askgraph.models.plan import ScopeRestriction

# Effectively unlimited traversal depth; also bounds cycles in malformed data
UNLIMITED_DEPTH = 1000

# YYYYMMDD of a MM-DD-YYYY daily note uid
DAILY_DATE_SQL = "(substr({a}.uid, 7, 4) || substr({a}.uid, 1, 2) || substr({a}.uid, 4, 2))"

Fragment = tuple[str, list]


class ConditionCompiler:
    """
    Compiles condition trees into WHERE fragments.

    Usage:
        compiler = ConditionCompiler()
        sql, params = compiler.block_where(tree, "n")
    """

    def compile(self, node: ConditionNode, leaf: Callable[[Condition], Fragment]) -> Fragment:
        """
        Compile a tree with a leaf compiler.

        Args:
            node: Condition tree (no hierarchy operators)
            leaf: Function compiling one positive leaf

        Returns:
            (sql, params)
        """
        if isinstance(node, Condition):
            sql, params = leaf(node)
            return (f"NOT ({sql})", params) if node.negated else (sql, params)

        parts = [self.compile(child, leaf) for child in node.children]
        params = [p for _, child_params in parts for p in child_params]
        if node.op == LogicOp.NOT:
            return f"NOT ({parts[0][0]})", params
        joiner = " AND " if node.op == LogicOp.AND else " OR "
        return "(" + joiner.join(sql for sql, _ in parts) + ")", params

    # ═══════════════════════════════════════════════════════════
    # TREE ENTRY POINTS
    # ═══════════════════════════════════════════════════════════

    def block_where(self, node: ConditionNode, alias: str = "n") -> Fragment:
        """Tree evaluated on a block's own content."""
        return self.compile(node, lambda c: self.block_leaf(c, alias))

    def title_where(self, node: ConditionNode, alias: str = "p") -> Fragment:
        """Tree evaluated on a page title."""
        return self.compile(node, lambda c: self.title_leaf(c, alias))

    def page_content_where(self, node: ConditionNode, alias: str = "p") -> Fragment:
        """Each leaf may be satisfied by any block of the page."""

        def leaf(condition: Condition) -> Fragment:
            sql, params = self.block_leaf(condition, "pb")
            return (
                f"EXISTS (SELECT 1 FROM nodes pb WHERE pb.page_uid = {alias}.uid AND {sql})",
                params,
            )

        return self.compile(node, leaf)

    def page_block_where(self, node: ConditionNode, alias: str = "p") -> Fragment:
        """The whole tree must hold in a single block of the page."""
        sql, params = self.block_where(node, "pb")
        return f"EXISTS (SELECT 1 FROM nodes pb WHERE pb.page_uid = {alias}.uid AND {sql})", params

    # ═══════════════════════════════════════════════════════════
    # LEAVES
    # ═══════════════════════════════════════════════════════════

    def block_leaf(self, condition: Condition, alias: str) -> Fragment:
        """One leaf on a block's content and references."""
        kind = condition.kind
        if kind == ConditionKind.TEXT:
            return f"regexp(?, {alias}.string)", [text_pattern(condition)]
        if kind == ConditionKind.REGEX:
            return f"regexp(?, {alias}.string)", [regex_pattern(condition)]
        if kind == ConditionKind.ATTRIBUTE:
            return f"regexp(?, {alias}.string)", [attribute_pattern(condition)]
        if kind == ConditionKind.BLOCK_REF:
            return (
                f"EXISTS (SELECT 1 FROM refs r WHERE r.source_uid = {alias}.uid "
                f"AND r.target_uid = ?)",
                [condition.value],
            )
        return (
            f"EXISTS (SELECT 1 FROM refs r JOIN nodes rp ON rp.uid = r.target_uid "
            f"WHERE r.source_uid = {alias}.uid AND rp.kind = 'page' AND regexp(?, rp.title))",
            [title_pattern(condition)],
        )

    def title_leaf(self, condition: Condition, alias: str) -> Fragment:
        """One leaf on a page title (page references match the whole title)."""
        kind = condition.kind
        if kind == ConditionKind.TEXT:
            return f"regexp(?, {alias}.title)", [text_pattern(condition)]
        if kind == ConditionKind.REGEX:
            return f"regexp(?, {alias}.title)", [regex_pattern(condition)]
        if kind == ConditionKind.PAGE_REF:
            return f"regexp(?, {alias}.title)", [title_pattern(condition)]
        if kind == ConditionKind.BLOCK_REF:
            return f"{alias}.uid = ?", [condition.value]
        return (
            f"EXISTS (SELECT 1 FROM nodes ab WHERE ab.page_uid = {alias}.uid "
            f"AND regexp(?, ab.string))",
            [attribute_pattern(condition)],
        )

    # ═══════════════════════════════════════════════════════════
    # FILTERS
    # ═══════════════════════════════════════════════════════════

    def page_filters(
        self,
        page_alias: str,
        node_alias: str,
        page_scope: PageScope | None = None,
        date_filter: DateFilter | None = None,
        restriction: ScopeRestriction | None = None,
    ) -> Fragment:
        """
        Page scope, date window and PIPE restriction as one conjunction.

        Args:
            page_alias: Alias of the owning page (the page itself for page queries)
            node_alias: Alias of the matched node (timestamps of created/modified)
            page_scope: Daily-notes or title restriction
            date_filter: Inclusive timestamp window
            restriction: Page uids produced by a previous PIPE step

        Returns:
            (sql, params); "1" when nothing applies
        """
        clauses: list[str] = []
        params: list = []

        if page_scope is not None:
            if page_scope.daily_only:
                clauses.append(f"{page_alias}.is_daily = 1")
            if page_scope.title_pattern:
                if page_scope.title_is_regex:
                    clauses.append(f"regexp(?, {page_alias}.title)")
                    flags = "".join(dict.fromkeys("i" + page_scope.title_flags))
                    params.append(f"(?{flags}){page_scope.title_pattern}")
                else:
                    clauses.append(f"{page_alias}.title = ? COLLATE NOCASE")
                    params.append(page_scope.title_pattern)

        if date_filter is not None:
            sql, date_params = self.date_where(date_filter, page_alias, node_alias)
            clauses.append(sql)
            params.extend(date_params)

        if restriction is not None:
            uids = sorted(restriction.page_uids)
            if not uids:
                clauses.append("0")
            else:
                clauses.append(f"{page_alias}.uid IN ({','.join('?' * len(uids))})")
                params.extend(uids)

        return (" AND ".join(clauses) if clauses else "1"), params

    def date_where(self, date_filter: DateFilter, page_alias: str, node_alias: str) -> Fragment:
        """Inclusive window on created/modified, or on the daily-note day."""
        clauses: list[str] = []
        params: list = []

        if date_filter.field == DateField.DATE:
            day_sql = DAILY_DATE_SQL.format(a=page_alias)
            clauses.append(f"{page_alias}.is_daily = 1")
            if date_filter.start is not None:
                clauses.append(f"{day_sql} >= ?")
                params.append(date_filter.start.strftime("%Y%m%d"))
            if date_filter.end is not None:
                clauses.append(f"{day_sql} <= ?")
                params.append(date_filter.end.strftime("%Y%m%d"))
        else:
            column = f"{node_alias}.{date_filter.field.value}"
            if date_filter.start is not None:
                clauses.append(f"{column} >= ?")
                params.append(to_millis(date_filter.start))
            if date_filter.end is not None:
                clauses.append(f"{column} <= ?")
                params.append(to_millis(date_filter.end))

        return (" AND ".join(clauses) if clauses else "1"), params
