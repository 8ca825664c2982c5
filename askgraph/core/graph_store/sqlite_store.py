"""
SQLite graph store implementation.

Pages and blocks share one `nodes` table (uid is unique across both kinds);
outgoing page/block references live in `refs`. Timestamps are stored as epoch
milliseconds. A `regexp(pattern, value)` SQL function is registered on the
connection so compiled search conditions can match content with Python regexes.
"""

import re
from collections.abc import Sequence
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any

import aiosqlite

from askgraph.core.graph_store.base import GraphStore
from askgraph.models.node import Block, Node, NodeKind, Page, extract_block_refs
from askgraph.utils.exceptions import GraphStoreError
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

NODE_COLUMNS = "uid, kind, title, string, page_uid, parent_uid, ord, created, modified, is_daily"

_READ_ONLY = re.compile(r"^\s*(SELECT|WITH)\b", re.IGNORECASE)
_WRITE_KEYWORD = re.compile(
    r"\b(INSERT|UPDATE|DELETE|DROP|ALTER|CREATE|ATTACH|DETACH|PRAGMA|VACUUM|REINDEX|REPLACE\s+INTO)\b",
    re.IGNORECASE,
)
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _regexp(pattern: str | None, value: str | None) -> int:
    if pattern is None or value is None:
        return 0
    return 1 if _compile(pattern).search(value) else 0


def to_millis(value: datetime) -> int:
    """Datetime -> stored epoch milliseconds."""
    return int(value.timestamp() * 1000)


def from_millis(value: int | None) -> datetime | None:
    """Stored epoch milliseconds -> datetime."""
    return datetime.fromtimestamp(value / 1000) if value is not None else None


def is_read_only(statement: str) -> bool:
    """Whether a statement is a single read-only SELECT/WITH query."""
    if not _READ_ONLY.match(statement):
        return False
    return _WRITE_KEYWORD.search(_STRING_LITERAL.sub("''", statement)) is None


class SQLiteGraphStore(GraphStore):
    """
    SQLite-based graph store for pages, blocks and references.

    Features:
    - Fast local storage
    - Regex matching inside SQL
    - Recursive CTEs for hierarchy traversal
    - Read-only query primitive for search tools
    """

    def __init__(self, db_path: str = "data/graph.db"):
        """
        Initialize SQLite graph store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None

        # Ensure directory exists
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            self.connection = await aiosqlite.connect(self.db_path)
            await self.connection.create_function("regexp", 2, _regexp, deterministic=True)
            await self.connection.execute("PRAGMA journal_mode = WAL")
            await self.connection.commit()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()

        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS nodes (
                uid TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                title TEXT,
                string TEXT,
                page_uid TEXT,
                parent_uid TEXT,
                ord INTEGER DEFAULT 0,
                created INTEGER NOT NULL,
                modified INTEGER NOT NULL,
                is_daily INTEGER DEFAULT 0
            )
        """
        )

        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS refs (
                source_uid TEXT NOT NULL,
                target_uid TEXT NOT NULL,
                PRIMARY KEY (source_uid, target_uid)
            )
        """
        )

        await self.connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_nodes_parent ON nodes(parent_uid)"
        )
        await self.connection.execute("CREATE INDEX IF NOT EXISTS idx_nodes_page ON nodes(page_uid)")
        await self.connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_nodes_title ON nodes(title COLLATE NOCASE)"
        )
        await self.connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_refs_target ON refs(target_uid)"
        )

        await self.connection.commit()
        logger.info(f"SQLite graph store initialized at {self.db_path}")

    # ═══════════════════════════════════════════════════════════
    # NODE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def add_page(self, page: Page) -> None:
        """Add a page node."""
        await self.connect()

        await self.connection.execute(
            f"INSERT OR REPLACE INTO nodes ({NODE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                page.uid,
                NodeKind.PAGE.value,
                page.title,
                None,
                None,
                None,
                0,
                to_millis(page.created),
                to_millis(page.modified),
                int(page.is_daily),
            ),
        )
        await self.connection.commit()

    async def add_block(self, block: Block) -> None:
        """Add a block node and its references."""
        await self.connect()

        await self.connection.execute(
            f"INSERT OR REPLACE INTO nodes ({NODE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                block.uid,
                NodeKind.BLOCK.value,
                None,
                block.content,
                block.page_uid,
                block.parent_uid,
                block.order,
                to_millis(block.created),
                to_millis(block.modified),
                0,
            ),
        )

        await self.connection.execute("DELETE FROM refs WHERE source_uid = ?", (block.uid,))
        targets = dict.fromkeys([*block.refs, *extract_block_refs(block.content)])
        if targets:
            await self.connection.executemany(
                "INSERT OR IGNORE INTO refs (source_uid, target_uid) VALUES (?, ?)",
                [(block.uid, target) for target in targets],
            )
        await self.connection.commit()

    async def get_node(self, uid: str) -> Node | None:
        """Retrieve a node by uid."""
        nodes = await self.get_nodes([uid])
        return nodes.get(uid)

    async def get_nodes(self, uids: Sequence[str]) -> dict[str, Node]:
        """Retrieve several nodes by uid."""
        await self.connect()

        uids = list(dict.fromkeys(uids))
        if not uids:
            return {}

        placeholders = ",".join("?" * len(uids))
        cursor = await self.connection.execute(
            f"SELECT {NODE_COLUMNS} FROM nodes WHERE uid IN ({placeholders})", uids
        )
        rows = await cursor.fetchall()

        cursor = await self.connection.execute(
            f"SELECT source_uid, target_uid FROM refs WHERE source_uid IN ({placeholders})", uids
        )
        refs: dict[str, list[str]] = {}
        for source, target in await cursor.fetchall():
            refs.setdefault(source, []).append(target)

        return {row[0]: self._row_to_node(row, refs.get(row[0], [])) for row in rows}

    # ═══════════════════════════════════════════════════════════
    # HIERARCHY
    # ═══════════════════════════════════════════════════════════

    async def get_children(self, uid: str) -> list[Block]:
        """Ordered direct children of a node."""
        await self.connect()

        cursor = await self.connection.execute(
            f"SELECT {NODE_COLUMNS} FROM nodes WHERE parent_uid = ? ORDER BY ord, uid", (uid,)
        )
        rows = await cursor.fetchall()
        return [self._row_to_node(row, []) for row in rows]

    async def get_parents(self, uid: str) -> list[Node]:
        """Parent chain from the immediate parent up to the page."""
        await self.connect()

        cursor = await self.connection.execute(
            f"""
            WITH RECURSIVE chain(uid, depth) AS (
                SELECT parent_uid, 1 FROM nodes WHERE uid = ? AND parent_uid IS NOT NULL
                UNION ALL
                SELECT n.parent_uid, c.depth + 1
                FROM nodes n JOIN chain c ON n.uid = c.uid
                WHERE n.parent_uid IS NOT NULL AND c.depth < 1000
            )
            SELECT {", ".join(f"n.{col.strip()}" for col in NODE_COLUMNS.split(","))}
            FROM chain c JOIN nodes n ON n.uid = c.uid
            ORDER BY c.depth
            """,
            (uid,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_node(row, []) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # QUERY PRIMITIVE
    # ═══════════════════════════════════════════════════════════

    async def query(self, statement: str, params: Sequence[Any] = ()) -> list[tuple]:
        """Run a read-only SELECT/WITH statement."""
        if not is_read_only(statement):
            raise GraphStoreError(
                "Only read-only SELECT/WITH statements are allowed",
                context={"statement": statement[:200]},
            )

        await self.connect()

        try:
            cursor = await self.connection.execute(statement, tuple(params))
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise GraphStoreError(
                f"Query failed: {e}", context={"statement": statement[:200]}
            ) from e
        return [tuple(row) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # UTILITY METHODS
    # ═══════════════════════════════════════════════════════════

    async def count_nodes(self, kind: NodeKind | None = None) -> int:
        """Count nodes."""
        await self.connect()

        query = "SELECT COUNT(*) FROM nodes"
        params = []

        if kind is not None:
            query += " WHERE kind = ?"
            params.append(kind.value)

        cursor = await self.connection.execute(query, params)
        row = await cursor.fetchone()

        return row[0] if row else 0

    async def close(self) -> None:
        """Close the connection."""
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    # ═══════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════

    def _row_to_node(self, row: tuple, refs: list[str]) -> Node:
        """Convert database row to Block or Page."""
        uid, kind, title, string, page_uid, parent_uid, order, created, modified, is_daily = row

        if kind == NodeKind.PAGE.value:
            return Page(
                uid=uid,
                title=title or "",
                is_daily=bool(is_daily),
                created=from_millis(created),
                modified=from_millis(modified),
            )

        return Block(
            uid=uid,
            content=string or "",
            parent_uid=parent_uid,
            page_uid=page_uid,
            order=order or 0,
            refs=refs,
            created=from_millis(created),
            modified=from_millis(modified),
        )
