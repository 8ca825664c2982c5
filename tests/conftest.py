"""
Shared fixtures for Ask Your Graph tests.

Store-backed tests run against a real SQLite file in a temporary directory.
Fixtures use function scope to avoid event loop issues.

Sample graph (uids are at least 6 characters so `((uid))` references resolve):

    Ledger            blk-fin-001   Quarterly [[finance]] review
                      blk-fin-002   Budget for [[finance]] team
                      blk-fin-003   #finance audit
                      blk-self-ref  See ((blk-self-ref)) for details
                      blk-cyc-a     Alpha note ((blk-cyc-b))
                      blk-cyc-b     Beta note ((blk-cyc-a))
    Project Alpha     blk-alpha-st  status:: [[pending]]
    Project Beta      blk-beta-st   status:: [[pending]]
    Project Planning  blk-goals     Goals for Q3
                        blk-goal-1    Ship the frontend redesign
                          blk-goal-1a   Coordinate with UX designers
                      blk-risks     Risks
                        blk-risk-1    Backend migration delay
    01-15-2024 (DNP)  blk-dnp-015   Practical tips for onboarding
    01-16-2024 (DNP)  blk-dnp-016   [[meeting]] with [[John]] about UX
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import pytest

from askgraph.config import TokenizerConfig
from askgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from askgraph.core.tokenizer import Tokenizer
from askgraph.models.node import Block, NodeKind, Page
from askgraph.models.results import SearchResult

BASE_TIME = datetime(2024, 1, 1, 9, 0)

PAGES = [
    ("pg-meeting", "meeting", False),
    ("pg-john", "John", False),
    ("pg-done", "DONE", False),
    ("pg-finance", "finance", False),
    ("pg-pending", "pending", False),
    ("pg-ledger", "Ledger", False),
    ("pg-alpha", "Project Alpha", False),
    ("pg-beta", "Project Beta", False),
    ("pg-planning", "Project Planning", False),
    ("01-15-2024", "January 15th, 2024", True),
    ("01-16-2024", "January 16th, 2024", True),
]

# uid, content, parent, page, refs
BLOCKS = [
    ("blk-fin-001", "Quarterly [[finance]] review", "pg-ledger", "pg-ledger", ["pg-finance"]),
    ("blk-fin-002", "Budget for [[finance]] team", "pg-ledger", "pg-ledger", ["pg-finance"]),
    ("blk-fin-003", "#finance audit", "pg-ledger", "pg-ledger", ["pg-finance"]),
    ("blk-self-ref", "See ((blk-self-ref)) for details", "pg-ledger", "pg-ledger", []),
    ("blk-cyc-a", "Alpha note ((blk-cyc-b))", "pg-ledger", "pg-ledger", []),
    ("blk-cyc-b", "Beta note ((blk-cyc-a))", "pg-ledger", "pg-ledger", []),
    ("blk-alpha-st", "status:: [[pending]]", "pg-alpha", "pg-alpha", ["pg-pending"]),
    ("blk-beta-st", "status:: [[pending]]", "pg-beta", "pg-beta", ["pg-pending"]),
    ("blk-goals", "Goals for Q3", "pg-planning", "pg-planning", []),
    ("blk-goal-1", "Ship the frontend redesign", "blk-goals", "pg-planning", []),
    ("blk-goal-1a", "Coordinate with UX designers", "blk-goal-1", "pg-planning", []),
    ("blk-risks", "Risks", "pg-planning", "pg-planning", []),
    ("blk-risk-1", "Backend migration delay", "blk-risks", "pg-planning", []),
    ("blk-dnp-015", "Practical tips for onboarding", "01-15-2024", "01-15-2024", []),
    (
        "blk-dnp-016",
        "[[meeting]] with [[John]] about UX",
        "01-16-2024",
        "01-16-2024",
        ["pg-meeting", "pg-john"],
    ),
]


@pytest.fixture
async def graph_store(tmp_path) -> AsyncGenerator[SQLiteGraphStore, None]:
    """Empty SQLite graph store in a temporary directory."""
    store = SQLiteGraphStore(db_path=str(tmp_path / "graph.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def sample_graph(graph_store: SQLiteGraphStore) -> SQLiteGraphStore:
    """Graph store loaded with the sample pages and blocks (see module docstring)."""
    tick = 0
    for uid, title, is_daily in PAGES:
        stamp = BASE_TIME + timedelta(minutes=tick)
        tick += 1
        await graph_store.add_page(
            Page(uid=uid, title=title, is_daily=is_daily, created=stamp, modified=stamp)
        )

    order: dict[str, int] = {}
    for uid, content, parent, page, refs in BLOCKS:
        stamp = BASE_TIME + timedelta(minutes=tick)
        tick += 1
        await graph_store.add_block(
            Block(
                uid=uid,
                content=content,
                parent_uid=parent,
                page_uid=page,
                order=order.get(parent, 0),
                refs=refs,
                created=stamp,
                modified=stamp,
            )
        )
        order[parent] = order.get(parent, 0) + 1

    return graph_store


@pytest.fixture
def approx_tokenizer() -> Tokenizer:
    """Tokenizer that never loads a tiktoken encoding."""
    return Tokenizer(TokenizerConfig(provider="approximate"))


@pytest.fixture
def make_result():
    """Factory for raw SearchResults."""

    def _make(uid: str, content: str = "", page_uid: str = "pg-test", **fields) -> SearchResult:
        return SearchResult(
            uid=uid,
            kind=fields.pop("kind", NodeKind.BLOCK),
            content=content or f"content of {uid}",
            page_uid=page_uid,
            **fields,
        )

    return _make
