"""
Graph store implementations for Ask Your Graph.

Provides abstract base and concrete implementations for graph storage.

Available backends:
- SQLiteGraphStore: Local, file-backed store with regex and recursive CTE support
"""

from askgraph.core.graph_store.base import GraphStore
from askgraph.core.graph_store.sqlite_store import SQLiteGraphStore

__all__ = [
    "GraphStore",
    "SQLiteGraphStore",
]
