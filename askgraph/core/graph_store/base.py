"""
Base interface for the graph store adapter.

The query engine only reads from the graph: nodes are owned by the store.
Search tools compile their condition trees into read-only tuple queries run
through `query()`; the remaining methods cover loading and the hierarchy
helpers used by context expansion.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from askgraph.models.node import Block, Node, NodeKind, Page


class GraphStore(ABC):
    """Abstract base class for graph storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the graph store (create tables/schema)."""
        pass

    # ═══════════════════════════════════════════════════════════
    # NODE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_page(self, page: Page) -> None:
        """
        Add (or replace) a page.

        Args:
            page: Page to store
        """
        pass

    @abstractmethod
    async def add_block(self, block: Block) -> None:
        """
        Add (or replace) a block and its outgoing references.

        Args:
            block: Block to store; `((uid))` references in its content are
                recorded alongside `block.refs`
        """
        pass

    @abstractmethod
    async def get_node(self, uid: str) -> Node | None:
        """
        Retrieve a node by uid.

        Args:
            uid: Node identifier

        Returns:
            Block, Page or None if not found
        """
        pass

    @abstractmethod
    async def get_nodes(self, uids: Sequence[str]) -> dict[str, Node]:
        """
        Retrieve several nodes in one round trip.

        Args:
            uids: Node identifiers

        Returns:
            Mapping uid -> node for the uids that exist
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # HIERARCHY
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_children(self, uid: str) -> list[Block]:
        """
        Ordered direct children of a page or block.

        Args:
            uid: Parent identifier

        Returns:
            Child blocks sorted by sibling order
        """
        pass

    @abstractmethod
    async def get_parents(self, uid: str) -> list[Node]:
        """
        Parent chain of a block.

        Args:
            uid: Block identifier

        Returns:
            Ancestors from the immediate parent up to the owning page
            (empty for pages)
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # QUERY PRIMITIVE
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def query(self, statement: str, params: Sequence[Any] = ()) -> list[tuple]:
        """
        Run a read-only tuple query.

        Args:
            statement: Declarative query over the store's node and reference
                relations
            params: Positional parameters

        Returns:
            Result tuples

        Raises:
            GraphStoreError: If the statement is not read-only or fails
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # UTILITY METHODS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def count_nodes(self, kind: NodeKind | None = None) -> int:
        """
        Count nodes.

        Args:
            kind: Optional filter by node kind

        Returns:
            Count of nodes
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection to the graph store."""
        pass
