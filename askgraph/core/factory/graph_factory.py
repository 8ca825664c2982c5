"""
Factory for creating graph store backends.
"""

from askgraph.config import GraphStoreConfig
from askgraph.core.graph_store.base import GraphStore
from askgraph.core.graph_store.sqlite_store import SQLiteGraphStore


class GraphStoreFactory:
    """Factory for creating graph store backends from configuration."""

    @staticmethod
    def create(config: GraphStoreConfig) -> GraphStore:
        """
        Create graph store from configuration.

        Args:
            config: Graph store configuration

        Returns:
            Graph store instance

        Raises:
            ValueError: If backend is not supported
        """
        if config.backend == "sqlite":
            return SQLiteGraphStore(db_path=config.db_path)
        else:
            raise ValueError(f"Unsupported graph backend: {config.backend}")
