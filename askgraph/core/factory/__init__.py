"""
Factory modules for creating Ask Your Graph components.

Provides modular factories for the LLM provider and the graph store.
"""

from askgraph.core.factory.graph_factory import GraphStoreFactory
from askgraph.core.factory.llm_factory import LLMFactory

__all__ = [
    "LLMFactory",
    "GraphStoreFactory",
]
