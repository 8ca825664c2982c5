"""
Search tool set: condition compilation and the fixed catalogue of retrieval tools.
"""

from askgraph.core.search.compiler import ConditionCompiler
from askgraph.core.search.fuzzy import fuzzy_pattern
from askgraph.core.search.tools import SearchToolSet, ToolOutput

__all__ = ["ConditionCompiler", "SearchToolSet", "ToolOutput", "fuzzy_pattern"]
