"""
Tokenizer module for token counting.

Provides accurate token counting using tiktoken with fast approximation fallback.
Used to convert the consuming model's context window into character budgets and
to estimate the size of result summaries.
"""

from askgraph.config import TokenizerConfig
from askgraph.core.tokenizer.tokenizer import Tokenizer

__all__ = ["Tokenizer", "TokenizerConfig"]
