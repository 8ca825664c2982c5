"""
Symbolic query language: lexer, recursive-descent parser and canonical serializer.
"""

from askgraph.core.query.lexer import Token, TokenType, tokenize
from askgraph.core.query.parser import (
    SymbolicQueryParser,
    compile_regex,
    looks_symbolic,
    parse_query,
)
from askgraph.core.query.serializer import to_symbolic, tree_to_symbolic

__all__ = [
    "Token",
    "TokenType",
    "tokenize",
    "SymbolicQueryParser",
    "parse_query",
    "compile_regex",
    "looks_symbolic",
    "to_symbolic",
    "tree_to_symbolic",
]
