"""
Tokenizer for the symbolic query language.

Whitespace is not a token, but every token records whether whitespace
preceded it: implicit AND and tight `a|b` alternations depend on it.
"""

from dataclasses import dataclass
from enum import Enum

from askgraph.utils.exceptions import ParseError


class TokenType(str, Enum):
    WORD = "word"
    STRING = "string"
    PAGE_REF = "page_ref"
    TAG = "tag"
    BLOCK_REF = "block_ref"
    REGEX = "regex"
    PREFIX = "prefix"
    ATTR = "attr"
    PRIOR_RESULTS = "prior_results"
    COMBINATOR = "combinator"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    AND = "and"
    OR = "or"
    NOT = "not"
    HIERARCHY = "hierarchy"
    FUZZY = "*"
    SEMANTIC = "~"
    BROAD_SEMANTIC = "~~"
    EOF = "eof"


PREFIXES = frozenset(
    {"text", "ref", "bref", "regex", "in", "page", "refs", "title", "content", "block"}
)
COMBINATORS = frozenset({"UNION", "INTERSECTION", "DIFFERENCE", "PIPE"})
HIERARCHY_OPS = ("<=>", ">>", "<<", "=>", ">", "<")
REGEX_FLAGS = frozenset("imsx")

_WORD_STOP = set(" \t\r\n()[]|+&,\"*~<>")


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    pos: int
    space_before: bool = False
    extra: str = ""  # regex flags, attribute kind

    @property
    def starts_term(self) -> bool:
        return self.type in _TERM_STARTS


_TERM_STARTS = frozenset(
    {
        TokenType.WORD,
        TokenType.STRING,
        TokenType.PAGE_REF,
        TokenType.TAG,
        TokenType.BLOCK_REF,
        TokenType.REGEX,
        TokenType.PREFIX,
        TokenType.ATTR,
        TokenType.NOT,
        TokenType.LPAREN,
        TokenType.PRIOR_RESULTS,
        TokenType.COMBINATOR,
    }
)


class Lexer:
    """Single-pass scanner producing a token list terminated by EOF."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.tokens: list[Token] = []

    def tokenize(self) -> list[Token]:
        src = self.source
        while True:
            start = self.pos
            while self.pos < len(src) and src[self.pos].isspace():
                self.pos += 1
            space = self.pos > start or not self.tokens
            if self.pos >= len(src):
                self.tokens.append(Token(TokenType.EOF, "", self.pos, space))
                return self.tokens
            self._next_token(space)

    def _emit(self, type_: TokenType, value: str, pos: int, space: bool, extra: str = "") -> None:
        self.tokens.append(Token(type_, value, pos, space, extra))

    def _next_token(self, space: bool) -> None:
        src, pos = self.source, self.pos
        ch = src[pos]

        if src.startswith("((", pos):
            end = src.find("))", pos + 2)
            uid = src[pos + 2 : end] if end != -1 else ""
            if uid and all(c.isalnum() or c in "-_" for c in uid):
                self._emit(TokenType.BLOCK_REF, uid, pos, space)
                self.pos = end + 2
                return

        if ch == "(":
            self._emit(TokenType.LPAREN, ch, pos, space)
            self.pos += 1
        elif ch == ")":
            self._emit(TokenType.RPAREN, ch, pos, space)
            self.pos += 1
        elif ch == ",":
            self._emit(TokenType.COMMA, ch, pos, space)
            self.pos += 1
        elif ch in "+&":
            self._emit(TokenType.AND, ch, pos, space)
            self.pos += 1
        elif ch == "|":
            self._emit(TokenType.OR, ch, pos, space)
            self.pos += 1
        elif ch == "-":
            self._emit(TokenType.NOT, ch, pos, space)
            self.pos += 1
        elif ch == "*":
            self._emit(TokenType.FUZZY, ch, pos, space)
            self.pos += 1
        elif ch == "~":
            if src.startswith("~~", pos):
                self._emit(TokenType.BROAD_SEMANTIC, "~~", pos, space)
                self.pos += 2
            else:
                self._emit(TokenType.SEMANTIC, ch, pos, space)
                self.pos += 1
        elif ch in "<>" or src.startswith("=>", pos):
            op = next(o for o in HIERARCHY_OPS if src.startswith(o, pos))
            self._emit(TokenType.HIERARCHY, op, pos, space)
            self.pos += len(op)
        elif ch == '"':
            self._read_string(space)
        elif src.startswith("[[", pos):
            title, self.pos = self._read_brackets(pos)
            self._emit(TokenType.PAGE_REF, title, pos, space)
        elif ch == "#":
            self._read_tag(space)
        elif ch == "/":
            self._read_regex(space)
        elif ch in "[]":
            raise ParseError("Unexpected bracket", pos, ch)
        else:
            self._read_word(space)

    def _read_string(self, space: bool) -> None:
        src, start = self.source, self.pos
        i = start + 1
        chars: list[str] = []
        while i < len(src):
            if src[i] == "\\" and i + 1 < len(src) and src[i + 1] in '"\\':
                chars.append(src[i + 1])
                i += 2
                continue
            if src[i] == '"':
                self._emit(TokenType.STRING, "".join(chars), start, space)
                self.pos = i + 1
                return
            chars.append(src[i])
            i += 1
        raise ParseError("Unterminated quoted phrase", start, src[start : start + 20])

    def _read_brackets(self, start: int) -> tuple[str, int]:
        """Read a possibly nested [[...]] title; returns (title, end position)."""
        src = self.source
        depth = 0
        i = start
        while i < len(src):
            if src.startswith("[[", i):
                depth += 1
                i += 2
            elif src.startswith("]]", i):
                depth -= 1
                i += 2
                if depth == 0:
                    return src[start + 2 : i - 2], i
            else:
                i += 1
        raise ParseError("Unterminated page reference", start, src[start : start + 20])

    def _read_tag(self, space: bool) -> None:
        src, start = self.source, self.pos
        if src.startswith("[[", start + 1):
            title, self.pos = self._read_brackets(start + 1)
            self._emit(TokenType.TAG, title, start, space)
            return
        i = start + 1
        while i < len(src) and (src[i].isalnum() or src[i] in "_-./"):
            i += 1
        if i == start + 1:
            raise ParseError("Empty tag", start, "#")
        self._emit(TokenType.TAG, src[start + 1 : i], start, space)
        self.pos = i

    def _read_regex(self, space: bool) -> None:
        src, start = self.source, self.pos
        i = start + 1
        while i < len(src):
            if src[i] == "\\" and i + 1 < len(src):
                i += 2
                continue
            if src[i] == "/":
                break
            i += 1
        else:
            raise ParseError("Unterminated regex", start, src[start : start + 20])

        pattern = src[start + 1 : i]
        i += 1
        flags_start = i
        while i < len(src) and src[i].isalpha():
            i += 1
        flags = src[flags_start:i]
        if set(flags) - REGEX_FLAGS:
            raise ParseError("Invalid regex flags", flags_start, flags)
        if not pattern:
            raise ParseError("Empty regex", start, "//")
        self._emit(TokenType.REGEX, pattern, start, space, extra=flags)
        self.pos = i

    def _read_word(self, space: bool) -> None:
        src, start = self.source, self.pos
        i = start
        while i < len(src) and src[i] not in _WORD_STOP and not src.startswith("=>", i):
            i += 1
            # A known prefix ends at its colon; its value is lexed separately
            head = src[start:i]
            if head.endswith(":") and head[:-1] in PREFIXES:
                self._emit(TokenType.PREFIX, head[:-1], start, space)
                self.pos = i
                return
            if head == "attr:":
                self._read_attr(start, space)
                return

        word = src[start:i]
        if word == "@results":
            self._emit(TokenType.PRIOR_RESULTS, word, start, space)
        elif word in COMBINATORS and src.startswith("(", i):
            self._emit(TokenType.COMBINATOR, word, start, space)
        else:
            self._emit(TokenType.WORD, word, start, space)
        self.pos = i

    def _read_attr(self, start: int, space: bool) -> None:
        """attr:key: followed by an optional text:/ref: kind; the value is the next token."""
        src = self.source
        i = start + len("attr:")
        key_start = i
        while i < len(src) and src[i] not in _WORD_STOP and src[i] != ":":
            i += 1
        key = src[key_start:i]
        if not key or not src.startswith(":", i):
            raise ParseError("Attribute needs the form attr:key:value", start, src[start:i])
        i += 1
        kind = ""
        for candidate in ("text:", "ref:"):
            if src.startswith(candidate, i):
                kind = candidate[:-1]
                i += len(candidate)
                break
        self._emit(TokenType.ATTR, key, start, space, extra=kind)
        self.pos = i


def tokenize(source: str) -> list[Token]:
    """Tokenize a symbolic query."""
    return Lexer(source).tokenize()
