"""
Recursive-descent parser for the symbolic query language.

Precedence, highest first:
    ( ... )            grouping (also `ref:( ... )` etc.)
    a|b                tight alternation (no surrounding whitespace)
    * ~ ~~             suffix modifiers on the preceding term
    -                  unary NOT
    + & <space>        AND
    |                  OR (spaced)
    > >> < << => <=>   one hierarchy operator, top level only

A request is either a single search (conditions plus optional `in:` scope or a
`page:(...)` / `refs:(...)` target), a combinator call
`UNION|INTERSECTION|DIFFERENCE|PIPE(q, q, ...)`, or a `raw:` store query.
"""

import re

from askgraph.core.query.lexer import Token, TokenType, tokenize
from askgraph.models.query import (
    Combinator,
    CompositeQuery,
    Condition,
    ConditionGroup,
    ConditionKind,
    ConditionNode,
    ConditionTree,
    HierarchyCondition,
    HierarchyOp,
    LogicOp,
    MatchType,
    PageScope,
    PriorResults,
    QueryExpression,
    SearchQuery,
    SearchTarget,
    normalize,
)
from askgraph.utils.exceptions import ParseError
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

RAW_PREFIX = "raw:"

_REGEX_FLAG_BITS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}

_SUFFIXES = {
    TokenType.FUZZY: (MatchType.FUZZY, 0),
    TokenType.SEMANTIC: (MatchType.SEMANTIC, 1),
    TokenType.BROAD_SEMANTIC: (MatchType.SEMANTIC, 2),
}

_PAGE_TARGETS = {
    "title": SearchTarget.PAGE_TITLES,
    "content": SearchTarget.PAGE_CONTENT,
    "block": SearchTarget.PAGE_BLOCKS,
}


def compile_regex(pattern: str, flags: str = "") -> re.Pattern:
    """Compile a query regex with its /flags."""
    bits = 0
    for flag in flags:
        bits |= _REGEX_FLAG_BITS[flag]
    return re.compile(pattern, bits)


def looks_symbolic(text: str) -> bool:
    """Heuristic: does a request use query-language syntax rather than prose?"""
    stripped = text.strip()
    if stripped.startswith(RAW_PREFIX):
        return True
    if re.match(r"^(UNION|INTERSECTION|DIFFERENCE|PIPE)\(", stripped):
        return True
    return bool(
        re.search(r"\[\[|\(\(|(^|\s)[#/-]\S|[+&|*~]|(^|\s)(<=>|=>|>>|<<|>|<)(\s|$)", stripped)
        or re.search(r"\b(text|ref|bref|regex|attr|page|refs|in):", stripped)
    )


class _ScopeState:
    """Query-level modifiers collected while parsing one search."""

    def __init__(self):
        self.page_scope: PageScope | None = None
        self.target: SearchTarget | None = None
        self.target_tree: ConditionNode | None = None
        self.target_token: Token | None = None


class SymbolicQueryParser:
    """
    Parser for one request string.

    Usage:
        expression = SymbolicQueryParser().parse("[[meeting]] + frontend|UX")
    """

    def parse(self, source: str) -> QueryExpression:
        """
        Parse a request into a query expression.

        Args:
            source: Symbolic request text

        Returns:
            SearchQuery, CompositeQuery or PriorResults

        Raises:
            ParseError: If the request is malformed
        """
        stripped = source.strip()
        if stripped.startswith(RAW_PREFIX):
            raw = stripped[len(RAW_PREFIX) :].strip()
            if not raw:
                raise ParseError("Empty raw query", len(RAW_PREFIX), RAW_PREFIX)
            return SearchQuery(raw=raw)

        self._tokens = tokenize(source)
        self._index = 0
        self._depth = 0
        self._kind_stack: list[ConditionKind] = [ConditionKind.TEXT]

        expression = self._parse_expression()
        token = self._peek()
        if token.type != TokenType.EOF:
            if token.type == TokenType.RPAREN:
                raise ParseError("Unmatched closing parenthesis", token.pos, token.value)
            raise ParseError("Unexpected token", token.pos, token.value)

        logger.debug(f"Parsed symbolic query: {source!r}")
        return expression

    # ═══════════════════════════════════════════════════════════
    # TOKEN HELPERS
    # ═══════════════════════════════════════════════════════════

    def _peek(self, offset: int = 0) -> Token:
        index = min(self._index + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.type != TokenType.EOF:
            self._index += 1
        return token

    def _expect(self, type_: TokenType, reason: str) -> Token:
        token = self._peek()
        if token.type != type_:
            raise ParseError(reason, token.pos, token.value or token.type.value)
        return self._advance()

    # ═══════════════════════════════════════════════════════════
    # EXPRESSIONS
    # ═══════════════════════════════════════════════════════════

    def _parse_expression(self) -> QueryExpression:
        token = self._peek()
        if token.type == TokenType.COMBINATOR:
            return self._parse_composite()
        if token.type == TokenType.PRIOR_RESULTS:
            self._advance()
            return PriorResults()
        return self._parse_search()

    def _parse_composite(self) -> CompositeQuery:
        name = self._advance()
        self._expect(TokenType.LPAREN, f"Expected '(' after {name.value}")
        saved_depth = self._depth
        self._depth = 0

        operands: list[QueryExpression] = []
        while True:
            if self._peek().type in (TokenType.RPAREN, TokenType.EOF, TokenType.COMMA):
                token = self._peek()
                raise ParseError(f"Empty operand in {name.value}", token.pos, token.value)
            operands.append(self._parse_expression())
            token = self._peek()
            if token.type == TokenType.COMMA:
                self._advance()
                continue
            if token.type == TokenType.RPAREN:
                self._advance()
                break
            if token.type == TokenType.EOF:
                raise ParseError("Unmatched parenthesis", name.pos, name.value)
            raise ParseError(f"Expected ',' or ')' in {name.value}", token.pos, token.value)

        self._depth = saved_depth
        if len(operands) < 2:
            raise ParseError(f"{name.value} needs at least two operands", name.pos, name.value)
        return CompositeQuery(combinator=Combinator(name.value), operands=tuple(operands))

    def _parse_search(self) -> SearchQuery:
        start = self._peek()
        state = _ScopeState()
        self._state = state
        tree = self._parse_hierarchy()

        if state.target is not None:
            if tree is not None:
                raise ParseError(
                    "A page:/refs: target cannot be combined with block conditions",
                    state.target_token.pos,
                    state.target_token.value,
                )
            return SearchQuery(
                target=state.target,
                tree=normalize(state.target_tree),
                page_scope=state.page_scope,
            )

        if tree is None:
            if state.page_scope is not None and state.page_scope.daily_only:
                return SearchQuery(page_scope=state.page_scope)
            raise ParseError("Empty query", start.pos, start.value)

        return SearchQuery(tree=normalize(tree), page_scope=state.page_scope)

    def _parse_hierarchy(self) -> ConditionTree | None:
        scope = self._parse_or()
        token = self._peek()
        if token.type != TokenType.HIERARCHY:
            return scope
        self._advance()
        if scope is None:
            raise ParseError("Hierarchy operator without left operand", token.pos, token.value)
        target = self._parse_or()
        if target is None:
            raise ParseError("Dangling hierarchy operator", token.pos, token.value)
        second = self._peek()
        if second.type == TokenType.HIERARCHY:
            raise ParseError(
                "Only one hierarchy operator is allowed per query", second.pos, second.value
            )
        return HierarchyCondition(scope=scope, op=HierarchyOp(token.value), target=target)

    def _parse_or(self) -> ConditionNode | None:
        legs = [self._parse_and()]
        while self._peek().type == TokenType.OR:
            token = self._advance()
            leg = self._parse_and()
            if leg is None:
                raise ParseError("Missing operand after '|'", token.pos, token.value)
            legs.append(leg)

        if len(legs) == 1:
            return legs[0]
        if legs[0] is None:
            raise ParseError("Missing operand before '|'", self._peek().pos, "|")
        return ConditionGroup(op=LogicOp.OR, children=tuple(legs))

    def _parse_and(self) -> ConditionNode | None:
        legs: list[ConditionNode] = []
        consumed = False
        while True:
            token = self._peek()
            if token.type == TokenType.AND:
                self._advance()
                if not consumed:
                    raise ParseError("Missing operand before AND", token.pos, token.value)
                if not self._peek().starts_term:
                    raise ParseError("Missing operand after AND", token.pos, token.value)
                continue
            if token.type == TokenType.HIERARCHY and self._depth > 0:
                raise ParseError(
                    "Hierarchy operators are not allowed inside parentheses",
                    token.pos,
                    token.value,
                )
            if not token.starts_term:
                break
            leg = self._parse_unary()
            consumed = True
            if leg is not None:
                legs.append(leg)

        if not legs:
            return None
        if len(legs) == 1:
            return legs[0]
        return ConditionGroup(op=LogicOp.AND, children=tuple(legs))

    def _parse_unary(self) -> ConditionNode | None:
        token = self._peek()
        if token.type == TokenType.NOT:
            self._advance()
            if not self._peek().starts_term:
                raise ParseError("Dangling negation", token.pos, token.value)
            operand = self._parse_unary()
            if operand is None:
                raise ParseError("Negation of a query modifier", token.pos, token.value)
            return ConditionGroup(op=LogicOp.NOT, children=(operand,))
        return self._parse_postfix()

    def _parse_postfix(self) -> ConditionNode | None:
        node = self._parse_primary()
        if node is None:
            return None
        node = self._apply_suffixes(node)

        # Tight alternation: frontend|UX
        while self._peek().type == TokenType.OR and self._is_tight(self._peek()):
            token = self._advance()
            right = self._parse_primary()
            if right is None:
                raise ParseError("Missing operand after '|'", token.pos, token.value)
            right = self._apply_suffixes(right)
            if isinstance(node, ConditionGroup) and node.op == LogicOp.OR:
                node = ConditionGroup(op=LogicOp.OR, children=(*node.children, right))
            else:
                node = ConditionGroup(op=LogicOp.OR, children=(node, right))

        return node

    def _is_tight(self, token: Token) -> bool:
        after = self._peek(1)
        return not token.space_before and not after.space_before and after.starts_term

    def _apply_suffixes(self, node: ConditionNode) -> ConditionNode:
        while self._peek().type in _SUFFIXES and not self._peek().space_before:
            token = self._advance()
            match_type, level = _SUFFIXES[token.type]
            node = self._with_match_type(node, match_type, level, token)
        token = self._peek()
        if token.type in _SUFFIXES:
            raise ParseError("Modifier must follow a term", token.pos, token.value)
        return node

    def _with_match_type(
        self, node: ConditionNode, match_type: MatchType, level: int, token: Token
    ) -> ConditionNode:
        if isinstance(node, ConditionGroup):
            return ConditionGroup(
                op=node.op,
                children=tuple(
                    self._with_match_type(c, match_type, level, token) for c in node.children
                ),
            )
        if not node.expandable:
            raise ParseError(
                f"Modifier '{token.value}' does not apply to {node.kind.value} conditions",
                token.pos,
                token.value,
            )
        return node.model_copy(update={"match_type": match_type, "semantic_level": level})

    # ═══════════════════════════════════════════════════════════
    # PRIMARIES
    # ═══════════════════════════════════════════════════════════

    def _parse_primary(self) -> ConditionNode | None:
        token = self._peek()
        kind = self._kind_stack[-1]

        if token.type == TokenType.LPAREN:
            return self._parse_group()
        if token.type == TokenType.WORD:
            self._advance()
            return Condition(kind=kind, value=token.value)
        if token.type == TokenType.STRING:
            self._advance()
            if not token.value.strip():
                raise ParseError("Empty quoted phrase", token.pos, '""')
            return Condition(kind=kind, value=token.value)
        if token.type in (TokenType.PAGE_REF, TokenType.TAG):
            self._advance()
            if not token.value.strip():
                raise ParseError("Empty page reference", token.pos, "[[]]")
            return Condition(kind=ConditionKind.PAGE_REF, value=token.value)
        if token.type == TokenType.BLOCK_REF:
            self._advance()
            return Condition(kind=ConditionKind.BLOCK_REF, value=token.value)
        if token.type == TokenType.REGEX:
            return self._parse_regex()
        if token.type == TokenType.ATTR:
            return self._parse_attribute()
        if token.type == TokenType.PREFIX:
            return self._parse_prefixed()
        if token.type == TokenType.PRIOR_RESULTS:
            raise ParseError(
                "@results can only be used as a combinator operand", token.pos, token.value
            )
        if token.type == TokenType.COMBINATOR:
            raise ParseError(
                f"{token.value}(...) must be the whole request or a combinator operand",
                token.pos,
                token.value,
            )
        raise ParseError("Unexpected token", token.pos, token.value or token.type.value)

    def _parse_group(self) -> ConditionNode:
        open_token = self._advance()
        self._depth += 1
        node = self._parse_or()
        token = self._peek()
        if token.type == TokenType.HIERARCHY:
            raise ParseError(
                "Hierarchy operators are not allowed inside parentheses", token.pos, token.value
            )
        if token.type != TokenType.RPAREN:
            if token.type == TokenType.EOF:
                raise ParseError("Unmatched parenthesis", open_token.pos, open_token.value)
            raise ParseError("Unexpected token", token.pos, token.value)
        self._advance()
        self._depth -= 1
        if node is None:
            raise ParseError("Empty group", open_token.pos, "()")
        return node

    def _parse_regex(self) -> Condition:
        token = self._advance()
        try:
            compile_regex(token.value, token.extra)
        except re.error as e:
            raise ParseError(f"Invalid regex ({e})", token.pos, f"/{token.value}/") from e
        return Condition(kind=ConditionKind.REGEX, value=token.value, flags=token.extra)

    def _parse_attribute(self) -> Condition:
        token = self._advance()
        value_token = self._peek()
        if value_token.space_before:
            raise ParseError("Missing attribute value", token.pos, token.value)

        if value_token.type in (TokenType.PAGE_REF, TokenType.TAG):
            self._advance()
            value, kind = value_token.value, ConditionKind.PAGE_REF
        elif value_token.type in (TokenType.WORD, TokenType.STRING):
            value = self._read_value_words()
            kind = ConditionKind.PAGE_REF if token.extra == "ref" else ConditionKind.TEXT
        else:
            raise ParseError("Missing attribute value", token.pos, token.value)

        return Condition(
            kind=ConditionKind.ATTRIBUTE,
            value=value,
            attribute_key=token.value,
            attribute_kind=kind,
        )

    def _read_value_words(self) -> str:
        """A prefixed value: a quoted phrase, or words up to the next operator."""
        first = self._advance()
        if first.type == TokenType.STRING:
            return first.value
        words = [first.value]
        while self._peek().type == TokenType.WORD and self._peek().space_before:
            words.append(self._advance().value)
        return " ".join(words)

    def _parse_prefixed(self) -> ConditionNode | None:
        token = self._advance()
        name = token.value
        nxt = self._peek()

        if name in ("text", "ref", "bref"):
            kind = {
                "text": ConditionKind.TEXT,
                "ref": ConditionKind.PAGE_REF,
                "bref": ConditionKind.BLOCK_REF,
            }[name]
            if nxt.type == TokenType.LPAREN:
                self._kind_stack.append(kind)
                try:
                    return self._parse_group()
                finally:
                    self._kind_stack.pop()
            if nxt.type in (TokenType.WORD, TokenType.STRING):
                value = self._read_value_words()
                if not value.strip():
                    raise ParseError(f"Missing value after '{name}:'", token.pos, name)
                return Condition(kind=kind, value=value)
            if nxt.type in (TokenType.PAGE_REF, TokenType.TAG) and kind == ConditionKind.PAGE_REF:
                return self._parse_primary()
            if nxt.type == TokenType.BLOCK_REF and kind == ConditionKind.BLOCK_REF:
                return self._parse_primary()
            raise ParseError(f"Missing value after '{name}:'", token.pos, name)

        if name == "regex":
            if nxt.type != TokenType.REGEX:
                raise ParseError("Expected /pattern/ after 'regex:'", token.pos, name)
            return self._parse_regex()

        if name == "in":
            self._parse_scope(token)
            return None

        if name in ("page", "refs"):
            self._parse_target(token)
            return None

        raise ParseError(f"'{name}:' is only allowed inside page:(...)", token.pos, name)

    # ═══════════════════════════════════════════════════════════
    # QUERY-LEVEL MODIFIERS
    # ═══════════════════════════════════════════════════════════

    def _check_top_level(self, token: Token) -> None:
        if self._depth > 0:
            raise ParseError(
                f"'{token.value}:' is only allowed at the top level of a query",
                token.pos,
                token.value,
            )

    def _parse_scope(self, token: Token) -> None:
        self._check_top_level(token)
        if self._state.page_scope is not None:
            raise ParseError("Only one in: scope is allowed", token.pos, token.value)

        value = self._peek()
        if value.type == TokenType.WORD and value.value.lower() == "dnp":
            self._advance()
            scope = PageScope(daily_only=True)
        elif value.type == TokenType.REGEX:
            self._advance()
            try:
                compile_regex(value.value, value.extra)
            except re.error as e:
                raise ParseError(f"Invalid regex ({e})", value.pos, value.value) from e
            scope = PageScope(
                title_pattern=value.value, title_is_regex=True, title_flags=value.extra
            )
        elif value.type in (TokenType.PAGE_REF, TokenType.TAG):
            self._advance()
            scope = PageScope(title_pattern=value.value)
        elif value.type in (TokenType.WORD, TokenType.STRING):
            self._advance()
            scope = PageScope(title_pattern=value.value)
        else:
            raise ParseError("Missing scope after 'in:'", token.pos, token.value)
        self._state.page_scope = scope

    def _parse_target(self, token: Token) -> None:
        self._check_top_level(token)
        if self._state.target is not None:
            raise ParseError("Only one page:/refs: target is allowed", token.pos, token.value)

        self._expect(TokenType.LPAREN, f"Expected '(' after '{token.value}:'")
        self._depth += 1
        target = SearchTarget.REFERENCES if token.value == "refs" else SearchTarget.PAGE_CONTENT

        inner = self._peek()
        if (
            token.value == "page"
            and inner.type == TokenType.PREFIX
            and inner.value in _PAGE_TARGETS
        ):
            self._advance()
            target = _PAGE_TARGETS[inner.value]
            if self._peek().type == TokenType.LPAREN:
                tree = self._parse_group()
            else:
                tree = self._parse_or()
        else:
            tree = self._parse_or()

        closing = self._peek()
        if closing.type == TokenType.HIERARCHY:
            raise ParseError(
                "Hierarchy operators are not allowed inside parentheses",
                closing.pos,
                closing.value,
            )
        if closing.type != TokenType.RPAREN:
            raise ParseError("Unmatched parenthesis", token.pos, token.value)
        self._advance()
        self._depth -= 1
        if tree is None:
            raise ParseError(f"Empty {token.value}:(...) target", token.pos, token.value)

        self._state.target = target
        self._state.target_tree = tree
        self._state.target_token = token


def parse_query(source: str) -> QueryExpression:
    """Parse a symbolic request (see SymbolicQueryParser.parse)."""
    return SymbolicQueryParser().parse(source)
