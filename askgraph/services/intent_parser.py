"""
Natural-language intent parsing.

Two extractors produce the same structured IntentExtraction: an LLM
(structured output) when one is configured, and a deterministic rule
extractor. Both go through `IntentParser.from_extraction`, which parses the
symbolic query with the symbolic parser and resolves date phrases against the
invocation clock, so the same extraction always yields the same intent.
"""

import re
from datetime import date, datetime, time, timedelta

from askgraph.core.llm.base import LLMProvider
from askgraph.core.query.parser import SymbolicQueryParser
from askgraph.models.intent import IntentExtraction, ParsedIntent, Sampling
from askgraph.models.query import DateField, DateFilter, PageScope, SearchQuery
from askgraph.utils.exceptions import LLMError, ParseError
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

MONTHS = {
    name: index
    for index, name in enumerate(
        [
            "january", "february", "march", "april", "may", "june",
            "july", "august", "september", "october", "november", "december",
        ],
        start=1,
    )
}

_ISO_DATE = r"\d{4}-\d{2}-\d{2}"
_MONTH_NAMES = "|".join(MONTHS)

DATE_PHRASE = re.compile(
    r"\b(?:today|yesterday"
    r"|(?:this|last) (?:week|month|year)"
    r"|(?:last|past) \d+ (?:days?|weeks?|months?)"
    rf"|since {_ISO_DATE}"
    rf"|between {_ISO_DATE} and {_ISO_DATE}"
    rf"|in (?:{_MONTH_NAMES})(?: \d{{4}})?)\b",
    re.IGNORECASE,
)

_EXACT = re.compile(r"\b(?:exact|exactly)\b", re.IGNORECASE)
_RANDOM_COUNT = re.compile(r"\b(?:(\d+) random|random (\d+))\b", re.IGNORECASE)
_FIRST_COUNT = re.compile(r"\b(?:first|top) (\d+)\b", re.IGNORECASE)
_NOUN_COUNT = re.compile(r"\b(\d+) (?:results?|items?|blocks?|pages?|notes?)\b", re.IGNORECASE)
_DAILY = re.compile(r"\b(?:daily notes?|daily pages?|dnps?|journal)\b", re.IGNORECASE)
_TITLE_SCOPE = re.compile(r"\b(?:in|on|from) (?:the )?page \[\[([^\]]+)\]\]", re.IGNORECASE)
_CREATED = re.compile(r"\b(?:created|written|added)\b", re.IGNORECASE)
_MODIFIED = re.compile(r"\b(?:modified|edited|updated|changed)\b", re.IGNORECASE)

_TERM = re.compile(r'"[^"]*"|#\[\[[^\]]+\]\]|\[\[[^\]]+\]\]|\(\([\w-]+\)\)|#[\w/-]+|[^\s,.;:!?()]+')
_BARE = re.compile(r"^\w[\w.'-]*$")

_AND = {"and", "&", "+"}
_OR = {"or", "|"}
_NOT = {"not", "without", "except", "excluding", "-"}

STOP_WORDS = frozenset(
    """
    a an the i me my mine we our you your of to for from by with about on at in into
    is are was were be been do did does done have has had that which who what where when
    how find show give list get search look looking fetch display all any some every
    block blocks page pages note notes result results item items entry entries
    mention mentions mentioning mentioned containing contain contains tagged tag
    referencing reference references please can could would should there
    write wrote say said talk talked
    """.split()
)


# ═══════════════════════════════════════════════════════════
# DATE RESOLUTION
# ═══════════════════════════════════════════════════════════


def _start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _end(day: date) -> datetime:
    return datetime.combine(day, time.max)


def _shift_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    return date(year, month + 1, 1)


def resolve_date_phrase(phrase: str, now: datetime) -> tuple[datetime, datetime] | None:
    """
    Resolve a relative date phrase to an inclusive window.

    Args:
        phrase: e.g. "last week", "past 3 days", "since 2024-01-15", "in march"
        now: Invocation-time clock

    Returns:
        (start, end) or None when the phrase is not understood
    """
    text = phrase.strip().lower()
    today = now.date()

    if text == "today":
        return _start(today), _end(today)
    if text == "yesterday":
        day = today - timedelta(days=1)
        return _start(day), _end(day)

    match = re.fullmatch(r"(this|last) (week|month|year)", text)
    if match:
        which, unit = match.groups()
        if unit == "week":
            monday = today - timedelta(days=today.weekday())
            if which == "this":
                return _start(monday), _end(today)
            return _start(monday - timedelta(days=7)), _end(monday - timedelta(days=1))
        if unit == "month":
            first = today.replace(day=1)
            if which == "this":
                return _start(first), _end(today)
            return _start(_shift_months(first, -1)), _end(first - timedelta(days=1))
        first = date(today.year, 1, 1)
        if which == "this":
            return _start(first), _end(today)
        return _start(date(today.year - 1, 1, 1)), _end(date(today.year - 1, 12, 31))

    match = re.fullmatch(r"(?:last|past) (\d+) (day|week|month)s?", text)
    if match:
        count, unit = int(match.group(1)), match.group(2)
        if unit == "month":
            start = _shift_months(today.replace(day=1), -count).replace(
                day=min(today.day, 28)
            )
        else:
            start = today - timedelta(days=count * (7 if unit == "week" else 1))
        return _start(start), _end(today)

    match = re.fullmatch(rf"since ({_ISO_DATE})", text)
    if match:
        return _start(date.fromisoformat(match.group(1))), _end(today)

    match = re.fullmatch(rf"between ({_ISO_DATE}) and ({_ISO_DATE})", text)
    if match:
        first, second = sorted(date.fromisoformat(g) for g in match.groups())
        return _start(first), _end(second)

    match = re.fullmatch(rf"in ({_MONTH_NAMES})(?: (\d{{4}}))?", text)
    if match:
        month = MONTHS[match.group(1)]
        year = int(match.group(2)) if match.group(2) else today.year
        if not match.group(2) and month > today.month:
            year -= 1
        first = date(year, month, 1)
        return _start(first), _end(_shift_months(first, 1) - timedelta(days=1))

    return None


# ═══════════════════════════════════════════════════════════
# RULE EXTRACTOR
# ═══════════════════════════════════════════════════════════


def _symbolic_term(term: str) -> str:
    if term.startswith(('"', "[[", "#", "((")):
        return term
    return term if _BARE.match(term) else '"' + term.replace('"', "") + '"'


def connectives_to_symbolic(text: str) -> str:
    """
    Map natural connectives onto symbolic operators.

    "and" -> AND, "or" -> |, "not"/"without"/"except" -> -; stop words are
    dropped, page references, tags and quoted phrases are kept verbatim.
    """
    parts: list[str] = []
    pending_or = False
    negate = False

    for token in _TERM.findall(text):
        if token.startswith("-") and len(token) > 1:
            negate = True
            token = token[1:]
        word = token.lower()
        if word in _OR:
            pending_or = bool(parts)
            continue
        if word in _NOT:
            negate = True
            continue
        if word in _AND or word == "but":
            continue
        if word in STOP_WORDS or not any(ch.isalnum() for ch in token):
            continue

        term = ("-" if negate else "") + _symbolic_term(token)
        if pending_or and not negate:
            parts[-1] = f"{parts[-1]}|{term}"
        else:
            parts.append(term)
        pending_or = False
        negate = False

    return " ".join(parts)


def rule_extract(text: str) -> IntentExtraction:
    """
    Deterministic extraction of a natural-language request.

    Args:
        text: Free-form request

    Returns:
        IntentExtraction
    """
    working = text
    exact = bool(_EXACT.search(working))
    working = _EXACT.sub(" ", working)

    result_limit = None
    sampling = Sampling.SEQUENTIAL
    match = _RANDOM_COUNT.search(working)
    if match:
        result_limit = int(match.group(1) or match.group(2))
        sampling = Sampling.RANDOM
        working = working[: match.start()] + " " + working[match.end() :]
    else:
        for pattern in (_FIRST_COUNT, _NOUN_COUNT):
            match = pattern.search(working)
            if match:
                result_limit = int(match.group(1))
                working = working[: match.start()] + " " + working[match.end() :]
                break

    date_phrase = None
    match = DATE_PHRASE.search(working)
    if match:
        date_phrase = match.group(0).lower()
        working = working[: match.start()] + " " + working[match.end() :]

    date_field = None
    if _CREATED.search(working):
        date_field = DateField.CREATED
    elif _MODIFIED.search(working):
        date_field = DateField.MODIFIED
    working = _MODIFIED.sub(" ", _CREATED.sub(" ", working))

    daily = bool(_DAILY.search(working))
    working = _DAILY.sub(" ", working)

    title_pattern = None
    match = _TITLE_SCOPE.search(working)
    if match:
        title_pattern = match.group(1)
        working = working[: match.start()] + " " + working[match.end() :]

    return IntentExtraction(
        symbolic_query=connectives_to_symbolic(working),
        result_limit=result_limit,
        sampling=sampling,
        date_phrase=date_phrase,
        date_field=date_field,
        daily_notes_only=daily,
        title_pattern=title_pattern,
        exact=exact,
    )


_LLM_PROMPT = """[CURRENT DATE/TIME: {now}]

Translate a search request over a note-taking graph into a structured query.

Symbolic query language for `symbolic_query`:
- bare word = text, "quoted phrase" = exact phrase, [[Title]] or #tag = page reference
- ((uid)) = block reference, /pattern/i = regex
- space or + = AND, | = OR, - = NOT, (...) = grouping
- suffix * = fuzzy, ~ = synonyms, ~~ = broader concepts
- A > B: block matching A with a direct child matching B; >> any descendant
- A < B: block matching A whose parent matches B; << any ancestor
Leave out counts, dates and scopes from `symbolic_query`; use the other fields.

Request: {request}

Respond with JSON:
- symbolic_query: search conditions ('' when only a date or scope is asked)
- result_limit: number of results requested, or null
- sampling: random if random results are requested, else sequential
- date_phrase: date expression as written (e.g. 'last week'), or null
- date_field: created, modified or date, or null
- daily_notes_only: true when only daily notes are requested
- title_pattern: page title the search is restricted to, or null
- exact: true when the user asks for exact matches only
"""


class IntentParser:
    """
    Turns natural language into a ParsedIntent.

    Usage:
        parser = IntentParser(llm)
        intent = await parser.parse("5 random notes about [[finance]] last week")
    """

    def __init__(
        self,
        llm_provider: LLMProvider | None = None,
        symbolic_parser: SymbolicQueryParser | None = None,
    ):
        """
        Initialize intent parser.

        Args:
            llm_provider: Optional LLM extractor (None = rule extractor only)
            symbolic_parser: Parser validating extracted symbolic queries
        """
        self.llm = llm_provider
        self.symbolic_parser = symbolic_parser or SymbolicQueryParser()

    async def parse(self, text: str, now: datetime | None = None) -> ParsedIntent:
        """
        Parse a natural-language request.

        The LLM extraction is untrusted: when it fails or does not parse, the
        rule extractor is used instead.

        Args:
            text: Free-form request
            now: Invocation-time clock (default: datetime.now())

        Returns:
            ParsedIntent

        Raises:
            ParseError: The request yields nothing to search for
        """
        now = now or datetime.now()

        if self.llm is not None:
            try:
                extraction = await self._llm_extract(text, now)
                return self.from_extraction(extraction, now)
            except (LLMError, ParseError) as e:
                logger.warning(f"LLM intent extraction rejected, using rules: {e}")

        return self.from_extraction(rule_extract(text), now)

    async def _llm_extract(self, text: str, now: datetime) -> IntentExtraction:
        prompt = _LLM_PROMPT.format(now=now.strftime("%Y-%m-%d %H:%M:%S"), request=text)
        result = await self.llm.extract(prompt, IntentExtraction)
        logger.debug(f"LLM extraction: {result.symbolic_query!r}")
        return result

    def from_extraction(self, extraction: IntentExtraction, now: datetime) -> ParsedIntent:
        """
        Deterministic mapping of an extraction onto a ParsedIntent.

        Args:
            extraction: Structured extraction (from either extractor)
            now: Invocation-time clock for relative dates

        Returns:
            ParsedIntent

        Raises:
            ParseError: Invalid symbolic query, or nothing to search for
        """
        date_filter = None
        if extraction.date_phrase:
            window = resolve_date_phrase(extraction.date_phrase, now)
            if window is None:
                logger.warning(f"Ignoring unrecognized date phrase: {extraction.date_phrase!r}")
            else:
                field = extraction.date_field or (
                    DateField.DATE if extraction.daily_notes_only else DateField.MODIFIED
                )
                date_filter = DateFilter(field=field, start=window[0], end=window[1])

        page_scope = None
        if extraction.daily_notes_only or extraction.title_pattern:
            page_scope = PageScope(
                daily_only=extraction.daily_notes_only, title_pattern=extraction.title_pattern
            )

        symbolic = extraction.symbolic_query.strip()
        if symbolic:
            expression = self.symbolic_parser.parse(symbolic)
        elif extraction.daily_notes_only or date_filter is not None:
            expression = SearchQuery(
                page_scope=PageScope(daily_only=True),
                date_filter=date_filter
                and date_filter.model_copy(update={"field": extraction.date_field or DateField.DATE}),
            )
        else:
            raise ParseError("Nothing to search for in the request", 0)

        return ParsedIntent(
            expression=expression,
            result_limit=extraction.result_limit,
            sampling=extraction.sampling,
            date_filter=date_filter,
            page_scope=page_scope,
            exact=extraction.exact,
        )
