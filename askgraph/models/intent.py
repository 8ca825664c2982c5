"""
Natural-language intent models and automatic expansion state.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from askgraph.models.query import DateField, DateFilter, PageScope, QueryExpression


class Sampling(str, Enum):
    SEQUENTIAL = "sequential"
    RANDOM = "random"


class IntentExtraction(BaseModel):
    """
    Structured extraction of a natural-language request.

    Produced either by an LLM (structured output) or by the rule extractor.
    The same extraction always yields the same ParsedIntent.
    """

    symbolic_query: str = Field(
        default="",
        description="Search conditions in the symbolic query language ('' for none)",
    )
    result_limit: int | None = Field(default=None, ge=1, description="Requested result count")
    sampling: Sampling = Field(default=Sampling.SEQUENTIAL, description="sequential or random")
    date_phrase: str | None = Field(
        default=None, description="Date expression as written, e.g. 'last week'"
    )
    date_field: DateField | None = Field(
        default=None, description="created, modified or date (daily-note day)"
    )
    daily_notes_only: bool = Field(default=False, description="Restrict to daily notes")
    title_pattern: str | None = Field(default=None, description="Restrict to pages with this title")
    exact: bool = Field(default=False, description="Disable automatic fuzzy/semantic expansion")


class ParsedIntent(BaseModel):
    """Deterministic outcome of intent parsing."""

    model_config = ConfigDict(frozen=True)

    expression: QueryExpression
    result_limit: int | None = None
    sampling: Sampling = Sampling.SEQUENTIAL
    date_filter: DateFilter | None = None
    page_scope: PageScope | None = None
    exact: bool = False


class AutomaticExpansionMode(str, Enum):
    """What to do when a simple or logical search returns nothing."""

    ASK_USER = "ask_user"
    AUTO_UNTIL_RESULT = "auto_until_result"
    ALWAYS_FUZZY = "always_fuzzy"
    ALWAYS_SYNONYMS = "always_synonyms"
    DISABLED = "disabled"


class ExpansionStrategy(str, Enum):
    """Escalating loosening strategies, in order."""

    NONE = "none"
    FUZZY = "fuzzy"
    FUZZY_SYNONYMS = "fuzzy_synonyms"
    BROAD_SEMANTIC = "broad_semantic"
    WIDEN_SCOPE = "widen_scope"


EXPANSION_SEQUENCE: tuple[ExpansionStrategy, ...] = tuple(ExpansionStrategy)
MAX_EXPANSION_ATTEMPTS = len(EXPANSION_SEQUENCE)


class ExpansionState(BaseModel):
    """Position in the expansion sequence (attempt 0 runs the query as written)."""

    model_config = ConfigDict(frozen=True)

    attempt: int = Field(default=0, ge=0, le=MAX_EXPANSION_ATTEMPTS)
    strategy: ExpansionStrategy = ExpansionStrategy.NONE
