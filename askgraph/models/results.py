"""
Search results, result sets and their compact summaries.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from askgraph.models.node import NodeKind
from askgraph.models.plan import Strategy
from askgraph.utils.id_generator import generate_result_set_id


class ResultTag(str, Enum):
    """Provenance tag of a result within a published set."""

    FINAL = "final"
    INTERMEDIATE = "intermediate"
    REPLACEMENT = "replacement"
    COMPLETION = "completion"


class MergeMode(str, Enum):
    """How a new result set is merged into the conversation's current one."""

    ADD = "add"
    REPLACE = "replace"


class ContextNode(BaseModel):
    """Parent or child content attached to a result during expansion."""

    uid: str
    content: str = ""
    level: int = Field(default=1, ge=1)
    truncated: bool = False
    children: list["ContextNode"] = Field(default_factory=list)


ContextNode.model_rebuild()


class SearchResult(BaseModel):
    """
    A matched node.

    Identity is `uid` (unique across blocks and pages). Tools fill the raw
    fields; the context expander fills parents/children/expanded_content.
    """

    uid: str
    kind: NodeKind
    content: str | None = None
    title: str | None = None
    page_uid: str | None = None
    page_title: str | None = None
    is_daily: bool = False
    created: datetime | None = None
    modified: datetime | None = None
    parents: list[ContextNode] = Field(default_factory=list)
    children: list[ContextNode] = Field(default_factory=list)
    expansion_level: int = 0
    reference_count: int | None = None
    expanded_content: str | None = None
    truncated: bool = False
    tag: ResultTag = ResultTag.FINAL
    step_index: int | None = None

    @property
    def owning_page_uid(self) -> str:
        """Uid of the page this result lives on (itself for pages)."""
        return self.uid if self.kind == NodeKind.PAGE else (self.page_uid or self.uid)

    def with_tag(self, tag: ResultTag, step_index: int | None = None) -> "SearchResult":
        update: dict = {"tag": tag}
        if step_index is not None:
            update["step_index"] = step_index
        return self.model_copy(update=update)


class ResultSet(BaseModel):
    """Ordered, uid-unique sequence of results plus provenance metadata."""

    id: str = Field(default_factory=generate_result_set_id)
    request: str = ""
    strategy: Strategy | None = None
    results: list[SearchResult] = Field(default_factory=list)
    attempted_expansions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    total_found: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("results")
    @classmethod
    def _unique_uids(cls, results: list[SearchResult]) -> list[SearchResult]:
        seen: set[str] = set()
        for result in results:
            if result.uid in seen:
                raise ValueError(f"duplicate uid in result set: {result.uid}")
            seen.add(result.uid)
        return results

    @property
    def uids(self) -> list[str]:
        return [r.uid for r in self.results]

    def __len__(self) -> int:
        return len(self.results)


class ResultSummary(BaseModel):
    """Compact metadata form of a result set, without expanded content."""

    result_set_id: str
    request: str = ""
    strategy: Strategy | None = None
    total: int = 0
    total_found: int = 0
    counts_by_kind: dict[str, int] = Field(default_factory=dict)
    page_counts: dict[str, int] = Field(default_factory=dict)
    tag_counts: dict[str, int] = Field(default_factory=dict)
    samples: list[dict[str, str | None]] = Field(default_factory=list)
    attempted_expansions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    estimated_tokens: int = 0
