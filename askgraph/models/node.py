"""Graph node models (pages and blocks)."""

import re
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field

DAILY_NOTE_UID = re.compile(r"^(0[1-9]|1[0-2])-(0[1-9]|[12][0-9]|3[01])-(19|20)[0-9]{2}$")
BLOCK_REF = re.compile(r"\(\(([\w-]{6,})\)\)")


class NodeKind(str, Enum):
    """Types of nodes in the graph."""

    BLOCK = "block"
    PAGE = "page"


class Page(BaseModel):
    """
    Root-level named node.

    A page has no parent. Daily Note Pages (one per calendar day) use the
    MM-DD-YYYY uid format.
    """

    uid: str = Field(..., description="Globally unique node id")
    title: str = Field(..., description="Page title")
    is_daily: bool = Field(default=False, description="Daily Note Page flag")
    created: datetime = Field(default_factory=datetime.now)
    modified: datetime = Field(default_factory=datetime.now)

    @property
    def kind(self) -> NodeKind:
        return NodeKind.PAGE


class Block(BaseModel):
    """
    Single node of outline content.

    Every block belongs to exactly one page (its root ancestor). `parent_uid`
    is the page uid for top-level blocks.
    """

    uid: str = Field(..., description="Globally unique node id")
    content: str = Field(default="", description="Block string")
    parent_uid: str = Field(..., description="Parent block or page uid")
    page_uid: str = Field(..., description="Owning page uid")
    order: int = Field(default=0, ge=0, description="Position among siblings")
    refs: list[str] = Field(default_factory=list, description="Referenced page/block uids")
    created: datetime = Field(default_factory=datetime.now)
    modified: datetime = Field(default_factory=datetime.now)

    @property
    def kind(self) -> NodeKind:
        return NodeKind.BLOCK


Node = Block | Page


def daily_note_uid(day: date) -> str:
    """Uid of the Daily Note Page for a calendar day."""
    return day.strftime("%m-%d-%Y")


def parse_daily_note_uid(uid: str) -> date | None:
    """Calendar day of a Daily Note Page uid, or None for other uids."""
    if not DAILY_NOTE_UID.match(uid):
        return None
    return datetime.strptime(uid, "%m-%d-%Y").date()


def extract_block_refs(content: str) -> list[str]:
    """Uids of every ((uid)) reference in a block string, in order."""
    return BLOCK_REF.findall(content or "")
