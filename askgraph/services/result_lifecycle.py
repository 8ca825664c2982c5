"""
Result lifecycle across a conversation.

ResultLifecycleManager is the single source of truth for the published
result set of one conversation. ConversationState owns it together with the
single-writer lock and the in-flight request, and is passed explicitly to
every `run_query` call.
"""

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from askgraph.config import TokenizerConfig
from askgraph.core.tokenizer import Tokenizer
from askgraph.models.results import MergeMode, ResultSet, ResultSummary, ResultTag, SearchResult
from askgraph.utils.id_generator import generate_result_set_id, generate_session_id
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SUMMARY_SAMPLES = 5
SAMPLE_CHARS = 120


class ResultLifecycleManager:
    """
    Tags, merges and publishes result sets.

    - replace: the prior set is discarded from the visible set
    - add: UNION keyed by uid; a new copy of a known uid supersedes the stale
      entry at its position and is tagged `replacement`; new uids added to a
      non-empty set are appended and tagged `completion`
    - narrow: a pure combination over the current set keeps the surviving
      entries, tagged `final`

    Every published set is kept in `history`.
    """

    def __init__(self, tokenizer: Tokenizer | None = None):
        self._current: ResultSet | None = None
        self._history: list[ResultSet] = []
        self.tokenizer = tokenizer or Tokenizer(TokenizerConfig(provider="approximate"))

    def current(self) -> ResultSet | None:
        """Currently published result set."""
        return self._current

    @property
    def history(self) -> list[ResultSet]:
        """Every published set, oldest first."""
        return list(self._history)

    def merge(self, new_set: ResultSet, mode: MergeMode | str = MergeMode.REPLACE) -> ResultSet:
        """
        Merge a new result set into the published one.

        Args:
            new_set: Results of the latest execution
            mode: add or replace

        Returns:
            The newly published set
        """
        mode = MergeMode(mode)
        prior = self._current

        if mode == MergeMode.REPLACE or prior is None or not prior.results:
            results = [r.with_tag(ResultTag.FINAL) for r in _dedup(new_set.results)]
            attempted = list(new_set.attempted_expansions)
            warnings = list(new_set.warnings)
        else:
            # superseded uids keep their prior position
            incoming = {r.uid: r for r in _dedup(new_set.results)}
            results = [
                incoming[r.uid].with_tag(ResultTag.REPLACEMENT) if r.uid in incoming else r
                for r in prior.results
            ]
            known = {r.uid for r in prior.results}
            results += [
                r.with_tag(ResultTag.COMPLETION) for r in incoming.values() if r.uid not in known
            ]
            attempted = prior.attempted_expansions + new_set.attempted_expansions
            warnings = prior.warnings + new_set.warnings

        published = new_set.model_copy(
            update={
                "results": results,
                "attempted_expansions": attempted,
                "warnings": warnings,
                "total_found": max(new_set.total_found, len(results)),
            }
        )
        self._publish(published)
        logger.info(
            f"Merged {len(new_set.results)} results ({mode.value}); {len(results)} published",
            extra={"mode": mode.value, "published": len(results)},
        )
        return published

    def narrow(self, uids: list[str], request: str = "") -> ResultSet:
        """
        Restrict the current set to `uids`, tagging the survivors final.

        Args:
            uids: Uids kept by a pure combination request
            request: Request that produced the narrowing

        Returns:
            The newly published set
        """
        prior = self._current or ResultSet()
        keep = set(uids)
        results = [r.with_tag(ResultTag.FINAL) for r in prior.results if r.uid in keep]
        published = prior.model_copy(
            update={
                "id": generate_result_set_id(),
                "request": request or prior.request,
                "results": results,
                "total_found": len(results),
            }
        )
        self._publish(published)
        logger.info(f"Narrowed current results from {len(prior.results)} to {len(results)}")
        return published

    def clear(self) -> None:
        """Drop the visible set (history is kept)."""
        self._current = None
        logger.debug("Cleared current results")

    def summary(self) -> ResultSummary | None:
        """Compact metadata form of the current set."""
        if self._current is None:
            return None
        return summarize(self._current, self.tokenizer)

    def _publish(self, result_set: ResultSet) -> None:
        self._current = result_set
        self._history.append(result_set)


def _dedup(results: list[SearchResult]) -> list[SearchResult]:
    """Last copy of a uid wins, at the position of its first occurrence."""
    latest: dict[str, SearchResult] = {}
    for result in results:
        latest[result.uid] = result
    return list(latest.values())


def summarize(result_set: ResultSet, tokenizer: Tokenizer) -> ResultSummary:
    """
    Build the compact metadata form of a result set.

    Args:
        result_set: Published result set
        tokenizer: Token estimator for the expanded content

    Returns:
        ResultSummary without expanded content
    """
    results = result_set.results
    page_counts = Counter(r.page_title or r.title or r.owning_page_uid for r in results)
    samples = []
    for result in results[:SUMMARY_SAMPLES]:
        snippet = (result.content or "")[:SAMPLE_CHARS] or None
        samples.append(
            {
                "uid": result.uid,
                "kind": result.kind.value,
                "title": result.title or result.page_title,
                "content": snippet,
            }
        )
    text = "\n".join(r.expanded_content or r.content or r.title or "" for r in results)

    return ResultSummary(
        result_set_id=result_set.id,
        request=result_set.request,
        strategy=result_set.strategy,
        total=len(results),
        total_found=result_set.total_found,
        counts_by_kind=dict(Counter(r.kind.value for r in results)),
        page_counts=dict(page_counts.most_common()),
        tag_counts=dict(Counter(r.tag.value for r in results)),
        samples=samples,
        attempted_expansions=list(result_set.attempted_expansions),
        warnings=list(result_set.warnings),
        estimated_tokens=tokenizer.estimate_tokens(text),
    )


class ConcurrencyPolicy(str, Enum):
    """What a new request does while another one is in flight."""

    QUEUE = "queue"
    CANCEL = "cancel"


class ConversationState:
    """
    Explicit per-conversation state passed to `run_query`.

    Only the request holding `lock` may merge into the lifecycle manager. A
    new request either queues behind the in-flight one or cancels it; a
    cancelled request stops at its next suspension point and whatever it
    merged before is superseded by the next successful merge.
    """

    def __init__(
        self,
        session_id: str | None = None,
        concurrency: ConcurrencyPolicy | str = ConcurrencyPolicy.QUEUE,
        lifecycle: ResultLifecycleManager | None = None,
    ):
        self.session_id = session_id or generate_session_id()
        self.concurrency = ConcurrencyPolicy(concurrency)
        self.lifecycle = lifecycle or ResultLifecycleManager()
        self.lock = asyncio.Lock()
        self._in_flight: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run a request under the single-writer policy.

        Args:
            operation: Zero-argument coroutine factory executing the request

        Returns:
            The operation's result

        Raises:
            asyncio.CancelledError: This request was cancelled by a newer one
        """
        if self.concurrency == ConcurrencyPolicy.CANCEL and self.busy:
            logger.info(f"Cancelling in-flight request of session {self.session_id}")
            self._in_flight.cancel()

        async def exclusive() -> T:
            async with self.lock:
                return await operation()

        task = asyncio.ensure_future(exclusive())
        self._in_flight = task
        try:
            return await task
        finally:
            if self._in_flight is task:
                self._in_flight = None
