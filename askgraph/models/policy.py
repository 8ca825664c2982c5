"""
Access policies.

An AccessPolicy is a frozen configuration value chosen at request start. It
governs how much content may be surfaced and how deep context expansion goes
for a given result count.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class AccessMode(str, Enum):
    """Content visibility modes."""

    PRIVATE = "private"
    BALANCED = "balanced"
    FULL = "full"


class DepthBucket(BaseModel):
    """Step of a depth table: up to `max_results` results expand `depth` levels."""

    model_config = ConfigDict(frozen=True)

    max_results: int | None  # None = no upper bound
    depth: int | None  # None = unlimited (capped by the policy)


def _table(*steps: tuple[int | None, int | None]) -> tuple[DepthBucket, ...]:
    return tuple(DepthBucket(max_results=n, depth=d) for n, d in steps)


BLOCK_DEPTH_TABLES: dict[AccessMode, tuple[DepthBucket, ...]] = {
    AccessMode.PRIVATE: _table((None, 0)),
    AccessMode.BALANCED: _table((10, 4), (25, 3), (50, 2), (200, 1), (None, 0)),
    AccessMode.FULL: _table((10, None), (20, 5), (100, 4), (200, 3), (300, 2), (500, 1), (None, 0)),
}

PAGE_DEPTH_TABLES: dict[AccessMode, tuple[DepthBucket, ...]] = {
    AccessMode.PRIVATE: _table((None, 0)),
    AccessMode.BALANCED: _table((10, 5), (25, 4), (50, 3), (200, 2), (None, 0)),
    AccessMode.FULL: _table((10, None), (50, 6), (100, 5), (200, 4), (500, 2), (None, 0)),
}

BUDGET_FRACTIONS: dict[AccessMode, float] = {
    AccessMode.PRIVATE: 0.0,
    AccessMode.BALANCED: 0.5,
    AccessMode.FULL: 0.8,
}


class AccessPolicy(BaseModel):
    """Content visibility and expansion limits for one request."""

    model_config = ConfigDict(frozen=True)

    mode: AccessMode
    content_budget_fraction: float
    max_results_before_no_expansion: int
    depth_table: tuple[DepthBucket, ...]
    page_depth_table: tuple[DepthBucket, ...]
    min_result_budget: int = 300
    max_result_budget: int = 20000
    unlimited_depth_cap: int = 10

    @classmethod
    def for_mode(
        cls,
        mode: AccessMode | str,
        content_budget_fraction: float | None = None,
        min_result_budget: int = 300,
        max_result_budget: int = 20000,
    ) -> "AccessPolicy":
        """
        Build the fixed policy of an access mode.

        Args:
            mode: private, balanced or full
            content_budget_fraction: Override of the mode's context-window share
            min_result_budget: Per-result character floor
            max_result_budget: Per-result character ceiling

        Returns:
            AccessPolicy
        """
        mode = AccessMode(mode)
        depth_table = BLOCK_DEPTH_TABLES[mode]
        if mode == AccessMode.PRIVATE:
            content_budget_fraction = 0.0
        elif content_budget_fraction is None:
            content_budget_fraction = BUDGET_FRACTIONS[mode]
        # Last bucket with a non-zero depth bounds expansion
        expanding = [b.max_results for b in depth_table if b.depth != 0 and b.max_results]
        return cls(
            mode=mode,
            content_budget_fraction=content_budget_fraction,
            max_results_before_no_expansion=max(expanding) if expanding else 0,
            depth_table=depth_table,
            page_depth_table=PAGE_DEPTH_TABLES[mode],
            min_result_budget=min_result_budget,
            max_result_budget=max_result_budget,
        )

    @property
    def shows_content(self) -> bool:
        return self.mode != AccessMode.PRIVATE

    def depth_limit(self, result_count: int) -> int:
        """Block expansion depth for a result count."""
        return self._lookup(self.depth_table, result_count)

    def page_depth_limit(self, result_count: int) -> int:
        """Page expansion depth for a result count."""
        return self._lookup(self.page_depth_table, result_count)

    def _lookup(self, table: tuple[DepthBucket, ...], result_count: int) -> int:
        for bucket in table:
            if bucket.max_results is None or result_count <= bucket.max_results:
                return self.unlimited_depth_cap if bucket.depth is None else bucket.depth
        return 0
