"""
Row-count sanity thresholds. A decoded table under its threshold is treated
as a truncated provider file and fails the load.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ..core.errors import SanityCheckFailedError
from .base import DatasetSpec

logger = logging.getLogger(__name__)

REGULAR_SEASON_WEEKS = 18


@dataclass(frozen=True)
class SeasonProgress:
    """How far into the current season the runtime believes it is."""

    current_season: int
    weeks_elapsed: Optional[int] = None
    total_weeks: int = REGULAR_SEASON_WEEKS

    def weeks(self, season: Optional[int]) -> Tuple[int, int]:
        """(elapsed, total) for season; past and aggregate seasons count as complete."""
        total = max(1, self.total_weeks)
        if season is None or season != self.current_season or self.weeks_elapsed is None:
            return total, total
        return min(max(self.weeks_elapsed, 1), total), total

    def fraction(self, season: Optional[int]) -> float:
        elapsed, total = self.weeks(season)
        return elapsed / total


def required_rows(
    spec: DatasetSpec,
    season: Optional[int],
    progress: Optional[SeasonProgress] = None,
    minimum: Optional[int] = None,
) -> int:
    """Threshold for spec/season; scaled down for in-season datasets that grow weekly."""
    base = spec.min_rows if minimum is None else minimum
    if base <= 0:
        return 0
    if not spec.grows_in_season or progress is None:
        return base
    elapsed, total = progress.weeks(season)
    return max(1, base * elapsed // total)


def check_row_count(dataset: str, season: Optional[int], rows: Sequence[object], minimum: int) -> None:
    """Raise SanityCheckFailedError when rows < minimum."""
    if minimum > 0 and len(rows) < minimum:
        raise SanityCheckFailedError(dataset, season, len(rows), minimum)
    logger.debug("Sanity ok for %s season=%s rows=%d min=%d", dataset, season, len(rows), minimum)
