"""
Source resolution: pick the best URL for (dataset, season) and decode it.

Order of preference:
  1. manifest entries for the season: latest updated_at, ties prefer .gz
  2. manifest's last entry (season-less aggregates)
  3. static URL template
A 404 on one candidate moves to the next; any other error propagates.

Schedule-class datasets then pass through the staleness policy, which swaps
a manifest snapshot lagging real-world results for the live endpoint.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from ..core.errors import DatasetUnavailableError, NotFoundError
from ..timeutils import parse_iso
from .base import DatasetSpec, DecodedTable, ManifestEntry, ResolvedSource, Row, SourceOrigin
from .chain import first_usable
from .manifest import ManifestDiscovery

logger = logging.getLogger(__name__)

Decode = Callable[[str], Awaitable[DecodedTable]]

_REGULAR_SEASON = frozenset({"REG", "REGULAR"})


def _to_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return None


def _preference(entry: ManifestEntry) -> Tuple[datetime, int]:
    return (parse_iso(entry.updated_at), 1 if entry.is_compressed else 0)


def pick_entry(entries: Iterable[ManifestEntry]) -> Optional[ManifestEntry]:
    """Most recent updated_at wins; on equal timestamps a .gz asset wins."""
    best: Optional[ManifestEntry] = None
    for entry in entries:
        if best is None or _preference(entry) > _preference(best):
            best = entry
    return best


@dataclass(frozen=True)
class StalenessPolicy:
    """
    Decides whether a decoded schedule table lags the results the runtime
    expects to exist. expected_completed_week is the explicit override or
    target_week - 1.
    """

    target_week: Optional[int] = None
    expected_completed_week_override: Optional[int] = None

    @property
    def expected_completed_week(self) -> Optional[int]:
        if self.expected_completed_week_override is not None:
            return self.expected_completed_week_override
        if self.target_week is None:
            return None
        return max(0, self.target_week - 1)

    @staticmethod
    def max_completed_week(rows: Iterable[Row], season: Optional[int]) -> Optional[int]:
        """Highest regular-season week in `season` with both scores posted."""
        best: Optional[int] = None
        for row in rows:
            if season is not None and _to_int(row.get("season")) not in (None, season):
                continue
            season_type = str(row.get("season_type") or "REG").strip().upper()
            if season_type not in _REGULAR_SEASON:
                continue
            if _to_int(row.get("home_score")) is None or _to_int(row.get("away_score")) is None:
                continue
            week = _to_int(row.get("week"))
            if week is not None and (best is None or week > best):
                best = week
        return best

    def is_stale(self, table: DecodedTable, origin: SourceOrigin, season: Optional[int]) -> bool:
        if not table.rows:
            return True
        if origin not in (SourceOrigin.MANIFEST, SourceOrigin.MANIFEST_LATEST):
            return False
        expected = self.expected_completed_week
        if expected is None:
            return False
        completed = self.max_completed_week(table.rows, season) or 0
        return completed < expected


class SourceResolver:
    """Chooses source URLs for datasets and applies the staleness policy."""

    def __init__(
        self,
        discovery: ManifestDiscovery,
        staleness: Optional[StalenessPolicy] = None,
    ) -> None:
        self._discovery = discovery
        self._staleness = staleness or StalenessPolicy()

    @property
    def staleness(self) -> StalenessPolicy:
        return self._staleness

    async def resolve_from_manifest(self, spec: DatasetSpec, season: Optional[int]) -> Optional[ResolvedSource]:
        if not spec.provider_tag:
            return None
        manifest = await self._discovery.discover(spec.name)
        if not manifest.entries:
            if manifest.error:
                logger.debug("No manifest for %s: %s", spec.name, manifest.error)
            return None
        matches = [e for e in manifest.entries if season is None or e.season == season]
        if matches:
            chosen = pick_entry(matches)
            return ResolvedSource(url=chosen.url, origin=SourceOrigin.MANIFEST, name=chosen.name, season=chosen.season)
        latest = manifest.entries[-1]
        return ResolvedSource(url=latest.url, origin=SourceOrigin.MANIFEST_LATEST, name=latest.name, season=latest.season)

    async def resolve(self, spec: DatasetSpec, season: Optional[int]) -> Optional[ResolvedSource]:
        """Best single source, or None when neither manifest nor template applies."""
        candidates = await self.candidates(spec, season)
        return candidates[0] if candidates else None

    async def candidates(self, spec: DatasetSpec, season: Optional[int]) -> List[ResolvedSource]:
        """Ordered, URL-deduplicated source candidates."""
        out: List[ResolvedSource] = []
        from_manifest = await self.resolve_from_manifest(spec, season)
        if from_manifest is not None:
            out.append(from_manifest)
        static_url = spec.static_url(season)
        if static_url and all(c.url != static_url for c in out):
            out.append(ResolvedSource(url=static_url, origin=SourceOrigin.STATIC, season=spec.segment_season(season)))
        return out

    async def resolve_table(
        self,
        spec: DatasetSpec,
        season: Optional[int],
        decode: Decode,
    ) -> Tuple[ResolvedSource, DecodedTable]:
        """Decode the first candidate that exists, then apply the staleness policy."""
        candidates = await self.candidates(spec, season)
        if not candidates:
            raise DatasetUnavailableError(f"No source for {spec.name} season={season}")

        def _attempt(source: ResolvedSource) -> Callable[[], Awaitable[Tuple[ResolvedSource, DecodedTable]]]:
            async def run() -> Tuple[ResolvedSource, DecodedTable]:
                return source, await decode(source.url)
            return run

        found = await first_usable(
            (_attempt(s) for s in candidates),
            accept=lambda result: result is not None,
            tolerate=(NotFoundError,),
            label=f"{spec.name}:{season}",
        )
        if found is None:
            urls = ", ".join(s.url for s in candidates)
            raise DatasetUnavailableError(f"{spec.name} season={season}: every candidate missing (404): {urls}")
        source, table = found
        if spec.schedule_class:
            return await self._refresh_if_stale(spec, season, source, table, decode)
        return source, table

    async def _refresh_if_stale(
        self,
        spec: DatasetSpec,
        season: Optional[int],
        source: ResolvedSource,
        table: DecodedTable,
        decode: Decode,
    ) -> Tuple[ResolvedSource, DecodedTable]:
        if not self._staleness.is_stale(table, source.origin, season):
            return source, table
        live_url = spec.live_url(season)
        if not live_url or live_url == source.url:
            return source, table
        logger.warning(
            "%s season=%s: %s snapshot stale (completed week %s < expected %s); re-resolving from %s",
            spec.name,
            season,
            source.origin.value,
            self._staleness.max_completed_week(table.rows, season),
            self._staleness.expected_completed_week,
            live_url,
        )
        try:
            live = await decode(live_url)
        except NotFoundError:
            logger.warning("%s live endpoint missing; keeping %s", spec.name, source.url)
            return source, table
        if not live.rows:
            return source, table
        return ResolvedSource(url=live_url, origin=SourceOrigin.STATIC, season=spec.segment_season(season, live=True)), live
