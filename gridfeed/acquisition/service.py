"""
Acquisition service: the outbound contracts consumed by feature builders.

    service = create_service()
    rows = await service.load_dataset("team_weekly", 2024)
    pfr = await service.load_merged_by_key("pfr_adv", 2024)

Every load is cached per (dataset, season) with in-flight de-duplication.
For seasons the alternate provider covers, it is consulted first; otherwise
(or when it has nothing) the resolver -> transport -> decoder chain runs,
followed by the row-count sanity check.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional

from ..core.errors import GridfeedError
from ..core.hashing import rows_fingerprint
from .alternate import AlternateProviderAdapter
from .base import ALL, DatasetSpec, DecodedTable, Row, SourceOrigin
from .cache import ResultCache
from .decoder import TableDecoder
from .manifest import ManifestDiscovery
from .merge import merge_by_key, prefix_phase
from .registry import DatasetRegistry
from .resolver import SourceResolver
from .sanity import SeasonProgress, check_row_count, required_rows
from .transport import HttpTransport

logger = logging.getLogger(__name__)

CacheFactory = Callable[[str, Optional[int]], ResultCache]


def _default_cache_factory(name: str, max_entries: Optional[int]) -> ResultCache:
    return ResultCache(name, max_entries=max_entries)


def rows_for_season(rows: List[Row], column: str, season: int) -> List[Row]:
    """Rows whose season column equals season; unchanged when no row carries the column."""
    if not any(column in row for row in rows):
        return rows
    wanted = str(season)
    return [row for row in rows if str(row.get(column) or "").strip() == wanted]


class DataAcquisitionService:
    """Owns the caches and the acquisition pipeline for one process."""

    def __init__(
        self,
        registry: DatasetRegistry,
        *,
        transport: HttpTransport,
        discovery: ManifestDiscovery,
        resolver: SourceResolver,
        decoder: TableDecoder,
        alternate: Optional[AlternateProviderAdapter] = None,
        progress: Optional[SeasonProgress] = None,
        min_rows: Optional[Mapping[str, int]] = None,
        cache_caps: Optional[Mapping[str, int]] = None,
        cache_factory: Optional[CacheFactory] = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.discovery = discovery
        self.resolver = resolver
        self.decoder = decoder
        self.alternate = alternate or AlternateProviderAdapter(None)
        self.progress = progress
        self._min_rows: Dict[str, int] = dict(min_rows or {})
        self._cache_caps: Dict[str, int] = dict(cache_caps or {})
        self._cache_factory = cache_factory or _default_cache_factory
        self._caches: Dict[str, ResultCache] = {}

    def cache_for(self, name: str) -> ResultCache:
        cache = self._caches.get(name)
        if cache is None:
            cache = self._cache_factory(name, self._cache_caps.get(name))
            self._caches[name] = cache
        return cache

    def minimum_rows(self, spec: DatasetSpec, season: Optional[int]) -> int:
        return required_rows(spec, season, self.progress, minimum=self._min_rows.get(spec.name))

    async def load_table(self, name: str, season: Optional[int] = None) -> DecodedTable:
        spec = self.registry.get(name)
        key: Hashable = season if season is not None else ALL
        return await self.cache_for(name).get_or_load(key, lambda: self._load(spec, season))

    async def load_dataset(self, name: str, season: Optional[int] = None) -> List[Row]:
        """Validated rows for (name, season); season None loads the aggregate."""
        table = await self.load_table(name, season)
        return list(table.rows)

    async def _load(self, spec: DatasetSpec, season: Optional[int]) -> DecodedTable:
        async def primary() -> DecodedTable:
            return await self._load_primary(spec, season)

        endpoints = spec.alternate
        client = self.alternate.client
        if endpoints is None or client is None:
            return await primary()

        async def secondary() -> Optional[DecodedTable]:
            raw = await client.fetch_endpoints(endpoints, season, label=f"{spec.name}:{season}")
            rows = [dict(r) for r in raw if isinstance(r, Mapping)]
            if not rows:
                return None
            return DecodedTable(
                rows=rows,
                checksum=rows_fingerprint(rows),
                source=f"{SourceOrigin.ALTERNATE.value}:{spec.name}:{season}",
            )

        return await self.alternate.with_fallback(spec.name, season, primary, secondary)

    async def _decode(self, spec: DatasetSpec, season: Optional[int], url: str) -> DecodedTable:
        if spec.streaming:
            return await self.decoder.decode_streaming(
                url, season, columns=spec.columns, season_column=spec.season_column
            )
        return await self.decoder.decode(url)

    async def _load_primary(self, spec: DatasetSpec, season: Optional[int]) -> DecodedTable:
        source, table = await self.resolver.resolve_table(
            spec, season, lambda url: self._decode(spec, season, url)
        )
        if season is not None and source.season is None and not spec.streaming:
            rows = rows_for_season(table.rows, spec.season_column, season)
            table = DecodedTable(rows=rows, checksum=table.checksum, source=table.source)
        elif season is not None and source.season not in (None, season):
            logger.warning(
                "%s season=%s served from %s (season %s) via %s",
                spec.name, season, source.name or source.url, source.season, source.origin.value,
            )

        check_row_count(spec.name, season, table.rows, self.minimum_rows(spec, season))
        logger.info(
            "Loaded %s season=%s rows=%d origin=%s sha256=%s",
            spec.name,
            season if season is not None else ALL,
            len(table.rows),
            source.origin.value,
            table.checksum[:12],
        )
        return table

    async def _phase_rows(self, dataset: str, season: int) -> List[Row]:
        try:
            return await self.load_dataset(dataset, season)
        except GridfeedError as exc:
            logger.warning("Phase dataset %s season=%s unavailable: %s", dataset, season, exc)
            return []

    async def load_merged_by_key(self, name: str, season: int) -> Dict[str, Row]:
        """Per-phase datasets loaded concurrently and joined on "season|week|team"."""
        merged_spec = self.registry.get_merged(name)

        async def _load() -> Dict[str, Row]:
            results = await asyncio.gather(
                *(self._phase_rows(dataset, season) for _, dataset in merged_spec.parts)
            )
            merged = merge_by_key(
                *(prefix_phase(rows, phase) for (phase, _), rows in zip(merged_spec.parts, results))
            )
            logger.info("Merged %s season=%s keys=%d", name, season, len(merged))
            return merged

        return await self.cache_for(name).get_or_load(season, _load)

    async def list_dataset_seasons(self, name: str) -> List[int]:
        self.registry.get(name)
        return await self.discovery.list_seasons(name)

    def clear_caches(self) -> None:
        """Drop cached tables and alternate memo entries; manifests are kept."""
        for cache in self._caches.values():
            cache.clear()
        self.alternate.clear()

    def cache_stats(self) -> Dict[str, Any]:
        return {name: {"entries": len(c), "max_entries": c.max_entries} for name, c in self._caches.items()}
