"""
Acquisition data contracts.

Dataset definitions, manifest entries, resolved sources and decoded tables
are frozen dataclasses; they are created once and passed between the
resolver, decoder and cache without mutation.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

Scalar = Union[str, int, float, None]
Row = Dict[str, Scalar]

# Cache key used for season-less (aggregate) loads.
ALL = "ALL"


class SourceOrigin(str, enum.Enum):
    """Where a resolved URL came from."""

    MANIFEST = "manifest"
    MANIFEST_LATEST = "manifest-latest"
    STATIC = "static"
    ALTERNATE = "alternate"


@dataclass(frozen=True)
class ManifestEntry:
    """One release asset that matched a dataset's filename extractors."""

    season: Optional[int]
    url: str
    name: str
    size: Optional[int] = None
    updated_at: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def is_compressed(self) -> bool:
        return self.name.lower().endswith(".gz")


@dataclass(frozen=True)
class Manifest:
    """Discovered index of a provider's files for one dataset."""

    dataset: str
    entries: Tuple[ManifestEntry, ...] = ()
    discovered_at: Optional[str] = None
    source: Optional[str] = None
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return bool(self.entries)


@dataclass(frozen=True)
class FilenameExtractor:
    """
    Regex over an asset name. season_group is the capture group holding the
    four-digit season, or None when a match denotes an unsegmented aggregate.
    """

    pattern: re.Pattern
    season_group: Optional[int] = 1

    @classmethod
    def of(cls, regex: str, season_group: Optional[int] = 1) -> "FilenameExtractor":
        return cls(pattern=re.compile(regex, re.IGNORECASE), season_group=season_group)

    def match(self, asset: Mapping[str, Any]) -> Optional[ManifestEntry]:
        name = str(asset.get("name") or "")
        m = self.pattern.search(name)
        if not m:
            return None
        season: Optional[int] = None
        if self.season_group is not None:
            try:
                season = int(m.group(self.season_group))
            except (IndexError, TypeError, ValueError):
                return None
        url = asset.get("browser_download_url") or asset.get("download_url") or asset.get("url")
        if not url:
            return None
        return ManifestEntry(
            season=season,
            url=str(url),
            name=name,
            size=asset.get("size"),
            updated_at=asset.get("updated_at"),
            content_type=asset.get("content_type"),
        )


@dataclass(frozen=True)
class AlternateEndpoints:
    """
    Secondary-provider endpoints for one dataset. bulk entries are (path, params)
    pairs tried in order; per_team is the per-entity fallback path. Param values
    may contain "{season}" / "{team}" placeholders.
    """

    bulk: Tuple[Tuple[str, Tuple[Tuple[str, str], ...]], ...] = ()
    per_team: Optional[Tuple[str, Tuple[Tuple[str, str], ...]]] = None


@dataclass(frozen=True)
class DatasetSpec:
    """Static definition of a dataset: where it lives and how it is validated."""

    name: str
    provider_tag: Optional[str] = None
    extractors: Tuple[FilenameExtractor, ...] = ()
    url_template: Optional[str] = None
    live_url_template: Optional[str] = None
    min_rows: int = 0
    grows_in_season: bool = False
    schedule_class: bool = False
    streaming: bool = False
    columns: Tuple[str, ...] = ()
    season_column: str = "season"
    alternate: Optional[AlternateEndpoints] = None

    def segment_season(self, season: Optional[int], *, live: bool = False) -> Optional[int]:
        """Season a templated URL is segmented by; None when the file holds every season."""
        template = (self.live_url_template or self.url_template) if live else self.url_template
        return season if template and "{season}" in template else None

    def static_url(self, season: Optional[int]) -> Optional[str]:
        return _render(self.url_template, season)

    def live_url(self, season: Optional[int]) -> Optional[str]:
        return _render(self.live_url_template or self.url_template, season)


@dataclass(frozen=True)
class MergedDatasetSpec:
    """Per-phase datasets joined on season|week|team; phase prefixes value columns."""

    name: str
    parts: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ResolvedSource:
    url: str
    origin: SourceOrigin
    name: Optional[str] = None
    season: Optional[int] = None


@dataclass(frozen=True)
class DecodedTable:
    """Parsed rows plus SHA-256 of the decompressed payload."""

    rows: List[Row]
    checksum: str
    source: str

    def __len__(self) -> int:
        return len(self.rows)


@runtime_checkable
class HttpResponse(Protocol):
    """Subset of requests.Response used by the transport and decoder."""

    status_code: int
    content: bytes

    def json(self) -> Any: ...

    def iter_content(self, chunk_size: int = ...) -> Any: ...

    def close(self) -> None: ...


def _render(template: Optional[str], season: Optional[int]) -> Optional[str]:
    if not template:
        return None
    if "{season}" in template:
        if season is None:
            return None
        return template.format(season=season)
    return template
