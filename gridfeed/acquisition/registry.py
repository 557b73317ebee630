"""
Dataset registry: central catalog of dataset definitions.

Each dataset maps to a provider tag, an ordered tuple of filename extractors
and a static URL template. One generic matcher iterates the extractors; no
dataset carries bespoke parsing code.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from ..core.errors import UnknownDatasetError
from .base import DatasetSpec, FilenameExtractor, ManifestEntry, MergedDatasetSpec

logger = logging.getLogger(__name__)


def season_extractors(*stems: str, aggregate: bool = True) -> tuple[FilenameExtractor, ...]:
    """
    Standard extractor set for assets named <stem>_<season>.csv[.gz], optionally
    followed by the season-less <stem>.csv[.gz] aggregate.
    """
    out: List[FilenameExtractor] = []
    for stem in stems:
        out.append(FilenameExtractor.of(rf"{re.escape(stem)}_(\d{{4}})\.csv(\.gz)?$"))
    if aggregate:
        for stem in stems:
            out.append(FilenameExtractor.of(rf"^{re.escape(stem)}\.csv(\.gz)?$", season_group=None))
    return tuple(out)


def match_asset(spec: DatasetSpec, asset: Mapping[str, Any]) -> Optional[ManifestEntry]:
    """First extractor that matches wins; None drops the asset."""
    for extractor in spec.extractors:
        entry = extractor.match(asset)
        if entry is not None:
            return entry
    return None


class DatasetRegistry:
    """
    Mapping of dataset names to DatasetSpec / MergedDatasetSpec.

    Usage:
        registry = DatasetRegistry()
        registry.register(DatasetSpec(name="team_weekly", provider_tag="stats_team", ...))
        spec = registry.get("team_weekly")
    """

    def __init__(self) -> None:
        self._datasets: Dict[str, DatasetSpec] = {}
        self._merged: Dict[str, MergedDatasetSpec] = {}

    def register(self, spec: DatasetSpec) -> None:
        """Register (or replace) a dataset definition."""
        self._datasets[spec.name] = spec
        logger.debug("Registered dataset: %s (tag=%s)", spec.name, spec.provider_tag)

    def register_merged(self, spec: MergedDatasetSpec) -> None:
        for _, part in spec.parts:
            if part not in self._datasets:
                raise UnknownDatasetError(
                    f"Merged dataset '{spec.name}' references unknown dataset '{part}'"
                )
        self._merged[spec.name] = spec
        logger.debug("Registered merged dataset: %s", spec.name)

    def get(self, name: str) -> DatasetSpec:
        spec = self._datasets.get(name)
        if spec is None:
            raise UnknownDatasetError(
                f"Unknown dataset '{name}'. Available: {sorted(self._datasets)}"
            )
        return spec

    def get_merged(self, name: str) -> MergedDatasetSpec:
        spec = self._merged.get(name)
        if spec is None:
            raise UnknownDatasetError(
                f"Unknown merged dataset '{name}'. Available: {sorted(self._merged)}"
            )
        return spec

    def __contains__(self, name: object) -> bool:
        return name in self._datasets

    @property
    def names(self) -> List[str]:
        return list(self._datasets)

    @property
    def merged_names(self) -> List[str]:
        return list(self._merged)
