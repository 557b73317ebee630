"""
Manifest discovery against a GitHub-releases style listing endpoint.

A release is fetched once per tag; each dataset's manifest is derived once
from its release. Failures produce an empty Manifest with `error` set, since
a missing manifest is a routine trigger for the static-URL fallback.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..core.errors import GridfeedError, ManifestUnavailableError, NotFoundError
from ..timeutils import now_utc_iso
from .base import DatasetSpec, Manifest, ManifestEntry
from .cache import ResultCache
from .registry import DatasetRegistry, match_asset
from .transport import HttpTransport

logger = logging.getLogger(__name__)

DEFAULT_API_ROOT = "https://api.github.com/repos/nflverse/nflverse-data"
RELEASE_LIST_PAGE_SIZE = 100


def _sort_key(entry: ManifestEntry) -> Tuple[int, str]:
    return (entry.season or 0, entry.name)


def build_entries(spec: DatasetSpec, assets: List[Mapping[str, Any]]) -> Tuple[ManifestEntry, ...]:
    """Match assets, drop duplicate (season, name) pairs, sort by (season, name)."""
    seen = set()
    entries: List[ManifestEntry] = []
    for asset in assets:
        if not isinstance(asset, Mapping):
            continue
        entry = match_asset(spec, asset)
        if entry is None:
            continue
        key = (entry.season, entry.name)
        if key in seen:
            continue
        seen.add(key)
        entries.append(entry)
    entries.sort(key=_sort_key)
    return tuple(entries)


class ManifestDiscovery:
    """Discovers and memoizes per-dataset manifests for the service lifetime."""

    def __init__(
        self,
        transport: HttpTransport,
        registry: DatasetRegistry,
        *,
        api_root: str = DEFAULT_API_ROOT,
        token: Optional[str] = None,
        max_assets: int = 1000,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._api_root = api_root.rstrip("/")
        self._token = token
        self._max_assets = max_assets
        self._releases: ResultCache[Dict[str, Any]] = ResultCache("releases")
        self._manifests: ResultCache[Manifest] = ResultCache("manifests")

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def release(self, tag: str) -> Dict[str, Any]:
        """Release metadata for tag; falls back to searching the release list on 404."""
        return await self._releases.get_or_load(tag, lambda: self._fetch_release(tag))

    async def _fetch_release(self, tag: str) -> Dict[str, Any]:
        try:
            release = await self._transport.fetch_json(
                f"{self._api_root}/releases/tags/{tag}", headers=self._headers()
            )
        except NotFoundError:
            logger.debug("Release tag %s not found directly; searching release list", tag)
            releases = await self._transport.fetch_json(
                f"{self._api_root}/releases",
                headers=self._headers(),
                params={"per_page": RELEASE_LIST_PAGE_SIZE},
            )
            for candidate in releases if isinstance(releases, list) else []:
                if isinstance(candidate, dict) and tag in (candidate.get("tag_name"), candidate.get("name")):
                    release = candidate
                    break
            else:
                raise ManifestUnavailableError(f"No release with tag or name '{tag}'")
        if not isinstance(release, dict):
            raise ManifestUnavailableError(f"Unexpected release payload for '{tag}': {type(release).__name__}")
        return release

    async def discover(self, dataset: str) -> Manifest:
        """Manifest for dataset; never raises for provider-side failures."""
        spec = self._registry.get(dataset)
        return await self._manifests.get_or_load(dataset, lambda: self._discover(spec))

    async def _discover(self, spec: DatasetSpec) -> Manifest:
        if not spec.provider_tag or not spec.extractors:
            return Manifest(dataset=spec.name, error="dataset has no release tag")
        try:
            release = await self.release(spec.provider_tag)
            assets = release.get("assets") or []
            if not isinstance(assets, list):
                raise ManifestUnavailableError(f"Release '{spec.provider_tag}' has no asset list")
            if release.get("truncated") or len(assets) >= self._max_assets:
                raise ManifestUnavailableError(
                    f"Release listing for '{spec.provider_tag}' truncated at {len(assets)} assets"
                )
            entries = build_entries(spec, assets)
        except GridfeedError as exc:
            logger.warning("Manifest discovery failed for %s (tag=%s): %s", spec.name, spec.provider_tag, exc)
            return Manifest(
                dataset=spec.name,
                discovered_at=now_utc_iso(),
                source=spec.provider_tag,
                error=f"{type(exc).__name__}: {exc}",
            )
        logger.debug("Manifest %s: %d entries from tag %s", spec.name, len(entries), spec.provider_tag)
        return Manifest(
            dataset=spec.name,
            entries=entries,
            discovered_at=now_utc_iso(),
            source=release.get("tag_name") or spec.provider_tag,
        )

    async def list_seasons(self, dataset: str) -> List[int]:
        """Unique, sorted seasons present in the dataset's manifest."""
        manifest = await self.discover(dataset)
        return sorted({e.season for e in manifest.entries if e.season is not None})
