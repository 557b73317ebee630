"""
Shared exception types for gridfeed.

ManifestUnavailableError and NotFoundError are routine fallback triggers.
TransientNetworkError is retried by the transport and only surfaces once
attempts are exhausted. ParseError and SanityCheckFailedError are fatal for
the load that raised them.
"""

from __future__ import annotations

from typing import Optional


class GridfeedError(Exception):
    """Base exception for gridfeed; catch this for any package-raised error."""

    pass


class UnknownDatasetError(GridfeedError, KeyError):
    """Dataset name is not in the registry."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown dataset"


class ManifestUnavailableError(GridfeedError):
    """Release listing could not be used (missing, truncated, malformed)."""

    pass


class NetworkError(GridfeedError):
    """HTTP failure carrying the URL and, when known, the status code."""

    def __init__(self, message: str, *, url: str = "", status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class NotFoundError(NetworkError):
    """HTTP 404. Callers move to the next candidate instead of retrying."""

    def __init__(self, url: str) -> None:
        super().__init__(f"HTTP 404 {url}", url=url, status=404)


class TransientNetworkError(NetworkError):
    """Timeout, connection failure or non-2xx status other than 404."""

    pass


class ParseError(GridfeedError):
    """Malformed compressed or delimited payload."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class SanityCheckFailedError(GridfeedError):
    """Decoded table has fewer rows than the configured minimum."""

    def __init__(self, dataset: str, season: Optional[int], rows: int, minimum: int) -> None:
        super().__init__(
            f"{dataset} season={season if season is not None else 'ALL'}: "
            f"{rows} rows < required {minimum} (truncated provider file?)"
        )
        self.dataset = dataset
        self.season = season
        self.rows = rows
        self.minimum = minimum


class DatasetUnavailableError(GridfeedError):
    """No source candidate produced a table."""

    pass


__all__ = [
    "DatasetUnavailableError",
    "GridfeedError",
    "ManifestUnavailableError",
    "NetworkError",
    "NotFoundError",
    "ParseError",
    "SanityCheckFailedError",
    "TransientNetworkError",
    "UnknownDatasetError",
]
