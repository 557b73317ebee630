"""
Stable facade: error taxonomy and hashing primitives. No network code.
Do not add exports without updating __all__.
"""

from __future__ import annotations

from .errors import (
    DatasetUnavailableError,
    GridfeedError,
    ManifestUnavailableError,
    NetworkError,
    NotFoundError,
    ParseError,
    SanityCheckFailedError,
    TransientNetworkError,
    UnknownDatasetError,
)
from .hashing import rows_fingerprint, sha256_bytes, sha256_chunks

# Do not add exports without updating __all__.
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
    "rows_fingerprint",
    "sha256_bytes",
    "sha256_chunks",
]
