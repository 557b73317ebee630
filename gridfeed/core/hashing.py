"""
Content fingerprints: SHA-256 over decompressed table bytes, and a stable
JSON digest for row lists that never existed as bytes (alternate provider).
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest of data."""
    return hashlib.sha256(data).hexdigest()


def sha256_chunks(chunks: Iterable[bytes]) -> str:
    h = hashlib.sha256()
    for chunk in chunks:
        h.update(chunk)
    return h.hexdigest()


def rows_fingerprint(rows: Any) -> str:
    """SHA-256 of canonical JSON (sorted keys, compact separators)."""
    payload = json.dumps(rows, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False)
    return sha256_bytes(payload.encode("utf-8"))


__all__ = ["rows_fingerprint", "sha256_bytes", "sha256_chunks"]
