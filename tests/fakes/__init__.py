"""Fake HTTP session, responses and payload builders for acquisition tests (no live network)."""

from .http import (
    FakeResponse,
    FakeSession,
    csv_bytes,
    gzip_bytes,
    release_payload,
    team_weekly_csv,
)

__all__ = [
    "FakeResponse",
    "FakeSession",
    "csv_bytes",
    "gzip_bytes",
    "release_payload",
    "team_weekly_csv",
]
