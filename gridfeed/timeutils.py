"""
Single source for "now" time. Supports deterministic mode for tests via
GRIDFEED_DETERMINISTIC_TIME (ISO format, e.g. 2024-11-14T00:00:00Z).
"""

from __future__ import annotations

import os
from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Return current UTC time.
    If env GRIDFEED_DETERMINISTIC_TIME is set, return that instant instead.
    """
    fixed = os.environ.get("GRIDFEED_DETERMINISTIC_TIME", "").strip()
    if fixed:
        parsed = datetime.fromisoformat(fixed.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def now_utc_iso() -> str:
    """Return current UTC time in ISO format (seconds)."""
    return now_utc().isoformat(timespec="seconds")


def parse_iso(value: object) -> datetime:
    """Parse an ISO timestamp (GitHub style 'Z' suffix allowed). Unparseable -> epoch."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value or "").strip()
    if not text:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def default_current_season(today: datetime | None = None) -> int:
    """NFL seasons start in September; January-August belong to the previous season."""
    today = today or now_utc()
    return today.year if today.month >= 9 else today.year - 1
