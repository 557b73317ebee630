"""
Composite-key joins for per-phase datasets.

Each phase's rows are reduced to their season/week/team key plus numeric
value columns renamed <phase>_<column>; phases are then folded into one map
keyed "season|week|team". Later phases overwrite earlier ones on clashing
column names.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .base import Row

KEY_COLUMNS = frozenset({"season", "yr", "year", "week", "wk", "team", "team_abbr", "team_name"})


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return None


def to_number(value: Any) -> Optional[float]:
    """Finite number or None; integral values come back as int."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def row_key(row: Mapping[str, Any]) -> Optional[Tuple[int, int, str]]:
    season = _to_int(next((row[k] for k in ("season", "yr", "year") if row.get(k) not in (None, "")), None))
    week = _to_int(next((row[k] for k in ("week", "wk") if row.get(k) not in (None, "")), None))
    team = str(next((row[k] for k in ("team", "team_abbr", "TEAM") if row.get(k) not in (None, "")), "")).strip().upper()
    if season is None or week is None or not team:
        return None
    return season, week, team


def prefix_phase(rows: Iterable[Mapping[str, Any]], phase: str) -> List[Row]:
    """Keep keyed rows; rename numeric non-key columns to <phase>_<lowercased name>."""
    out: List[Row] = []
    for row in rows:
        key = row_key(row)
        if key is None:
            continue
        season, week, team = key
        prefixed: Row = {"season": season, "week": week, "team": team}
        for column, value in row.items():
            lowered = str(column).lower()
            if lowered in KEY_COLUMNS:
                continue
            number = to_number(value)
            if number is None:
                continue
            prefixed[f"{phase}_{lowered}"] = number
        out.append(prefixed)
    return out


def merge_by_key(*phases: Sequence[Row]) -> Dict[str, Row]:
    merged: Dict[str, Row] = {}
    for rows in phases:
        for row in rows:
            key = f"{row['season']}|{row['week']}|{row['team']}"
            target = merged.setdefault(key, {"season": row["season"], "week": row["week"], "team": row["team"]})
            target.update(row)
    return merged
