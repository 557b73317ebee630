"""
Load config from config.yaml with optional env overrides.
Single source of truth for transport retry policy, manifest endpoint,
season clock, sanity thresholds, alternate provider flags and cache caps.
"""
from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Defaults if no YAML or env
_DEFAULTS: Dict[str, Any] = {
    "transport": {
        "attempts": 3,
        "backoff_ms": 500,
        "timeout_ms": 45_000,
        "max_in_flight": 4,
        "user_agent": "gridfeed-loader",
    },
    "manifest": {
        "api_root": "https://api.github.com/repos/nflverse/nflverse-data",
        "github_token": None,
        "max_assets": 1000,
    },
    "season": {
        "current_season": None,
        "target_week": None,
        "expected_completed_week": None,
        "total_weeks": 18,
    },
    "sanity": {
        "min_rows": {
            "schedules": 250,
            "team_weekly": 504,
            "player_weekly": 4000,
            "snap_counts": 4000,
            "roster_weekly": 20000,
            "depth_charts": 10000,
            "pbp": 40000,
        },
    },
    "alternate": {
        "enabled": True,
        "disabled": False,
        "force": False,
        "api_key": None,
        "base_url": "https://tank01-nfl-live-in-game-real-time-statistics-nfl.p.rapidapi.com",
        "host": "tank01-nfl-live-in-game-real-time-statistics-nfl.p.rapidapi.com",
        "timeout_ms": 15_000,
        "min_season": 2022,
    },
    "cache": {"pbp_max_entries": 2},
}

_TRUE = frozenset({"1", "true", "yes", "on"})


def _config_yaml_path() -> Path:
    """GRIDFEED_CONFIG if set, else config.yaml at repo root (parent of package dir)."""
    override = os.environ.get("GRIDFEED_CONFIG", "").strip()
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    config_path = _config_yaml_path()
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def parse_flag(value: Any) -> Optional[bool]:
    """Normalize an env/config value to a bool; None or blank -> None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return None
    return text in _TRUE


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_overrides() -> dict:
    overrides: dict = {}
    for env_name, key in (
        ("GRIDFEED_ATTEMPTS", "attempts"),
        ("GRIDFEED_BACKOFF_MS", "backoff_ms"),
        ("GRIDFEED_TIMEOUT_MS", "timeout_ms"),
        ("GRIDFEED_MAX_IN_FLIGHT", "max_in_flight"),
    ):
        value = _env_int(env_name)
        if value is not None:
            overrides.setdefault("transport", {})[key] = value

    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if token:
        overrides.setdefault("manifest", {})["github_token"] = token

    for env_name, key in (
        ("GRIDFEED_SEASON", "current_season"),
        ("GRIDFEED_TARGET_WEEK", "target_week"),
        ("GRIDFEED_EXPECTED_COMPLETED_WEEK", "expected_completed_week"),
    ):
        value = _env_int(env_name)
        if value is not None:
            overrides.setdefault("season", {})[key] = value

    api_key = os.environ.get("TANK01_API_KEY", "").strip()
    if api_key:
        overrides.setdefault("alternate", {})["api_key"] = api_key
    base_url = os.environ.get("TANK01_API_BASE_URL", "").strip()
    if base_url:
        overrides.setdefault("alternate", {})["base_url"] = base_url
    for env_name, key in (
        ("GRIDFEED_ALTERNATE_ENABLED", "enabled"),
        ("TANK01_DISABLE", "disabled"),
        ("TANK01_FORCE", "force"),
    ):
        flag = parse_flag(os.environ.get(env_name))
        if flag is not None:
            overrides.setdefault("alternate", {})[key] = flag
    alt_timeout = _env_int("TANK01_TIMEOUT_MS")
    if alt_timeout is not None:
        overrides.setdefault("alternate", {})["timeout_ms"] = alt_timeout

    pbp_cap = _env_int("GRIDFEED_PBP_CACHE_MAX")
    if pbp_cap is not None:
        overrides.setdefault("cache", {})["pbp_max_entries"] = pbp_cap
    return overrides


def get_config() -> dict:
    """Return merged config: defaults <- config.yaml <- env."""
    merged = _deep_merge(copy.deepcopy(_DEFAULTS), _load_yaml())
    merged = _deep_merge(merged, _env_overrides())
    return merged


# Convenience accessors
def retry_attempts() -> int:
    return int(get_config()["transport"]["attempts"])


def backoff_ms() -> float:
    return float(get_config()["transport"]["backoff_ms"])


def github_token() -> Optional[str]:
    return get_config()["manifest"].get("github_token") or None


def target_week() -> Optional[int]:
    value = get_config()["season"].get("target_week")
    return int(value) if value is not None else None


def min_rows(dataset: str) -> int:
    return int(get_config()["sanity"]["min_rows"].get(dataset, 0))


def alternate_enabled() -> bool:
    alt = get_config()["alternate"]
    return bool(alt.get("enabled")) and not bool(alt.get("disabled"))


def pbp_cache_max_entries() -> int:
    return int(get_config()["cache"]["pbp_max_entries"])
