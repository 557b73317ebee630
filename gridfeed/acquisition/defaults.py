"""
Default dataset registry and service construction.

Registers the built-in datasets and builds a DataAcquisitionService from
config.yaml / environment settings. To add a dataset, register it here with
its release tag, filename extractors and static URL template.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import numpy as np
import requests

from ..timeutils import default_current_season
from .alternate import DEFAULT_BASE_URL, DEFAULT_HOST, AlternateProviderAdapter, AlternateProviderClient
from .base import AlternateEndpoints, DatasetSpec, FilenameExtractor, MergedDatasetSpec
from .decoder import TableDecoder
from .manifest import DEFAULT_API_ROOT, ManifestDiscovery
from .registry import DatasetRegistry, season_extractors
from .resilience import ConcurrencyGovernor, RetryConfig
from .resolver import SourceResolver, StalenessPolicy
from .sanity import REGULAR_SEASON_WEEKS, SeasonProgress
from .service import DataAcquisitionService
from .transport import DEFAULT_USER_AGENT, HttpTransport

logger = logging.getLogger(__name__)

RELEASES = "https://github.com/nflverse/nflverse-data/releases/download"
GAMES_CSV = "https://raw.githubusercontent.com/nflverse/nfldata/master/data/games.csv"

PBP_COLUMNS = (
    "game_id",
    "play_id",
    "season",
    "week",
    "season_type",
    "posteam",
    "defteam",
    "play_type",
    "down",
    "ydstogo",
    "yardline_100",
    "epa",
    "success",
    "wp",
    "pass",
    "rush",
)

SCHEDULE_ENDPOINTS = AlternateEndpoints(
    bulk=(
        ("/getNFLGamesForWeek", (("week", "all"), ("seasonType", "reg"), ("season", "{season}"))),
        ("/getNFLGamesForWeek", (("week", "all"), ("season", "{season}"))),
    ),
    per_team=("/getNFLTeamSchedule", (("teamAbv", "{team}"), ("season", "{season}"))),
)
ROSTER_ENDPOINTS = AlternateEndpoints(
    per_team=("/getNFLTeamRoster", (("teamAbv", "{team}"), ("getStats", "false"))),
)
DEPTH_CHART_ENDPOINTS = AlternateEndpoints(bulk=(("/getNFLDepthCharts", ()),))


def _pfr(phase: str) -> DatasetSpec:
    return DatasetSpec(
        name=f"pfr_{phase}",
        provider_tag="pfr_advstats",
        extractors=(FilenameExtractor.of(rf"advstats_week_{phase}_(\d{{4}})\.csv(\.gz)?$"),),
        url_template=f"{RELEASES}/pfr_advstats/advstats_week_{phase}_{{season}}.csv",
    )


def builtin_datasets() -> tuple[DatasetSpec, ...]:
    return (
        DatasetSpec(
            name="schedules",
            provider_tag="schedules",
            extractors=season_extractors("schedules"),
            url_template=GAMES_CSV,
            live_url_template=GAMES_CSV,
            min_rows=250,
            schedule_class=True,
            alternate=SCHEDULE_ENDPOINTS,
        ),
        DatasetSpec(
            name="team_weekly",
            provider_tag="stats_team",
            extractors=season_extractors("stats_team_week"),
            url_template=f"{RELEASES}/stats_team/stats_team_week_{{season}}.csv",
            min_rows=504,
            grows_in_season=True,
        ),
        DatasetSpec(
            name="player_weekly",
            provider_tag="stats_player",
            extractors=season_extractors("stats_player_week"),
            url_template=f"{RELEASES}/stats_player/stats_player_week_{{season}}.csv",
            min_rows=4000,
            grows_in_season=True,
        ),
        DatasetSpec(
            name="snap_counts",
            provider_tag="snap_counts",
            extractors=season_extractors("snap_counts"),
            url_template=f"{RELEASES}/snap_counts/snap_counts_{{season}}.csv",
            min_rows=4000,
            grows_in_season=True,
        ),
        DatasetSpec(
            name="roster_weekly",
            provider_tag="weekly_rosters",
            extractors=(
                FilenameExtractor.of(r"(roster_weekly|weekly_rosters?)_(\d{4})\.csv(\.gz)?$", season_group=2),
                FilenameExtractor.of(r"^(roster_weekly|weekly_rosters)\.csv(\.gz)?$", season_group=None),
            ),
            url_template=f"{RELEASES}/weekly_rosters/roster_weekly_{{season}}.csv",
            min_rows=20000,
            grows_in_season=True,
            alternate=ROSTER_ENDPOINTS,
        ),
        DatasetSpec(
            name="depth_charts",
            provider_tag="depth_charts",
            extractors=season_extractors("depth_charts"),
            url_template=f"{RELEASES}/depth_charts/depth_charts_{{season}}.csv",
            min_rows=10000,
            grows_in_season=True,
            alternate=DEPTH_CHART_ENDPOINTS,
        ),
        DatasetSpec(
            name="ftn_charts",
            provider_tag="ftn_charting",
            extractors=season_extractors("ftn_charting"),
            url_template=f"{RELEASES}/ftn_charting/ftn_charting_{{season}}.csv",
        ),
        DatasetSpec(
            name="pbp",
            provider_tag="pbp",
            extractors=(FilenameExtractor.of(r"play_by_play_(\d{4})\.csv\.gz$"),),
            url_template=f"{RELEASES}/pbp/play_by_play_{{season}}.csv.gz",
            min_rows=40000,
            grows_in_season=True,
            streaming=True,
            columns=PBP_COLUMNS,
        ),
        _pfr("rush"),
        _pfr("def"),
        _pfr("pass"),
        _pfr("rec"),
        DatasetSpec(name="qbr", url_template=f"{RELEASES}/espn_data/qbr_week_level.csv"),
        DatasetSpec(name="officials", url_template=f"{RELEASES}/officials/officials.csv"),
    )


def create_default_registry() -> DatasetRegistry:
    """Create a registry with all built-in datasets."""
    registry = DatasetRegistry()
    for spec in builtin_datasets():
        registry.register(spec)
    registry.register_merged(
        MergedDatasetSpec(
            name="pfr_adv",
            parts=(("rush", "pfr_rush"), ("def", "pfr_def"), ("pass", "pfr_pass"), ("rec", "pfr_rec")),
        )
    )
    return registry


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def create_service(
    config: Optional[Dict[str, Any]] = None,
    *,
    registry: Optional[DatasetRegistry] = None,
    session: Optional[Any] = None,
    rng: Optional[np.random.Generator] = None,
) -> DataAcquisitionService:
    """Build a service wired from configuration (defaults <- config.yaml <- env)."""
    if config is None:
        from gridfeed.config import get_config

        config = get_config()
    transport_cfg = config.get("transport", {})
    manifest_cfg = config.get("manifest", {})
    season_cfg = config.get("season", {})
    alt_cfg = config.get("alternate", {})
    cache_cfg = config.get("cache", {})

    reg = registry or create_default_registry()
    retry = RetryConfig(
        attempts=int(transport_cfg.get("attempts", 3)),
        backoff_ms=float(transport_cfg.get("backoff_ms", 500)),
        timeout_ms=float(transport_cfg.get("timeout_ms", 45_000)),
    )
    transport = HttpTransport(
        session if session is not None else requests.Session(),
        retry_config=retry,
        governor=ConcurrencyGovernor(int(transport_cfg.get("max_in_flight", 4))),
        user_agent=str(transport_cfg.get("user_agent") or DEFAULT_USER_AGENT),
        rng=rng,
    )
    discovery = ManifestDiscovery(
        transport,
        reg,
        api_root=str(manifest_cfg.get("api_root") or DEFAULT_API_ROOT),
        token=manifest_cfg.get("github_token") or None,
        max_assets=int(manifest_cfg.get("max_assets", 1000)),
    )

    target = _opt_int(season_cfg.get("target_week"))
    expected = _opt_int(season_cfg.get("expected_completed_week"))
    staleness = StalenessPolicy(target_week=target, expected_completed_week_override=expected)
    current = _opt_int(season_cfg.get("current_season")) or default_current_season()
    weeks_elapsed = staleness.expected_completed_week
    progress = SeasonProgress(
        current_season=current,
        weeks_elapsed=weeks_elapsed,
        total_weeks=int(season_cfg.get("total_weeks") or REGULAR_SEASON_WEEKS),
    )

    client = None
    if alt_cfg.get("api_key"):
        client = AlternateProviderClient(
            transport,
            api_key=alt_cfg.get("api_key"),
            base_url=str(alt_cfg.get("base_url") or DEFAULT_BASE_URL),
            host=str(alt_cfg.get("host") or DEFAULT_HOST),
            timeout_ms=float(alt_cfg.get("timeout_ms", 15_000)),
            min_season=int(alt_cfg.get("min_season", 2022)),
            enabled=bool(alt_cfg.get("enabled", True)),
            disabled=bool(alt_cfg.get("disabled", False)),
            force=bool(alt_cfg.get("force", False)),
            rng=rng,
        )

    min_rows = {k: int(v) for k, v in (config.get("sanity", {}).get("min_rows") or {}).items()}
    service = DataAcquisitionService(
        reg,
        transport=transport,
        discovery=discovery,
        resolver=SourceResolver(discovery, staleness),
        decoder=TableDecoder(transport),
        alternate=AlternateProviderAdapter(client),
        progress=progress,
        min_rows=min_rows,
        cache_caps={"pbp": int(cache_cfg.get("pbp_max_entries", 2))},
    )
    logger.debug(
        "Service ready: datasets=%d attempts=%d max_in_flight=%d alternate=%s",
        len(reg.names),
        retry.attempts,
        transport.governor.max_in_flight,
        "on" if client is not None else "off",
    )
    return service
