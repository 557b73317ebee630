"""
Alternate (secondary) provider: a feature-flagged REST JSON source consulted
ahead of the file hosts for seasons it covers.

The client handles the provider's envelope (body-level statusCode, body/data
wrappers) and locates result arrays generically. The adapter memoizes per
(dataset, season), including an explicit NO_DATA sentinel so an unproductive
probe is never repeated within the service lifetime.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

import numpy as np

from ..core.errors import NetworkError, ParseError, TransientNetworkError
from .base import AlternateEndpoints
from .chain import first_non_empty
from .resilience import RetryConfig, Sleep, resilient_call
from .transport import HttpTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_HOST = "tank01-nfl-live-in-game-real-time-statistics-nfl.p.rapidapi.com"
DEFAULT_BASE_URL = f"https://{DEFAULT_HOST}"
DEFAULT_MIN_SEASON = 2022

# Body-level statuses the provider uses for key rotation and rate limiting.
RETRYABLE_BODY_STATUS = frozenset({401, 429})

NFL_TEAMS: Tuple[str, ...] = (
    "ARI", "ATL", "BAL", "BUF", "CAR", "CHI", "CIN", "CLE",
    "DAL", "DEN", "DET", "GB", "HOU", "IND", "JAX", "KC",
    "LAC", "LAR", "LV", "MIA", "MIN", "NE", "NO", "NYG",
    "NYJ", "PHI", "PIT", "SEA", "SF", "TB", "TEN", "WSH",
)


class _NoData:
    """Memo marker: the alternate provider had nothing for this key."""

    _instance: Optional["_NoData"] = None

    def __new__(cls) -> "_NoData":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_DATA"

    def __bool__(self) -> bool:
        return False


NO_DATA = _NoData()


def extract_first_array(payload: Any) -> List[Any]:
    """Depth-first search for the first non-empty list in a nested payload."""
    if not payload:
        return []
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, Mapping):
        return []
    for value in payload.values():
        found = extract_first_array(value)
        if found:
            return found
    return []


def first_present(row: Mapping[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Value of the first key whose value is neither None nor an empty string."""
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return default


def unwrap_envelope(payload: Any, url: str = "") -> Any:
    """Raise on a body-level error status; return the body/data member when present."""
    if not isinstance(payload, Mapping):
        return payload
    status = payload.get("statusCode", payload.get("status", payload.get("code")))
    if status not in (None, "", 200, "200"):
        body = payload.get("body") if isinstance(payload.get("body"), Mapping) else {}
        message = payload.get("message") or payload.get("error") or body.get("message") or body.get("error")
        try:
            code: Optional[int] = int(status)
        except (TypeError, ValueError):
            code = None
        text = f"Alternate provider status {status}" + (f": {message}" if message else "")
        if code in RETRYABLE_BODY_STATUS:
            raise TransientNetworkError(text, url=url, status=code)
        raise NetworkError(text, url=url, status=code)
    for member in ("body", "data"):
        inner = payload.get(member)
        if isinstance(inner, (Mapping, list)):
            return inner
    return payload


def _render_params(params: Sequence[Tuple[str, str]], **values: Any) -> Dict[str, str]:
    return {key: str(value).format(**values) for key, value in params}


class AlternateProviderClient:
    """
    RapidAPI-style JSON client.

    Requests go through the shared transport (governor admission, HTTP level
    retries); body-level 401/429 envelopes are retried here with the same
    backoff policy.
    """

    def __init__(
        self,
        transport: HttpTransport,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        host: str = DEFAULT_HOST,
        timeout_ms: float = 15_000,
        min_season: int = DEFAULT_MIN_SEASON,
        enabled: bool = True,
        disabled: bool = False,
        force: bool = False,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self._transport = transport
        self._api_key = api_key or None
        self._base_url = base_url.rstrip("/")
        self._host = host
        self._timeout_ms = timeout_ms
        self.min_season = min_season
        self._enabled = enabled
        self._disabled = disabled
        self._force = force
        self._sleep = sleep
        self._rng = rng or np.random.default_rng()

    @property
    def has_key(self) -> bool:
        return bool(self._api_key)

    def enabled_for_season(self, season: Optional[int]) -> bool:
        if not self.has_key or not self._enabled or self._disabled:
            return False
        if season is None:
            return False
        return season >= self.min_season or self._force

    def url_for(self, path: str) -> str:
        if path.lower().startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self._api_key or "",
            "X-RapidAPI-Host": self._host,
            "Accept": "application/json",
        }

    async def _request_once(self, url: str, params: Optional[Mapping[str, Any]]) -> Any:
        payload = await self._transport.fetch_json(
            url,
            headers=self._headers(),
            params=params,
            attempts=1,
            timeout_ms=self._timeout_ms,
        )
        return unwrap_envelope(payload, url)

    async def fetch(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """Unwrapped JSON payload for path."""
        if not self.has_key:
            raise NetworkError("Alternate provider API key is not configured", url=path)
        url = self.url_for(path)
        cfg: RetryConfig = self._transport.retry_config.with_overrides(timeout_ms=self._timeout_ms)
        return await resilient_call(
            self._request_once,
            url,
            {k: v for k, v in (params or {}).items() if v is not None},
            retry_config=cfg,
            sleep=self._sleep,
            rng=self._rng,
            label=url,
        )

    async def fetch_list(self, path: str, params: Optional[Mapping[str, Any]] = None) -> List[Any]:
        """First result array found anywhere in the payload ([] when none)."""
        body = await self.fetch(path, params)
        return extract_first_array(body)

    async def fetch_endpoints(
        self,
        endpoints: AlternateEndpoints,
        season: Optional[int],
        *,
        teams: Sequence[str] = NFL_TEAMS,
        label: str = "",
    ) -> List[Any]:
        """Probe bulk endpoints in order, then per-team requests when all were empty."""

        def _bulk(path: str, params: Sequence[Tuple[str, str]]) -> Callable[[], Awaitable[List[Any]]]:
            return lambda: self.fetch_list(path, _render_params(params, season=season))

        per_team = None
        if endpoints.per_team is not None:
            team_path, team_params = endpoints.per_team

            def per_team(team: str) -> Awaitable[List[Any]]:
                return self.fetch_list(team_path, _render_params(team_params, season=season, team=team))

        return await probe_candidates(
            [_bulk(path, params) for path, params in endpoints.bulk],
            entities=teams,
            per_entity=per_team,
            label=label,
        )


async def probe_candidates(
    candidates: Sequence[Callable[[], Awaitable[Sequence[Any]]]],
    *,
    entities: Sequence[str] = (),
    per_entity: Optional[Callable[[str], Awaitable[Sequence[Any]]]] = None,
    tolerate: Tuple[type, ...] = (NetworkError, ParseError),
    label: str = "",
) -> List[Any]:
    """
    Try bulk candidates in order and return the first non-empty list. When all
    are empty, fall back to one request per entity and concatenate the results;
    an entity that fails is logged and skipped.
    """
    rows = await first_non_empty(candidates, tolerate=tolerate, label=label)
    if rows or per_entity is None or not entities:
        return rows

    out: List[Any] = []
    skipped: List[str] = []
    for entity in entities:
        try:
            out.extend(await per_entity(entity) or [])
        except tolerate as exc:
            skipped.append(entity)
            logger.warning("Alternate %s: per-entity request for %s failed: %s", label, entity, exc)
    if skipped:
        logger.info("Alternate %s: %d/%d entities skipped", label, len(skipped), len(entities))
    return out


class AlternateProviderAdapter:
    """
    Fallback wrapper around the alternate provider.

    with_fallback() consults the provider before the primary chain for seasons
    it is enabled for, remembering both hits and misses per (dataset, season).
    """

    def __init__(self, client: Optional[AlternateProviderClient], memo: Optional[Dict[Hashable, Any]] = None) -> None:
        self.client = client
        self._memo: Dict[Hashable, Any] = memo if memo is not None else {}

    def enabled_for_season(self, season: Optional[int]) -> bool:
        return self.client is not None and self.client.enabled_for_season(season)

    def memo_get(self, dataset: str, season: Optional[int]) -> Any:
        return self._memo.get((dataset, season))

    def clear(self) -> None:
        self._memo.clear()

    async def with_fallback(
        self,
        dataset: str,
        season: Optional[int],
        primary: Callable[[], Awaitable[T]],
        secondary: Callable[[], Awaitable[Any]],
    ) -> T:
        if not self.enabled_for_season(season):
            return await primary()

        key = (dataset, season)
        if key in self._memo:
            cached = self._memo[key]
            if cached is NO_DATA:
                return await primary()
            return cached

        try:
            result = await secondary()
        except Exception as exc:
            logger.warning("Alternate provider failed for %s season=%s: %s; using primary", dataset, season, exc)
            result = None
        if result:
            self._memo[key] = result
            logger.info("Alternate provider served %s season=%s", dataset, season)
            return result
        self._memo[key] = NO_DATA
        logger.debug("Alternate provider has no data for %s season=%s", dataset, season)
        return await primary()
