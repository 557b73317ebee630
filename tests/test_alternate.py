"""
Tests for the alternate provider client, candidate probing and fallback adapter.

Verifies that:
- Result arrays are located by depth-first search
- Candidates are probed lazily; the first non-empty result wins
- All-empty bulk candidates degrade to per-team requests
- The adapter memoizes hits and explicit no-data outcomes
"""
from __future__ import annotations

import asyncio

import numpy as np
import pytest
import requests

from gridfeed.acquisition.alternate import (
    NO_DATA,
    AlternateProviderAdapter,
    AlternateProviderClient,
    extract_first_array,
    first_present,
    probe_candidates,
    unwrap_envelope,
)
from gridfeed.acquisition.base import AlternateEndpoints
from gridfeed.acquisition.resilience import RetryConfig
from gridfeed.acquisition.transport import HttpTransport
from gridfeed.core.errors import NetworkError, TransientNetworkError
from tests.fakes import FakeResponse, FakeSession

BASE = "https://alt.example.test"


async def _no_sleep(_):
    return None


def _client(session, api_key="k3y", **kwargs) -> AlternateProviderClient:
    transport = HttpTransport(session, retry_config=RetryConfig(attempts=3), sleep=_no_sleep, rng=np.random.default_rng(0))
    return AlternateProviderClient(transport, api_key=api_key, base_url=BASE, host="alt.example.test", sleep=_no_sleep, **kwargs)


class TestPureHelpers:
    def test_extract_first_array_depth_first(self):
        payload = {"meta": {"count": 2, "tags": []}, "body": {"games": [{"id": 1}, {"id": 2}], "later": [9]}}
        assert extract_first_array(payload) == [{"id": 1}, {"id": 2}]

    def test_extract_first_array_edge_cases(self):
        assert extract_first_array([1, 2]) == [1, 2]
        assert extract_first_array({"a": "x", "b": 3}) == []
        assert extract_first_array(None) == []
        assert extract_first_array("text") == []

    def test_first_present_skips_none_and_blank(self):
        row = {"teamAbv": None, "team": "  ", "abbr": "KC", "code": "KAN"}
        assert first_present(row, ("teamAbv", "team", "abbr", "code")) == "KC"
        assert first_present({"pts": 0}, ("points", "pts")) == 0
        assert first_present({}, ("a", "b"), default="?") == "?"

    def test_envelope_status_and_unwrap(self):
        assert unwrap_envelope({"statusCode": 200, "body": {"x": [1]}}) == {"x": [1]}
        assert unwrap_envelope({"data": [1, 2]}) == [1, 2]
        with pytest.raises(TransientNetworkError):
            unwrap_envelope({"statusCode": 429, "message": "slow down"})
        with pytest.raises(NetworkError) as exc_info:
            unwrap_envelope({"statusCode": 500, "body": {"error": "boom"}})
        assert not isinstance(exc_info.value, TransientNetworkError)
        assert "boom" in str(exc_info.value)


class TestProbeCandidates:
    def test_first_non_empty_wins_and_later_candidates_untouched(self):
        calls = []

        def candidate(name, rows):
            async def run():
                calls.append(name)
                return rows
            return run

        rows = asyncio.run(
            probe_candidates([
                candidate("c1", []),
                candidate("c2", []),
                candidate("c3", [1, 2, 3, 4, 5]),
                candidate("c4", [6]),
            ])
        )

        assert rows == [1, 2, 3, 4, 5]
        assert calls == ["c1", "c2", "c3"]

    def test_failed_candidate_is_skipped(self):
        async def broken():
            raise NetworkError("HTTP 500", status=500)

        async def good():
            return ["row"]

        assert asyncio.run(probe_candidates([broken, good])) == ["row"]

    def test_per_team_fallback_skips_failures(self):
        async def empty():
            return []

        async def per_team(team):
            if team == "BUF":
                raise NetworkError("HTTP 500", status=500)
            return [{"team": team}]

        rows = asyncio.run(probe_candidates([empty], entities=("ARI", "BUF", "KC"), per_entity=per_team))

        assert rows == [{"team": "ARI"}, {"team": "KC"}]


class TestClient:
    def test_enabled_for_season(self):
        session = FakeSession()
        assert _client(session).enabled_for_season(2024)
        assert not _client(session).enabled_for_season(2021)
        assert _client(session, force=True).enabled_for_season(2021)
        assert not _client(session, disabled=True).enabled_for_season(2024)
        assert not _client(session, enabled=False).enabled_for_season(2024)
        assert not _client(session, api_key=None).enabled_for_season(2024)
        assert not _client(session).enabled_for_season(None)

    def test_fetch_without_key_is_refused(self):
        session = FakeSession()
        client = _client(session, api_key="")

        assert not client.has_key
        assert _client(session).has_key
        with pytest.raises(NetworkError):
            asyncio.run(client.fetch("getNFLDepthCharts"))
        assert session.calls == []

    def test_fetch_list_sends_rapidapi_headers_and_unwraps(self):
        url = f"{BASE}/getNFLDepthCharts"
        session = FakeSession({url: FakeResponse(payload={"statusCode": 200, "body": {"depthChart": [{"a": 1}]}})})

        rows = asyncio.run(_client(session).fetch_list("/getNFLDepthCharts", {"season": 2024, "skip": None}))

        assert rows == [{"a": 1}]
        call = session.calls[0]
        assert call["headers"]["X-RapidAPI-Key"] == "k3y"
        assert call["headers"]["X-RapidAPI-Host"] == "alt.example.test"
        assert call["params"] == {"season": 2024}

    def test_body_level_rate_limit_is_retried(self):
        url = f"{BASE}/getNFLTeamRoster"
        session = FakeSession({
            url: [
                FakeResponse(payload={"statusCode": 429, "message": "rate limited"}),
                FakeResponse(payload={"statusCode": 200, "body": {"roster": [{"p": 1}]}}),
            ]
        })

        rows = asyncio.run(_client(session).fetch_list("getNFLTeamRoster"))

        assert rows == [{"p": 1}]
        assert session.calls_to(url) == 2

    def test_fetch_endpoints_renders_params_and_degrades_per_team(self):
        bulk_url = f"{BASE}/getNFLGamesForWeek"
        team_url = f"{BASE}/getNFLTeamSchedule"
        session = FakeSession({
            bulk_url: FakeResponse(payload={"statusCode": 200, "body": []}),
            team_url: FakeResponse(payload={"statusCode": 200, "body": {"schedule": [{"g": 1}]}}),
        })
        endpoints = AlternateEndpoints(
            bulk=(("/getNFLGamesForWeek", (("week", "all"), ("season", "{season}"))),),
            per_team=("/getNFLTeamSchedule", (("teamAbv", "{team}"), ("season", "{season}"))),
        )

        rows = asyncio.run(_client(session).fetch_endpoints(endpoints, 2024, teams=("KC", "BUF")))

        assert rows == [{"g": 1}, {"g": 1}]
        assert session.calls[0]["params"] == {"week": "all", "season": "2024"}
        assert [c["params"]["teamAbv"] for c in session.calls[1:]] == ["KC", "BUF"]


class _Client:
    def __init__(self, enabled: bool = True):
        self._enabled = enabled

    def enabled_for_season(self, season):
        return self._enabled


class TestAdapter:
    def _run(self, adapter, secondary_result, primary_result="primary", times=1):
        calls = {"primary": 0, "secondary": 0}

        async def primary():
            calls["primary"] += 1
            return primary_result

        async def secondary():
            calls["secondary"] += 1
            if isinstance(secondary_result, Exception):
                raise secondary_result
            return secondary_result

        async def scenario():
            return [await adapter.with_fallback("depth_charts", 2024, primary, secondary) for _ in range(times)]

        return asyncio.run(scenario()), calls

    def test_disabled_goes_straight_to_primary(self):
        results, calls = self._run(AlternateProviderAdapter(_Client(enabled=False)), ["alt"])
        assert results == ["primary"]
        assert calls == {"primary": 1, "secondary": 0}

    def test_non_empty_result_is_memoized(self):
        adapter = AlternateProviderAdapter(_Client())
        results, calls = self._run(adapter, ["alt"], times=2)
        assert results == [["alt"], ["alt"]]
        assert calls == {"primary": 0, "secondary": 1}

    def test_empty_result_memoizes_no_data_sentinel(self):
        adapter = AlternateProviderAdapter(_Client())
        results, calls = self._run(adapter, [], times=2)
        assert results == ["primary", "primary"]
        assert calls == {"primary": 2, "secondary": 1}
        assert adapter.memo_get("depth_charts", 2024) is NO_DATA

    def test_failing_secondary_falls_through(self):
        adapter = AlternateProviderAdapter(_Client())
        results, calls = self._run(adapter, NetworkError("HTTP 403", status=403))
        assert results == ["primary"]
        assert calls == {"primary": 1, "secondary": 1}
        assert adapter.memo_get("depth_charts", 2024) is NO_DATA

    def test_unexpected_secondary_error_falls_through(self):
        adapter = AlternateProviderAdapter(_Client())
        results, calls = self._run(adapter, requests.exceptions.InvalidURL("no host"), times=2)
        assert results == ["primary", "primary"]
        assert calls == {"primary": 2, "secondary": 1}
        assert adapter.memo_get("depth_charts", 2024) is NO_DATA
