"""
Tests for the result cache.

Verifies that:
- Concurrent identical requests share one load
- Failures are never cached
- The bounded variant evicts in insertion order, not recency order
"""
from __future__ import annotations

import asyncio

import pytest

from gridfeed.acquisition.cache import ResultCache


def _counting_loader(value, calls, delay: float = 0.01):
    async def load():
        calls.append(value)
        await asyncio.sleep(delay)
        return value

    return load


class TestInFlightDedup:
    def test_concurrent_requests_share_one_load(self):
        async def scenario():
            cache = ResultCache("team_weekly")
            calls = []
            results = await asyncio.gather(
                cache.get_or_load(2024, _counting_loader("rows", calls)),
                cache.get_or_load(2024, _counting_loader("rows", calls)),
            )
            return results, calls, cache.peek(2024)

        results, calls, ready = asyncio.run(scenario())
        assert results == ["rows", "rows"]
        assert len(calls) == 1
        assert ready == "rows"

    def test_pending_entry_stored_before_loader_runs(self):
        async def scenario():
            cache = ResultCache()
            seen = []

            async def load():
                seen.append(cache.is_pending("k"))
                return 1

            await cache.get_or_load("k", load)
            return seen, cache.is_pending("k")

        seen, still_pending = asyncio.run(scenario())
        assert seen == [True]
        assert still_pending is False

    def test_failure_removes_entry_and_next_call_retries(self):
        async def scenario():
            cache = ResultCache()

            async def fail():
                raise RuntimeError("truncated")

            with pytest.raises(RuntimeError):
                await cache.get_or_load(2023, fail)
            present_after_failure = 2023 in cache
            value = await cache.get_or_load(2023, _counting_loader("ok", []))
            return present_after_failure, value

        present_after_failure, value = asyncio.run(scenario())
        assert present_after_failure is False
        assert value == "ok"

    def test_cancelled_caller_does_not_cancel_shared_load(self):
        async def scenario():
            cache = ResultCache()
            calls = []
            first = asyncio.create_task(cache.get_or_load("k", _counting_loader("v", calls, delay=0.05)))
            await asyncio.sleep(0)
            second = asyncio.create_task(cache.get_or_load("k", _counting_loader("v", calls)))
            await asyncio.sleep(0)
            first.cancel()
            value = await second
            await asyncio.gather(first, return_exceptions=True)
            return value, calls, cache.peek("k")

        value, calls, ready = asyncio.run(scenario())
        assert value == "v"
        assert len(calls) == 1
        assert ready == "v"


class TestBoundedEviction:
    def test_inserting_past_cap_evicts_oldest(self):
        async def scenario():
            cache = ResultCache("pbp", max_entries=2)
            for season in (2022, 2023, 2024):
                await cache.get_or_load(season, _counting_loader(season, [], delay=0))
            return cache.keys()

        assert asyncio.run(scenario()) == [2023, 2024]

    def test_eviction_ignores_recent_reads(self):
        async def scenario():
            cache = ResultCache("pbp", max_entries=2)
            calls = []
            await cache.get_or_load(2022, _counting_loader(2022, calls, delay=0))
            await cache.get_or_load(2023, _counting_loader(2023, calls, delay=0))
            await cache.get_or_load(2022, _counting_loader(2022, calls, delay=0))
            await cache.get_or_load(2024, _counting_loader(2024, calls, delay=0))
            return cache.keys(), calls

        keys, calls = asyncio.run(scenario())
        assert keys == [2023, 2024]
        assert calls == [2022, 2023, 2024]

    def test_cap_must_be_positive(self):
        with pytest.raises(ValueError):
            ResultCache(max_entries=0)

    def test_clear_and_discard(self):
        async def scenario():
            cache = ResultCache()
            await cache.get_or_load("a", _counting_loader(1, [], delay=0))
            await cache.get_or_load("b", _counting_loader(2, [], delay=0))
            cache.discard("a")
            keys = cache.keys()
            cache.clear()
            return keys, len(cache)

        keys, size = asyncio.run(scenario())
        assert keys == ["b"]
        assert size == 0
