"""Tests for the TTL cache."""
import asyncio

import pytest

from legistrack.cache import TTLCache, make_cache_key
from tests.fakes import FakeClock


def test_cache_key_is_stable_across_param_order():
    assert make_cache_key("/bill/118", {"offset": 0, "limit": 2}) == make_cache_key(
        "/bill/118", {"limit": 2, "offset": 0}
    )
    assert make_cache_key("/bill") == "/bill-{}"


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock.monotonic)
    cache.set("k", "v")

    clock.advance(9.9)
    assert cache.get("k") == "v"
    assert "k" in cache

    clock.advance(0.1)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_invalidate_one_key_or_everything():
    cache = TTLCache(60)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert cache.stats() == {"size": 1, "keys": ["b"]}

    cache.invalidate()
    assert len(cache) == 0


def test_get_or_fetch_fetches_once_within_ttl():
    clock = FakeClock()
    cache = TTLCache(600, clock=clock.monotonic)
    calls = []

    async def fetch():
        calls.append(1)
        return {"bills": []}

    async def scenario():
        await cache.get_or_fetch("k", fetch)
        await cache.get_or_fetch("k", fetch)
        clock.advance(600)
        await cache.get_or_fetch("k", fetch)

    asyncio.run(scenario())
    assert len(calls) == 2


def test_failures_are_not_cached():
    cache = TTLCache(600)
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("boom")
        return "ok"

    async def scenario():
        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("k", flaky)
        return await cache.get_or_fetch("k", flaky)

    assert asyncio.run(scenario()) == "ok"
    assert len(attempts) == 2


def test_none_values_are_cached():
    cache = TTLCache(600)
    calls = []

    async def fetch():
        calls.append(1)
        return None

    async def scenario():
        await cache.get_or_fetch("k", fetch)
        await cache.get_or_fetch("k", fetch)

    asyncio.run(scenario())
    assert len(calls) == 1
