"""
Tests for cache keys and the rendered-artifact TTL cache.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from holder_graph.cache.artifact_cache import ArtifactCache
from holder_graph.cache.keys import analysis_artifact_key, card_key, token_key
from holder_graph.core.config import CacheSettings
from holder_graph.core.custom_types import GeneratedArtifact
from holder_graph.tests.conftest import ADDRESS, CHAIN, T0


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _artifact(key: str) -> GeneratedArtifact:
    return GeneratedArtifact(buffer=key.encode(), mime_type="image/png", cache_key=key)


# --- keys ----------------------------------------------------------------------

def test_artifact_key_is_stable_hex():
    key = analysis_artifact_key(ADDRESS, CHAIN, T0)
    assert key == analysis_artifact_key(ADDRESS, CHAIN, T0)
    assert len(key) == 32 and int(key, 16) >= 0


def test_artifact_key_normalizes_timezones():
    same_instant = T0.astimezone(timezone(timedelta(hours=2)))
    naive_utc = datetime(2024, 5, 1, 12, 0)
    key = analysis_artifact_key(ADDRESS, CHAIN, T0)

    assert analysis_artifact_key(ADDRESS, CHAIN, same_instant) == key
    assert analysis_artifact_key(ADDRESS, CHAIN, naive_utc) == key


def test_artifact_key_changes_with_inputs():
    key = analysis_artifact_key(ADDRESS, CHAIN, T0)
    assert analysis_artifact_key(ADDRESS, CHAIN, T0 + timedelta(seconds=1)) != key
    assert analysis_artifact_key(ADDRESS, "bsc", T0) != key


def test_token_key_lowercases_address():
    assert token_key("eth", "0xABCdef") == "card:eth:0xabcdef"
    assert token_key("bsc", "0xAB", prefix="map") == "map:bsc:0xab"


def test_card_key_is_versioned_by_analysis_time():
    key = card_key("eth", "0xABCdef", T0)
    assert key == "card:eth:0xabcdef@2024-05-01T12:00:00+00:00"
    assert card_key("eth", "0xabcdef", T0.astimezone(timezone(timedelta(hours=2)))) == key
    assert card_key("eth", "0xabcdef", T0 + timedelta(hours=24)) != key


# --- artifact cache --------------------------------------------------------------

def test_get_returns_entry_until_ttl():
    clock = FakeMonotonic()
    cache = ArtifactCache(CacheSettings(ttl_sec=60), clock=clock)
    cache.set("a", _artifact("a"))

    clock.now += 59
    assert cache.get("a").payload == b"a"

    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_per_entry_ttl_overrides_default():
    clock = FakeMonotonic()
    cache = ArtifactCache(CacheSettings(ttl_sec=60), clock=clock)
    cache.set("short", _artifact("short"), ttl=5)
    cache.set("long", _artifact("long"))

    clock.now += 10
    assert cache.get("short") is None
    assert cache.get("long") is not None


def test_sweep_drops_only_expired_entries():
    clock = FakeMonotonic()
    cache = ArtifactCache(CacheSettings(ttl_sec=60), clock=clock)
    cache.set("old", _artifact("old"))
    clock.now += 30
    cache.set("new", _artifact("new"))
    clock.now += 31

    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("new") is not None


def test_max_entries_evicts_oldest_insertion():
    cache = ArtifactCache(CacheSettings(max_entries=2), clock=FakeMonotonic())
    cache.set("a", _artifact("a"))
    cache.set("b", _artifact("b"))
    cache.set("a", _artifact("a"))  # re-insert moves "a" to the newest slot
    cache.set("c", _artifact("c"))

    assert cache.get("b") is None
    assert cache.get("a") is not None and cache.get("c") is not None
    assert cache.stats()['evictions'] == 1


def test_delete_clear_and_stats():
    cache = ArtifactCache(CacheSettings(), clock=FakeMonotonic())
    cache.set("a", _artifact("a"))
    cache.set("b", _artifact("b"))

    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.get("b")
    cache.get("missing")
    assert cache.stats() == {'entries': 1, 'hits': 1, 'misses': 1, 'evictions': 0}

    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_sweeper_runs_until_stopped():
    clock = FakeMonotonic()
    cache = ArtifactCache(CacheSettings(ttl_sec=1, check_period_sec=0.01), clock=clock)
    cache.set("a", _artifact("a"))
    clock.now += 5

    stop = asyncio.Event()
    task = asyncio.create_task(cache.run_sweeper(stop))
    await asyncio.sleep(0.1)
    stop.set()
    await asyncio.wait_for(task, timeout=1)

    assert len(cache) == 0
