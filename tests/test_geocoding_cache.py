import asyncio
from pathlib import Path

import pytest

from deliveryroute.models.domain import Accuracy
from deliveryroute.persistence.cache_store import FileCacheStore, MemoryCacheStore
from deliveryroute.services.geocoding.cache import SECONDS_PER_DAY, GeocodeCache
from deliveryroute.services.geocoding.normalizer import clean_address, has_region, normalize_address

TTL = 30 * SECONDS_PER_DAY


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  123   Main St,, Toronto ", "123 Main Street, Toronto, ON, Canada"),
        ("100 Queen St W", "100 Queen Street West, ON, Canada"),
        ("1 St Clair Ave", "1 St Clair Avenue, ON, Canada"),
        ("55 Bloor St. E, Toronto, ON", "55 Bloor Street East, Toronto, ON"),
        ("9 Yonge Blvd, Toronto, Canada", "9 Yonge Boulevard, Toronto, Canada"),
        (",12 King Rd,", "12 King Road, ON, Canada"),
    ],
)
def test_normalize_address(raw: str, expected: str) -> None:
    assert normalize_address(raw) == expected


def test_normalize_address_blank_input_stays_blank() -> None:
    assert normalize_address("   ") == ""
    assert normalize_address(" , , ") == ""


def test_normalize_address_with_custom_region() -> None:
    assert normalize_address("10 Main St", region_qualifier="") == "10 Main Street"
    assert normalize_address("10 Main St", region_qualifier="QC, Canada") == "10 Main Street, QC, Canada"


def test_clean_address_collapses_commas_and_spaces() -> None:
    assert clean_address("a ,b,,  ,c ,") == "a, b, c"


def test_has_region_matches_short_codes_case_sensitively() -> None:
    assert has_region("12 Lake Rd, Barrie ON", "ON, Canada")
    assert not has_region("12 Trenton Rd", "ON, Canada")
    assert has_region("12 Trenton Rd, canada", "ON, Canada")


def test_cache_serves_fresh_entries_and_counts_hits() -> None:
    clock = FakeClock()
    cache = GeocodeCache(store=MemoryCacheStore(), ttl_seconds=TTL, clock=clock)
    cache.put("1 Main Street, ON, Canada", (43.65, -79.38), Accuracy.HIGH, 0.95, city="Toronto", country="Canada")

    entry = cache.get("1 Main Street, ON, Canada")
    assert entry is not None
    assert entry.coordinates == (43.65, -79.38)
    assert entry.expires_at == clock.now + TTL
    assert cache.get("2 Main Street, ON, Canada") is None
    assert (cache.hits, cache.misses) == (1, 1)
    assert "1 Main Street, ON, Canada" in cache
    assert (cache.hits, cache.misses) == (1, 1)


def test_cache_entry_expires_at_ttl_boundary() -> None:
    clock = FakeClock()
    cache = GeocodeCache(ttl_seconds=TTL, clock=clock)
    cache.put("key", (43.65, -79.38))

    clock.now += TTL - 1
    assert cache.get("key") is not None

    clock.now += 1
    assert cache.get("key") is None


def test_expired_entries_are_purged_on_load_and_on_write() -> None:
    clock = FakeClock()
    store = MemoryCacheStore()
    cache = GeocodeCache(store=store, ttl_seconds=TTL, clock=clock)
    cache.put("old", (43.65, -79.38))

    clock.now += TTL + 1
    # Entry is still in the store until the next load or write.
    assert "old" in store.records
    reloaded = GeocodeCache(store=store, ttl_seconds=TTL, clock=clock)
    assert len(reloaded) == 0
    assert "old" not in store.records

    cache.put("new", (43.66, -79.39))
    assert len(cache) == 1
    assert set(store.records) == {"new"}


def test_cache_skips_malformed_records() -> None:
    clock = FakeClock()
    store = MemoryCacheStore(
        {
            "bad": {"coordinates": "nowhere"},
            "good": {
                "coordinates": [43.65, -79.38],
                "accuracy": "medium",
                "confidence": 0.6,
                "created_at": clock.now,
                "expires_at": clock.now + 10,
            },
        }
    )
    cache = GeocodeCache(store=store, clock=clock)

    assert len(cache) == 1
    assert cache.get("good").accuracy is Accuracy.MEDIUM


def test_cache_persists_through_file_store(tmp_path: Path) -> None:
    clock = FakeClock()
    path = tmp_path / "geocoding-cache.json"
    GeocodeCache(store=FileCacheStore(path=path), clock=clock).put("key", (43.65, -79.38), city="Toronto")

    reloaded = GeocodeCache(store=FileCacheStore(path=path), clock=clock)
    assert reloaded.get("key").city == "Toronto"


def test_cache_survives_store_failures() -> None:
    class BrokenStore(MemoryCacheStore):
        def put(self, key, record):
            raise OSError("disk full")

        def clear(self):
            raise OSError("disk full")

    cache = GeocodeCache(store=BrokenStore())
    cache.put("key", (43.65, -79.38))
    assert cache.get("key") is not None

    cache.clear()
    assert len(cache) == 0


def test_cache_stats_report_breakdowns() -> None:
    clock = FakeClock()
    cache = GeocodeCache(ttl_seconds=TTL, clock=clock)
    cache.put("a", (43.65, -79.38), Accuracy.HIGH, 0.9, city="Toronto")
    cache.put("b", (43.59, -79.64), Accuracy.MEDIUM, 0.6, city="Mississauga")
    cache.put("c", (43.66, -79.39), Accuracy.HIGH, 0.9, city="Toronto")
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()

    assert stats["total"] == 3
    assert stats["expired"] == 0
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5
    assert stats["accuracy"] == {"high": 2, "medium": 1, "low": 0}
    assert stats["average_confidence"] == pytest.approx(0.8)
    assert stats["cities"] == {"Toronto": 2, "Mississauga": 1}
    assert stats["size"].endswith(" KB")


def test_cache_clear_resets_counters() -> None:
    cache = GeocodeCache()
    cache.put("a", (43.65, -79.38))
    cache.get("a")
    cache.clear()

    assert len(cache) == 0
    assert cache.stats()["hits"] == 0


def test_put_async_purges_and_writes_through_to_store(tmp_path: Path) -> None:
    clock = FakeClock()
    store = FileCacheStore(path=tmp_path / "cache.json")
    cache = GeocodeCache(store=store, ttl_seconds=TTL, clock=clock)
    cache.put("old", (43.65, -79.38))

    clock.now += TTL + 1
    entry = asyncio.run(cache.put_async("new", (43.66, -79.39), Accuracy.MEDIUM, 0.7, city="Toronto"))

    assert cache.get("new") == entry
    assert len(cache) == 1
    assert set(store.load()) == {"new"}
    assert set(FileCacheStore(path=tmp_path / "cache.json").load()) == {"new"}
