"""Time-boxed geocode cache over a pluggable backing store."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import Counter
from typing import Callable

from ...config import settings
from ...models.domain import Accuracy, GeocodeCacheEntry, LatLon
from ...persistence.cache_store import CacheStore, MemoryCacheStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class GeocodeCache:
    """Normalized address -> coordinates, served only while ``now < expires_at``.

    Expired entries are dropped when the store is loaded and whenever a new
    entry is written. Store failures are logged and never propagate; the
    in-memory copy stays authoritative for the life of the process.
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else MemoryCacheStore()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.geocode_cache_ttl_days * SECONDS_PER_DAY
        self._clock = clock
        self._entries: dict[str, GeocodeCacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self._load()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, count=False) is not None

    def _load(self) -> None:
        try:
            records = self.store.load()
        except Exception as exc:
            logger.warning(f"Failed to load geocoding cache: {exc}")
            return

        for key, record in records.items():
            try:
                self._entries[key] = GeocodeCacheEntry.from_record(record)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Skipping malformed geocode cache entry '{key}': {exc}")
        self.purge_expired()

    def get(self, key: str, *, count: bool = True) -> GeocodeCacheEntry | None:
        entry = self._entries.get(key)
        fresh = entry is not None and entry.is_fresh(self._clock())
        if count:
            if fresh:
                self.hits += 1
            else:
                self.misses += 1
        return entry if fresh else None

    def put(
        self,
        key: str,
        coordinates: LatLon,
        accuracy: Accuracy = Accuracy.HIGH,
        confidence: float = 1.0,
        city: str = "Unknown",
        country: str = "Unknown",
        formatted_address: str | None = None,
    ) -> GeocodeCacheEntry:
        entry, expired = self._remember(key, coordinates, accuracy, confidence, city, country, formatted_address)
        self._write_through(key, entry, expired)
        return entry

    async def put_async(
        self,
        key: str,
        coordinates: LatLon,
        accuracy: Accuracy = Accuracy.HIGH,
        confidence: float = 1.0,
        city: str = "Unknown",
        country: str = "Unknown",
        formatted_address: str | None = None,
    ) -> GeocodeCacheEntry:
        """Same as :meth:`put`, with the store write run in a worker thread.

        The in-memory entry is visible before this coroutine yields.
        """
        entry, expired = self._remember(key, coordinates, accuracy, confidence, city, country, formatted_address)
        await asyncio.to_thread(self._write_through, key, entry, expired)
        return entry

    def _remember(
        self,
        key: str,
        coordinates: LatLon,
        accuracy: Accuracy,
        confidence: float,
        city: str,
        country: str,
        formatted_address: str | None,
    ) -> tuple[GeocodeCacheEntry, list[str]]:
        now = self._clock()
        entry = GeocodeCacheEntry(
            coordinates=coordinates,
            accuracy=accuracy,
            confidence=confidence,
            city=city,
            country=country,
            formatted_address=formatted_address or key,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        self._entries[key] = entry
        return entry, self._drop_expired(now)

    def _write_through(self, key: str, entry: GeocodeCacheEntry, expired: list[str]) -> None:
        self._delete_from_store(expired)
        try:
            self.store.put(key, entry.to_record())
        except Exception as exc:
            logger.warning(f"Failed to save geocoding cache: {exc}")

    def _drop_expired(self, now: float) -> list[str]:
        expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        return expired

    def _delete_from_store(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            self.store.delete(keys)
        except Exception as exc:
            logger.warning(f"Failed to purge expired geocoding cache entries: {exc}")

    def purge_expired(self) -> int:
        expired = self._drop_expired(self._clock())
        self._delete_from_store(expired)
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        try:
            self.store.clear()
        except Exception as exc:
            logger.warning(f"Failed to clear geocoding cache store: {exc}")
        logger.info("Geocoding cache cleared")

    def stats(self) -> dict:
        now = self._clock()
        entries = list(self._entries.values())
        accuracy = Counter({tier.value: 0 for tier in Accuracy})
        accuracy.update(entry.accuracy.value for entry in entries)
        cities = Counter(entry.city for entry in entries)
        size = len(json.dumps({key: entry.to_record() for key, entry in self._entries.items()}).encode("utf-8"))
        lookups = self.hits + self.misses
        return {
            "total": len(entries),
            "expired": sum(1 for entry in entries if not entry.is_fresh(now)),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 3) if lookups else 0.0,
            "accuracy": dict(accuracy),
            "average_confidence": round(sum(e.confidence for e in entries) / len(entries), 3) if entries else 0.0,
            "cities": dict(cities),
            "size": f"{size / 1024:.1f} KB",
        }
