"""Backing stores for the geocoding cache.

Each store holds plain JSON-compatible records keyed by normalized address.
The in-memory store suits tests and short-lived workers; the file and
Supabase stores survive restarts.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol

from ..config import settings
from .filesystem import FileStorage

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    def load(self) -> dict[str, dict]: ...

    def put(self, key: str, record: dict) -> None: ...

    def delete(self, keys: Iterable[str]) -> None: ...

    def clear(self) -> None: ...


class MemoryCacheStore:
    def __init__(self, records: dict[str, dict] | None = None) -> None:
        self.records: dict[str, dict] = dict(records or {})

    def load(self) -> dict[str, dict]:
        return dict(self.records)

    def put(self, key: str, record: dict) -> None:
        self.records[key] = record

    def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.records.pop(key, None)

    def clear(self) -> None:
        self.records.clear()


class FileCacheStore:
    """Whole-file JSON store, rewritten on every change.

    Safe to call from worker threads.
    """

    def __init__(self, path: Path | None = None, storage: FileStorage | None = None) -> None:
        self.path = path or settings.geocode_cache_file
        self.storage = storage or FileStorage(root=self.path.parent)
        self._records: dict[str, dict] | None = None
        self._lock = threading.Lock()

    def _records_view(self) -> dict[str, dict]:
        if self._records is None:
            data = self.storage.read_json(self.path, default={})
            self._records = data if isinstance(data, dict) else {}
        return self._records

    def load(self) -> dict[str, dict]:
        with self._lock:
            return dict(self._records_view())

    def put(self, key: str, record: dict) -> None:
        with self._lock:
            records = self._records_view()
            records[key] = record
            self.storage.write_json(self.path, records)

    def delete(self, keys: Iterable[str]) -> None:
        with self._lock:
            records = self._records_view()
            removed = [records.pop(key) for key in list(keys) if key in records]
            if removed:
                self.storage.write_json(self.path, records)

    def clear(self) -> None:
        with self._lock:
            self._records = {}
            self.storage.delete(self.path)


class SupabaseCacheStore:
    """One row per address in a Supabase table with columns ``cache_key`` and ``entry`` (jsonb)."""

    def __init__(self, client: Any, table: str | None = None) -> None:
        self.client = client
        self.table = table or settings.geocode_cache_table

    def load(self) -> dict[str, dict]:
        response = self.client.table(self.table).select("cache_key, entry").execute()
        return {row["cache_key"]: row["entry"] for row in (response.data or []) if row.get("entry")}

    def put(self, key: str, record: dict) -> None:
        self.client.table(self.table).upsert({"cache_key": key, "entry": record}).execute()

    def delete(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if keys:
            self.client.table(self.table).delete().in_("cache_key", keys).execute()

    def clear(self) -> None:
        self.client.table(self.table).delete().neq("cache_key", "").execute()


def build_cache_store(backend: str | None = None) -> CacheStore:
    backend = backend or settings.geocode_cache_backend
    match backend:
        case "memory":
            return MemoryCacheStore()
        case "file":
            return FileCacheStore()
        case "supabase":
            from ..db.supabase import get_supabase_client

            client = get_supabase_client()
            if client is None:
                logger.warning("Supabase cache requested but not configured, using in-memory cache")
                return MemoryCacheStore()
            return SupabaseCacheStore(client)
        case _:
            raise ValueError(f"Unknown geocode cache backend '{backend}'.")
