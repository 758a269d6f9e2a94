"""Key-value stores with per-key TTL.

The cache holds JSON records under string keys. Two backends:

- MemoryKVStore: in-process dict, expires lazily on read. Default for local
  development and tests.
- SupabaseKVStore: route_cache table, via the synchronous supabase client
  run in a worker thread so the event loop never blocks.

Both give atomic single-key reads and writes and nothing more.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable

from route_stats import supabase_client as db
from route_stats.config import CACHE_TABLE

logger = logging.getLogger(__name__)


class KVStore:
    """Interface shared by the cache backends."""

    async def get(self, key: str) -> Any | None:
        raise NotImplementedError

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def sweep(self) -> int:
        """Remove expired keys. Returns the number removed."""
        return 0


class MemoryKVStore(KVStore):
    """Process-local store. Values are kept serialized, like a remote store."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}  # key → (json, expires_at)

    async def get(self, key: str) -> Any | None:
        item = self._data.get(key)
        if item is None:
            return None
        raw, expires_at = item
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return json.loads(raw)

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._data[key] = (json.dumps(value), self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def sweep(self) -> int:
        now = self._clock()
        expired = [k for k, (_, exp) in self._data.items() if now >= exp]
        for k in expired:
            del self._data[k]
        return len(expired)

    def keys(self) -> list[str]:
        return list(self._data)


class SupabaseKVStore(KVStore):
    """route_cache table in Supabase (jsonb values, expires_at column)."""

    def __init__(self, table: str = CACHE_TABLE) -> None:
        self.table = table

    async def get(self, key: str) -> Any | None:
        row = await asyncio.to_thread(db.kv_get, key, self.table)
        return row["value"] if row else None

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        await asyncio.to_thread(db.kv_put, key, value, ttl_seconds, self.table)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(db.kv_delete, key, self.table)

    async def sweep(self) -> int:
        removed = await asyncio.to_thread(db.kv_delete_expired, self.table)
        if removed:
            logger.info("Swept %d expired rows from %s", removed, self.table)
        return removed


def create_store(backend: str) -> KVStore:
    """Build the configured store ('memory' or 'supabase')."""
    if backend == "memory":
        return MemoryKVStore()
    if backend == "supabase":
        return SupabaseKVStore()
    raise ValueError(f"Unknown CACHE_BACKEND {backend!r} (expected 'memory' or 'supabase')")
