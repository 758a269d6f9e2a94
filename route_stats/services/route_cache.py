"""Stale-while-revalidate cache for route attributes and rendered cards.

Two lifetimes per route entry:

- hard TTL (a day): the store drops the entry entirely.
- staleness threshold (an hour): the entry is still served, but callers
  should schedule a background refresh.

Each entry carries a content hash over the fields that change what a card
shows (distance and elevation gain). Revalidation compares hashes and only
rewrites the entry when they differ.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Mapping

from route_stats.config import (
    CACHE_TTL_SECONDS,
    CLUB_ROUTES_TTL_SECONDS,
    STALE_THRESHOLD_SECONDS,
)
from route_stats.models import CacheEntry, RouteAttributes, VariantKey
from route_stats.services.kv_store import KVStore

logger = logging.getLogger(__name__)

ROUTE_KEY_PREFIX = "route:"
CLUB_ROUTES_KEY_PREFIX = "club-routes:"


def content_hash(attributes: RouteAttributes) -> str:
    """Short digest of distance and elevation gain.

    Surface and terrain are left out on purpose; they rarely change upstream.
    """
    fields = {
        "distance": attributes.distance,
        "elevation_gain": attributes.elevation_gain,
    }
    payload = json.dumps(fields, sort_keys=True).encode()
    return hashlib.sha256(payload).hexdigest()[:16]


def route_key(route_id: str) -> str:
    return f"{ROUTE_KEY_PREFIX}{route_id}"


def club_routes_key(index_key: str) -> str:
    return f"{CLUB_ROUTES_KEY_PREFIX}{index_key}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RevalidatingCache:
    """Owns the route:<id> and club-routes:<key> records in a KVStore."""

    def __init__(
        self,
        store: KVStore,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        stale_seconds: int = STALE_THRESHOLD_SECONDS,
        club_ttl_seconds: int = CLUB_ROUTES_TTL_SECONDS,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        if stale_seconds >= ttl_seconds:
            raise ValueError("Staleness threshold must be shorter than the hard TTL")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.stale_seconds = stale_seconds
        self.club_ttl_seconds = club_ttl_seconds
        self._now = now

    # -- route entries ------------------------------------------------------

    async def get(self, route_id: str) -> CacheEntry | None:
        """Return the cached entry, or None. Store errors count as a miss."""
        try:
            record = await self.store.get(route_key(route_id))
        except Exception as e:
            logger.warning("Cache read failed for route %s: %s", route_id, e)
            return None
        if not record:
            return None
        try:
            return CacheEntry.from_dict(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable cache record for route %s: %s", route_id, e)
            return None

    async def put(
        self,
        route_id: str,
        attributes: RouteAttributes,
        variants: Mapping[VariantKey, str] | None = None,
        keep_rendered: Mapping[str, str] | None = None,
    ) -> CacheEntry:
        """Replace the entry for a route. Hash and fetch time are recomputed.

        keep_rendered holds variants already stored under their storage keys;
        anything in variants overwrites them.
        """
        rendered = dict(keep_rendered or {})
        rendered.update({key.storage_key: html for key, html in (variants or {}).items()})
        entry = CacheEntry(
            attributes=attributes,
            data_hash=content_hash(attributes),
            last_fetched=self._now().isoformat(),
            rendered=rendered,
        )
        await self.store.put(route_key(route_id), entry.to_dict(), self.ttl_seconds)
        logger.debug("Cached route %s (%d variants)", route_id, len(entry.rendered))
        return entry

    @staticmethod
    def get_variant(entry: CacheEntry | None, key: VariantKey) -> str | None:
        if entry is None:
            return None
        return entry.rendered.get(key.storage_key)

    async def put_variant(self, route_id: str, key: VariantKey, html: str) -> CacheEntry | None:
        """Merge one rendered variant into the existing entry.

        Read-modify-write: a concurrent writer may win, which only costs a
        re-render later. Does nothing if the entry has gone.
        """
        entry = await self.get(route_id)
        if entry is None:
            logger.debug("Route %s no longer cached, dropping variant %s",
                         route_id, key.storage_key)
            return None
        if entry.rendered.get(key.storage_key) == html:
            return entry
        entry.rendered[key.storage_key] = html
        await self.store.put(route_key(route_id), entry.to_dict(), self.ttl_seconds)
        return entry

    def age_seconds(self, entry: CacheEntry) -> float | None:
        try:
            fetched = datetime.fromisoformat(entry.last_fetched)
        except (TypeError, ValueError):
            return None
        if fetched.tzinfo is None:
            fetched = fetched.replace(tzinfo=timezone.utc)
        return (self._now() - fetched).total_seconds()

    def is_stale(self, entry: CacheEntry | None) -> bool:
        """True once the entry is older than the staleness threshold."""
        if entry is None:
            return True
        age = self.age_seconds(entry)
        return age is None or age > self.stale_seconds

    @staticmethod
    def has_changed(entry: CacheEntry | None, attributes: RouteAttributes) -> bool:
        if entry is None or not entry.data_hash:
            return True
        return entry.data_hash != content_hash(attributes)

    async def purge(self, route_id: str) -> None:
        await self.store.delete(route_key(route_id))
        logger.info("Route %s: cache purged", route_id)

    # -- organization route index ------------------------------------------

    async def get_club_routes(self, index_key: str) -> list[dict] | None:
        try:
            routes = await self.store.get(club_routes_key(index_key))
        except Exception as e:
            logger.warning("Cache read failed for club routes %s: %s", index_key, e)
            return None
        return routes if isinstance(routes, list) else None

    async def put_club_routes(self, index_key: str, routes: list[dict]) -> None:
        await self.store.put(club_routes_key(index_key), list(routes), self.club_ttl_seconds)
