"""Supabase connection and query helpers for the route_cache table.

Table shape:
    key         text primary key
    value       jsonb
    expires_at  timestamptz
"""

import threading
from datetime import datetime, timedelta, timezone

from supabase import Client, create_client

from route_stats.config import CACHE_TABLE, SUPABASE_SERVICE_KEY, SUPABASE_URL

_client: Client | None = None
_client_lock = threading.Lock()


def get_client() -> Client:
    """Return the Supabase client singleton (thread-safe)."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
                    raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
                _client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _client


def _table(name: str):
    """Return a table query builder."""
    return get_client().table(name)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Key-value rows
# ---------------------------------------------------------------------------

def kv_get(key: str, table: str = CACHE_TABLE) -> dict | None:
    """Return the unexpired row for a key, or None."""
    result = (
        _table(table)
        .select("key, value, expires_at")
        .eq("key", key)
        .gte("expires_at", _now().isoformat())
        .limit(1)
        .execute()
    )
    rows = result.data or []
    return rows[0] if rows else None


def kv_put(key: str, value, ttl_seconds: int, table: str = CACHE_TABLE) -> dict:
    """Upsert a row that expires ttl_seconds from now."""
    expires_at = _now() + timedelta(seconds=ttl_seconds)
    result = _table(table).upsert({
        "key": key,
        "value": value,
        "expires_at": expires_at.isoformat(),
    }, on_conflict="key").execute()
    return result.data[0] if result.data else {}


def kv_delete(key: str, table: str = CACHE_TABLE) -> list:
    """Delete a row by key."""
    result = _table(table).delete().eq("key", key).execute()
    return result.data or []


def kv_delete_expired(table: str = CACHE_TABLE) -> int:
    """Delete every row whose expiry has passed. Returns rows removed."""
    result = _table(table).delete().lt("expires_at", _now().isoformat()).execute()
    return len(result.data or [])
