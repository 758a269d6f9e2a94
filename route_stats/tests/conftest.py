"""Shared fixtures for Route Stats tests.

Provides:
- fake_db: patches supabase_client with an in-memory fake
- fake_rwgps: an httpx MockTransport standing in for the RWGPS API
- clock: controllable wall clock for staleness and TTL checks
- service / client: the wired service and a TestClient around the app
- make_route: raw RWGPS route payload factory
"""

import asyncio
import os
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest

# Set env vars before any route_stats imports
os.environ.setdefault("RWGPS_API_KEY", "test-api-key")
os.environ.setdefault("RWGPS_AUTH_TOKEN", "test-auth-token")
os.environ.setdefault("SUPABASE_URL", "https://fake.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "fake-key")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from route_stats.services.kv_store import MemoryKVStore
from route_stats.services.route_cache import RevalidatingCache
from route_stats.services.route_stats import RouteStatsService
from route_stats.services.rwgps import RWGPSClient
from route_stats.services.scoring import get_scorer
from route_stats.services.tasks import TaskRunner

API_BASE = "https://ridewithgps.test/api/v1"


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# In-memory fake Supabase
# ---------------------------------------------------------------------------

class FakeQueryResult:
    def __init__(self, data=None, count=None):
        self.data = data or []
        self.count = count


class FakeQueryBuilder:
    """Mimics the supabase-py query builder chain used by supabase_client."""

    def __init__(self, store, table_name):
        self._store = store
        self._table = table_name
        self._filters = []
        self._limit_val = None
        self._upsert_data = None
        self._upsert_conflict = None
        self._delete_mode = False

    def select(self, columns="*", count=None):
        return self

    def upsert(self, data, on_conflict=None):
        self._upsert_data = data
        self._upsert_conflict = on_conflict
        return self

    def delete(self):
        self._delete_mode = True
        return self

    def eq(self, col, val):
        self._filters.append(("eq", col, val))
        return self

    def gte(self, col, val):
        self._filters.append(("gte", col, val))
        return self

    def lt(self, col, val):
        self._filters.append(("lt", col, val))
        return self

    def limit(self, n):
        self._limit_val = n
        return self

    def _match(self, row):
        for op, col, val in self._filters:
            row_val = row.get(col)
            if op == "eq" and row_val != val:
                return False
            if op == "gte" and (row_val is None or str(row_val) < str(val)):
                return False
            if op == "lt" and (row_val is None or str(row_val) >= str(val)):
                return False
        return True

    def execute(self):
        table = self._store[self._table]

        if self._upsert_data is not None:
            row = dict(self._upsert_data)
            if self._upsert_conflict:
                conflict_cols = [c.strip() for c in self._upsert_conflict.split(",")]
                for existing in table:
                    if all(existing.get(c) == row.get(c) for c in conflict_cols):
                        existing.update(row)
                        return FakeQueryResult(data=[existing])
            table.append(row)
            return FakeQueryResult(data=[row])

        if self._delete_mode:
            removed = [r for r in table if self._match(r)]
            remaining = [r for r in table if not self._match(r)]
            table.clear()
            table.extend(remaining)
            return FakeQueryResult(data=removed)

        rows = [r for r in table if self._match(r)]
        if self._limit_val is not None:
            rows = rows[:self._limit_val]
        return FakeQueryResult(data=rows)


class FakeDB:
    """In-memory store keyed by table name."""

    def __init__(self):
        self.store = defaultdict(list)

    def table(self, name):
        return FakeQueryBuilder(self.store, name)


@pytest.fixture
def fake_db():
    """Provides a clean in-memory DB and patches supabase_client._table."""
    db = FakeDB()

    def fake_table(name):
        return FakeQueryBuilder(db.store, name)

    with patch("route_stats.supabase_client._table", side_effect=fake_table):
        with patch("route_stats.supabase_client.get_client", return_value=MagicMock()):
            yield db


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def time(self) -> float:
        return self.current.timestamp()

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Fake RWGPS API
# ---------------------------------------------------------------------------

def make_route(**overrides):
    """Raw RWGPS route payload (the object under "route")."""
    defaults = {
        "id": 12345,
        "name": "Flint Hills Loop",
        "distance": 50000.0,
        "elevation_gain": 800.0,
        "elevation_loss": 790.0,
        "unpaved_pct": 70,
        "surface": "mostly_unpaved",
        "terrain": "rolling",
        "difficulty": "moderate",
        "track_type": "loop",
        "created_at": "2025-03-01T10:00:00Z",
        "updated_at": "2025-04-01T10:00:00Z",
        "track_points": [
            {"x": -96.20, "y": 38.40},
            {"x": -96.10, "y": 38.45},
            {"x": -96.05, "y": 38.50},
            {"x": -96.15, "y": 38.42},
        ],
    }
    defaults.update(overrides)
    return defaults


class FakeRWGPS:
    """Serves /routes/<id>.json and the paginated /routes.json listing."""

    _ROUTE_PATH = re.compile(r"/routes/([^/]+)\.json$")

    def __init__(self):
        self.routes: dict[str, dict] = {}
        self.org_routes: list[dict] = []
        self.route_status: dict[str, int] = {}
        self.list_status = 200
        self.omit_pagination = False
        self.route_calls: list[str] = []
        self.list_calls: list[dict] = []
        self.headers_seen: list[httpx.Headers] = []

    def add(self, **overrides) -> dict:
        route = make_route(**overrides)
        self.routes[str(route["id"])] = route
        return route

    def fetch_count(self, route_id) -> int:
        return self.route_calls.count(str(route_id))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.headers_seen.append(request.headers)
        path = request.url.path

        if path.endswith("/routes.json"):
            page = int(request.url.params.get("page", "1"))
            size = int(request.url.params.get("page_size", "200"))
            self.list_calls.append({"page": page, "page_size": size})
            if self.list_status != 200:
                return httpx.Response(self.list_status, json={"error": "nope"})
            start = (page - 1) * size
            batch = self.org_routes[start:start + size]
            has_more = start + size < len(self.org_routes)
            body = {"routes": batch}
            if not self.omit_pagination:
                body["meta"] = {"pagination": {
                    "record_count": len(self.org_routes),
                    "next_page_url": f"/api/v1/routes.json?page={page + 1}" if has_more else None,
                }}
            return httpx.Response(200, json=body)

        match = self._ROUTE_PATH.search(path)
        if match:
            route_id = match.group(1)
            self.route_calls.append(route_id)
            status = self.route_status.get(route_id)
            if status:
                return httpx.Response(status, json={"error": "upstream"})
            route = self.routes.get(route_id)
            if route is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"type": "route", "route": route})

        return httpx.Response(404)


@pytest.fixture
def fake_rwgps():
    return FakeRWGPS()


@pytest.fixture
def rwgps_client(fake_rwgps):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_rwgps.handler))
    return RWGPSClient(http, "test-api-key", "test-auth-token", base_url=API_BASE)


# ---------------------------------------------------------------------------
# Service and app
# ---------------------------------------------------------------------------

@pytest.fixture
def store(clock):
    return MemoryKVStore(clock=clock.time)


@pytest.fixture
def cache(store, clock):
    return RevalidatingCache(store, ttl_seconds=86400, stale_seconds=3600,
                             club_ttl_seconds=3600, now=clock.now)


@pytest.fixture
def service(cache, rwgps_client):
    return RouteStatsService(
        cache=cache,
        client=rwgps_client,
        tasks=TaskRunner(),
        scorer=get_scorer("categorical"),
    )


@pytest.fixture
def client(service):
    """TestClient around the app with the test service injected."""
    from fastapi.testclient import TestClient

    from route_stats.app import create_app

    app = create_app(service=service, scheduler_enabled=False)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def drain(client, service):
    """Wait for background tasks submitted on the app's event loop."""
    def _drain():
        client.portal.call(service.tasks.drain)
    return _drain
