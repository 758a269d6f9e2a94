"""Tests for the RWGPS client."""

import httpx
import pytest

from route_stats.services.rwgps import (
    AuthFailure,
    NotFound,
    RWGPSClient,
    UpstreamError,
    calculate_bounds,
    extract_route_id,
    normalize_route,
    simplify_track_points,
)
from route_stats.tests.conftest import API_BASE, make_route, run


class TestNormalize:
    def test_units_and_percentages(self):
        route = normalize_route(make_route(distance=42195.0, unpaved_pct=30))
        assert route.id == "12345"
        assert route.distance == 42195.0
        assert route.distance_km == pytest.approx(42.195)
        assert route.unpaved_pct == 30
        assert route.paved_pct == 70
        assert route.url.endswith("/routes/12345")

    def test_missing_categoricals_default_to_unknown(self):
        raw = make_route()
        for field in ("surface", "terrain", "difficulty", "unpaved_pct", "track_type"):
            raw.pop(field)
        route = normalize_route(raw)
        assert route.surface == "unknown"
        assert route.terrain == "unknown"
        assert route.difficulty == "unknown"
        assert route.track_type == "unknown"
        assert route.unpaved_pct == 0
        assert route.paved_pct == 100

    def test_unrecognised_categorical_becomes_unknown(self):
        route = normalize_route(make_route(surface="cobbles", terrain=None))
        assert route.surface == "unknown"
        assert route.terrain == "unknown"

    def test_no_track_points(self):
        route = normalize_route(make_route(track_points=[]))
        assert route.track_points == ()
        assert route.bounds is None

    def test_bounds_from_track(self):
        route = normalize_route(make_route())
        assert route.bounds == ((-96.20, 38.40), (-96.05, 38.50))


class TestSimplify:
    def test_short_track_kept(self):
        points = [{"x": i, "y": -i} for i in range(10)]
        assert simplify_track_points(points, 150) == [(i, -i) for i in range(10)]

    def test_long_track_sampled_evenly(self):
        points = [{"x": i, "y": 0} for i in range(1000)]
        sampled = simplify_track_points(points, 150)
        assert len(sampled) == 150
        assert sampled[0] == (0, 0)
        assert sampled[-1] == (999, 0)
        xs = [p[0] for p in sampled]
        assert xs == sorted(xs)

    def test_points_without_coordinates_dropped(self):
        points = [{"x": 1, "y": 2}, {"x": None, "y": 3}, {"y": 4}, {"x": 5, "y": 6}]
        assert simplify_track_points(points) == [(1, 2), (5, 6)]

    def test_bounds_empty(self):
        assert calculate_bounds([]) is None


class TestExtractRouteId:
    def test_valid_url(self):
        assert extract_route_id("https://ridewithgps.com/routes/4242?privacy_code=x") == "4242"

    def test_invalid_url(self):
        assert extract_route_id("https://example.com/routes/4242") is None
        assert extract_route_id("") is None


class TestFetchRoute:
    def test_success_sends_auth_headers(self, rwgps_client, fake_rwgps):
        fake_rwgps.add(id=777, name="Gravel Grinder")
        route = run(rwgps_client.fetch_route("777"))
        assert route.name == "Gravel Grinder"
        headers = fake_rwgps.headers_seen[-1]
        assert headers["x-rwgps-api-key"] == "test-api-key"
        assert headers["x-rwgps-auth-token"] == "test-auth-token"

    def test_not_found(self, rwgps_client):
        with pytest.raises(NotFound, match="Route 404404 not found"):
            run(rwgps_client.fetch_route("404404"))

    def test_auth_failure(self, rwgps_client, fake_rwgps):
        fake_rwgps.route_status["1"] = 401
        with pytest.raises(AuthFailure):
            run(rwgps_client.fetch_route("1"))

    def test_other_status(self, rwgps_client, fake_rwgps):
        fake_rwgps.route_status["1"] = 503
        with pytest.raises(UpstreamError, match="503"):
            run(rwgps_client.fetch_route("1"))

    def test_transport_error(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = RWGPSClient(httpx.AsyncClient(transport=httpx.MockTransport(boom)),
                             "k", "t", base_url=API_BASE)
        with pytest.raises(UpstreamError, match="request failed"):
            run(client.fetch_route("1"))

    def test_malformed_payload(self):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        client = RWGPSClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)),
                             "k", "t", base_url=API_BASE)
        with pytest.raises(UpstreamError, match="Malformed"):
            run(client.fetch_route("1"))


class TestOrganizationRoutes:
    def _client(self, fake_rwgps, page_size):
        http = httpx.AsyncClient(transport=httpx.MockTransport(fake_rwgps.handler))
        return RWGPSClient(http, "k", "t", base_url=API_BASE, page_size=page_size)

    def test_follows_next_page(self, fake_rwgps):
        fake_rwgps.org_routes = [{"id": i, "name": f"Route {i}", "extra": "x"} for i in range(5)]
        routes = run(self._client(fake_rwgps, 2).fetch_organization_routes())
        assert routes == [{"id": i, "name": f"Route {i}"} for i in range(5)]
        assert [c["page"] for c in fake_rwgps.list_calls] == [1, 2, 3]

    def test_exact_multiple_stops_on_missing_next(self, fake_rwgps):
        fake_rwgps.org_routes = [{"id": i, "name": str(i)} for i in range(4)]
        routes = run(self._client(fake_rwgps, 2).fetch_organization_routes())
        assert len(routes) == 4
        assert len(fake_rwgps.list_calls) == 2

    def test_short_page_stops_without_metadata(self, fake_rwgps):
        fake_rwgps.omit_pagination = True
        fake_rwgps.org_routes = [{"id": i, "name": str(i)} for i in range(3)]
        routes = run(self._client(fake_rwgps, 200).fetch_organization_routes())
        assert len(routes) == 3
        assert len(fake_rwgps.list_calls) == 1

    def test_short_page_stops_even_with_next_url(self):
        calls = []

        def handler(request):
            calls.append(request.url.params["page"])
            return httpx.Response(200, json={
                "routes": [{"id": 1, "name": "only"}],
                "meta": {"pagination": {"next_page_url": "/api/v1/routes.json?page=2"}},
            })

        client = RWGPSClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)),
                             "k", "t", base_url=API_BASE, page_size=10)
        routes = run(client.fetch_organization_routes())
        assert routes == [{"id": 1, "name": "only"}]
        assert calls == ["1"]

    def test_page_cap(self):
        def handler(request):
            return httpx.Response(200, json={
                "routes": [{"id": 1, "name": "again"}],
                "meta": {"pagination": {"next_page_url": "/more"}},
            })

        client = RWGPSClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)),
                             "k", "t", base_url=API_BASE, page_size=1, max_pages=3)
        assert len(run(client.fetch_organization_routes())) == 3

    def test_auth_failure(self, fake_rwgps):
        fake_rwgps.list_status = 401
        with pytest.raises(AuthFailure):
            run(self._client(fake_rwgps, 200).fetch_organization_routes())

    def test_server_error(self, fake_rwgps):
        fake_rwgps.list_status = 500
        with pytest.raises(UpstreamError):
            run(self._client(fake_rwgps, 200).fetch_organization_routes())
