"""RideWithGPS API client for single route lookups and the organization route list.

The httpx.AsyncClient is injected so the app can share one connection pool
and tests can swap in a MockTransport.
"""

from __future__ import annotations

import logging
import re

import httpx

from route_stats.config import (
    CLUB_ROUTES_MAX_PAGES,
    CLUB_ROUTES_PAGE_SIZE,
    RWGPS_API_BASE,
    RWGPS_ROUTE_URL,
    TRACK_MAX_POINTS,
)
from route_stats.models import DIFFICULTIES, SURFACES, TERRAINS, RouteAttributes, coerce_choice

logger = logging.getLogger(__name__)

_ROUTE_URL_RE = re.compile(r"ridewithgps\.com/routes/(\d+)")


class RWGPSError(Exception):
    """Any failure talking to RideWithGPS."""


class NotFound(RWGPSError):
    pass


class AuthFailure(RWGPSError):
    pass


class UpstreamError(RWGPSError):
    pass


def extract_route_id(url: str) -> str | None:
    """Pull the numeric route id out of a ridewithgps.com/routes/<id> URL."""
    match = _ROUTE_URL_RE.search(url or "")
    return match.group(1) if match else None


def simplify_track_points(points: list, max_points: int = TRACK_MAX_POINTS) -> list[tuple]:
    """Sample track points evenly by index, returning (lng, lat) pairs.

    Not distance-aware: long straight sections get as many samples as
    twisty ones. Points without coordinates are dropped before sampling.
    """
    coords = [
        (p["x"], p["y"]) for p in points or []
        if isinstance(p, dict) and p.get("x") is not None and p.get("y") is not None
    ]
    if len(coords) <= max_points:
        return coords
    if max_points <= 1:
        return coords[:max_points]

    step = (len(coords) - 1) / (max_points - 1)
    return [coords[int(i * step + 0.5)] for i in range(max_points)]


def calculate_bounds(coords: list) -> tuple | None:
    """Axis-aligned bounding box ((min_lng, min_lat), (max_lng, max_lat))."""
    if not coords:
        return None
    lngs = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    return (min(lngs), min(lats)), (max(lngs), max(lats))


def normalize_route(route: dict, max_points: int = TRACK_MAX_POINTS) -> RouteAttributes:
    """Convert a raw RWGPS route object into RouteAttributes."""
    track = simplify_track_points(route.get("track_points") or [], max_points)
    unpaved_pct = route.get("unpaved_pct") or 0
    return RouteAttributes(
        id=str(route["id"]),
        name=route.get("name") or "",
        url=f"{RWGPS_ROUTE_URL}/{route['id']}",
        distance=float(route.get("distance") or 0),
        elevation_gain=float(route.get("elevation_gain") or 0),
        elevation_loss=float(route.get("elevation_loss") or 0),
        unpaved_pct=float(unpaved_pct),
        surface=coerce_choice(route.get("surface"), SURFACES),
        terrain=coerce_choice(route.get("terrain"), TERRAINS),
        difficulty=coerce_choice(route.get("difficulty"), DIFFICULTIES),
        track_type=route.get("track_type") or "unknown",
        created_at=route.get("created_at"),
        updated_at=route.get("updated_at"),
        track_points=tuple(track),
        bounds=calculate_bounds(track),
    )


class RWGPSClient:
    """Thin async wrapper over the RWGPS v1 API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        auth_token: str,
        base_url: str = RWGPS_API_BASE,
        page_size: int = CLUB_ROUTES_PAGE_SIZE,
        max_pages: int = CLUB_ROUTES_MAX_PAGES,
        max_track_points: int = TRACK_MAX_POINTS,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Content-Type": "application/json",
            "x-rwgps-api-key": api_key,
            "x-rwgps-auth-token": auth_token,
        }
        self.page_size = page_size
        self.max_pages = max_pages
        self.max_track_points = max_track_points

    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            return await self._http.get(url, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"RWGPS request failed: {e}") from e

    async def fetch_route(self, route_id: str) -> RouteAttributes:
        """Fetch and normalize a single route.

        Raises NotFound, AuthFailure or UpstreamError.
        """
        resp = await self._get(f"/routes/{route_id}.json")
        if resp.status_code == 404:
            raise NotFound(f"Route {route_id} not found")
        if resp.status_code == 401:
            raise AuthFailure("RWGPS authentication failed")
        if not resp.is_success:
            raise UpstreamError(f"RWGPS API error: {resp.status_code}")

        try:
            route = resp.json()["route"]
            return normalize_route(route, self.max_track_points)
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError(f"Malformed RWGPS payload for route {route_id}") from e

    async def fetch_organization_routes(self) -> list[dict]:
        """Return [{id, name}, ...] for every route in the authenticated account.

        When authenticated as an organization this is the organization's
        library. Stops when the API reports no next page, when a page comes
        back short, or when pagination metadata is missing.
        """
        routes: list[dict] = []
        page = 1
        while page <= self.max_pages:
            resp = await self._get(
                "/routes.json", params={"page": page, "page_size": self.page_size},
            )
            if resp.status_code == 401:
                raise AuthFailure("RWGPS authentication failed")
            if not resp.is_success:
                raise UpstreamError(f"RWGPS API error: {resp.status_code}")

            try:
                data = resp.json()
            except ValueError as e:
                raise UpstreamError("Malformed RWGPS route list payload") from e

            batch = data.get("routes") or []
            routes.extend({"id": r.get("id"), "name": r.get("name")} for r in batch)

            pagination = (data.get("meta") or {}).get("pagination")
            if not pagination or not pagination.get("next_page_url"):
                break
            if len(batch) < self.page_size:
                break
            page += 1
        else:
            logger.warning("Stopped paginating RWGPS routes after %d pages", self.max_pages)

        logger.info("Fetched %d organization routes", len(routes))
        return routes
