"""Route stats endpoints: rendered cards and the organization route list.

Both are public and embedded cross-origin by the content site; the CORS
headers and the OPTIONS preflight are handled in app.py.
"""

import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from route_stats.config import CLUB_ROUTES_MAX_AGE_SECONDS, HTML_MAX_AGE_SECONDS
from route_stats.services.route_stats import (
    RouteStatsService,
    ValidationError,
    parse_route_stats_params,
)
from route_stats.services.rwgps import RWGPSError

logger = logging.getLogger(__name__)

router = APIRouter()


def error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def get_service(request: Request) -> RouteStatsService:
    return request.app.state.route_stats


@router.get("/route-stats", response_class=HTMLResponse)
async def route_stats(
    request: Request,
    id: str = Query("", description="RideWithGPS route ID"),
    stars: str = Query("", description="Physical difficulty 1-5"),
    level: str = Query("", description="Challenge level label"),
    purge: str = Query("", description="'true' to drop the cached entry first"),
):
    try:
        req = parse_route_stats_params(id, stars, level, purge)
    except ValidationError as e:
        return error_response(str(e), 400)

    result = await get_service(request).route_stats(req)

    headers = {}
    if result.data_hash is not None:
        headers["X-Data-Hash"] = result.data_hash
        headers["Cache-Control"] = f"public, max-age={HTML_MAX_AGE_SECONDS}"
    # Error cards still return 200 so the embedding page can display them
    return HTMLResponse(result.html, status_code=200, headers=headers)


@router.get("/club-routes")
async def club_routes(request: Request):
    try:
        routes = await get_service(request).club_routes()
    except RWGPSError as e:
        logger.error("Error fetching club routes: %s", e)
        return error_response(str(e) or "Failed to fetch club routes", 500)
    except Exception:
        logger.exception("Error fetching club routes")
        return error_response("Failed to fetch club routes", 500)

    return JSONResponse(
        {"routes": routes},
        headers={"Cache-Control": f"public, max-age={CLUB_ROUTES_MAX_AGE_SECONDS}"},
    )
