"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from route_stats.config import (
    CACHE_BACKEND,
    RWGPS_API_KEY,
    RWGPS_AUTH_TOKEN,
    RWGPS_TIMEOUT_SECONDS,
    SCHEDULER_ENABLED,
    SCORING_STRATEGY,
)
from route_stats.routers import route_stats
from route_stats.services.kv_store import create_store
from route_stats.services.route_cache import RevalidatingCache
from route_stats.services.route_stats import RouteStatsService
from route_stats.services.rwgps import RWGPSClient
from route_stats.services.scoring import get_scorer
from route_stats.services.tasks import TaskRunner

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Max-Age": "86400",
}

_ERROR_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
}


def build_service(http: httpx.AsyncClient) -> RouteStatsService:
    """Wire the production service from config."""
    return RouteStatsService(
        cache=RevalidatingCache(create_store(CACHE_BACKEND)),
        client=RWGPSClient(http, RWGPS_API_KEY, RWGPS_AUTH_TOKEN),
        tasks=TaskRunner(),
        scorer=get_scorer(SCORING_STRATEGY),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    http = None
    service = getattr(app.state, "route_stats", None)
    if service is None:
        http = httpx.AsyncClient(timeout=RWGPS_TIMEOUT_SECONDS)
        service = build_service(http)
        app.state.route_stats = service
        logger.info("Route stats service ready (cache=%s, scoring=%s)",
                    CACHE_BACKEND, SCORING_STRATEGY)

    scheduler = None
    if app.state.scheduler_enabled:
        try:
            from route_stats.scheduler import create_scheduler
            scheduler = create_scheduler(service)
            scheduler.start()
            logger.info("Scheduler started: club route refresh and cache sweep")
        except Exception as e:
            logger.warning("Scheduler failed to start: %s", e)

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await service.tasks.drain()
    if http is not None:
        await http.aclose()


def create_app(service: RouteStatsService | None = None,
               scheduler_enabled: bool = SCHEDULER_ENABLED) -> FastAPI:
    app = FastAPI(
        title="Route Stats",
        description="Route statistics cards and organization route list from RideWithGPS.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.scheduler_enabled = scheduler_enabled
    if service is not None:
        app.state.route_stats = service

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = _ERROR_MESSAGES.get(exc.status_code, str(exc.detail))
        return JSONResponse({"error": message}, status_code=exc.status_code,
                            headers=getattr(exc, "headers", None))

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    app.include_router(route_stats.router)

    return app
