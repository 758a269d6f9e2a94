"""APScheduler — keeps the club route index warm and sweeps expired cache rows."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from route_stats.config import CLUB_ROUTES_TTL_SECONDS
from route_stats.services.kv_store import KVStore
from route_stats.services.route_stats import RouteStatsService

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_MINUTES = 60


async def refresh_club_routes(service: RouteStatsService) -> None:
    """Refetch the organization route list before its cache entry expires."""
    try:
        routes = await service.refresh_club_routes()
        logger.info("Club route index refreshed: %d routes", len(routes))
    except Exception as e:
        logger.error("Club route refresh failed: %s", e)


async def sweep_expired_entries(store: KVStore) -> None:
    """Delete expired rows (the Supabase table has no native TTL)."""
    try:
        await store.sweep()
    except Exception as e:
        logger.error("Cache sweep failed: %s", e)


def create_scheduler(service: RouteStatsService) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        refresh_club_routes, "interval",
        seconds=max(60, CLUB_ROUTES_TTL_SECONDS // 2),
        id="refresh_club_routes", args=[service],
    )
    scheduler.add_job(
        sweep_expired_entries, "interval",
        minutes=SWEEP_INTERVAL_MINUTES,
        id="sweep_expired_entries", args=[service.cache.store],
    )
    return scheduler
