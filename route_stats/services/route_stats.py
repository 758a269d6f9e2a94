"""Route stats orchestration: cache lookup, upstream fetch and background revalidation.

Per request:

    Received -> Validated -> CacheLookup -> VariantHit | AttributesHit | Miss -> Responded

with a background revalidation submitted whenever the cached entry is
stale, whichever branch answers. Cache writes on the serving path are
submitted too, so a slow or failing store never delays a response.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from route_stats.config import CLUB_ROUTES_INDEX_KEY
from route_stats.models import CacheEntry, RouteAttributes, VariantKey
from route_stats.services.renderer import render_error_card, render_route_stats_card
from route_stats.services.route_cache import RevalidatingCache, content_hash
from route_stats.services.rwgps import RWGPSClient, RWGPSError, extract_route_id
from route_stats.services.tasks import TaskRunner

logger = logging.getLogger(__name__)

_ROUTE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ValidationError(ValueError):
    """Bad or missing request parameters."""


@dataclass(frozen=True)
class RouteStatsRequest:
    route_id: str
    variant: VariantKey
    purge: bool = False


@dataclass(frozen=True)
class RouteStatsResult:
    html: str
    data_hash: str | None
    source: str          # variant_hit | attributes_hit | miss | error
    stale: bool = False


def parse_route_stats_params(
    route_id: str | None,
    stars: str | None = None,
    level: str | None = None,
    purge: str | None = None,
) -> RouteStatsRequest:
    """Validate raw query parameters. Raises ValidationError.

    id may also be a full ridewithgps.com route URL, as linked from posts.
    """
    route_id = (route_id or "").strip()
    if not route_id:
        raise ValidationError("Missing required parameter: id")
    route_id = extract_route_id(route_id) or route_id
    if not _ROUTE_ID_RE.match(route_id):
        raise ValidationError("Invalid parameter: id")

    stars_value = None
    if stars not in (None, ""):
        try:
            stars_value = int(stars)
        except ValueError:
            raise ValidationError("Invalid parameter: stars (must be 1-5)") from None
        if not 1 <= stars_value <= 5:
            raise ValidationError("Invalid parameter: stars (must be 1-5)")

    return RouteStatsRequest(
        route_id=route_id,
        variant=VariantKey(stars=stars_value, level=(level or "").strip() or None),
        purge=(purge or "").lower() == "true",
    )


class RouteStatsService:
    """Serves route cards and the organization route list."""

    def __init__(
        self,
        cache: RevalidatingCache,
        client: RWGPSClient,
        tasks: TaskRunner,
        scorer,
        club_index_key: str = CLUB_ROUTES_INDEX_KEY,
    ) -> None:
        self.cache = cache
        self.client = client
        self.tasks = tasks
        self.scorer = scorer
        self.club_index_key = club_index_key

    def render(self, route: RouteAttributes, variant: VariantKey) -> str:
        return render_route_stats_card(
            route,
            physical_difficulty=variant.stars,
            challenge_level=variant.level,
            scorer=self.scorer,
        )

    async def route_stats(self, req: RouteStatsRequest) -> RouteStatsResult:
        """Answer one /route-stats request. Never raises for upstream failures."""
        route_id, variant = req.route_id, req.variant
        try:
            if req.purge:
                try:
                    await self.cache.purge(route_id)
                except Exception as e:
                    logger.warning("Route %s: purge failed: %s", route_id, e)
                cached = None
            else:
                cached = await self.cache.get(route_id)

            if cached is not None:
                return self._serve_cached(route_id, variant, cached)

            route = await self.client.fetch_route(route_id)
            html = self.render(route, variant)
            self.tasks.submit(
                self.cache.put(route_id, route, {variant: html}),
                name=f"cache-put-{route_id}",
            )
            logger.info("Route %s: cache miss, fetched from RWGPS", route_id)
            return RouteStatsResult(html, content_hash(route), "miss")

        except RWGPSError as e:
            logger.warning("Route %s: %s", route_id, e)
            return RouteStatsResult(render_error_card(str(e)), None, "error")
        except Exception:
            logger.exception("Error processing route %s", route_id)
            return RouteStatsResult(
                render_error_card("Failed to load route data"), None, "error",
            )

    def _serve_cached(self, route_id: str, variant: VariantKey,
                      cached: CacheEntry) -> RouteStatsResult:
        stale = self.cache.is_stale(cached)
        html = self.cache.get_variant(cached, variant)
        source = "variant_hit"
        new_variant = None
        if html is None:
            html = new_variant = self.render(cached.attributes, variant)
            source = "attributes_hit"

        if stale:
            # variant write is left to the revalidation, which knows
            # whether the cached attributes are still current
            self.tasks.submit(
                self.revalidate(route_id, variant, cached, rendered_html=new_variant),
                name=f"revalidate-{route_id}",
            )
        elif new_variant is not None:
            self.tasks.submit(
                self.cache.put_variant(route_id, variant, new_variant),
                name=f"cache-variant-{route_id}",
            )

        logger.debug("Route %s: %s %s", route_id, source.replace("_", " "), variant.storage_key)
        return RouteStatsResult(html, cached.data_hash, source, stale)

    async def revalidate(self, route_id: str, variant: VariantKey, cached: CacheEntry,
                         rendered_html: str | None = None) -> bool:
        """Refetch a stale route and rewrite the entry if its hash moved.

        On a change the triggering variant is re-rendered from the fresh data
        and the other stored variants are carried over. When the data is
        unchanged, rendered_html (a variant rendered from the cached
        attributes) is merged in. Errors are logged, never raised.
        Returns True when the entry was rewritten.
        """
        try:
            fresh = await self.client.fetch_route(route_id)
            if not self.cache.has_changed(cached, fresh):
                logger.info("Route %s: data unchanged, skipping update", route_id)
                if rendered_html is not None:
                    await self.cache.put_variant(route_id, variant, rendered_html)
                return False
            html = self.render(fresh, variant)
            await self.cache.put(route_id, fresh, {variant: html}, keep_rendered=cached.rendered)
            logger.info("Route %s: data changed, cache updated", route_id)
            return True
        except Exception as e:
            logger.error("Background revalidation failed for route %s: %s", route_id, e)
            return False

    async def club_routes(self) -> list[dict]:
        """Organization route index, from cache or RWGPS. Raises RWGPSError."""
        routes = await self.cache.get_club_routes(self.club_index_key)
        if routes is not None:
            return routes
        routes = await self.client.fetch_organization_routes()
        self.tasks.submit(
            self.cache.put_club_routes(self.club_index_key, routes),
            name="cache-club-routes",
        )
        return routes

    async def refresh_club_routes(self) -> list[dict]:
        """Refetch and store the organization route index (scheduler job)."""
        routes = await self.client.fetch_organization_routes()
        await self.cache.put_club_routes(self.club_index_key, routes)
        return routes
