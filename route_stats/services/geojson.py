"""GeoJSON helpers for the map widget data attributes."""

from route_stats.models import RouteAttributes


def to_feature(coordinates, properties: dict | None = None) -> dict | None:
    """LineString Feature from [lng, lat] pairs, or None when there are none."""
    if not coordinates:
        return None
    return {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [list(c) for c in coordinates],
        },
        "properties": properties or {},
    }


def route_geojson(route: RouteAttributes) -> dict:
    """Feature, bounds and public URL for one route."""
    feature = to_feature(route.track_points, {
        "name": route.name,
        "distance": route.distance_km,
        "elevation": route.elevation_gain,
    })
    bounds = [list(corner) for corner in route.bounds] if route.bounds else None
    return {"geojson": feature, "bounds": bounds, "route_url": route.url}
