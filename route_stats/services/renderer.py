"""Route stats card HTML.

The markup matches the content site's route-stats CSS: a map container on
the left (filled in client-side) and a grid of stat items on the right.
"""

from __future__ import annotations

import json
from html import escape as esc

from route_stats.models import RouteAttributes
from route_stats.services.geojson import route_geojson
from route_stats.services.scoring import difficulty_label, get_scorer


def render_icons(filled: int, filled_class: str, empty_class: str, total: int = 5) -> str:
    return "".join(
        f'<span class="{filled_class if i < filled else empty_class}"></span>'
        for i in range(total)
    )


def format_distance(distance_km: float) -> str:
    return f"{distance_km:.1f}km"


def format_elevation(elevation_m: float) -> str:
    return f"{round(elevation_m)}m"


def format_percentage(pct: float) -> str:
    return f"{round(pct)}%"


def render_stat_item(label: str, value: str, icons: bool = False, extra_class: str = "",
                     title: str = "") -> str:
    """One grid cell. value is trusted HTML when icons=True, text otherwise."""
    class_attr = f"list-item {extra_class}" if extra_class else "list-item"
    title_attr = f' title="{esc(title)}"' if title else ""
    if icons:
        return f'''
    <div class="{class_attr}">
      <span class="list-label">{esc(label)}</span>
      <div class="icon-container"{title_attr}>
        {value}
      </div>
    </div>'''
    return f'''
    <div class="{class_attr}">
      <span class="list-label">{esc(label)}</span>
      <span class="list-value">{esc(value)}</span>
    </div>'''


def render_map_container(route: RouteAttributes) -> str:
    """Map placeholder with the track embedded as escaped JSON attributes."""
    if not route.track_points:
        return ""
    geo = route_geojson(route)
    geojson_attr = esc(json.dumps(geo["geojson"], separators=(",", ":")))
    bounds_attr = esc(json.dumps(geo["bounds"], separators=(",", ":")))
    return f'''
    <div class="route-map-item">
      <div class="route-map"
           data-geojson="{geojson_attr}"
           data-bounds="{bounds_attr}"
           data-route-url="{esc(geo["route_url"])}">
      </div>
    </div>'''


def render_route_stats_card(
    route: RouteAttributes,
    physical_difficulty: int | None = None,
    challenge_level: str | None = None,
    scorer=None,
) -> str:
    """Complete card for one route and one (stars, level) variant."""
    technical = (scorer or get_scorer()).score(route)

    items = []
    if challenge_level:
        items.append(render_stat_item("Challenge Level", challenge_level, extra_class="challenge-level"))

    items.extend([
        render_stat_item("Elevation Gain", format_elevation(route.elevation_gain)),
        render_stat_item("Distance", format_distance(route.distance_km)),
        render_stat_item("Paved", format_percentage(route.paved_pct)),
        render_stat_item("Unpaved", format_percentage(route.unpaved_pct)),
    ])

    if physical_difficulty:
        items.append(render_stat_item(
            "Physical Difficulty",
            render_icons(physical_difficulty, "donut", "white-donut"),
            icons=True,
        ))

    items.append(render_stat_item(
        "Technical Difficulty",
        render_icons(technical.value, "pepper", "white-pepper"),
        icons=True,
        title=difficulty_label(technical.value),
    ))

    return (
        f'<div class="route-stats">{render_map_container(route)}'
        f'<div class="route-stats-grid">{"".join(items)}</div></div>'
    )


def render_error_card(message: str) -> str:
    return f'''
<div class="route-stats">
  <div class="route-stats-grid">
    <div class="list-item challenge-level">
      <span class="list-label">Error</span>
      <span class="list-value">{esc(message)}</span>
    </div>
  </div>
</div>'''
