"""Route attributes, render variant keys and cache entries.

Everything here round-trips through plain JSON-compatible dicts so the
cache store can hold it as a structured record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote

SURFACES = ("paved", "mostly_paved", "mixed_surfaces", "mostly_unpaved", "unknown")
TERRAINS = ("flat", "rolling", "climbing", "unknown")
DIFFICULTIES = ("casual", "easy", "moderate", "hard", "multi_day", "unknown")


def coerce_choice(value, choices: tuple[str, ...]) -> str:
    """Return value if it is one of choices, otherwise 'unknown'."""
    if isinstance(value, str) and value in choices:
        return value
    return "unknown"


def _as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class RouteAttributes:
    """Normalized route data as fetched from RideWithGPS."""
    id: str
    name: str = ""
    url: str = ""
    distance: float = 0.0            # metres
    elevation_gain: float = 0.0      # metres
    elevation_loss: float = 0.0      # metres
    unpaved_pct: float = 0.0
    surface: str = "unknown"
    terrain: str = "unknown"
    difficulty: str = "unknown"
    track_type: str = "unknown"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    track_points: tuple = ()          # ((lng, lat), ...)
    bounds: Optional[tuple] = None    # ((min_lng, min_lat), (max_lng, max_lat))

    @property
    def distance_km(self) -> float:
        return self.distance / 1000

    @property
    def paved_pct(self) -> float:
        return 100 - self.unpaved_pct

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "distance": self.distance,
            "distance_km": self.distance_km,
            "elevation_gain": self.elevation_gain,
            "elevation_loss": self.elevation_loss,
            "unpaved_pct": self.unpaved_pct,
            "paved_pct": self.paved_pct,
            "surface": self.surface,
            "terrain": self.terrain,
            "difficulty": self.difficulty,
            "track_type": self.track_type,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "track_points": [list(p) for p in self.track_points],
            "bounds": [list(corner) for corner in self.bounds] if self.bounds else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RouteAttributes":
        bounds = data.get("bounds")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            url=data.get("url") or "",
            distance=_as_float(data.get("distance")),
            elevation_gain=_as_float(data.get("elevation_gain")),
            elevation_loss=_as_float(data.get("elevation_loss")),
            unpaved_pct=_as_float(data.get("unpaved_pct")),
            surface=coerce_choice(data.get("surface"), SURFACES),
            terrain=coerce_choice(data.get("terrain"), TERRAINS),
            difficulty=coerce_choice(data.get("difficulty"), DIFFICULTIES),
            track_type=data.get("track_type") or "unknown",
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            track_points=tuple(tuple(p) for p in data.get("track_points") or ()),
            bounds=tuple(tuple(c) for c in bounds) if bounds else None,
        )


@dataclass(frozen=True)
class VariantKey:
    """One render variant: editor star rating and challenge-level label."""
    stars: Optional[int] = None
    level: Optional[str] = None

    def __post_init__(self):
        # "" and None both mean "no level"
        if not self.level:
            object.__setattr__(self, "level", None)

    @property
    def storage_key(self) -> str:
        stars = self.stars if self.stars is not None else "none"
        level = _encode_level(self.level) if self.level is not None else "none"
        return f"stars_{stars}_level_{level}"


def _encode_level(level: str) -> str:
    # "none" stands for an absent level, so a literal "none" label is escaped
    encoded = quote(level, safe="")
    return "%6Eone" if encoded == "none" else encoded


@dataclass
class CacheEntry:
    """Cached record for one route: attributes, hash and rendered variants."""
    attributes: RouteAttributes
    data_hash: str
    last_fetched: str
    rendered: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "data_hash": self.data_hash,
            "last_fetched": self.last_fetched,
            "route": self.attributes.to_dict(),
            "rendered": dict(self.rendered),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        return cls(
            attributes=RouteAttributes.from_dict(data["route"]),
            data_hash=data.get("data_hash") or "",
            last_fetched=data.get("last_fetched") or "",
            rendered=dict(data.get("rendered") or {}),
        )
