"""Technical difficulty scoring (1-5 peppers).

Two rule-sets satisfy the same contract:

- categorical: nominal difficulty/terrain base, +1 for climbing, then a
  cap or floor chosen by surface class. This is the reference rule-set.
- elevation_ratio: surface base score amplified by elevation gain per km,
  with sanity overrides for extreme surface/elevation combinations.

Both are pure. Pick one with SCORING_STRATEGY.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from route_stats.models import RouteAttributes

MIN_SCORE = 1
MAX_SCORE = 5

DIFFICULTY_LABELS = {
    1: "Easy",
    2: "Moderate",
    3: "Challenging",
    4: "Difficult",
    5: "Expert",
}


@dataclass(frozen=True)
class ScoreResult:
    value: int
    breakdown: dict = field(default_factory=dict)


def difficulty_label(score: int) -> str:
    return DIFFICULTY_LABELS.get(score, "Unknown")


def unpaved_km(attributes: RouteAttributes) -> float:
    """Distance on unpaved surface in km. Negative percentages count as zero."""
    pct = attributes.unpaved_pct
    if not pct or pct < 0:
        return 0.0
    return pct / 100 * attributes.distance_km


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float) -> int:
    return _round_half_up(min(MAX_SCORE, max(MIN_SCORE, value)))


# ---------------------------------------------------------------------------
# Categorical cap model
# ---------------------------------------------------------------------------

DIFFICULTY_BASE = {"casual": 1, "easy": 2, "moderate": 3, "hard": 4}
TERRAIN_BASE = {"climbing": 3, "rolling": 2, "flat": 2, "unknown": 2}


class CategoricalScorer:
    """Nominal difficulty plus terrain, capped by surface class."""

    name = "categorical"

    def score(self, attributes: RouteAttributes) -> ScoreResult:
        surface = attributes.surface
        terrain = attributes.terrain
        difficulty = attributes.difficulty

        if difficulty in DIFFICULTY_BASE:
            base = DIFFICULTY_BASE[difficulty]
            base_source = "difficulty"
        else:
            base = TERRAIN_BASE.get(terrain, TERRAIN_BASE["unknown"])
            base_source = "terrain"

        modifier = 1 if terrain == "climbing" else 0
        raw = base + modifier
        unpaved = unpaved_km(attributes)

        cap, floor = self._surface_limits(surface, terrain, difficulty, unpaved)
        adjusted = raw
        if cap is not None:
            adjusted = min(adjusted, cap)
        if floor is not None:
            adjusted = max(adjusted, floor)

        return ScoreResult(
            value=_clamp(adjusted),
            breakdown={
                "strategy": self.name,
                "base": base,
                "base_source": base_source,
                "modifier": modifier,
                "raw": raw,
                "cap": cap,
                "floor": floor,
                "surface": surface,
                "terrain": terrain,
                "difficulty": difficulty,
                "unpaved_km": round(unpaved, 2),
            },
        )

    @staticmethod
    def _surface_limits(surface: str, terrain: str, difficulty: str,
                        unpaved: float) -> tuple[int | None, int | None]:
        """Return (cap, floor) for a surface class."""
        severe = terrain == "climbing" or difficulty == "hard"
        if surface == "paved":
            return 1, None
        if surface == "mostly_paved":
            return (1 if unpaved < 1 else 2), None
        if surface == "mixed_surfaces":
            if unpaved < 1:
                return 2, None
            return (None if severe else 3), None
        if surface == "mostly_unpaved":
            return (None if severe else 3), None
        return None, 3


# ---------------------------------------------------------------------------
# Elevation ratio model
# ---------------------------------------------------------------------------

SURFACE_BASE_SCORES = {
    "paved": 1.0,
    "mostly_paved": 1.5,
    "mixed_surfaces": 2.5,
    "mostly_unpaved": 3.5,
    "unknown": 2.0,
}

# (upper bound on m/km, stress label, multiplier)
ELEVATION_BANDS = [
    (3, "low", 1.0),
    (6, "moderate", 1.1),
    (9, "high", 1.25),
    (math.inf, "severe", 1.4),
]


def elevation_ratio(attributes: RouteAttributes) -> float:
    """Elevation gain in metres per km of distance."""
    if attributes.distance_km <= 0:
        return 0.0
    return attributes.elevation_gain / attributes.distance_km


class ElevationRatioScorer:
    """Surface base score times an elevation-stress multiplier."""

    name = "elevation_ratio"

    def score(self, attributes: RouteAttributes) -> ScoreResult:
        surface = attributes.surface
        base = SURFACE_BASE_SCORES.get(surface, SURFACE_BASE_SCORES["unknown"])
        ratio = elevation_ratio(attributes)

        stress, multiplier = "severe", 1.4
        for upper, band_stress, band_multiplier in ELEVATION_BANDS:
            if ratio < upper:
                stress, multiplier = band_stress, band_multiplier
                break

        raw = base * multiplier
        adjusted = raw
        if base >= 4 and adjusted < 3:
            adjusted = 3
        if surface == "mostly_unpaved" and ratio >= 6 and adjusted < 4:
            adjusted = 4
        if surface in ("paved", "mostly_paved") and adjusted > 2:
            adjusted = 2

        return ScoreResult(
            value=_clamp(adjusted),
            breakdown={
                "strategy": self.name,
                "base": base,
                "modifier": multiplier,
                "raw": round(raw, 2),
                "elevation_ratio": round(ratio, 1),
                "elevation_stress": stress,
                "surface": surface,
                "terrain": attributes.terrain,
                "difficulty": attributes.difficulty,
                "unpaved_km": round(unpaved_km(attributes), 2),
            },
        )


SCORERS = {
    CategoricalScorer.name: CategoricalScorer,
    ElevationRatioScorer.name: ElevationRatioScorer,
}


def get_scorer(name: str = "categorical"):
    """Return a scorer instance by rule-set name."""
    try:
        return SCORERS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown scoring strategy {name!r} (expected one of: {', '.join(SCORERS)})"
        ) from None
