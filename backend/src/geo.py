from __future__ import annotations

import math
from types import MappingProxyType
from typing import Final, Mapping


EARTH_RADIUS_KM: Final[float] = 6371.0

# Upper bounds (meters of elevation difference) for each slope category.
SLOPE_THRESHOLDS: Final[Mapping[str, float]] = MappingProxyType({"flat": 5.0, "gentle": 15.0})

SLOPE_LABELS_JA: Final[Mapping[str, str]] = MappingProxyType(
    {
        "flat": "平坦",
        "gentle": "ゆるやかな坂",
        "steep": "急な坂",
    }
)

# Rough horizontal distance covered per minute of walking (real-estate listing convention).
WALK_METERS_PER_MINUTE: Final[int] = 80


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two WGS84 points, in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push a just past 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def classify_slope(elevation_diff_m: float) -> str:
    d = abs(float(elevation_diff_m))
    if d <= SLOPE_THRESHOLDS["flat"]:
        return "flat"
    if d <= SLOPE_THRESHOLDS["gentle"]:
        return "gentle"
    return "steep"


def slope_gradient_percent(elevation_diff_m: float, walk_minutes: int) -> float:
    walk_m = int(walk_minutes) * WALK_METERS_PER_MINUTE
    if walk_m <= 0:
        return 0.0
    return abs(float(elevation_diff_m)) / walk_m * 100.0
