"""
elevation.py — Ground elevation from the GSI DEM service.
"""

from __future__ import annotations

import logging
from typing import Final

from backend.src import http_fetch
from backend.src.errors import TransportError
from backend.src.settings import get_settings


logger = logging.getLogger(__name__)

# Returned for points outside DEM coverage (sea, foreign territory).
_NO_DATA: Final[str] = "-----"


def get_elevation(lat: float, lng: float) -> float | None:
    """Elevation in meters, or None when the service has no value or is unreachable."""
    try:
        data = http_fetch.fetch_json(
            get_settings().gsi_elevation_url,
            params={"lon": lng, "lat": lat, "outtype": "JSON"},
        )
    except TransportError as e:
        logger.warning("elevation lookup failed (%s, %s): %s", lat, lng, e)
        return None

    value = data.get("elevation") if isinstance(data, dict) else None
    if value is None or value == _NO_DATA:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("elevation lookup returned %r for (%s, %s)", value, lat, lng)
        return None
