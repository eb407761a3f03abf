"""
geocoding.py — Address and station coordinates (GSI AddressSearch, Nominatim fallback).

Lookups never raise; a failed source is logged and the next one is tried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final

from backend.src import http_fetch
from backend.src.errors import TransportError
from backend.src.settings import get_settings


logger = logging.getLogger(__name__)

# ±0.05° is roughly a 5 km square around the property.
_STATION_VIEWBOX_DELTA: Final[float] = 0.05


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


def _from_gsi(data: Any) -> Coordinates | None:
    if not isinstance(data, list) or not data:
        return None
    coords = ((data[0] or {}).get("geometry") or {}).get("coordinates")
    if not coords or len(coords) < 2:
        return None
    lng, lat = coords[0], coords[1]  # GeoJSON order
    return Coordinates(lat=float(lat), lng=float(lng))


def _from_nominatim(data: Any) -> Coordinates | None:
    if not isinstance(data, list) or not data:
        return None
    return Coordinates(lat=float(data[0]["lat"]), lng=float(data[0]["lon"]))


def _nominatim_search(query: str, **extra: Any) -> Coordinates | None:
    s = get_settings()
    params = {"format": "json", "q": query, "countrycodes": "jp", "limit": 1, **extra}
    return _from_nominatim(http_fetch.fetch_json(s.nominatim_search_url, params=params, user_agent=s.service_user_agent))


def geocode_address(address: str) -> Coordinates | None:
    if not address:
        return None
    s = get_settings()
    try:
        found = _from_gsi(http_fetch.fetch_json(s.gsi_address_search_url, params={"q": address}))
        if found is not None:
            return found
    except (TransportError, KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning("GSI geocoding failed for %s: %s", address, e)

    try:
        return _nominatim_search(address)
    except (TransportError, KeyError, TypeError, ValueError) as e:
        logger.warning("Nominatim geocoding failed for %s: %s", address, e)
    return None


def geocode_station(station_name: str, near: Coordinates | None = None) -> Coordinates | None:
    """
    Coordinates of "<station_name>駅".

    With `near`, a search bounded to the surrounding box runs first so that common
    station names resolve to the one serving the property.
    """
    query = f"{station_name}駅"
    if near is not None:
        d = _STATION_VIEWBOX_DELTA
        viewbox = f"{near.lng - d},{near.lat + d},{near.lng + d},{near.lat - d}"
        try:
            found = _nominatim_search(query, viewbox=viewbox, bounded=1)
            if found is not None:
                logger.info("geocode: station %s -> %s, %s (bounded)", station_name, found.lat, found.lng)
                return found
        except (TransportError, KeyError, TypeError, ValueError) as e:
            logger.warning("Nominatim bounded station geocoding failed for %s: %s", station_name, e)

    logger.info("geocode: station %s falling back to general search", station_name)
    return geocode_address(query)
