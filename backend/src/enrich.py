"""
enrich.py — Turn a parsed listing into coordinates, elevations, slope info and nearby parking.

Flow (each stage degrades on its own; a failed stage leaves its value empty):

  geocode property → geocode stations (biased to the property, parallel)
    → elevations (property + stations, parallel)
    → per-station slope info
    → station→property elevation profiles (parallel)
    → parking crawl
"""

from __future__ import annotations

import dataclasses
import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence, TypeVar

from backend.src.elevation import get_elevation
from backend.src.errors import InputValidationError
from backend.src.geo import classify_slope, slope_gradient_percent
from backend.src.geocoding import Coordinates, geocode_address, geocode_station
from backend.src.listing_parser import PropertyRecord
from backend.src.parking_scraper import ParkingLot, search_parking_near_detailed
from backend.src.settings import get_settings
from backend.src.station_access import StationAccess


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

PROPERTY_LABEL = "物件"


@dataclass(frozen=True)
class NamedCoordinates:
    name: str
    lat: float
    lng: float


@dataclass(frozen=True)
class GeocodeResult:
    property: Coordinates | None
    stations: list[NamedCoordinates] = field(default_factory=list)


@dataclass(frozen=True)
class ElevationPoint:
    label: str
    lat: float
    lng: float
    elevation: float


@dataclass(frozen=True)
class StationElevationInfo:
    line: str
    station: str
    walk_minutes: int
    lat: float
    lng: float
    elevation: float
    property_elevation: float
    elevation_diff: float  # property - station; positive means uphill from the station
    slope_category: str
    slope_gradient: float


@dataclass(frozen=True)
class ElevationProfile:
    station_name: str
    points: list[dict[str, Any]]


@dataclass
class ListingAnalysis:
    geocode: GeocodeResult | None = None
    property_elevation: ElevationPoint | None = None
    station_elevations: list[StationElevationInfo] = field(default_factory=list)
    profiles: list[ElevationProfile] = field(default_factory=list)
    parking_lots: list[ParkingLot] = field(default_factory=list)
    parking_status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def station_label(name: str) -> str:
    return f"{name}駅"


def _parallel_map(fn: Callable[[T], R], items: Sequence[T], default: R) -> list[R]:
    """
    Apply `fn` to every item on a thread pool; results come back in input order.

    A unit that raises yields `default` for its own slot only.
    """
    if not items:
        return []
    results: list[R] = [default] * len(items)
    max_workers = max(1, min(get_settings().enrich_max_workers, len(items)))
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_index = {executor.submit(fn, item): i for i, item in enumerate(items)}
        for future in as_completed(future_to_index):
            i = future_to_index[future]
            try:
                results[i] = future.result()
            except Exception as e:  # noqa: BLE001
                logger.warning("enrich: unit %d failed: %s", i, e)
    return results


# ── Geocoding ────────────────────────────────────────────────────────────────

def geocode_listing(address: str, station_names: Sequence[str]) -> GeocodeResult:
    prop = geocode_address(address) if address else None

    names = [n for n in station_names if n]
    found = _parallel_map(lambda n: geocode_station(n, prop), names, None)
    stations = [
        NamedCoordinates(name=name, lat=c.lat, lng=c.lng)
        for name, c in zip(names, found)
        if c is not None
    ]
    return GeocodeResult(property=prop, stations=stations)


# ── Elevation ────────────────────────────────────────────────────────────────

def _coord_or_zero(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _point_elevation(point: dict[str, Any]) -> ElevationPoint:
    lat = float(point["lat"])
    lng = float(point["lng"])
    return ElevationPoint(label=str(point.get("label", "")), lat=lat, lng=lng, elevation=get_elevation(lat, lng) or 0.0)


def lookup_elevations(points: Sequence[dict[str, Any]]) -> list[ElevationPoint]:
    """Elevation for each {label, lat, lng}; missing data reads as 0.0. Input order is kept."""
    points = list(points)
    results = _parallel_map(_point_elevation, points, None)
    out: list[ElevationPoint] = []
    for p, r in zip(points, results):
        if r is None:
            # Unusable coordinates degrade to 0 for this point only.
            r = ElevationPoint(
                label=str(p.get("label", "")), lat=_coord_or_zero(p.get("lat")), lng=_coord_or_zero(p.get("lng")), elevation=0.0
            )
        out.append(r)
    return out


def _percent_label(t: float) -> str:
    return f"{int(math.floor(t * 100 + 0.5))}%"


def elevation_profile(
    station_lat: float,
    station_lng: float,
    property_lat: float,
    property_lng: float,
    station_name: str,
    steps: int = 10,
) -> list[dict[str, Any]]:
    """
    Elevations at `steps + 1` evenly spaced points on the straight line station → property.
    """
    if int(steps) < 1:
        raise InputValidationError("steps must be >= 1")
    steps = int(steps)

    points: list[dict[str, Any]] = []
    for i in range(steps + 1):
        t = i / steps
        if i == 0:
            label = station_label(station_name)
        elif i == steps:
            label = PROPERTY_LABEL
        else:
            label = _percent_label(t)
        points.append(
            {
                "label": label,
                "lat": station_lat + (property_lat - station_lat) * t,
                "lng": station_lng + (property_lng - station_lng) * t,
            }
        )
    return [{"label": p.label, "elevation": p.elevation} for p in lookup_elevations(points)]


# ── Slope info ───────────────────────────────────────────────────────────────

def build_station_elevations(
    stations: Sequence[StationAccess],
    geocoded: Sequence[NamedCoordinates],
    elevations: Sequence[ElevationPoint],
) -> list[StationElevationInfo]:
    """
    Join listing stations with their coordinates and elevations.

    `elevations[0]` is the property; station entries are matched by "<name>駅" label.
    Stations without coordinates or elevation fall back to 0.
    """
    if not elevations:
        return []
    prop_elev = elevations[0].elevation
    by_name = {g.name: g for g in geocoded}
    by_label = {e.label: e for e in elevations[1:]}

    infos: list[StationElevationInfo] = []
    for st in stations:
        geo = by_name.get(st.station)
        elev = by_label.get(station_label(st.station))
        elevation = elev.elevation if elev else 0.0
        diff = prop_elev - elevation
        infos.append(
            StationElevationInfo(
                line=st.line,
                station=st.station,
                walk_minutes=st.walk_minutes,
                lat=geo.lat if geo else 0.0,
                lng=geo.lng if geo else 0.0,
                elevation=elevation,
                property_elevation=prop_elev,
                elevation_diff=diff,
                slope_category=classify_slope(diff),
                slope_gradient=slope_gradient_percent(diff, st.walk_minutes),
            )
        )
    return infos


# ── Whole flow ───────────────────────────────────────────────────────────────

def analyze_listing(record: PropertyRecord, *, radius_km: float | None = None) -> ListingAnalysis:
    result = ListingAnalysis()
    if not record.address and not record.stations:
        return result

    result.geocode = geocode_listing(record.address, [s.station for s in record.stations])
    prop = result.geocode.property
    if prop is None:
        logger.warning("enrich: property could not be geocoded: %s", record.address)
        return result

    points = [{"label": PROPERTY_LABEL, "lat": prop.lat, "lng": prop.lng}] + [
        {"label": station_label(s.name), "lat": s.lat, "lng": s.lng} for s in result.geocode.stations
    ]
    elevations = lookup_elevations(points)
    result.property_elevation = elevations[0]
    result.station_elevations = build_station_elevations(record.stations, result.geocode.stations, elevations)

    def profile_for(st: NamedCoordinates) -> ElevationProfile:
        return ElevationProfile(
            station_name=st.name,
            points=elevation_profile(st.lat, st.lng, prop.lat, prop.lng, st.name),
        )

    result.profiles = [p for p in _parallel_map(profile_for, result.geocode.stations, None) if p is not None]

    if record.address:
        parking = search_parking_near_detailed(record.address, prop.lat, prop.lng, radius_km)
        result.parking_lots = parking.lots
        result.parking_status = parking.status
    return result
