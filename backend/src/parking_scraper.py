"""
parking_scraper.py — Monthly-parking search on at-parking.jp around a property.

at-parking.jp has no API. Lots are reached by following its area index:

  /search/{pref_slug}/            prefecture page → link to the city/ward
  /search/{pref_slug}/{ward}/     ward page       → link to the town
  /search/{pref_slug}/{ward}/{town}/
                                  town page embeds the lots as
                                  latlngList[N] = { no:'..', lat:'..', ... };

Stages run strictly in order (each needs the previous stage's link). Any missing
link or failed fetch ends the crawl with an empty result: no partial lists, no retries.
"""

from __future__ import annotations

import logging
import math
import re
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Final

from bs4 import BeautifulSoup

from backend.src import http_fetch
from backend.src.address import AddressComponents, parse_address, trailing_city_ward
from backend.src.errors import NotFoundError, ScrapeError, TransportError, UnparseableError
from backend.src.geo import haversine_distance
from backend.src.prefectures import prefecture_slug
from backend.src.settings import get_settings


logger = logging.getLogger(__name__)

_LOT_BLOCK_RE: Final[re.Pattern[str]] = re.compile(r"latlngList\[\d+\]\s*=\s*\{([^}]+)\}")

STATUS_OK: Final[str] = "ok"
STATUS_ADDRESS_UNPARSED: Final[str] = "address_unparsed"
STATUS_UNKNOWN_PREFECTURE: Final[str] = "unknown_prefecture"
STATUS_WARD_NOT_FOUND: Final[str] = "ward_not_found"
STATUS_TOWN_NOT_FOUND: Final[str] = "town_not_found"
STATUS_FETCH_FAILED: Final[str] = "fetch_failed"


@dataclass(frozen=True)
class ParkingLot:
    id: str
    name: str
    address: str
    price: str  # display string as shown on the site, e.g. "15,400円"
    lat: float
    lng: float
    detail_url: str
    distance_meters: int
    is_24h: bool
    is_indoor: bool
    is_outdoor: bool


@dataclass
class ParkingSearchResult:
    lots: list[ParkingLot]
    status: str
    address: AddressComponents | None = None
    ward_path: str | None = None
    town_path: str | None = None
    found_in_town: int = 0
    attempts: list[dict[str, Any]] = field(default_factory=list)


class _StageNotFound(NotFoundError):
    def __init__(self, status: str, message: str) -> None:
        super().__init__(message)
        self.status = status


# ── Micro-format ──────────────────────────────────────────────────────────────

def _block_value(block: str, key: str) -> str:
    m = re.search(rf"(?<![\w]){re.escape(key)}\s*:\s*'([^']*)'", block)
    return m.group(1) if m else ""


def _parse_coord(text: str) -> float:
    try:
        return float(text)
    except ValueError as e:
        raise UnparseableError(f"bad coordinate {text!r}") from e


def parse_lot_blocks(html: str, *, base_url: str) -> list[dict[str, Any]]:
    """
    Pull every `latlngList[N] = {key:'value', ...}` record out of a town page.

    Targeted key lookups only; the surrounding JavaScript is never evaluated.
    Records without usable coordinates are dropped.
    """
    lots: list[dict[str, Any]] = []
    for m in _LOT_BLOCK_RE.finditer(html or ""):
        block = m.group(1)
        try:
            lat = _parse_coord(_block_value(block, "lat"))
            lng = _parse_coord(_block_value(block, "lng"))
        except UnparseableError as e:
            logger.debug("parking: skipping lot block: %s", e)
            continue
        if not (math.isfinite(lat) and math.isfinite(lng)) or not lat or not lng:
            continue
        lots.append(
            {
                "id": _block_value(block, "no"),
                "name": _block_value(block, "name"),
                "address": _block_value(block, "address"),
                "price": _block_value(block, "list_price_display"),
                "lat": lat,
                "lng": lng,
                "detail_url": base_url + _block_value(block, "url"),
                "is_24h": _block_value(block, "icon_24h_display") == "1",
                "is_indoor": _block_value(block, "icon_indoor_display") == "1",
                "is_outdoor": _block_value(block, "icon_outdoor_display") == "1",
            }
        )
    return lots


# ── Link following ────────────────────────────────────────────────────────────

def _is_direct_child(parent_path: str, path: str) -> bool:
    parent_path = parent_path.rstrip("/") + "/"
    if not path.startswith(parent_path):
        return False
    rest = path[len(parent_path) :].strip("/")
    return bool(rest) and "/" not in rest


def find_child_link(html: str, parent_path: str, text_fragment: str, *, base_url: str) -> str | None:
    """First link one level below `parent_path` whose visible text contains `text_fragment`."""
    if not text_fragment:
        return None
    # Compare and resolve against the directory, not a bare "/search/x/ward" prefix.
    parent_path = parent_path.rstrip("/") + "/"
    soup = BeautifulSoup(html or "", "html.parser")
    base_host = urllib.parse.urlparse(base_url).netloc
    for a in soup.find_all("a", href=True):
        parsed = urllib.parse.urlparse(urllib.parse.urljoin(base_url + parent_path, str(a["href"])))
        if parsed.netloc and parsed.netloc != base_host:
            continue
        if not _is_direct_child(parent_path, parsed.path):
            continue
        if text_fragment in a.get_text().strip():
            return parsed.path
    return None


def _fetch(url: str, attempts: list[dict[str, Any]], stage: str) -> str:
    try:
        html = http_fetch.fetch_text(url, user_agent=get_settings().service_user_agent)
    except TransportError as e:
        attempts.append({"stage": stage, "url": url, "error": str(e)})
        raise
    attempts.append({"stage": stage, "url": url})
    return html


def _locate_ward(components: AddressComponents, base_url: str, attempts: list[dict[str, Any]]) -> str:
    slug = prefecture_slug(components.prefecture)
    if slug is None:
        raise _StageNotFound(STATUS_UNKNOWN_PREFECTURE, f"Unknown prefecture: {components.prefecture}")

    pref_path = f"/search/{slug}/"
    html = _fetch(base_url + pref_path, attempts, "prefecture")
    ward_path = find_child_link(html, pref_path, components.city_ward, base_url=base_url)
    if ward_path is None:
        # Indexes sometimes list only the ward part of "川崎市宮前区".
        short = trailing_city_ward(components.city_ward)
        if short != components.city_ward:
            ward_path = find_child_link(html, pref_path, short, base_url=base_url)
    if ward_path is None:
        raise _StageNotFound(STATUS_WARD_NOT_FOUND, f"Ward not found for: {components.city_ward}")
    return ward_path


def _locate_town(ward_path: str, town: str, base_url: str, attempts: list[dict[str, Any]]) -> str:
    html = _fetch(base_url + ward_path, attempts, "ward")
    town_path = find_child_link(html, ward_path, town, base_url=base_url)
    if town_path is None:
        raise _StageNotFound(STATUS_TOWN_NOT_FOUND, f"Town not found for: {town}")
    return town_path


def _with_distance(raw_lots: list[dict[str, Any]], lat: float, lng: float, radius_km: float) -> list[ParkingLot]:
    limit_m = float(radius_km) * 1000.0
    lots: list[ParkingLot] = []
    for raw in raw_lots:
        dist_m = int(round(haversine_distance(lat, lng, raw["lat"], raw["lng"]) * 1000))
        if dist_m > limit_m:
            continue
        lots.append(ParkingLot(distance_meters=dist_m, **raw))
    lots.sort(key=lambda p: p.distance_meters)
    return lots


# ── Public API ────────────────────────────────────────────────────────────────

def search_parking_near_detailed(
    address: str,
    lat: float,
    lng: float,
    radius_km: float | None = None,
) -> ParkingSearchResult:
    """
    Same crawl as search_parking_near, but reports why the list is empty.

    status: ok | address_unparsed | unknown_prefecture | ward_not_found |
            town_not_found | fetch_failed
    """
    settings = get_settings()
    radius_km = settings.parking_radius_km if radius_km is None else radius_km
    base_url = settings.parking_base_url.rstrip("/")
    attempts: list[dict[str, Any]] = []

    components = parse_address(address)
    if components is None:
        logger.warning("parking: failed to parse address: %s", address)
        return ParkingSearchResult(lots=[], status=STATUS_ADDRESS_UNPARSED)

    logger.info("parking: searching %s / %s / %s", components.prefecture, components.city_ward, components.town)
    result = ParkingSearchResult(lots=[], status=STATUS_FETCH_FAILED, address=components, attempts=attempts)
    try:
        result.ward_path = _locate_ward(components, base_url, attempts)
        logger.info("parking: ward path %s", result.ward_path)

        result.town_path = _locate_town(result.ward_path, components.town, base_url, attempts)
        logger.info("parking: town path %s", result.town_path)

        town_html = _fetch(base_url + result.town_path, attempts, "town")
        raw_lots = parse_lot_blocks(town_html, base_url=base_url)
        result.found_in_town = len(raw_lots)
        logger.info("parking: %d lots listed in %s", len(raw_lots), components.town)

        result.lots = _with_distance(raw_lots, float(lat), float(lng), radius_km)
        result.status = STATUS_OK
    except _StageNotFound as e:
        logger.warning("parking: %s", e)
        result.status = e.status
    except ScrapeError as e:
        logger.warning("parking: crawl aborted: %s", e)
        result.status = STATUS_FETCH_FAILED
    except Exception as e:  # noqa: BLE001
        logger.warning("parking: unexpected failure: %s", e)
        result.status = STATUS_FETCH_FAILED
    if result.status != STATUS_OK:
        result.lots = []
    return result


def search_parking_near(
    address: str,
    lat: float,
    lng: float,
    radius_km: float | None = None,
) -> list[ParkingLot]:
    """
    Monthly-parking lots within `radius_km` (default 1 km) of (lat, lng), nearest first.

    Never raises. An empty list means either "crawl found nothing" or "nothing
    within radius"; use search_parking_near_detailed to tell them apart.
    """
    return search_parking_near_detailed(address, lat, lng, radius_km).lots
