"""
station_access.py — Recover nearest-station descriptors ("線/駅 歩N分") from free text.

Typical SUUMO snippets:
  "東急田園都市線/宮崎台駅 歩9分"
  "ＪＲ南武線/武蔵中原駅 歩2分"
  "小田急線 百合ヶ丘駅 徒歩9分"

The page lists the property's own stations first; station text further down
belongs to "similar listings" blocks, so only the first three distinct hits count.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, Iterable

from bs4 import BeautifulSoup, NavigableString, Tag

from backend.src.listing_table import ListingTable


MAX_STATIONS: Final[int] = 3

_BUS_MARKER: Final[str] = "バス"

# Most specific first; first match wins.
_STATION_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"(.+?線)\s*[/／]\s*(.+?)駅\s*歩(\d+)分"),
    re.compile(r"(.+?線)\s*[/／]\s*(.+?)駅\s*徒歩(\d+)分"),
    re.compile(r"(.+?線)\s+(.+?)駅\s*歩(\d+)分"),
    re.compile(r"(.+?線)\s+(.+?)駅\s+徒歩(\d+)分"),
    re.compile(r"(.+?)\s*[/／]\s*(.+?)駅\s*歩(\d+)分"),
    re.compile(r"(.+?)\s*[/／]\s*(.+?)駅\s+徒歩(\d+)分"),
)

# Loose fallback: the shortest run right before "駅" plus any later "N分".
_LOOSE_STATION_RE: Final[re.Pattern[str]] = re.compile(r"([^\s、,（）()／/]+?)駅.*?(\d+)分")
_LINE_PREFIX_RE: Final[re.Pattern[str]] = re.compile(r".*線\s*[/／]?\s*")
_LOOSE_NAME_MAX_LEN: Final[int] = 10

_LIST_ITEM_SELECTOR: Final[str] = ".property_view_detail-station li, .property_view_traffic li"
_SKIP_TAGS: Final[frozenset[str]] = frozenset({"script", "style", "noscript"})


@dataclass(frozen=True)
class StationAccess:
    line: str
    station: str
    walk_minutes: int


def parse_station_text(text: str) -> StationAccess | None:
    if not text or _BUS_MARKER in text:
        return None

    for pattern in _STATION_PATTERNS:
        m = pattern.search(text)
        if m:
            return StationAccess(
                line=m.group(1).strip(),
                station=m.group(2).strip(),
                walk_minutes=int(m.group(3)),
            )

    m = _LOOSE_STATION_RE.search(text)
    if not m:
        return None
    name = _LINE_PREFIX_RE.sub("", m.group(1), count=1).strip()
    # School-district names ("〇〇小学区") and long runs are not station names.
    if not name or "学区" in name or len(name) > _LOOSE_NAME_MAX_LEN:
        return None
    return StationAccess(line="", station=name, walk_minutes=int(m.group(2)))


def _own_text(el: Tag) -> str:
    return "".join(
        str(s) for s in el.find_all(string=True, recursive=False) if type(s) is NavigableString
    ).strip()


def _from_list_items(soup: BeautifulSoup) -> list[str]:
    return [li.get_text().strip() for li in soup.select(_LIST_ITEM_SELECTOR)]


def _from_traffic_field(table: ListingTable) -> list[str]:
    traffic = table.find_value("交通", "アクセス", "駅徒歩")
    return [ln.strip() for ln in traffic.split("\n") if ln.strip()]


def _from_text_scan(soup: BeautifulSoup) -> list[str]:
    out: list[str] = []
    for el in soup.find_all(True):
        if el.name in _SKIP_TAGS:
            continue
        text = _own_text(el)
        if "駅" in text and "分" in text and 5 < len(text) < 100:
            out.append(text)
    return out


def _parse_unique(snippets: Iterable[str]) -> list[StationAccess]:
    found: list[StationAccess] = []
    seen: set[tuple[str, int]] = set()
    for snippet in snippets:
        st = parse_station_text(snippet)
        if st is None:
            continue
        key = (st.station, st.walk_minutes)
        if key in seen:
            continue
        seen.add(key)
        found.append(st)
        if len(found) >= MAX_STATIONS:
            break
    return found


def collect_station_access(soup: BeautifulSoup, table: ListingTable) -> list[StationAccess]:
    """
    Try snippet sources in fixed priority; escalate only when a source yields nothing.

      1) structured station <li> elements
      2) the table's 交通/アクセス/駅徒歩 field, one candidate per line
      3) own text of every element mentioning 駅 and 分
    """
    sources = (
        lambda: _from_list_items(soup),
        lambda: _from_traffic_field(table),
        lambda: _from_text_scan(soup),
    )
    for source in sources:
        stations = _parse_unique(source())
        if stations:
            return stations
    return []
