"""
address.py — Split a Japanese postal address into prefecture / city-ward / town.

Examples:
  "神奈川県川崎市宮前区馬絹６丁目" -> ("神奈川県", "川崎市宮前区", "馬絹")
  "東京都新宿区西新宿２"          -> ("東京都", "新宿区", "西新宿")
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from backend.src.prefectures import PREFECTURE_SLUGS


# Unicode Script=Han, Script=Hiragana and Script=Katakana only. Common marks such as
# ー (U+30FC), 〆 and the combining voicing marks end the town run.
_TOWN_CHARS: Final[str] = (
    "\u3005\u3007\u3021-\u3029\u3038-\u303b"
    "\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufa6d\ufa70-\ufad9\U00020000-\U0003134f"
    "\u3041-\u3096\u309d-\u309f"
    "\u30a1-\u30fa\u30fd-\u30ff\u31f0-\u31ff\uff66-\uff6f\uff71-\uff9d"
)

_PREFECTURE_ALT: Final[str] = "|".join(
    [re.escape(p) for p in sorted(PREFECTURE_SLUGS, key=len, reverse=True)] + [r".{2,3}県"]
)

_ADDRESS_RE: Final[re.Pattern[str]] = re.compile(
    rf"^({_PREFECTURE_ALT})(.+?市.+?区|.+?[市区町村郡])([{_TOWN_CHARS}]+)"
)

_TRAILING_CITY_WARD_RE: Final[re.Pattern[str]] = re.compile(r"([^市区町村郡]+[市区町村])$")


@dataclass(frozen=True)
class AddressComponents:
    prefecture: str
    city_ward: str
    town: str


def parse_address(address: str) -> AddressComponents | None:
    """Return None when the address does not start with a recognisable prefecture/city run."""
    if not address:
        return None
    m = _ADDRESS_RE.match(address.strip())
    if not m:
        return None
    return AddressComponents(prefecture=m.group(1), city_ward=m.group(2), town=m.group(3))


def trailing_city_ward(city_ward: str) -> str:
    """Last 市/区/町/村 token of a compound name: "川崎市宮前区" -> "宮前区"."""
    m = _TRAILING_CITY_WARD_RE.search(city_ward or "")
    return m.group(1) if m else city_ward
