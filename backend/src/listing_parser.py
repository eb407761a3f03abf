"""
listing_parser.py — Parse a SUUMO rental listing detail page into a PropertyRecord.

Supported URL: https://suumo.jp/chintai/jnc_XXXXXXXX/ (and bc_ variants)

SUUMO markup is not versioned and changes without notice. Each field is resolved
by an ordered tuple of small strategies over a shared ListingContext; the first
strategy returning a non-empty / non-zero value wins. A field nobody can recover
stays at its zero value ("" / 0 / []), which is the "not found" sentinel.
parse_listing_html never raises.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Final, Sequence

from bs4 import BeautifulSoup, NavigableString

from backend.src import http_fetch
from backend.src.listing_images import collect_image_urls
from backend.src.listing_table import ListingTable
from backend.src.settings import get_settings
from backend.src.station_access import StationAccess, collect_station_access


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PropertyRecord:
    name: str = ""
    rent: int = 0  # 月額賃料（円）
    management_fee: int = 0  # 管理費・共益費（円）
    deposit: int = 0  # 敷金（円）
    key_money: int = 0  # 礼金（円）
    layout: str = ""  # e.g. "1LDK"
    area: float = 0.0  # 専有面積（m²）
    floor: str = ""  # e.g. "3階/5階建"
    building_type: str = ""
    age: str = ""  # e.g. "築5年" or "1997年9月"
    address: str = ""
    stations: list[StationAccess] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    direction: str = ""
    contract_type: str = ""
    images: list[str] = field(default_factory=list)
    source_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def is_listing_found(record: PropertyRecord) -> bool:
    return bool(record.rent) or bool(record.name)


@dataclass(frozen=True)
class ListingContext:
    soup: BeautifulSoup
    markup: str
    table: ListingTable
    page_data: dict[str, Any] | None
    rent: int = 0  # filled once rent is known; deposit/key money may be quoted in months


Strategy = Callable[[ListingContext], Any]


# ── Numeric primitives ────────────────────────────────────────────────────────

_MAN_RE: Final[re.Pattern[str]] = re.compile(r"([\d.]+)\s*万")
_LEADING_INT_RE: Final[re.Pattern[str]] = re.compile(r"[+-]?\d+")
_MONTHS_RE: Final[re.Pattern[str]] = re.compile(r"([\d.]+)\s*[ヶケヵカか]?月")
_NONE_TOKENS: Final[frozenset[str]] = frozenset({"", "-", "－", "―", "なし", "無し", "無"})


def _nfkc(text: str) -> str:
    return unicodedata.normalize("NFKC", text or "")


def parse_japanese_currency(text: str) -> int:
    """
    "8.5万円" -> 85000, "5,000円" -> 5000, "12000" -> 12000, garbage -> 0.
    """
    if not text:
        return 0
    cleaned = _nfkc(str(text)).replace(",", "").replace("円", "").strip()
    m = _MAN_RE.search(cleaned)
    if m:
        try:
            return int(round(float(m.group(1)) * 10000))
        except ValueError:
            return 0
    m = _LEADING_INT_RE.match(cleaned)
    return int(m.group(0)) if m else 0


def parse_months_or_yen(text: str, rent: int) -> int:
    """Deposit / key-money cell: "1ヶ月" (× rent), "8.5万円", or "-" / "なし"."""
    t = _nfkc(text).strip()
    if t in _NONE_TOKENS:
        return 0
    m = _MONTHS_RE.search(t)
    if m:
        try:
            return int(round(float(m.group(1)) * rent))
        except ValueError:
            return 0
    return parse_japanese_currency(t)


def _man_to_yen(num_text: str) -> int:
    try:
        return int(round(float(num_text) * 10000))
    except ValueError:
        return 0


# ── Context ───────────────────────────────────────────────────────────────────

_PAGE_DATA_RE: Final[re.Pattern[str]] = re.compile(r"gapSuumoPcForFr\s*=\s*(\{[\s\S]*?\});")


def _extract_page_data(markup: str) -> dict[str, Any] | None:
    m = _PAGE_DATA_RE.search(markup or "")
    if not m:
        return None
    try:
        data = json.loads(m.group(1))
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def build_context(markup: str) -> ListingContext:
    soup = BeautifulSoup(markup or "", "html.parser")
    return ListingContext(
        soup=soup,
        markup=markup or "",
        table=ListingTable.from_soup(soup),
        page_data=_extract_page_data(markup),
    )


def _first_success(strategies: Sequence[Strategy], ctx: ListingContext, default: Any) -> Any:
    for strategy in strategies:
        try:
            value = strategy(ctx)
        except Exception as e:  # noqa: BLE001
            logger.debug("%s failed: %s", getattr(strategy, "__name__", strategy), e)
            continue
        if value:
            return value
    return default


def _table(*keywords: str, exclude: tuple[str, ...] = ()) -> Strategy:
    def lookup(ctx: ListingContext) -> str:
        return ctx.table.find_value(*keywords, exclude=exclude)

    lookup.__name__ = f"table[{'/'.join(keywords)}]"
    return lookup


# ── Name ──────────────────────────────────────────────────────────────────────

def _name_from_header_title(ctx: ListingContext) -> str | None:
    el = ctx.soup.select_one(".section_h1-header-title")
    return el.get_text().strip() if el else None


def _name_from_h1(ctx: ListingContext) -> str | None:
    h1 = ctx.soup.find("h1")
    if h1 is None:
        return None
    # "リーフ宮崎台 - 〇〇不動産提供" -> "リーフ宮崎台"
    return re.sub(r"\s*-\s*.+提供.*$", "", h1.get_text().strip()).strip()


# ── Rent / fees ───────────────────────────────────────────────────────────────

_STANDALONE_RENT_RE: Final[re.Pattern[str]] = re.compile(r"^([\d.]+)\s*万円$")
_LABELED_RENT_RE: Final[re.Pattern[str]] = re.compile(r"賃料[：:]\s*([\d.]+)\s*万")
_MGMT_TEXT_RE: Final[re.Pattern[str]] = re.compile(r"管理費[・共益費]*\s*([\d,]+)\s*円")


def _rent_from_standalone_token(ctx: ListingContext) -> int | None:
    # The headline rent is rendered alone in its own element: <span>8.5万円</span>
    for el in ctx.soup.find_all(["span", "div", "p"]):
        m = _STANDALONE_RENT_RE.match(el.get_text().strip())
        if m:
            rent = _man_to_yen(m.group(1))
            if rent:
                return rent
    return None


def _rent_from_page_data(ctx: ListingContext) -> int | None:
    if not ctx.page_data or not ctx.page_data.get("rent"):
        return None
    return parse_japanese_currency(str(ctx.page_data["rent"]))


def _rent_from_labeled_markup(ctx: ListingContext) -> int | None:
    m = _LABELED_RENT_RE.search(ctx.markup)
    return _man_to_yen(m.group(1)) if m else None


def _management_fee_from_table(ctx: ListingContext) -> int:
    return parse_japanese_currency(ctx.table.find_value("管理費", "共益費"))


def _management_fee_from_text(ctx: ListingContext) -> int | None:
    for el in ctx.soup.find_all(["span", "div"]):
        m = _MGMT_TEXT_RE.search(el.get_text().strip())
        if m:
            fee = parse_japanese_currency(m.group(1))
            if fee:
                return fee
    return None


# ── Deposit / key money ───────────────────────────────────────────────────────

_DEPOSIT_TEXT_RE: Final[re.Pattern[str]] = re.compile(r"敷金?\s*[：:]?\s*([\d.]+万|なし|-)")
_KEY_MONEY_TEXT_RE: Final[re.Pattern[str]] = re.compile(r"礼金?\s*[：:]?\s*([\d.]+万|なし|-)")


def _merged_deposit_key_money(ctx: ListingContext, index: int) -> int | None:
    # "敷金/礼金" headers carry both values: "1ヶ月/-"
    for entry in ctx.table.entries:
        if "敷" in entry.header and "礼" in entry.header:
            parts = re.split(r"\s*[/／]\s*", entry.value)
            if len(parts) == 2:
                return parse_months_or_yen(parts[index], ctx.rent)
    return None


def _deposit_from_merged_cell(ctx: ListingContext) -> int | None:
    return _merged_deposit_key_money(ctx, 0)


def _key_money_from_merged_cell(ctx: ListingContext) -> int | None:
    return _merged_deposit_key_money(ctx, 1)


def _deposit_from_table(ctx: ListingContext) -> int | None:
    text = ctx.table.find_value("敷金", exclude=("礼",))
    return parse_months_or_yen(text, ctx.rent) if text else None


def _key_money_from_table(ctx: ListingContext) -> int | None:
    text = ctx.table.find_value("礼金", exclude=("敷",))
    return parse_months_or_yen(text, ctx.rent) if text else None


def _scan_labeled_amount(ctx: ListingContext, pattern: re.Pattern[str]) -> int | None:
    for el in ctx.soup.find_all(["span", "div", "td"]):
        m = pattern.search(el.get_text().strip())
        if m:
            amount = parse_japanese_currency(m.group(1))
            if amount:
                return amount
    return None


def _deposit_from_text(ctx: ListingContext) -> int | None:
    return _scan_labeled_amount(ctx, _DEPOSIT_TEXT_RE)


def _key_money_from_text(ctx: ListingContext) -> int | None:
    return _scan_labeled_amount(ctx, _KEY_MONEY_TEXT_RE)


# ── Layout / area / floor ─────────────────────────────────────────────────────

_LAYOUT_CODE_RE: Final[re.Pattern[str]] = re.compile(r"(\d+R|\d*S?[LDK]+)")
_ROOM_TAG_RE: Final[re.Pattern[str]] = re.compile(r"[和洋]\d")
_AREA_RE: Final[re.Pattern[str]] = re.compile(r"([\d.]+)\s*m", re.IGNORECASE)
_FLOOR_RE: Final[re.Pattern[str]] = re.compile(
    r"(\d+階\s*[/／]\s*\d+階建|\d+階\s*[/／]\s*地下\d+階建|\d+階建)"
)
_FLOOR_RAW_MAX_LEN: Final[int] = 20


def _layout_from_table(ctx: ListingContext) -> str | None:
    raw = _nfkc(ctx.table.find_value("間取り"))
    if not raw:
        return None
    if "ワンルーム" in raw:
        return "1R"
    m = _LAYOUT_CODE_RE.search(raw)
    if not m:
        return raw
    code = m.group(1)
    # Merged "間取り詳細" cells list rooms ("和6 洋6 洋5 LDK12.8"); count them for the prefix.
    rooms = len(_ROOM_TAG_RE.findall(raw))
    if rooms:
        code = f"{rooms}{code.lstrip('0123456789')}"
    return code


def _area_from_table(ctx: ListingContext) -> float | None:
    # SUUMO renders "52.36m<sup>2</sup>" or "52.36㎡" (NFKC → "m2").
    m = _AREA_RE.search(_nfkc(ctx.table.find_value("専有面積", "面積")))
    return float(m.group(1)) if m else None


def _floor_from_pattern(ctx: ListingContext) -> str | None:
    m = _FLOOR_RE.search(ctx.table.find_value("階建", "階"))
    return m.group(1) if m else None


def _floor_from_raw_value(ctx: ListingContext) -> str:
    return ctx.table.find_value("階建", "階")[:_FLOOR_RAW_MAX_LEN]


# ── Building ──────────────────────────────────────────────────────────────────

_STRUCTURE_RE: Final[re.Pattern[str]] = re.compile(r"(鉄筋コン|軽量鉄骨|鉄骨|木造|SRC|RC|S造)")
_BUILT_YEAR_MONTH_RE: Final[re.Pattern[str]] = re.compile(r"(\d{4}年\d{1,2}月)")


def _structure_from_merged_layout(ctx: ListingContext) -> str | None:
    # "和6 洋6 洋5 LDK12.8 鉄筋コン" (header "間取り詳細構造")
    m = _STRUCTURE_RE.search(_nfkc(ctx.table.find_value("間取り詳細構造", "間取り")))
    return m.group(1) if m else None


def _age_from_merged_floor(ctx: ListingContext) -> str | None:
    # "1階/5階建1997年9月" (header "階建築年月")
    m = _BUILT_YEAR_MONTH_RE.search(ctx.table.find_value("階建築年月", "階建"))
    return m.group(1) if m else None


# ── Address ───────────────────────────────────────────────────────────────────

_TITLE_ADDRESS_RE: Final[re.Pattern[str]] = re.compile(
    r"／((?:東京都|北海道|(?:大阪|京都)府|.{2,3}県).+?)／"
)


def _address_from_title(ctx: ListingContext) -> str | None:
    # <title>【SUUMO】リーフ宮崎台／神奈川県川崎市宮前区馬絹６／宮崎台駅の賃貸…</title>
    title = ctx.soup.find("title")
    if title is None:
        return None
    m = _TITLE_ADDRESS_RE.search(title.get_text())
    return m.group(1) if m else None


# ── Features / stations / images ──────────────────────────────────────────────

_FEATURE_ITEM_SELECTOR: Final[str] = ".property_view_detail-features li, .property_data-features li"
_FEATURE_SPLIT_RE: Final[re.Pattern[str]] = re.compile(r"[、,／\n]")
_CONDITION_SPLIT_RE: Final[re.Pattern[str]] = re.compile(r"[/／\n]")
_LISTING_CODE_RE: Final[re.Pattern[str]] = re.compile(r"\d{5,}")
_CONDITION_MAX_LEN: Final[int] = 30


def _collect_features(ctx: ListingContext) -> list[str]:
    features: list[str] = []

    def add(item: str, *, max_len: int | None = None) -> None:
        t = item.strip()
        if not t or t in features:
            return
        if max_len is not None and len(t) >= max_len:
            return
        features.append(t)

    for li in ctx.soup.select(_FEATURE_ITEM_SELECTOR):
        add(li.get_text())

    for item in _FEATURE_SPLIT_RE.split(ctx.table.find_value("設備", "条件・設備", "条件")):
        add(item)

    # "条件取り扱い店舗物件コード": conditions come before the numeric listing code.
    cond_text = ctx.table.find_value("条件取り扱い")
    if cond_text:
        cond_part = _LISTING_CODE_RE.split(cond_text)[0]
        for item in _CONDITION_SPLIT_RE.split(cond_part):
            add(item, max_len=_CONDITION_MAX_LEN)
    return features


def _stations_from_page(ctx: ListingContext) -> list[StationAccess]:
    return collect_station_access(ctx.soup, ctx.table)


def _images_from_page(ctx: ListingContext) -> list[str]:
    return collect_image_urls(ctx.soup)


# ── Waterfalls ────────────────────────────────────────────────────────────────

NAME_STRATEGIES: Final[tuple[Strategy, ...]] = (_name_from_header_title, _name_from_h1)
RENT_STRATEGIES: Final[tuple[Strategy, ...]] = (
    _rent_from_standalone_token,
    _rent_from_page_data,
    _rent_from_labeled_markup,
)
MANAGEMENT_FEE_STRATEGIES: Final[tuple[Strategy, ...]] = (_management_fee_from_table, _management_fee_from_text)
DEPOSIT_STRATEGIES: Final[tuple[Strategy, ...]] = (
    _deposit_from_merged_cell,
    _deposit_from_table,
    _deposit_from_text,
)
KEY_MONEY_STRATEGIES: Final[tuple[Strategy, ...]] = (
    _key_money_from_merged_cell,
    _key_money_from_table,
    _key_money_from_text,
)
LAYOUT_STRATEGIES: Final[tuple[Strategy, ...]] = (_layout_from_table,)
AREA_STRATEGIES: Final[tuple[Strategy, ...]] = (_area_from_table,)
FLOOR_STRATEGIES: Final[tuple[Strategy, ...]] = (_floor_from_pattern, _floor_from_raw_value)
BUILDING_TYPE_STRATEGIES: Final[tuple[Strategy, ...]] = (
    _table("建物種別", "種別"),
    _table("構造", exclude=("間取り",)),
    _structure_from_merged_layout,
)
AGE_STRATEGIES: Final[tuple[Strategy, ...]] = (
    _table("築年月", "築年数", exclude=("階建",)),
    _age_from_merged_floor,
)
ADDRESS_STRATEGIES: Final[tuple[Strategy, ...]] = (_table("所在地", "住所"), _address_from_title)
DIRECTION_STRATEGIES: Final[tuple[Strategy, ...]] = (_table("向き", "方角"),)
CONTRACT_STRATEGIES: Final[tuple[Strategy, ...]] = (_table("契約期間"),)
FEATURE_STRATEGIES: Final[tuple[Strategy, ...]] = (_collect_features,)
STATION_STRATEGIES: Final[tuple[Strategy, ...]] = (_stations_from_page,)
IMAGE_STRATEGIES: Final[tuple[Strategy, ...]] = (_images_from_page,)


# ── Public API ────────────────────────────────────────────────────────────────

def parse_listing_html(markup: str, source_url: str) -> PropertyRecord:
    """
    Extract every PropertyRecord field from a listing page. Never raises.

    The caller judges success with is_listing_found (rent != 0 or name != "").
    """
    try:
        ctx = build_context(markup)
    except Exception as e:  # noqa: BLE001
        logger.warning("listing markup could not be loaded (%s): %s", source_url, e)
        return PropertyRecord(source_url=source_url)

    rent = _first_success(RENT_STRATEGIES, ctx, 0)
    ctx = dataclasses.replace(ctx, rent=rent)

    record = PropertyRecord(
        name=_first_success(NAME_STRATEGIES, ctx, ""),
        rent=rent,
        management_fee=_first_success(MANAGEMENT_FEE_STRATEGIES, ctx, 0),
        deposit=_first_success(DEPOSIT_STRATEGIES, ctx, 0),
        key_money=_first_success(KEY_MONEY_STRATEGIES, ctx, 0),
        layout=_first_success(LAYOUT_STRATEGIES, ctx, ""),
        area=_first_success(AREA_STRATEGIES, ctx, 0.0),
        floor=_first_success(FLOOR_STRATEGIES, ctx, ""),
        building_type=_first_success(BUILDING_TYPE_STRATEGIES, ctx, ""),
        age=_first_success(AGE_STRATEGIES, ctx, ""),
        address=_first_success(ADDRESS_STRATEGIES, ctx, ""),
        stations=_first_success(STATION_STRATEGIES, ctx, []),
        features=_first_success(FEATURE_STRATEGIES, ctx, []),
        direction=_first_success(DIRECTION_STRATEGIES, ctx, ""),
        contract_type=_first_success(CONTRACT_STRATEGIES, ctx, ""),
        images=_first_success(IMAGE_STRATEGIES, ctx, []),
        source_url=source_url,
    )
    logger.debug(
        "parsed %s: rent=%s name=%r table_rows=%d stations=%d images=%d",
        source_url,
        record.rent,
        record.name,
        len(ctx.table),
        len(record.stations),
        len(record.images),
    )
    return record


def is_supported_listing_url(url: str) -> bool:
    host = re.sub(r"^https?://", "", str(url or "").strip()).split("/", 1)[0].lower()
    return host == "suumo.jp" or host.endswith(".suumo.jp")


def fetch_listing_markup(url: str, *, timeout: float | None = None) -> str:
    return http_fetch.fetch_text(url, user_agent=get_settings().listing_user_agent, timeout=timeout)


def fetch_listing(url: str, *, timeout: float | None = None) -> PropertyRecord:
    """Fetch and parse a listing page. Raises TransportError when the page cannot be fetched."""
    return parse_listing_html(fetch_listing_markup(url, timeout=timeout), url)


# ── Diagnostics ───────────────────────────────────────────────────────────────

_TRAFFIC_CLASS_MARKERS: Final[tuple[str, ...]] = ("traffic", "access", "station", "ekiten")


def describe_listing_html(markup: str) -> dict[str, Any]:
    """
    Structural dump used to diagnose layout drift (which headers exist, where station text lives).
    """
    soup = BeautifulSoup(markup or "", "html.parser")

    table_rows: list[dict[str, str]] = []
    for row in soup.select("table tr"):
        th = " ".join(x.get_text().strip() for x in row.find_all("th")).strip()[:80]
        td = " ".join(x.get_text().strip() for x in row.find_all("td")).strip()[:120]
        if th:
            table_rows.append({"th": th, "td": td})

    dl_items: list[dict[str, str]] = []
    for dl in soup.find_all("dl"):
        dt = dl.find("dt")
        dd = dl.find("dd")
        dt_text = dt.get_text().strip()[:80] if dt else ""
        if dt_text:
            dl_items.append({"dt": dt_text, "dd": (dd.get_text().strip()[:120] if dd else "")})

    station_texts: list[str] = []
    traffic_elements: list[dict[str, str]] = []
    for el in soup.find_all(True):
        if el.name in ("script", "style"):
            continue
        own = "".join(str(s) for s in el.find_all(string=True, recursive=False) if type(s) is NavigableString).strip()
        if "駅" in own and 3 < len(own) < 200 and own[:150] not in station_texts:
            station_texts.append(own[:150])

        cls = " ".join(el.get("class") or [])
        if any(m in cls for m in _TRAFFIC_CLASS_MARKERS):
            text = el.get_text().strip()
            if 3 < len(text) < 300:
                traffic_elements.append({"tag": el.name, "classes": cls[:100], "text": text[:200]})

    title = soup.find("title")
    h1 = soup.find("h1")
    return {
        "title": title.get_text().strip() if title else "",
        "h1": h1.get_text().strip()[:100] if h1 else "",
        "img_count": len(soup.find_all("img")),
        "table_row_count": len(table_rows),
        "table_rows": table_rows[:40],
        "dl_item_count": len(dl_items),
        "dl_items": dl_items[:30],
        "station_texts": station_texts[:20],
        "traffic_elements": traffic_elements[:10],
        "has_page_data": _extract_page_data(markup) is not None,
    }
