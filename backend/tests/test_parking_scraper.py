import pytest


ADDRESS = "神奈川県川崎市宮前区馬絹６丁目"
LAT, LNG = 35.59, 139.59

PREF_HTML = """
<ul>
  <li><a href="/search/kanagawa/kawasakishi-miyamaeku/umaginu/">川崎市宮前区馬絹（人気）</a></li>
  <li><a href="/search/kanagawa/kawasakishi-nakaharaku/">川崎市中原区</a></li>
  <li><a href="/search/kanagawa/kawasakishi-miyamaeku/">川崎市宮前区</a></li>
</ul>
"""

WARD_HTML = """
<a href="/search/kanagawa/kawasakishi-miyamaeku/miyazaki/">宮崎</a>
<a href="/search/kanagawa/kawasakishi-miyamaeku/umaginu/">馬絹</a>
"""


def _lot(i: int, lat: str, lng: str = "139.59", flags: str = "1','0','1") -> str:
    f24, findoor, foutdoor = flags.split("','")
    return (
        f"latlngList[{i}] = {{ no:'{100 + i}', name:'馬絹第{i}駐車場', address:'神奈川県川崎市宮前区馬絹６', "
        f"list_price_display:'15,400円', lat:'{lat}', lng:'{lng}', url:'/detail/{100 + i}/', "
        f"icon_24h_display:'{f24}', icon_indoor_display:'{findoor}', icon_outdoor_display:'{foutdoor}' }};"
    )


TOWN_HTML = (
    "<script>\nvar latlngList = [];\n"
    + "\n".join(
        [
            _lot(0, "35.6008"),  # ~1201 m
            _lot(1, "35.5985", flags="0','1','0"),  # ~945 m
            _lot(2, "35.59045"),  # ~50 m
            _lot(3, "0"),  # no coordinates
        ]
    )
    + "\n</script>"
)


@pytest.fixture
def site(monkeypatch):
    """Serve at-parking pages from a dict keyed by path; records every fetched URL."""
    from backend.src import parking_scraper as ps
    from backend.src.errors import TransportError
    from backend.src.settings import get_settings

    base = get_settings().parking_base_url.rstrip("/")
    pages = {
        "/search/kanagawa/": PREF_HTML,
        "/search/kanagawa/kawasakishi-miyamaeku/": WARD_HTML,
        "/search/kanagawa/kawasakishi-miyamaeku/umaginu/": TOWN_HTML,
    }
    fetched: list[str] = []

    def fake_fetch_text(url, *, user_agent=None, timeout=None):
        fetched.append(url)
        path = url[len(base):]
        if path not in pages:
            raise TransportError(f"Fetch failed {url}: HTTP 404")
        return pages[path]

    monkeypatch.setattr(ps.http_fetch, "fetch_text", fake_fetch_text)
    return {"base": base, "pages": pages, "fetched": fetched}


def test_lots_are_filtered_by_radius_and_sorted_by_distance(site):
    from backend.src.parking_scraper import search_parking_near

    lots = search_parking_near(ADDRESS, LAT, LNG)

    assert [lot.id for lot in lots] == ["102", "101"]
    assert [lot.distance_meters for lot in lots] == [50, 945]
    near = lots[0]
    assert near.name == "馬絹第2駐車場"
    assert near.price == "15,400円"
    assert near.detail_url == site["base"] + "/detail/102/"
    assert (near.is_24h, near.is_indoor, near.is_outdoor) == (True, False, True)
    assert (lots[1].is_24h, lots[1].is_indoor, lots[1].is_outdoor) == (False, True, False)
    assert site["fetched"] == [
        site["base"] + "/search/kanagawa/",
        site["base"] + "/search/kanagawa/kawasakishi-miyamaeku/",
        site["base"] + "/search/kanagawa/kawasakishi-miyamaeku/umaginu/",
    ]


def test_wider_radius_includes_far_lot(site):
    from backend.src.parking_scraper import search_parking_near

    lots = search_parking_near(ADDRESS, LAT, LNG, radius_km=2.0)

    assert [lot.distance_meters for lot in lots] == [50, 945, 1201]


def test_ward_fetch_failure_returns_empty(site):
    from backend.src import parking_scraper as ps

    del site["pages"]["/search/kanagawa/kawasakishi-miyamaeku/"]

    assert ps.search_parking_near(ADDRESS, LAT, LNG) == []
    detailed = ps.search_parking_near_detailed(ADDRESS, LAT, LNG)
    assert detailed.status == ps.STATUS_FETCH_FAILED
    assert detailed.lots == []
    assert detailed.attempts[-1]["stage"] == "ward"
    assert "error" in detailed.attempts[-1]


def test_ward_link_falls_back_to_trailing_ward_name(site):
    from backend.src.parking_scraper import search_parking_near

    site["pages"]["/search/kanagawa/"] = '<a href="/search/kanagawa/kawasakishi-miyamaeku/">宮前区</a>'

    assert [lot.id for lot in search_parking_near(ADDRESS, LAT, LNG)] == ["102", "101"]


def test_detailed_statuses(site):
    from backend.src import parking_scraper as ps

    assert ps.search_parking_near_detailed("somewhere", LAT, LNG).status == ps.STATUS_ADDRESS_UNPARSED

    unknown = ps.search_parking_near_detailed("架空県架空市本町1", LAT, LNG)
    assert unknown.status == ps.STATUS_UNKNOWN_PREFECTURE
    assert site["fetched"] == []

    site["pages"]["/search/kanagawa/kawasakishi-miyamaeku/"] = "<a href='/search/kanagawa/kawasakishi-miyamaeku/miyazaki/'>宮崎</a>"
    assert ps.search_parking_near_detailed(ADDRESS, LAT, LNG).status == ps.STATUS_TOWN_NOT_FOUND

    site["pages"]["/search/kanagawa/"] = "<p>maintenance</p>"
    assert ps.search_parking_near_detailed(ADDRESS, LAT, LNG).status == ps.STATUS_WARD_NOT_FOUND


def test_detailed_ok_distinguishes_none_within_radius(site):
    from backend.src import parking_scraper as ps

    result = ps.search_parking_near_detailed(ADDRESS, LAT, LNG, radius_km=0.01)

    assert result.status == ps.STATUS_OK
    assert result.lots == []
    assert result.found_in_town == 3
    assert result.town_path == "/search/kanagawa/kawasakishi-miyamaeku/umaginu/"


def test_parse_lot_blocks_drops_missing_coordinates():
    from backend.src.parking_scraper import parse_lot_blocks

    lots = parse_lot_blocks(TOWN_HTML + "latlngList[9] = { no:'9', name:'x' };", base_url="https://at-parking.jp")

    assert [lot["id"] for lot in lots] == ["100", "101", "102"]
    assert lots[0]["lat"] == pytest.approx(35.6008)


def test_find_child_link_requires_direct_child_on_same_host():
    from backend.src.parking_scraper import find_child_link

    html = """
    <a href="https://other.example/search/tokyo/shinjukuku/">新宿区</a>
    <a href="/search/tokyo/shinjukuku/nishishinjuku/">新宿区西新宿</a>
    <a href="https://at-parking.jp/search/tokyo/shinjukuku/">新宿区</a>
    """
    assert find_child_link(html, "/search/tokyo/", "新宿区", base_url="https://at-parking.jp") == "/search/tokyo/shinjukuku/"
    assert find_child_link(html, "/search/tokyo/", "渋谷区", base_url="https://at-parking.jp") is None


def test_non_finite_lot_coordinates_are_dropped(site):
    from backend.src import parking_scraper as ps

    town = "/search/kanagawa/kawasakishi-miyamaeku/umaginu/"
    site["pages"][town] = TOWN_HTML + _lot(4, "NaN") + _lot(5, "35.59", "inf")

    result = ps.search_parking_near_detailed(ADDRESS, LAT, LNG)

    assert result.status == ps.STATUS_OK
    assert result.found_in_town == 3
    assert [lot.id for lot in result.lots] == ["102", "101"]


def test_find_child_link_treats_parent_as_directory():
    from backend.src.parking_scraper import find_child_link

    html = """
    <a href="/search/kanagawa/kawasakishi/">川崎市</a>
    <a href="miyamae/">川崎市宮前区</a>
    """
    found = find_child_link(html, "/search/kanagawa/kawasaki", "川崎市", base_url="https://at-parking.jp")

    assert found == "/search/kanagawa/kawasaki/miyamae/"
