import pytest
from bs4 import BeautifulSoup


@pytest.mark.parametrize(
    "text,expected",
    [
        ("東急田園都市線/宮崎台駅 歩9分", ("東急田園都市線", "宮崎台", 9)),
        ("ＪＲ南武線/武蔵中原駅 歩2分", ("ＪＲ南武線", "武蔵中原", 2)),
        ("小田急線 百合ヶ丘駅 徒歩9分", ("小田急線", "百合ヶ丘", 9)),
        ("東京メトロ/表参道駅 歩5分", ("東京メトロ", "表参道", 5)),
    ],
)
def test_parse_station_text_templates(text, expected):
    from backend.src.station_access import parse_station_text

    st = parse_station_text(text)

    assert st is not None
    assert (st.line, st.station, st.walk_minutes) == expected


def test_parse_station_text_loose_fallback_strips_line_prefix():
    from backend.src.station_access import parse_station_text

    st = parse_station_text("JR南武線武蔵中原駅徒歩2分")
    assert st is not None
    assert (st.line, st.station, st.walk_minutes) == ("", "武蔵中原", 2)

    st = parse_station_text("宮崎台駅まで徒歩9分")
    assert st is not None
    assert (st.station, st.walk_minutes) == ("宮崎台", 9)


@pytest.mark.parametrize(
    "text",
    [
        "東急バス/馬絹 歩3分",
        "バス10分 宮崎台駅 歩2分",
        "宮崎台小学区駅から5分",
        "あいうえおかきくけこさ駅から5分",
        "駅前の商店街",
        "",
    ],
)
def test_parse_station_text_rejects(text):
    from backend.src.station_access import parse_station_text

    assert parse_station_text(text) is None


def _collect(html: str):
    from backend.src.listing_table import ListingTable
    from backend.src.station_access import collect_station_access

    soup = BeautifulSoup(html, "html.parser")
    return collect_station_access(soup, ListingTable.from_soup(soup))


def test_list_items_win_over_table_and_are_capped_and_deduped():
    html = """
    <ul class="property_view_traffic">
      <li>東急田園都市線/宮崎台駅 歩9分</li>
      <li>東急田園都市線/宮崎台駅 歩9分</li>
      <li>東急バス/馬絹 歩3分</li>
      <li>東急田園都市線/宮前平駅 歩15分</li>
      <li>東急田園都市線/鷺沼駅 歩20分</li>
      <li>東急田園都市線/梶が谷駅 歩25分</li>
    </ul>
    <table><tr><th>交通</th><td>ＪＲ南武線/武蔵溝ノ口駅 歩30分</td></tr></table>
    """
    stations = _collect(html)

    assert [(s.station, s.walk_minutes) for s in stations] == [("宮崎台", 9), ("宮前平", 15), ("鷺沼", 20)]


def test_table_traffic_field_is_split_by_line():
    html = """
    <table><tr><th>アクセス</th><td>東急田園都市線/宮崎台駅 歩9分<br>東急田園都市線/宮前平駅 歩15分</td></tr></table>
    """
    assert [s.station for s in _collect(html)] == ["宮崎台", "宮前平"]


def test_text_scan_skips_scripts():
    html = """
    <div><p>東急田園都市線/宮崎台駅 歩9分</p>
    <script>var similar = "東急田園都市線/鷺沼駅 歩1分";</script></div>
    """
    stations = _collect(html)

    assert [(s.line, s.station, s.walk_minutes) for s in stations] == [("東急田園都市線", "宮崎台", 9)]


def test_no_station_text_returns_empty():
    assert _collect("<p>お問い合わせはこちら</p>") == []
