import pytest


LISTING_HTML = """
<html><head>
<title>【SUUMO】リーフ宮崎台／神奈川県川崎市宮前区馬絹６／宮崎台駅の賃貸・部屋探し情報</title>
<meta property="og:image" content="https://img01.suumo.com/front/gazo/bukken/091/N010000/img/og.jpg">
</head><body>
<h1 class="section_h1-header-title">リーフ宮崎台 2階</h1>
<div class="property_view_note-info"><span class="property_view_note-emphasis">8.5万円</span></div>
<img src="https://img01.suumo.com/front/gazo/bukken/091/N010000/img/100_s.jpg">
<img data-src="https://img01.suumo.com/front/gazo/bukken/091/N010000/img/100_s.jpg">
<img src="https://suumo.jp/front/img/common/icon_new.gif">
<table class="property_view_table">
<tr><th>所在地</th><td>神奈川県川崎市宮前区馬絹６</td></tr>
<tr><th>駅徒歩</th><td>東急田園都市線/宮崎台駅 歩9分<br>東急田園都市線/宮前平駅 歩15分</td></tr>
<tr><th>間取り</th><td>3LDK</td><th>専有面積</th><td>52.36m<sup>2</sup></td></tr>
<tr><th>築年数</th><td>築27年</td><th>階</th><td>2階/5階建</td></tr>
<tr><th>向き</th><td>南</td><th>建物種別</th><td>マンション</td></tr>
<tr><th>敷金</th><td>1ヶ月</td><th>礼金</th><td>-</td></tr>
<tr><th>管理費・共益費</th><td>5,000円</td><th>契約期間</th><td>2年</td></tr>
</table>
<ul class="property_view_detail-features"><li>バス・トイレ別</li><li>エアコン</li><li>エアコン</li></ul>
</body></html>
"""


def test_parse_listing_html_extracts_table_and_header_fields():
    from backend.src import listing_parser as p

    rec = p.parse_listing_html(LISTING_HTML, "https://suumo.jp/chintai/jnc_000012345678/")

    assert rec.name == "リーフ宮崎台 2階"
    assert rec.rent == 85000
    assert rec.management_fee == 5000
    assert rec.deposit == 85000  # 1ヶ月 × rent
    assert rec.key_money == 0
    assert rec.layout == "3LDK"
    assert rec.area == pytest.approx(52.36)
    assert rec.floor == "2階/5階建"
    assert rec.building_type == "マンション"
    assert rec.age == "築27年"
    assert rec.address == "神奈川県川崎市宮前区馬絹６"
    assert rec.direction == "南"
    assert rec.contract_type == "2年"
    assert rec.features == ["バス・トイレ別", "エアコン"]
    assert [(s.line, s.station, s.walk_minutes) for s in rec.stations] == [
        ("東急田園都市線", "宮崎台", 9),
        ("東急田園都市線", "宮前平", 15),
    ]
    assert rec.images == [
        "https://img01.suumo.com/front/gazo/bukken/091/N010000/img/og.jpg",
        "https://img01.suumo.com/front/gazo/bukken/091/N010000/img/100_l.jpg",
    ]
    assert rec.source_url == "https://suumo.jp/chintai/jnc_000012345678/"
    assert p.is_listing_found(rec)

    d = rec.to_dict()
    assert d["stations"][0] == {"line": "東急田園都市線", "station": "宮崎台", "walk_minutes": 9}


def test_key_money_is_independent_of_deposit():
    from backend.src import listing_parser as p

    html = """
    <span>6万円</span>
    <table>
      <tr><th>敷金</th><td>-</td><th>礼金</th><td>1ヶ月</td></tr>
    </table>
    """
    rec = p.parse_listing_html(html, "u")

    assert rec.deposit == 0
    assert rec.key_money == 60000


def test_merged_deposit_key_money_cell_is_split_by_position():
    from backend.src import listing_parser as p

    html = """
    <span>7万円</span>
    <table><tr><th>敷金/礼金</th><td>1ヶ月/10万円</td></tr></table>
    """
    rec = p.parse_listing_html(html, "u")

    assert rec.deposit == 70000
    assert rec.key_money == 100000


def test_rent_falls_back_to_page_data_then_labeled_markup():
    from backend.src import listing_parser as p

    page_data = '<script>var gapSuumoPcForFr = {"rent": "7.2万円"};</script><h1>物件A</h1>'
    assert p.parse_listing_html(page_data, "u").rent == 72000

    labeled = "<p>賃料：6.8万円（管理費込）</p>"
    assert p.parse_listing_html(labeled, "u").rent == 68000


def test_name_falls_back_to_h1_without_provider_suffix():
    from backend.src import listing_parser as p

    rec = p.parse_listing_html("<h1>メゾン馬絹 - ABC不動産提供</h1>", "u")

    assert rec.name == "メゾン馬絹"
    assert p.is_listing_found(rec)


def test_address_falls_back_to_title():
    from backend.src import listing_parser as p

    html = "<title>【SUUMO】リーフ宮崎台／神奈川県川崎市宮前区馬絹６／宮崎台駅の賃貸</title>"
    assert p.parse_listing_html(html, "u").address == "神奈川県川崎市宮前区馬絹６"


def test_merged_layout_and_floor_cells():
    from backend.src import listing_parser as p

    html = """
    <table>
      <tr><th>間取り詳細構造</th><td>和6 洋6 洋5 LDK12.8 鉄筋コン</td></tr>
      <tr><th>階建築年月</th><td>1階/5階建1997年9月</td></tr>
    </table>
    """
    rec = p.parse_listing_html(html, "u")

    assert rec.layout == "3LDK"
    assert rec.building_type == "鉄筋コン"
    assert rec.floor == "1階/5階建"
    assert rec.age == "1997年9月"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("ワンルーム", "1R"),
        ("1K", "1K"),
        ("２ＬＤＫ", "2LDK"),
        ("2SLDK", "2SLDK"),
    ],
)
def test_layout_codes(raw, expected):
    from backend.src import listing_parser as p

    html = f"<table><tr><th>間取り</th><td>{raw}</td></tr></table>"
    assert p.parse_listing_html(html, "u").layout == expected


def test_parse_japanese_currency():
    from backend.src.listing_parser import parse_japanese_currency

    assert parse_japanese_currency("8.5万円") == 85000
    assert parse_japanese_currency("7.35万") == 73500
    assert parse_japanese_currency("5,000円") == 5000
    assert parse_japanese_currency("12000") == 12000
    assert parse_japanese_currency("なし") == 0
    assert parse_japanese_currency("") == 0


def test_parse_months_or_yen():
    from backend.src.listing_parser import parse_months_or_yen

    assert parse_months_or_yen("1ヶ月", 85000) == 85000
    assert parse_months_or_yen("0.5ヶ月", 85000) == 42500
    assert parse_months_or_yen("8.5万円", 85000) == 85000
    assert parse_months_or_yen("-", 85000) == 0
    assert parse_months_or_yen("なし", 85000) == 0


@pytest.mark.parametrize("markup", ["", "<<<not html", "<html><body><p>404</p></body></html>", "\x00\xff"])
def test_garbage_markup_never_raises(markup):
    from backend.src import listing_parser as p

    rec = p.parse_listing_html(markup, "u")

    assert rec.rent == 0
    assert rec.name == ""
    assert rec.stations == []
    assert not p.is_listing_found(rec)


def test_failing_strategy_falls_through_to_next(monkeypatch):
    from backend.src import listing_parser as p

    def boom(ctx):
        raise RuntimeError("layout drift")

    monkeypatch.setattr(p, "NAME_STRATEGIES", (boom,) + p.NAME_STRATEGIES)
    assert p.parse_listing_html("<h1>物件B</h1>", "u").name == "物件B"


def test_is_supported_listing_url():
    from backend.src.listing_parser import is_supported_listing_url

    assert is_supported_listing_url("https://suumo.jp/chintai/jnc_000012345678/")
    assert is_supported_listing_url("https://www.suumo.jp/chintai/bc_100/")
    assert not is_supported_listing_url("https://example.com/suumo.jp")
    assert not is_supported_listing_url("")


class _FakeResponse:
    def __init__(self, html: str, status: int = 200) -> None:
        self.content = html.encode("utf-8")
        self.status_code = status
        self.ok = 200 <= status < 300
        self.headers = {"Content-Type": "text/html; charset=utf-8"}
        self.encoding = "utf-8"


def test_fetch_listing_uses_browser_user_agent(monkeypatch):
    from backend.src import http_fetch
    from backend.src import listing_parser as p

    seen = {}

    def fake_get(url, headers=None, timeout=None, **kwargs):
        seen["ua"] = headers["User-Agent"]
        return _FakeResponse(LISTING_HTML)

    monkeypatch.setattr(http_fetch.requests, "get", fake_get)
    rec = p.fetch_listing("https://suumo.jp/chintai/jnc_000012345678/")

    assert rec.rent == 85000
    assert "Mozilla/5.0" in seen["ua"]


def test_describe_listing_html_reports_structure():
    from backend.src.listing_parser import describe_listing_html

    info = describe_listing_html(LISTING_HTML)

    assert info["title"].startswith("【SUUMO】リーフ宮崎台")
    assert info["h1"] == "リーフ宮崎台 2階"
    assert info["img_count"] == 3
    assert {"th": "所在地", "td": "神奈川県川崎市宮前区馬絹６"} in info["table_rows"]
    assert any("宮崎台駅" in t for t in info["station_texts"])
    assert info["has_page_data"] is False


def test_deposit_and_key_money_fall_back_to_page_text():
    from backend.src import listing_parser as p

    rec = p.parse_listing_html("<span>8万円</span><div>敷金: 8万円 礼金: なし</div>", "u")

    assert rec.rent == 80000
    assert rec.deposit == 80000
    assert rec.key_money == 0
