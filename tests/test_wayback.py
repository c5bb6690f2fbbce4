import json
from urllib.parse import parse_qs, urlparse

from viprpg_archive.wayback import (
    asset_candidates,
    build_wayback_url,
    find_index_row,
    is_wayback,
    latest_by_index,
    parse_timemap,
    rows_by_index,
    snapshot_candidates,
    timemap_url,
    unwrap_wayback,
)

TIMEMAP = json.dumps([
    ["original", "mimetype", "timestamp", "endtimestamp", "groupcount", "uniqcount"],
    ["http://fes.example/entry/1.html", "text/html", "20180501000000", "20180601000000", "3", "2"],
    ["http://fes.example/entry/01.html", "text/html", "20180701000000", "", "1", "1"],
    ["http://fes.example/entry/2.html", "text/html", "20180502000000", "20180503000000", "2", "1"],
    ["http://fes.example/index.html", "text/html", "20180401000000", "20180801000000", "9", "4"],
])


def test_parse_timemap_uses_header_row():
    rows = parse_timemap(TIMEMAP)
    assert len(rows) == 4
    assert rows[0].original == "http://fes.example/entry/1.html"
    assert rows[0].latest == "20180601000000"
    assert rows[1].latest == "20180701000000"
    assert rows[0].groupcount == 3


def test_parse_timemap_tolerates_garbage():
    assert parse_timemap("not json") == []
    assert parse_timemap("[]") == []


def test_timemap_url_queries_prefix():
    q = parse_qs(urlparse(timemap_url("https://fes.example/2018/")).query)
    assert q["url"] == ["https://fes.example/2018/"]
    assert q["matchType"] == ["prefix"]
    assert q["output"] == ["json"]


def test_latest_by_index():
    rows = parse_timemap(TIMEMAP)
    latest = latest_by_index(rows, r"/entry/(\d+)\.html$")
    assert set(latest) == {"01", "02"}
    assert latest["01"].original == "http://fes.example/entry/01.html"
    assert len(rows_by_index(rows, r"/entry/(\d+)\.html$")["01"]) == 2


def test_snapshot_candidates_newest_first_with_fallback():
    rows = rows_by_index(parse_timemap(TIMEMAP), r"/entry/(\d+)\.html$")["01"]
    assert snapshot_candidates(rows) == [
        "https://web.archive.org/web/20180701000000fw_/http://fes.example/entry/01.html",
        "https://web.archive.org/web/20180601000000fw_/http://fes.example/entry/1.html",
        "https://web.archive.org/web/2/http://fes.example/entry/01.html",
    ]
    assert snapshot_candidates([]) == []


def test_asset_candidates_try_image_mode_first():
    rows = parse_timemap(TIMEMAP)[:1]
    assert asset_candidates(rows) == [
        "https://web.archive.org/web/20180601000000im_/http://fes.example/entry/1.html",
        "https://web.archive.org/web/20180601000000id_/http://fes.example/entry/1.html",
    ]


def test_find_index_row():
    rows = find_index_row(parse_timemap(TIMEMAP), r"/index\.html?$")
    assert [r.original for r in rows] == ["http://fes.example/index.html"]


def test_unwrap_and_build():
    archived = "https://web.archive.org/web/20180601000000id_/http://fes.example/a.html"
    assert is_wayback(archived)
    assert unwrap_wayback(archived) == "http://fes.example/a.html"
    assert unwrap_wayback("https://web.archive.org/web/2018/http:/fes.example/b.html?x=1") == "http://fes.example/b.html?x=1"
    assert unwrap_wayback("https://fes.example/a.html") == "https://fes.example/a.html"
    assert unwrap_wayback(None) is None
    assert build_wayback_url("", "http://fes.example/", "im_") == "https://web.archive.org/web/2im_/http://fes.example/"
