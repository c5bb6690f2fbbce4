from viprpg_archive.assets import AssetStore, classify, purge, screenshot_name
from viprpg_archive.config import FestivalConfig

from conftest import FakeLocator, gif_bytes, png_bytes

BIG_A = png_bytes(640, 480)
BIG_B = png_bytes(320, 240)
BIG_C = png_bytes(800, 600)
SMALL = png_bytes(32, 32)


def _store(festival, paths, binaries):
    return AssetStore(festival, paths, FakeLocator(binaries=binaries), log=lambda msg: None)


def test_classify_duplicate_and_small():
    seen = set()
    assert classify(BIG_A, seen, 100) is None
    assert classify(BIG_A, seen, 100) == "duplicate"
    assert classify(SMALL, seen, 100) == "small"
    assert classify(BIG_B, seen, 100, "sha1") is None


def test_screenshot_names():
    assert screenshot_name("05", 1, ".png") == "05.png"
    assert screenshot_name("05", 2, ".jpg") == "05-02.jpg"
    assert screenshot_name("01a", 3, ".gif") == "01a-03.gif"


def test_purge_keeps_other_entries(tmp_path):
    for name in ("01.png", "01-02.png", "01a.png", "010.png", "02.png"):
        (tmp_path / name).write_bytes(b"x")
    assert purge(tmp_path, "01") == 2
    assert sorted(p.name for p in tmp_path.iterdir()) == ["010.png", "01a.png", "02.png"]


def test_copy_screenshots_filters_and_reports(festival, paths):
    binaries = {
        "https://example.com/ss/1.png": BIG_A,
        "https://example.com/ss/1-copy.png": BIG_A,
        "https://example.com/ss/thumb.png": SMALL,
        "https://example.com/ss/2.png": BIG_B,
        "https://example.com/ss/page.png": b"<html><body>gone</body></html>",
    }
    store = _store(festival, paths, binaries)
    result = store.copy_screenshots("05", list(binaries) + ["https://example.com/ss/missing.png"])

    assert result.paths == ["/screenshots/2099-test/05.png", "/screenshots/2099-test/05-02.png"]
    assert [(s.source, s.reason) for s in result.skipped] == [
        ("https://example.com/ss/1-copy.png", "duplicate"),
        ("https://example.com/ss/thumb.png", "small"),
    ]
    assert len(result.failures) == 2
    assert "not image: html" in result.failures[0]
    report = result.report()
    assert report["saved"] == 2
    assert (paths.screenshots_dir / "05-02.png").read_bytes() == BIG_B


def test_copy_screenshots_is_idempotent(festival, paths):
    binaries = {"https://example.com/a.png": BIG_A, "https://example.com/b.png": BIG_B}
    paths.screenshots_dir.mkdir(parents=True)
    (paths.screenshots_dir / "05-03.png").write_bytes(b"stale")
    (paths.screenshots_dir / "05a.png").write_bytes(b"other entry")

    store = _store(festival, paths, binaries)
    first = store.copy_screenshots("05", list(binaries))
    files_first = sorted(p.name for p in paths.screenshots_dir.iterdir())
    second = store.copy_screenshots("05", list(binaries))
    files_second = sorted(p.name for p in paths.screenshots_dir.iterdir())

    assert first.paths == second.paths
    assert files_first == files_second == ["05-02.png", "05.png", "05a.png"]


def test_copy_screenshots_respects_cap(tmp_path):
    festival = FestivalConfig(id="cap", max_screenshots=2)
    paths = festival.paths(tmp_path)
    binaries = {
        "https://example.com/1.png": BIG_A,
        "https://example.com/2.png": BIG_B,
        "https://example.com/3.png": BIG_C,
    }
    result = _store(festival, paths, binaries).copy_screenshots("01", list(binaries))
    assert len(result.paths) == 2
    assert not (paths.screenshots_dir / "01-03.png").exists()


def test_copy_icon_prefers_small_image_and_sniffed_extension(festival, paths):
    binaries = {
        "https://example.com/big.png": BIG_A,
        # served with a misleading name
        "https://example.com/icon.png": gif_bytes(48, 48),
    }
    store = _store(festival, paths, binaries)
    icon = store.copy_icon("05", ["https://example.com/missing.png"] + list(binaries))
    assert icon == "/icons/2099-test/05.gif"
    assert (paths.icons_dir / "05.gif").exists()


def test_copy_icon_without_candidates(festival, paths):
    assert _store(festival, paths, {}).copy_icon("05", []) is None
