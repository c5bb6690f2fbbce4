import pytest

from viprpg_archive.config import (
    ConfigError,
    DEFAULT_COLUMNS,
    DEFAULT_CONFIG,
    festival_from_dict,
    find_festival,
    load_festivals,
    RetryPolicy,
)


def test_festival_from_dict_defaults():
    fes = festival_from_dict({"id": "2099-gw", "base_urls": "https://example.com/"})
    assert fes.slug == "2099-gw"
    assert fes.base_url == "https://example.com/"
    assert fes.listing.columns == DEFAULT_COLUMNS
    assert fes.retry == RetryPolicy(3, 0.3)
    assert fes.wayback is None
    assert fes.work_id("05") == "2099-gw-work-05"


def test_partial_columns_are_merged_with_defaults():
    fes = festival_from_dict({"id": "x", "listing": {"columns": {"work": 1, "icon": 9}}})
    assert fes.listing.columns["work"] == 1
    assert fes.listing.columns["icon"] == 9
    assert fes.listing.columns["no"] == 0


def test_listing_url_overrides_base_url():
    fes = festival_from_dict({"id": "x", "base_urls": ["https://a/"], "listing": {"url": "https://a/list.json", "format": "json"}})
    assert fes.base_url == "https://a/list.json"


@pytest.mark.parametrize("raw", [
    {"id": ""},
    {"id": "x", "hash_algorithm": "crc32"},
    {"id": "x", "id_style": "fancy"},
    {"id": "x", "listing": {"format": "csv"}},
    {"id": "x", "sources": {"strategies": ["direct", "carrier-pigeon"]}},
    {"id": "x", "detail": {"colour": "red"}},
    {"id": "x", "unknown_option": 1},
    {"id": "x", "retry": "often"},
    {"id": "x", "detail": {"denylist": ["("]}},
    {"id": "x", "sources": {"interstitial": "[unclosed"}},
])
def test_invalid_options(raw):
    with pytest.raises(ConfigError):
        festival_from_dict(raw)


def test_backoff_is_linear():
    policy = RetryPolicy(attempts=3, delay=0.4)
    assert [policy.backoff(n) for n in (1, 2)] == pytest.approx([0.4, 0.8])


def test_load_from_env_and_lookup(tmp_path, monkeypatch):
    cfg = tmp_path / "fes.yaml"
    cfg.write_text(
        "festivals:\n"
        "  - id: 2099-gw\n"
        "    slug: gw99\n"
        "    base_urls: [https://example.com/]\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("FESTIVALS_YAML", str(cfg))
    festivals = load_festivals()
    assert [f.id for f in festivals] == ["2099-gw"]
    assert find_festival(festivals, "gw99").id == "2099-gw"
    with pytest.raises(ConfigError):
        find_festival(festivals, "nope")


def test_bundled_festivals_load():
    festivals = load_festivals(DEFAULT_CONFIG)
    ids = [f.id for f in festivals]
    assert "2018-gw-2" in ids
    gw2 = find_festival(festivals, "2018-gw-2")
    assert gw2.wayback is not None and gw2.wayback.prefixes
    assert find_festival(festivals, "2025-gw").listing.format == "json"


def test_explicit_missing_config_is_an_error(tmp_path, monkeypatch):
    with pytest.raises(ConfigError):
        load_festivals(str(tmp_path / "typo.yaml"))
    monkeypatch.setenv("FESTIVALS_YAML", str(tmp_path / "also-missing.yaml"))
    with pytest.raises(ConfigError):
        load_festivals()
