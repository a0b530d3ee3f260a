import pytest

from softmonk.catalog import CatalogIndex, JsonCatalogStore, MatchingConfig, load_matching_config, parse_catalog
from softmonk.errors import CatalogUnavailableError
from softmonk.schemas import CatalogItem

from conftest import ROOT


def _names(items):
    return [item.name for item in items]


def test_exact_match_without_siblings_returns_single_entry(catalog):
    assert _names(catalog.match("Steam")) == ["Steam"]
    assert _names(catalog.match("download steam for windows")) == ["Steam"]


def test_exact_match_with_siblings_returns_disambiguation_set(catalog):
    assert _names(catalog.match("visual studio")) == ["Visual Studio", "Visual Studio Code"]


def test_prefix_tier_returns_two_shortest(catalog):
    result = catalog.match("google")
    assert _names(result) == ["Google Drive", "Google Chrome"]
    assert [len(n) for n in _names(result)] == sorted(len(n) for n in _names(result))


def test_prefix_tier_single_hit(catalog):
    assert _names(catalog.match("find VLC for windows")) == ["VLC Media Player"]


def test_word_tier_returns_only_the_shortest(catalog):
    assert _names(catalog.match("studio")) == ["Visual Studio"]
    assert _names(catalog.match("earth")) == ["Google Earth Pro"]
    assert _names(catalog.match("media vlc")) == ["VLC Media Player"]


def test_word_tier_after_stop_words(catalog):
    assert _names(catalog.match("chrome browser download")) == ["Google Chrome"]


def test_empty_and_stop_word_queries_return_nothing(catalog, catalog_store):
    assert catalog.match("") == []
    assert catalog.match("download the app") == []
    assert catalog.match("???") == []
    # nothing to look up, so the store is never touched
    assert catalog_store.calls == 0


def test_no_match(catalog):
    assert catalog.match("some obscure tool nobody ships") == []


def test_normalize_strips_punctuation_and_stop_words(catalog):
    assert catalog.normalize("Download VLC, please!") == "vlc"
    assert catalog.normalize("Install the Visual Studio app for Mac") == "visual studio"


def test_find_prefers_exact_name(catalog):
    assert catalog.find("Visual Studio").name == "Visual Studio"
    assert catalog.find("visual studio code").name == "Visual Studio Code"
    assert catalog.find("nothing like it") is None


def test_url_for_prefers_explicit_urls_then_pattern():
    item = CatalogItem.model_validate(
        {
            "name": "Firefox",
            "downloadPattern": "https://www.mozilla.org/firefox/{platform}/",
            "osCompatibility": ["windows", "linux", "beos"],
            "android": "https://play.google.com/store/apps/details?id=org.mozilla.firefox",
        }
    )
    assert item.os_compatibility == frozenset({"windows", "linux"})
    assert item.url_for("windows") == "https://www.mozilla.org/firefox/windows/"
    assert item.url_for("android").startswith("https://play.google.com/")
    assert item.url_for("macos") is None
    assert item.available_platforms() == ["windows", "linux", "android"]


def test_compatibility_is_derived_from_explicit_urls():
    item = CatalogItem.model_validate({"name": "7-Zip", "homepage": "https://www.7-zip.org/", "windows": "https://www.7-zip.org/download.html"})
    assert item.os_compatibility == frozenset({"windows"})
    assert item.download_pattern == "https://www.7-zip.org/"


def test_parse_catalog_accepts_wrapper_and_drops_duplicates():
    items = parse_catalog({"items": [{"name": "Steam"}, {"name": "steam"}, {"name": "GIMP"}]})
    assert [i.name for i in items] == ["Steam", "GIMP"]


def test_parse_catalog_rejects_invalid_entries():
    with pytest.raises(CatalogUnavailableError):
        parse_catalog([{"downloadPattern": "https://x.test"}])
    with pytest.raises(CatalogUnavailableError):
        parse_catalog("not a catalog")


def test_seed_catalog_loads_and_resolves_vlc_on_windows():
    index = CatalogIndex(JsonCatalogStore(ROOT / "data" / "vendor_map.json"))
    matches = index.match("find VLC for windows")
    assert [m.name for m in matches] == ["VLC Media Player"]
    assert matches[0].url_for("windows") == "https://www.videolan.org/vlc/download-windows.html"


def test_missing_catalog_file_is_unavailable(tmp_path):
    store = JsonCatalogStore(tmp_path / "missing.json")
    with pytest.raises(CatalogUnavailableError):
        store.fetch_all()


def test_matching_config_file_overrides_and_falls_back(tmp_path):
    path = tmp_path / "matching.json"
    path.write_text('{"stop_words": ["grab"], "device_flow_keywords": "oops"}', encoding="utf-8")
    config = load_matching_config(path)
    assert config.stop_words == frozenset({"grab"})
    assert config.device_flow_keywords == MatchingConfig().device_flow_keywords

    assert load_matching_config(tmp_path / "absent.json") == MatchingConfig()


def test_shipped_matching_config_contains_core_stop_words():
    config = load_matching_config(ROOT / "config" / "matching.json")
    for word in ("download", "install", "for", "app", "browser", "driver"):
        assert word in config.stop_words
    assert "driver" in config.device_flow_keywords
