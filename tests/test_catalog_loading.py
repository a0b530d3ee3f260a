import threading
import time

import httpx
import pytest

from softmonk.catalog import CatalogIndex, HttpCatalogStore
from softmonk.errors import CatalogUnavailableError

from conftest import CATALOG, FakeCatalogStore


class SlowCatalogStore(FakeCatalogStore):
    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def fetch_all(self):
        self.started.set()
        self.release.wait(timeout=5)
        return super().fetch_all()


def test_concurrent_first_loads_share_one_fetch():
    store = SlowCatalogStore()
    index = CatalogIndex(store)
    results = []

    def _load():
        results.append(index.load())

    threads = [threading.Thread(target=_load) for _ in range(5)]
    threads[0].start()
    assert store.started.wait(timeout=5)
    for t in threads[1:]:
        t.start()
    time.sleep(0.05)
    store.release.set()
    for t in threads:
        t.join(timeout=5)

    assert store.calls == 1
    assert len(results) == 5
    assert all(r is results[0] for r in results)


def test_loaded_snapshot_is_reused(catalog, catalog_store):
    first = catalog.load()
    catalog.match("vlc")
    catalog.match("steam")
    assert catalog.load() is first
    assert catalog_store.calls == 1


def test_failed_load_is_not_cached():
    store = FakeCatalogStore(fail=True)
    index = CatalogIndex(store)
    with pytest.raises(CatalogUnavailableError):
        index.load()

    store.fail = False
    assert len(index.load()) == len(CATALOG)
    assert store.calls == 2


def test_unexpected_store_error_becomes_catalog_unavailable():
    class BrokenStore:
        def fetch_all(self):
            raise RuntimeError("disk on fire")

    with pytest.raises(CatalogUnavailableError, match="disk on fire"):
        CatalogIndex(BrokenStore()).load()


def test_invalidate_forces_refetch(catalog, catalog_store):
    catalog.load()
    catalog_store.entries = [{"name": "GIMP", "windows": "https://www.gimp.org/downloads/"}]
    assert [i.name for i in catalog.load()][0] == "VLC Media Player"

    catalog.invalidate()
    assert catalog.names() == ["GIMP"]
    assert catalog_store.calls == 2


def test_http_store_parses_remote_catalog(monkeypatch):
    seen = {}

    def fake_get(url, timeout):
        seen["url"] = url
        seen["timeout"] = timeout
        return httpx.Response(200, json={"items": CATALOG[:2]}, request=httpx.Request("GET", url))

    monkeypatch.setattr("softmonk.catalog.store.httpx.get", fake_get)
    items = HttpCatalogStore("https://catalog.test/vendor_map.json", timeout_seconds=2.5).fetch_all()

    assert [i.name for i in items] == ["VLC Media Player", "Visual Studio"]
    assert seen == {"url": "https://catalog.test/vendor_map.json", "timeout": 2.5}


def test_http_store_errors_become_catalog_unavailable(monkeypatch):
    def refuse(url, timeout):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr("softmonk.catalog.store.httpx.get", refuse)
    with pytest.raises(CatalogUnavailableError):
        HttpCatalogStore("https://catalog.test/vendor_map.json").fetch_all()

    def server_error(url, timeout):
        return httpx.Response(502, request=httpx.Request("GET", url))

    monkeypatch.setattr("softmonk.catalog.store.httpx.get", server_error)
    with pytest.raises(CatalogUnavailableError):
        HttpCatalogStore("https://catalog.test/vendor_map.json").fetch_all()


class GatedCatalogStore:
    """First fetch returns the old catalog but only once released; later fetches return the new one."""

    def __init__(self, old_entries, new_entries):
        self.old_entries = old_entries
        self.new_entries = new_entries
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def fetch_all(self):
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            self.release.wait(timeout=5)
            return FakeCatalogStore(self.old_entries).fetch_all()
        return FakeCatalogStore(self.new_entries).fetch_all()


def test_refresh_during_a_running_fetch_keeps_the_new_catalog():
    store = GatedCatalogStore(CATALOG, [{"name": "GIMP", "windows": "https://www.gimp.org/downloads/"}])
    index = CatalogIndex(store)
    stale = []

    first = threading.Thread(target=lambda: stale.append(index.load()))
    first.start()
    assert store.started.wait(timeout=5)

    index.invalidate()
    assert index.names() == ["GIMP"]

    store.release.set()
    first.join(timeout=5)

    # the caller that started the old fetch still gets its answer
    assert len(stale[0]) == len(CATALOG)
    assert index.names() == ["GIMP"]
    assert store.calls == 2
