from pathlib import Path
from typing import List

import pytest

from softmonk.catalog import CatalogIndex
from softmonk.devices import InMemoryDeviceStore
from softmonk.errors import CatalogUnavailableError
from softmonk.graph import SoftMonkGraph
from softmonk.llm import ProviderAdapter, ProviderConfig, ProviderReply, ProviderRouter
from softmonk.schemas import CatalogItem, ConversationTurn, DeviceRecord


ROOT = Path(__file__).resolve().parents[1]

GREETING = ConversationTurn(id="0", sender="bot", text="Hi! I'm SoftMonk. What can I help you download today?")

CATALOG = [
    {
        "name": "VLC Media Player",
        "windows": "https://www.videolan.org/vlc/download-windows.html",
        "mac": "https://www.videolan.org/vlc/download-macosx.html",
        "linux": "https://www.videolan.org/vlc/#download",
    },
    {"name": "Visual Studio", "windows": "https://visualstudio.microsoft.com/downloads/"},
    {
        "name": "Visual Studio Code",
        "downloadPattern": "https://code.visualstudio.com/download",
        "osCompatibility": ["windows", "macos", "linux"],
    },
    {"name": "Google Chrome", "downloadPattern": "https://www.google.com/chrome/", "osCompatibility": ["windows", "macos"]},
    {"name": "Google Drive", "downloadPattern": "https://www.google.com/drive/download/", "osCompatibility": ["windows", "macos"]},
    {"name": "Google Earth Pro", "downloadPattern": "https://www.google.com/earth/about/versions/", "osCompatibility": ["windows"]},
    {"name": "Steam", "downloadPattern": "https://store.steampowered.com/about/", "osCompatibility": ["windows", "macos", "linux"]},
    {"name": "Firefox", "downloadPattern": "https://www.mozilla.org/firefox/{platform}/", "osCompatibility": ["windows", "linux"]},
]


class FakeCatalogStore:
    def __init__(self, entries=None, fail: bool = False):
        self.entries = CATALOG if entries is None else entries
        self.fail = fail
        self.calls = 0

    def fetch_all(self) -> List[CatalogItem]:
        self.calls += 1
        if self.fail:
            raise CatalogUnavailableError("catalog store offline")
        return [CatalogItem.model_validate(e) for e in self.entries]


class FakeAdapter(ProviderAdapter):
    """Scripted provider: returns `reply` or raises `error`, recording each call."""

    def __init__(self, provider_id: str = "fake", reply: ProviderReply = None, error: Exception = None):
        super().__init__(
            ProviderConfig(
                id=provider_id,
                endpoint="https://llm.test/v1",
                credential="test-key",
                system_prompt="system prompt for tests",
                response_tag_grammar="bracket",
                model="fake-model",
                timeout_seconds=5.0,
            )
        )
        self.reply = reply or ProviderReply(text="Here you go.\n[TYPE]: software-details-windows")
        self.error = error
        self.calls = []

    def _send(self, system_prompt, messages):
        self.calls.append((system_prompt, list(messages)))
        if self.error is not None:
            raise self.error
        return self.reply


def user(text: str, id: str = "u") -> ConversationTurn:
    return ConversationTurn(id=id, sender="user", text=text)


def bot(text: str, type: str = None, platform: str = None, id: str = "b") -> ConversationTurn:
    return ConversationTurn(id=id, sender="bot", text=text, type=type, platform=platform)


@pytest.fixture
def catalog_store():
    return FakeCatalogStore()


@pytest.fixture
def catalog(catalog_store):
    return CatalogIndex(catalog_store)


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def devices():
    return InMemoryDeviceStore(
        {
            "user-1": [
                DeviceRecord(name="Work Laptop", manufacturer="Dell", model="XPS 15", operating_system="Windows 11"),
                DeviceRecord(name="Gaming PC", manufacturer="MSI", model="Aegis R", operating_system="Windows 10"),
            ]
        }
    )


@pytest.fixture
def make_graph(catalog, devices):
    def _make(adapter: ProviderAdapter, device_store=devices, catalog_index=catalog) -> SoftMonkGraph:
        router = ProviderRouter(configs={}, adapters={adapter.config.id: adapter}, default_provider=adapter.config.id)
        return SoftMonkGraph(catalog_index, router, devices=device_store)

    return _make
