"""
目录索引 - Catalog Index

缓存验证过的软件目录，提供分级匹配（精确 / 前缀 / 单词）与平台识别。
Cache the verified software catalog and provide tiered matching (exact / prefix / word)
plus platform detection.
"""

from __future__ import annotations

import json
import re
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import CatalogUnavailableError
from ..schemas import CatalogItem
from .store import CatalogStore

ROOT = Path(__file__).resolve().parents[3]
MATCHING_CONFIG_PATH = ROOT / "config" / "matching.json"

DEFAULT_STOP_WORDS = [
    "download", "downloads", "install", "installer", "setup", "for", "on", "the", "a", "an",
    "app", "apps", "application", "browser", "driver", "drivers", "software", "program",
    "get", "me", "find", "i", "need", "want", "to", "please", "latest", "version",
    "official", "my", "of", "windows", "win", "macos", "mac", "linux", "ubuntu", "debian",
    "android", "64bit", "32bit", "x64", "x86",
]
DEFAULT_DEVICE_FLOW_KEYWORDS = ["driver", "drivers", "software", "game", "games", "app", "tool", "utility"]

_PUNCTUATION_RE = re.compile(r"[^a-z0-9\s]")

# Text patterns in priority order.
_PLATFORM_PATTERNS = [
    ("windows", re.compile(r"\b(windows|win)\b")),
    ("macos", re.compile(r"\b(macos|mac|apple)\b")),
    ("linux", re.compile(r"\b(linux|ubuntu|debian)\b")),
    ("android", re.compile(r"\b(android)\b")),
]


@dataclass(frozen=True)
class MatchingConfig:
    stop_words: frozenset = field(default_factory=lambda: frozenset(DEFAULT_STOP_WORDS))
    device_flow_keywords: tuple = field(default_factory=lambda: tuple(DEFAULT_DEVICE_FLOW_KEYWORDS))


def load_matching_config(path: Path = MATCHING_CONFIG_PATH) -> MatchingConfig:
    defaults = MatchingConfig()
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return defaults

    def _words(key: str, fallback):
        values = data.get(key)
        if isinstance(values, list) and values and all(isinstance(x, str) for x in values):
            return [v.strip().lower() for v in values if v.strip()]
        return list(fallback)

    return MatchingConfig(
        stop_words=frozenset(_words("stop_words", defaults.stop_words)),
        device_flow_keywords=tuple(_words("device_flow_keywords", defaults.device_flow_keywords)),
    )


@dataclass(frozen=True)
class PlatformHints:
    """Environment hints reported by the caller (browser user agent / client-hint platform)."""

    user_agent: str = ""
    platform: str = ""


def detect_platform(text: str, hints: Optional[PlatformHints] = None) -> Optional[str]:
    lower = (text or "").lower()
    for platform, pattern in _PLATFORM_PATTERNS:
        if pattern.search(lower):
            return platform

    if hints is None:
        return None
    reported = hints.platform.strip().strip('"').lower()
    agent = hints.user_agent.lower()
    if reported.startswith("win") or "windows" in agent:
        return "windows"
    if reported.startswith("mac") or "mac os" in agent or "macintosh" in agent:
        return "macos"
    if reported.startswith("android") or "android" in agent:
        return "android"
    # Android agents also mention Linux, so Linux is checked last.
    if reported.startswith("linux") or "linux" in agent:
        return "linux"
    return None


def _name_key(name: str) -> str:
    return " ".join(_PUNCTUATION_RE.sub("", name.lower()).split())


def _by_length(item: CatalogItem):
    return (len(item.name), item.name.lower())


class CatalogIndex:
    """
    目录索引 - Catalog Index

    首次加载是单飞的：并发的首批调用共享同一次拉取；快照一旦建立就不再原地修改，
    失效时整体替换；失效前已开始的拉取不会写回结果。
    The first load is single-flight: concurrent first callers share one fetch. Once built,
    the snapshot is never mutated in place and is replaced wholesale on invalidation. A fetch
    that was already running when invalidate() is called does not install its result.
    """

    def __init__(self, store: CatalogStore, matching: Optional[MatchingConfig] = None):
        self.store = store
        self.matching = matching or load_matching_config()
        self._snapshot: Optional[Tuple[CatalogItem, ...]] = None
        self._inflight: Optional[Future] = None
        self._generation = 0
        self._lock = threading.Lock()

    def load(self) -> Tuple[CatalogItem, ...]:
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot

        with self._lock:
            if self._snapshot is not None:
                return self._snapshot
            future = self._inflight
            leader = future is None
            if leader:
                future = Future()
                self._inflight = future
                generation = self._generation

        if not leader:
            return future.result()

        start = time.time()
        try:
            items = tuple(self.store.fetch_all())
        except Exception as err:
            if not isinstance(err, CatalogUnavailableError):
                err = CatalogUnavailableError(str(err))
            with self._lock:
                if self._inflight is future:
                    self._inflight = None
            future.set_exception(err)
            print(f"[WARN] Catalog load failed after {time.time() - start:.3f}s: {err}")
            raise err

        with self._lock:
            # A fetch started before invalidate() must not install stale data.
            if self._generation == generation:
                self._snapshot = items
            if self._inflight is future:
                self._inflight = None
        future.set_result(items)
        print(f"[PERF] Catalog loaded {len(items)} items in {time.time() - start:.3f}s")
        return items

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            self._snapshot = None
            self._inflight = None

    def normalize(self, raw_query: str) -> str:
        cleaned = _PUNCTUATION_RE.sub("", (raw_query or "").lower())
        tokens = [t for t in cleaned.split() if t not in self.matching.stop_words]
        return " ".join(tokens)

    def match(self, raw_query: str) -> List[CatalogItem]:
        query = self.normalize(raw_query)
        if not query:
            return []
        items = self.load()
        keyed = [(_name_key(item.name), item) for item in items]

        exact = next((item for key, item in keyed if key == query), None)
        if exact is not None:
            exact_key = _name_key(exact.name)
            siblings = [item for key, item in keyed if key.startswith(exact_key + " ")]
            if siblings:
                return [exact] + sorted(siblings, key=_by_length)
            return [exact]

        prefixed = sorted((item for key, item in keyed if key.startswith(query)), key=_by_length)
        if prefixed:
            return prefixed[:2]

        tokens = [t for t in query.split() if len(t) > 1]
        if not tokens:
            return []
        worded = [item for key, item in keyed if all(t in key for t in tokens)]
        if worded:
            return [min(worded, key=_by_length)]
        return []

    def find(self, name: str) -> Optional[CatalogItem]:
        """Resolve a catalog name the bot quoted back; exact name first, then tiered match."""
        key = _name_key(name)
        for item in self.load():
            if _name_key(item.name) == key:
                return item
        matches = self.match(name)
        return matches[0] if matches else None

    def names(self) -> List[str]:
        return [item.name for item in self.load()]
