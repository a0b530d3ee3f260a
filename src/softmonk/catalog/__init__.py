"""Catalog 模块：验证目录的加载、缓存与匹配"""

from .index import CatalogIndex, MatchingConfig, PlatformHints, detect_platform, load_matching_config
from .store import CatalogStore, HttpCatalogStore, JsonCatalogStore, parse_catalog

__all__ = [
    "CatalogIndex",
    "MatchingConfig",
    "PlatformHints",
    "detect_platform",
    "load_matching_config",
    "CatalogStore",
    "HttpCatalogStore",
    "JsonCatalogStore",
    "parse_catalog",
]
