"""
目录数据源 - Catalog Stores

从 JSON 文件或 HTTP 地址读取经过验证的软件目录。
Read the verified software catalog from a JSON file or an HTTP endpoint.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Protocol

import httpx
from pydantic import ValidationError

from ..errors import CatalogUnavailableError
from ..schemas import CatalogItem


class CatalogStore(Protocol):
    def fetch_all(self) -> List[CatalogItem]: ...


def parse_catalog(raw) -> List[CatalogItem]:
    """
    解析目录数据 - Parse Catalog Payload

    接受条目列表，或 {"items": [...]} 包装。名称重复时保留第一个。
    Accepts a list of entries or an {"items": [...]} wrapper. Duplicate names keep the first entry.
    """
    if isinstance(raw, dict):
        raw = raw.get("items", [])
    if not isinstance(raw, list):
        raise CatalogUnavailableError("catalog payload must be a list")
    items: List[CatalogItem] = []
    seen = set()
    try:
        for entry in raw:
            item = CatalogItem.model_validate(entry)
            key = item.name.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            items.append(item)
    except ValidationError as err:
        raise CatalogUnavailableError(f"invalid catalog entry: {err}") from err
    return items


class JsonCatalogStore:
    """本地 JSON 目录"""

    def __init__(self, data_path: Path):
        self.data_path = data_path

    def fetch_all(self) -> List[CatalogItem]:
        try:
            with self.data_path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as err:
            raise CatalogUnavailableError(f"cannot read {self.data_path}: {err}") from err
        return parse_catalog(raw)


class HttpCatalogStore:
    """远程 JSON 目录"""

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    def fetch_all(self) -> List[CatalogItem]:
        try:
            response = httpx.get(self.url, timeout=self.timeout_seconds)
            response.raise_for_status()
            raw = response.json()
        except (httpx.HTTPError, ValueError) as err:
            raise CatalogUnavailableError(f"cannot fetch {self.url}: {err}") from err
        return parse_catalog(raw)
