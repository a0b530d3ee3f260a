"""
用户设备查询 - User Device Lookup

核心只读取用户保存的设备；设备的增删由外部服务负责。
The core only reads a user's saved devices; creating and deleting them belongs to an
external service.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Protocol

from .schemas import DeviceRecord


class DeviceStore(Protocol):
    def list_for_user(self, user_id: str) -> List[DeviceRecord]: ...


class InMemoryDeviceStore:
    """内存设备仓库"""

    def __init__(self, devices: Dict[str, Iterable[DeviceRecord]] | None = None):
        self._devices: Dict[str, List[DeviceRecord]] = {
            user_id: list(records) for user_id, records in (devices or {}).items()
        }

    def add(self, user_id: str, device: DeviceRecord) -> None:
        self._devices.setdefault(user_id, []).append(device)

    def list_for_user(self, user_id: str) -> List[DeviceRecord]:
        return list(self._devices.get(user_id, []))


class SQLiteDeviceStore:
    """
    SQLite 设备仓库 - SQLite Device Store

    读取 user_devices 表，列名与原始设备服务一致。
    Reads the user_devices table, using the same column names as the device service.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def list_for_user(self, user_id: str) -> List[DeviceRecord]:
        if not self.db_path.exists():
            return []
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            rows = conn.execute(
                """
                SELECT device_name, manufacturer, model, serial_number, operating_system
                FROM user_devices
                WHERE user_id = ?
                ORDER BY rowid
                """,
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        return [
            DeviceRecord.model_validate({k: v for k, v in dict(row).items() if v is not None})
            for row in rows
        ]
