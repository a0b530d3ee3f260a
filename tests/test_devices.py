import sqlite3

from softmonk.devices import InMemoryDeviceStore, SQLiteDeviceStore
from softmonk.schemas import DeviceRecord


def _seed(db_path):
    conn = sqlite3.connect(db_path)
    conn.execute(
        """
        CREATE TABLE user_devices (
            user_id TEXT, device_name TEXT, manufacturer TEXT, model TEXT,
            serial_number TEXT, operating_system TEXT
        )
        """
    )
    conn.executemany(
        "INSERT INTO user_devices VALUES (?, ?, ?, ?, ?, ?)",
        [
            ("user-1", "Work Laptop", "Dell", "XPS 15", "SN-1", "Windows 11"),
            ("user-2", "Old Tower", "HP", "Z240", None, "Ubuntu 22.04"),
            ("user-1", "Gaming PC", "MSI", "Aegis R", None, "Windows 10"),
        ],
    )
    conn.commit()
    conn.close()


def test_sqlite_store_reads_devices_in_insert_order(tmp_path):
    db_path = tmp_path / "devices.db"
    _seed(db_path)
    devices = SQLiteDeviceStore(db_path).list_for_user("user-1")

    assert [d.name for d in devices] == ["Work Laptop", "Gaming PC"]
    assert devices[0].serial_number == "SN-1"
    assert devices[1].serial_number is None
    assert devices[0].option_label() == "Work Laptop (Dell XPS 15)"


def test_sqlite_store_without_database_has_no_devices(tmp_path):
    assert SQLiteDeviceStore(tmp_path / "absent.db").list_for_user("user-1") == []


def test_in_memory_store_returns_copies():
    store = InMemoryDeviceStore()
    store.add("user-1", DeviceRecord(name="Phone", manufacturer="Google", model="Pixel 8", operating_system="Android 14"))
    listed = store.list_for_user("user-1")
    listed.clear()

    assert len(store.list_for_user("user-1")) == 1
    assert store.list_for_user("someone-else") == []


def test_device_record_accepts_service_field_names():
    record = DeviceRecord.model_validate(
        {"device_name": "Laptop", "manufacturer": "Lenovo", "model": "T14", "operatingSystem": "Windows 11"}
    )
    assert record.name == "Laptop"
    assert record.operating_system == "Windows 11"
