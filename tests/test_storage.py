from __future__ import annotations

import json
from pathlib import Path

import pytest

from lecturas_tool.model import (
    BloodPressureReading,
    BloodSugarReading,
    Category,
    Location,
    TestType,
)
from lecturas_tool.storage import (
    AppConfig,
    JsonFileStore,
    MemoryStore,
    ReadingStore,
    SQLiteStore,
    sort_newest_first,
)


@pytest.fixture(params=["sqlite", "json", "memory"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> ReadingStore:
    if request.param == "sqlite":
        return SQLiteStore(tmp_path / "nested" / "app.sqlite3")
    if request.param == "json":
        return JsonFileStore(tmp_path / "data")
    return MemoryStore()


def _bp(reading_id: str, timestamp: str) -> BloodPressureReading:
    return BloodPressureReading(
        systolic=120, diastolic=80, timestamp=timestamp, id=reading_id
    )


class _BrokenStore(MemoryStore):
    def _write(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")

    def _remove(self, key: str) -> None:
        raise OSError("medium unavailable")


def test_get_on_empty_store_returns_empty_list(store: ReadingStore) -> None:
    assert store.get(Category.BLOOD_PRESSURE) == []
    assert store.get(Category.BLOOD_SUGAR) == []


def test_save_orders_newest_first(store: ReadingStore) -> None:
    readings = [
        _bp("t", "2025-01-15T09:00:00Z"),
        _bp("t+1h", "2025-01-15T10:00:00Z"),
        _bp("t-1h", "2025-01-15T08:00:00Z"),
    ]
    result = store.save(Category.BLOOD_PRESSURE, readings)
    assert result.ok
    assert [r.id for r in store.get(Category.BLOOD_PRESSURE)] == ["t+1h", "t", "t-1h"]


def test_round_trip_is_lossless(store: ReadingStore) -> None:
    reading = BloodSugarReading(
        glucose=140,
        test_type=TestType.POST_MEAL,
        timestamp="2025-01-15T14:30:00+00:00",
        id="x1",
        notes="2 hours after lunch",
        medication="Metformin 500mg",
        meal_info="Pasta lunch",
        symptoms="None",
        location=Location.CLINIC,
    )
    store.save(Category.BLOOD_SUGAR, [reading])
    assert store.get(Category.BLOOD_SUGAR) == [reading]


def test_categories_are_independent(store: ReadingStore) -> None:
    store.save(Category.BLOOD_PRESSURE, [_bp("a", "2025-01-15T09:00:00Z")])
    assert store.get(Category.BLOOD_SUGAR) == []
    store.clear(Category.BLOOD_SUGAR)
    assert len(store.get(Category.BLOOD_PRESSURE)) == 1


def test_clear_is_idempotent(store: ReadingStore) -> None:
    store.save(Category.BLOOD_PRESSURE, [_bp("a", "2025-01-15T09:00:00Z")])
    assert store.clear(Category.BLOOD_PRESSURE).ok
    assert store.clear(Category.BLOOD_PRESSURE).ok
    assert store.clear(Category.BLOOD_SUGAR).ok
    assert store.get(Category.BLOOD_PRESSURE) == []


def test_save_replaces_previous_list(store: ReadingStore) -> None:
    store.save(Category.BLOOD_PRESSURE, [_bp("a", "2025-01-15T09:00:00Z")])
    store.save(Category.BLOOD_PRESSURE, [_bp("b", "2025-01-16T09:00:00Z")])
    assert [r.id for r in store.get(Category.BLOOD_PRESSURE)] == ["b"]


def test_undated_readings_keep_input_order_after_dated() -> None:
    readings = [
        _bp("bad1", "nope"),
        _bp("old", "2025-01-01T00:00:00Z"),
        _bp("bad2", ""),
        _bp("new", "2025-02-01T00:00:00Z"),
    ]
    assert [r.id for r in sort_newest_first(readings)] == [
        "new",
        "old",
        "bad1",
        "bad2",
    ]


def test_equal_timestamps_keep_input_order() -> None:
    readings = [_bp("a", "2025-01-01T00:00:00Z"), _bp("b", "2025-01-01T00:00:00Z")]
    assert [r.id for r in sort_newest_first(readings)] == ["a", "b"]


def test_corrupt_json_degrades_to_empty(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)
    (tmp_path / "blood-pressure-readings.json").write_text("{not json", encoding="utf-8")
    assert store.get(Category.BLOOD_PRESSURE) == []

    (tmp_path / "blood-pressure-readings.json").write_text('{"a": 1}', encoding="utf-8")
    assert store.get(Category.BLOOD_PRESSURE) == []


def test_malformed_records_are_skipped(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)
    records = [
        {"id": "ok", "systolic": 120, "diastolic": 80, "timestamp": "2025-01-01T00:00:00Z"},
        {"id": "missing"},
        "junk",
    ]
    (tmp_path / "blood-pressure-readings.json").write_text(
        json.dumps(records), encoding="utf-8"
    )
    assert [r.id for r in store.get(Category.BLOOD_PRESSURE)] == ["ok"]


def test_unreadable_medium_degrades_to_empty(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)
    (tmp_path / "blood-sugar-readings.json").mkdir()
    assert store.get(Category.BLOOD_SUGAR) == []


def test_failed_save_is_reported_not_raised() -> None:
    store = _BrokenStore()
    result = store.save(Category.BLOOD_PRESSURE, [_bp("a", "2025-01-01T00:00:00Z")])
    assert not result
    assert result.error == "quota exceeded"


def test_failed_clear_is_reported_not_raised() -> None:
    result = _BrokenStore().clear(Category.BLOOD_SUGAR)
    assert not result.ok
    assert result.error == "medium unavailable"


def test_json_store_save_fails_when_root_is_a_file(tmp_path: Path) -> None:
    root = tmp_path / "file.txt"
    root.write_text("x", encoding="utf-8")
    store = JsonFileStore(root)
    assert not store.save(Category.BLOOD_PRESSURE, [])


def test_json_store_leaves_no_temp_files(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)
    store.save(Category.BLOOD_PRESSURE, [_bp("a", "2025-01-01T00:00:00Z")])
    assert [p.name for p in tmp_path.iterdir()] == ["blood-pressure-readings.json"]


def test_config_defaults_and_round_trip(store: ReadingStore) -> None:
    assert store.load_config() == AppConfig()
    config = AppConfig(
        time_window_minutes=2.0, import_time_window_minutes=10.0, log_level="debug"
    )
    assert store.save_config(config).ok
    loaded = store.load_config()
    assert loaded.time_window_minutes == 2.0
    assert loaded.import_time_window_minutes == 10.0
    assert loaded.log_level == "DEBUG"


def test_config_invalid_values_fall_back_to_defaults() -> None:
    store = MemoryStore()
    store._write(
        "app-config",
        json.dumps({"time_window_minutes": -3, "import_time_window_minutes": "x"}),
    )
    assert store.load_config() == AppConfig()


def test_config_non_finite_or_huge_windows_fall_back_to_defaults() -> None:
    store = MemoryStore()
    store._write(
        "app-config",
        json.dumps({"time_window_minutes": "inf", "import_time_window_minutes": 1e9}),
    )
    assert store.load_config() == AppConfig()


def test_save_after_get_keeps_unreadable_records(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)
    office = {
        "id": "office",
        "systolic": 130,
        "diastolic": 85,
        "timestamp": "2025-01-02T00:00:00Z",
        "location": "office",
    }
    records = [
        {"id": "ok", "systolic": 120, "diastolic": 80, "timestamp": "2025-01-01T00:00:00Z"},
        office,
    ]
    path = tmp_path / "blood-pressure-readings.json"
    path.write_text(json.dumps(records), encoding="utf-8")

    readings = store.get(Category.BLOOD_PRESSURE)
    assert [r.id for r in readings] == ["ok"]
    assert store.unreadable(Category.BLOOD_PRESSURE) == [office]

    new = _bp("new", "2025-01-03T00:00:00Z")
    assert store.save(Category.BLOOD_PRESSURE, [new, *readings]).ok
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert [item["id"] for item in stored] == ["new", "ok", "office"]
    assert stored[2] == office

    store.clear(Category.BLOOD_PRESSURE)
    assert store.unreadable(Category.BLOOD_PRESSURE) == []


def test_sqlite_medium_failure_is_reported_not_raised(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    # a directory cannot be opened as a database file
    monkeypatch.setattr(store, "_db_path", tmp_path)

    saved = store.save(Category.BLOOD_SUGAR, [])
    assert not saved
    assert saved.error
    assert not store.clear(Category.BLOOD_SUGAR).ok
    assert store.get(Category.BLOOD_SUGAR) == []
    assert not store.save_config(AppConfig()).ok
