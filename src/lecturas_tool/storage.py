"""Persistencia de lecturas por categoría (SQLite, archivos JSON o memoria)."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from lecturas_tool.duplicates import is_valid_time_window
from lecturas_tool.model import Category, Reading, reading_from_dict
from lecturas_tool.validation import parse_timestamp

logger = logging.getLogger(__name__)

CONFIG_KEY = "app-config"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class AppConfig:
    """Configuracion persistida de la app."""

    time_window_minutes: float = 1.0
    import_time_window_minutes: float = 5.0
    log_level: str = "WARNING"


@dataclass(frozen=True)
class StoreResult:
    """Outcome of a write; falsy when the medium failed."""

    ok: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class ReadingStore(ABC):
    """Reading lists per category over a synchronous key/value medium.

    Reads never raise: a missing, unreadable or corrupt list is an empty list.
    Writes never raise either; failures are logged and returned as a falsy
    StoreResult so the caller can tell the user the data was not saved.
    """

    @abstractmethod
    def _read(self, key: str) -> str | None:
        """Return the raw value stored under key, or None."""

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        """Replace the value stored under key."""

    @abstractmethod
    def _remove(self, key: str) -> None:
        """Delete key; no-op when absent."""

    def _load_list(self, key: str) -> list[Any]:
        try:
            raw = self._read(key)
        except (OSError, UnicodeDecodeError, sqlite3.Error) as exc:
            logger.error("Error retrieving data from storage for key %s: %s", key, exc)
            return []
        if raw is None:
            return []
        try:
            parsed: Any = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt data under key %s: %s", key, exc)
            return []
        if not isinstance(parsed, list):
            logger.warning("Corrupt data under key %s: expected a list", key)
            return []
        return parsed

    def get(self, category: Category) -> list[Reading]:
        """Devuelve la lista guardada (más reciente primero) o lista vacía.

        Records that do not parse are left out of the result but stay in the
        medium; see save.
        """
        key = category.storage_key
        out: list[Reading] = []
        for index, item in enumerate(self._load_list(key)):
            reading = _parse_record(item, category)
            if reading is None:
                logger.warning("Skipping unreadable record %d under %s", index, key)
                continue
            out.append(reading)
        return out

    def unreadable(self, category: Category) -> list[Any]:
        """Stored records of the category that get cannot return."""
        return [
            item
            for item in self._load_list(category.storage_key)
            if _parse_record(item, category) is None
        ]

    def save(self, category: Category, readings: Sequence[Reading]) -> StoreResult:
        """Replace the stored list, sorted newest first.

        Records already stored that do not parse are written back after the
        given readings, so a get followed by save never loses them. Use clear
        to drop them.
        """
        key = category.storage_key
        try:
            records = [r.to_dict() for r in sort_newest_first(readings)]
            kept = self.unreadable(category)
            if kept:
                logger.warning("Keeping %d unreadable records under %s", len(kept), key)
            self._write(key, json.dumps(records + kept))
        except (OSError, sqlite3.Error, TypeError, ValueError) as exc:
            logger.error("Storage error for %s: %s", key, exc)
            return StoreResult(ok=False, error=str(exc))
        logger.debug("Saved %d readings under %s", len(readings), key)
        return StoreResult(ok=True)

    def clear(self, category: Category) -> StoreResult:
        """Borra todas las lecturas de la categoría (idempotente)."""
        key = category.storage_key
        try:
            self._remove(key)
        except (OSError, sqlite3.Error) as exc:
            logger.error("Error clearing storage for key %s: %s", key, exc)
            return StoreResult(ok=False, error=str(exc))
        return StoreResult(ok=True)

    def load_config(self) -> AppConfig:
        """Devuelve configuracion guardada o defaults."""
        defaults = AppConfig()
        try:
            raw = self._read(CONFIG_KEY)
        except (OSError, sqlite3.Error) as exc:
            logger.error("Error reading config: %s", exc)
            return defaults
        if raw is None:
            return defaults
        try:
            values: Any = json.loads(raw)
        except json.JSONDecodeError:
            return defaults
        if not isinstance(values, dict):
            return defaults
        return AppConfig(
            time_window_minutes=_positive_float(
                values.get("time_window_minutes"), defaults.time_window_minutes
            ),
            import_time_window_minutes=_positive_float(
                values.get("import_time_window_minutes"),
                defaults.import_time_window_minutes,
            ),
            log_level=str(values.get("log_level") or defaults.log_level).upper(),
        )

    def save_config(self, config: AppConfig) -> StoreResult:
        """Guarda la configuracion."""
        try:
            self._write(CONFIG_KEY, json.dumps(asdict(config)))
        except (OSError, sqlite3.Error) as exc:
            logger.error("Error saving config: %s", exc)
            return StoreResult(ok=False, error=str(exc))
        return StoreResult(ok=True)


class SQLiteStore(ReadingStore):
    """Almacén clave/valor en SQLite."""

    def __init__(self, db_path: Path) -> None:
        """Create store and ensure schema exists."""
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _read(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def _write(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_store(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )
            conn.commit()

    def _remove(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()


class JsonFileStore(ReadingStore):
    """One <key>.json file per key inside a directory."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def _path(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            # Readers see either the old file or the new one.
            os.replace(tmp_name, self._path(key))
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryStore(ReadingStore):
    """Dict-backed store, for tests and embedding."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, value: str) -> None:
        self._data[key] = value

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)


def sort_newest_first(readings: Sequence[Reading]) -> list[Reading]:
    """Stable sort by timestamp descending; undated readings go last in input order."""
    dated = []
    undated = []
    for reading in readings:
        ts = parse_timestamp(reading.timestamp)
        if ts is None:
            undated.append(reading)
        else:
            dated.append((ts, reading))
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [reading for _, reading in dated] + undated


def _parse_record(item: Any, category: Category) -> Reading | None:
    if not isinstance(item, dict):
        return None
    try:
        return reading_from_dict(item, category)
    except (KeyError, TypeError, ValueError):
        return None


def _positive_float(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 and is_valid_time_window(number) else default
