"""Lectura y escritura de copias de seguridad JSON (health-data-backup-*.json)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from lecturas_tool.model import (
    BloodPressureReading,
    BloodSugarReading,
    Category,
    Reading,
    reading_from_dict,
)
from lecturas_tool.sources.base import FileSource, SourcePaths

logger = logging.getLogger(__name__)

BACKUP_GLOB = "health-data-backup-*.json"


@dataclass(frozen=True)
class BackupPaths(SourcePaths):
    """Paths for JSON backups."""

    # root: folder containing health-data-backup-*.json


@dataclass(frozen=True)
class BackupContents:
    """Typed readings found in a backup file."""

    blood_pressure: list[BloodPressureReading] = field(default_factory=list)
    blood_sugar: list[BloodSugarReading] = field(default_factory=list)
    skipped: int = 0

    def for_category(self, category: Category) -> list[Reading]:
        if category is Category.BLOOD_PRESSURE:
            return list(self.blood_pressure)
        if category is Category.BLOOD_SUGAR:
            return list(self.blood_sugar)
        raise ValueError(f"Unknown category: {category!r}")


class BackupSource(FileSource):
    """Backup JSON reading source."""

    pattern = BACKUP_GLOB

    def load(self, path: Path) -> BackupContents:
        """Parse a backup file into typed readings.

        Records that do not parse are skipped and counted.

        Raises:
            ValueError: If the JSON is not a backup object.
        """
        raw: Any = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("Backup JSON must be an object")

        bp, bp_skipped = _parse_items(raw.get("bloodPressure"), Category.BLOOD_PRESSURE)
        bs, bs_skipped = _parse_items(raw.get("bloodSugar"), Category.BLOOD_SUGAR)
        return BackupContents(
            blood_pressure=bp,
            blood_sugar=bs,
            skipped=bp_skipped + bs_skipped,
        )


def write_backup(
    path: Path,
    blood_pressure: list[BloodPressureReading],
    blood_sugar: list[BloodSugarReading],
    now: datetime | None = None,
) -> Path:
    """Write all readings to a backup JSON file and return its path."""
    exported_at = now or datetime.now(tz=timezone.utc)
    payload = {
        "bloodPressure": [r.to_dict() for r in blood_pressure],
        "bloodSugar": [r.to_dict() for r in blood_sugar],
        "exportDate": exported_at.isoformat(),
        "totalReadings": len(blood_pressure) + len(blood_sugar),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


def default_backup_name(now: datetime | None = None) -> str:
    day = (now or datetime.now(tz=timezone.utc)).date().isoformat()
    return f"health-data-backup-{day}.json"


def _parse_items(items: Any, category: Category) -> tuple[list[Any], int]:
    if items is None:
        return [], 0
    if not isinstance(items, list):
        raise ValueError(f"Backup section for {category.value} must be a list")
    out: list[Any] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            out.append(reading_from_dict(item, category))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping %s backup record: %s", category.value, exc)
            skipped += 1
    return out, skipped
