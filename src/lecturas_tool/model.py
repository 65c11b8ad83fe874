"""Modelos tipados para lecturas de presión arterial y glucosa."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Category(Enum):
    """Reading category; the value is the short tag used across the app."""

    BLOOD_PRESSURE = "bp"
    BLOOD_SUGAR = "bs"

    @property
    def storage_key(self) -> str:
        """Key under which the category list is persisted."""
        if self is Category.BLOOD_PRESSURE:
            return "blood-pressure-readings"
        return "blood-sugar-readings"

    @property
    def label(self) -> str:
        if self is Category.BLOOD_PRESSURE:
            return "Presión arterial"
        return "Glucosa"


class TestType(Enum):
    """Momento de la medición de glucosa."""

    # pytest collects classes named Test*; this is not a test.
    __test__ = False

    FASTING = "fasting"
    RANDOM = "random"
    POST_MEAL = "post-meal"
    BEDTIME = "bedtime"
    PRE_MEAL = "pre-meal"


class Location(Enum):
    """Where the reading was taken."""

    HOME = "home"
    CLINIC = "clinic"
    HOSPITAL = "hospital"
    PHARMACY = "pharmacy"


@dataclass(frozen=True)
class BloodPressureReading:
    """One blood pressure measurement (mmHg, pulse in bpm)."""

    systolic: int
    diastolic: int
    timestamp: str
    pulse: int | None = None
    id: str | None = None
    notes: str | None = None
    medication: str | None = None
    symptoms: str | None = None
    location: Location | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serializa al formato persistido (claves camelCase, sin nulos)."""
        payload: dict[str, Any] = {
            "id": self.id,
            "systolic": self.systolic,
            "diastolic": self.diastolic,
            "pulse": self.pulse,
            "timestamp": self.timestamp,
            "notes": self.notes,
            "medication": self.medication,
            "location": self.location.value if self.location else None,
            "symptoms": self.symptoms,
        }
        return {key: value for key, value in payload.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BloodPressureReading:
        """Build a reading from a persisted record.

        Raises:
            KeyError: If a core field is missing.
            ValueError: If a core field is not a whole number, the timestamp is not
                a string or the location is unknown.
        """
        pulse = data.get("pulse")
        return cls(
            systolic=_whole_number(data["systolic"], "systolic"),
            diastolic=_whole_number(data["diastolic"], "diastolic"),
            timestamp=_timestamp(data["timestamp"]),
            pulse=_whole_number(pulse, "pulse") if pulse is not None else None,
            id=_optional_str(data.get("id")),
            notes=_optional_str(data.get("notes")),
            medication=_optional_str(data.get("medication")),
            symptoms=_optional_str(data.get("symptoms")),
            location=_parse_location(data.get("location")),
        )


@dataclass(frozen=True)
class BloodSugarReading:
    """One blood glucose measurement (mg/dL)."""

    glucose: int
    test_type: TestType
    timestamp: str
    id: str | None = None
    notes: str | None = None
    medication: str | None = None
    meal_info: str | None = None
    symptoms: str | None = None
    location: Location | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serializa al formato persistido (claves camelCase, sin nulos)."""
        payload: dict[str, Any] = {
            "id": self.id,
            "glucose": self.glucose,
            "timestamp": self.timestamp,
            "testType": self.test_type.value,
            "notes": self.notes,
            "medication": self.medication,
            "mealInfo": self.meal_info,
            "location": self.location.value if self.location else None,
            "symptoms": self.symptoms,
        }
        return {key: value for key, value in payload.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BloodSugarReading:
        """Build a reading from a persisted record.

        Raises:
            KeyError: If a core field is missing.
            ValueError: If glucose is not a whole number, the timestamp is not a
                string or testType is unknown.
        """
        return cls(
            glucose=_whole_number(data["glucose"], "glucose"),
            test_type=TestType(data["testType"]),
            timestamp=_timestamp(data["timestamp"]),
            id=_optional_str(data.get("id")),
            notes=_optional_str(data.get("notes")),
            medication=_optional_str(data.get("medication")),
            meal_info=_optional_str(data.get("mealInfo")),
            symptoms=_optional_str(data.get("symptoms")),
            location=_parse_location(data.get("location")),
        )


Reading = Union[BloodPressureReading, BloodSugarReading]


def reading_from_dict(data: dict[str, Any], category: Category) -> Reading:
    """Parse a persisted record of the given category."""
    if category is Category.BLOOD_PRESSURE:
        return BloodPressureReading.from_dict(data)
    if category is Category.BLOOD_SUGAR:
        return BloodSugarReading.from_dict(data)
    raise ValueError(f"Unknown category: {category!r}")


@dataclass(frozen=True)
class DuplicateCheckResult:
    """Outcome of checking one candidate against stored readings."""

    is_duplicate: bool
    duplicate_entry: Reading | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"isDuplicate": self.is_duplicate}
        if self.duplicate_entry is not None:
            out["duplicateEntry"] = self.duplicate_entry.to_dict()
        if self.message is not None:
            out["message"] = self.message
        return out


@dataclass(frozen=True)
class BulkDuplicate:
    """A batch candidate paired with the stored reading it duplicates."""

    new_reading: Reading
    duplicate_entry: Reading
    message: str


@dataclass(frozen=True)
class BulkDuplicateResult:
    """Partition of a batch into duplicates and unique readings."""

    duplicates: list[BulkDuplicate] = field(default_factory=list)
    unique_readings: list[Reading] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "duplicates": [
                {
                    "newReading": dup.new_reading.to_dict(),
                    "duplicateEntry": dup.duplicate_entry.to_dict(),
                    "message": dup.message,
                }
                for dup in self.duplicates
            ],
            "uniqueReadings": [r.to_dict() for r in self.unique_readings],
        }


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _parse_location(value: Any) -> Location | None:
    if value is None or value == "":
        return None
    return Location(value)


def _whole_number(value: Any, name: str) -> int:
    """Integer value of a persisted number; fractions are rejected, not truncated."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be a whole number, got {value!r}")
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f"{name} must be a number, got {value!r}")


def _timestamp(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {value!r}")
    return value
