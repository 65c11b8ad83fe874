"""Validación de lecturas y parseo de timestamps ISO-8601."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from dateutil import parser as date_parser
from dateutil import tz
from dateutil.relativedelta import relativedelta

from lecturas_tool.model import BloodPressureReading, BloodSugarReading

_LOCAL_TZ = tz.tzlocal()

SYSTOLIC_RANGE = (50, 300)
DIASTOLIC_RANGE = (30, 200)
PULSE_RANGE = (30, 200)
GLUCOSE_RANGE = (20, 600)
MAX_AGE_YEARS = 5


class ReadingValidationError(ValueError):
    """Raised when a reading fails input validation."""


class InvalidTimestampError(ReadingValidationError):
    """Raised when a timestamp cannot be parsed as ISO-8601."""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 instant; None if missing or unparseable.

    Naive values are interpreted in the local timezone so that they can be
    compared with timezone-aware ones.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = date_parser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_LOCAL_TZ)
    return dt


def require_timestamp(value: Any) -> datetime:
    """Like parse_timestamp but raises InvalidTimestampError."""
    dt = parse_timestamp(value)
    if dt is None:
        raise InvalidTimestampError(f"Invalid timestamp: {value!r}")
    return dt


def format_local_time(value: Any) -> str:
    """Render a timestamp in local time; unparseable values are returned as-is."""
    dt = parse_timestamp(value)
    if dt is None:
        return str(value)
    return dt.astimezone(_LOCAL_TZ).strftime("%d/%m/%Y %H:%M:%S")


def validate_entry_time(value: Any, now: datetime | None = None) -> datetime:
    """Check that a reading time is parseable, not future and not too old.

    Raises:
        ReadingValidationError: If the time is outside the accepted window.
    """
    dt = require_timestamp(value)
    current = now or datetime.now(tz=_LOCAL_TZ)
    if current.tzinfo is None:
        current = current.replace(tzinfo=_LOCAL_TZ)
    if dt > current:
        raise ReadingValidationError("Reading time cannot be in the future")
    if dt < current - relativedelta(years=MAX_AGE_YEARS):
        raise ReadingValidationError(
            f"Reading time cannot be more than {MAX_AGE_YEARS} years in the past"
        )
    return dt


def validate_bp(reading: BloodPressureReading) -> None:
    """Validate blood pressure values.

    Raises:
        ReadingValidationError: On the first value out of range.
    """
    _check_range("systolic pressure", reading.systolic, SYSTOLIC_RANGE)
    _check_range("diastolic pressure", reading.diastolic, DIASTOLIC_RANGE)
    if reading.systolic <= reading.diastolic:
        raise ReadingValidationError("Systolic must be higher than diastolic")
    if reading.pulse:
        _check_range("pulse rate", reading.pulse, PULSE_RANGE)
    require_timestamp(reading.timestamp)


def validate_bs(reading: BloodSugarReading) -> None:
    """Validate blood sugar values.

    Raises:
        ReadingValidationError: If glucose is out of range or time is invalid.
    """
    _check_range("glucose level", reading.glucose, GLUCOSE_RANGE)
    require_timestamp(reading.timestamp)


def _check_range(name: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if not low <= value <= high:
        raise ReadingValidationError(f"Invalid {name} ({low}-{high})")
