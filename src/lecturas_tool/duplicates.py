"""Detección de lecturas duplicadas (mismos valores dentro de una ventana)."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from lecturas_tool.model import (
    BloodPressureReading,
    BloodSugarReading,
    BulkDuplicate,
    BulkDuplicateResult,
    Category,
    DuplicateCheckResult,
    Reading,
)
from lecturas_tool.validation import (
    format_local_time,
    parse_timestamp,
    require_timestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_TIME_WINDOW_MINUTES = 1
IMPORT_TIME_WINDOW_MINUTES = 5
MAX_TIME_WINDOW_MINUTES = 7 * 24 * 60


@dataclass(frozen=True)
class DuplicateOptions:
    """Tolerances for duplicate detection.

    strict_mode raises InvalidTimestampError for an unparseable candidate
    timestamp instead of reporting it as unique.
    """

    time_window_minutes: float = DEFAULT_TIME_WINDOW_MINUTES
    strict_mode: bool = False

    def __post_init__(self) -> None:
        if not is_valid_time_window(self.time_window_minutes):
            raise ValueError(
                f"Time window must be between 0 and {MAX_TIME_WINDOW_MINUTES} "
                f"minutes, got {self.time_window_minutes!r}"
            )


def is_valid_time_window(minutes: Any) -> bool:
    """True for a finite, non-negative window no longer than a week."""
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
        return False
    return math.isfinite(minutes) and 0 <= minutes <= MAX_TIME_WINDOW_MINUTES


def check_duplicate(
    candidate: Any,
    existing_readings: Sequence[Any],
    core_match: Callable[[Any, Any], bool],
    describe: Callable[[Any], str],
    options: DuplicateOptions | None = None,
) -> DuplicateCheckResult:
    """Return the first existing reading that duplicates the candidate.

    An existing reading matches when its timestamp is within the time window
    of the candidate's and core_match(existing, candidate) is true. Readings
    whose timestamp cannot be parsed never match.

    Args:
        candidate: Reading being evaluated (not yet persisted).
        existing_readings: Stored readings, scanned in the given order.
        core_match: Equality predicate over the category core fields.
        describe: One-line summary of a matched existing reading.
        options: Time window and strictness.

    Returns:
        Duplicate result carrying the first match, or a non-duplicate result.

    Raises:
        InvalidTimestampError: Only in strict mode, for a bad candidate time.
    """
    opts = options or DuplicateOptions()
    window = timedelta(minutes=opts.time_window_minutes)
    if opts.strict_mode:
        new_time = require_timestamp(candidate.timestamp)
    else:
        new_time = parse_timestamp(candidate.timestamp)
    if new_time is None:
        logger.warning("Candidate has unparseable timestamp %r", candidate.timestamp)
        return DuplicateCheckResult(is_duplicate=False)

    for existing in existing_readings:
        existing_time = parse_timestamp(existing.timestamp)
        if existing_time is None:
            continue
        if abs(existing_time - new_time) <= window and core_match(existing, candidate):
            logger.debug("Duplicate of %s at %s", existing.id, existing.timestamp)
            return DuplicateCheckResult(
                is_duplicate=True,
                duplicate_entry=existing,
                message=f"Duplicate entry detected! {describe(existing)}",
            )

    return DuplicateCheckResult(is_duplicate=False)


def _bp_core_match(existing: BloodPressureReading, new: BloodPressureReading) -> bool:
    return (
        existing.systolic == new.systolic
        and existing.diastolic == new.diastolic
        and (existing.pulse or 0) == (new.pulse or 0)
    )


def _describe_bp(existing: BloodPressureReading) -> str:
    return (
        f"A reading with {existing.systolic}/{existing.diastolic} mmHg at "
        f"{format_local_time(existing.timestamp)} already exists."
    )


def _bs_core_match(existing: BloodSugarReading, new: BloodSugarReading) -> bool:
    return existing.glucose == new.glucose and existing.test_type == new.test_type


def _describe_bs(existing: BloodSugarReading) -> str:
    return (
        f"A {existing.test_type.value} reading with {existing.glucose} mg/dL at "
        f"{format_local_time(existing.timestamp)} already exists."
    )


def check_for_bp_duplicate(
    candidate: BloodPressureReading,
    existing_readings: Sequence[BloodPressureReading],
    options: DuplicateOptions | None = None,
) -> DuplicateCheckResult:
    """Duplicate check on systolic, diastolic and pulse (absent pulse is 0)."""
    return check_duplicate(
        candidate, existing_readings, _bp_core_match, _describe_bp, options
    )


def check_for_bs_duplicate(
    candidate: BloodSugarReading,
    existing_readings: Sequence[BloodSugarReading],
    options: DuplicateOptions | None = None,
) -> DuplicateCheckResult:
    """Duplicate check on glucose value and test type."""
    return check_duplicate(
        candidate, existing_readings, _bs_core_match, _describe_bs, options
    )


def _checker_for(
    category: Category,
) -> Callable[..., DuplicateCheckResult]:
    if category is Category.BLOOD_PRESSURE:
        return check_for_bp_duplicate
    if category is Category.BLOOD_SUGAR:
        return check_for_bs_duplicate
    raise ValueError(f"Unknown category: {category!r}")


def find_bulk_duplicates(
    candidates: Sequence[Reading],
    existing_readings: Sequence[Reading],
    category: Category,
    options: DuplicateOptions | None = None,
) -> BulkDuplicateResult:
    """Split a batch into duplicates and unique readings.

    Every candidate is checked against existing_readings only, so two equal
    candidates in the same batch are not flagged against each other. Input
    order is kept in both output lists.
    """
    check = _checker_for(category)
    result = BulkDuplicateResult()
    for reading in candidates:
        outcome = check(reading, existing_readings, options)
        if outcome.is_duplicate:
            result.duplicates.append(
                BulkDuplicate(
                    new_reading=reading,
                    duplicate_entry=outcome.duplicate_entry,
                    message=outcome.message or "",
                )
            )
        else:
            result.unique_readings.append(reading)

    logger.info(
        "Bulk check (%s): %d duplicates, %d unique of %d",
        category.value,
        len(result.duplicates),
        len(result.unique_readings),
        len(candidates),
    )
    return result


def format_duplicate_details(reading: Reading, category: Category) -> str:
    """Multi-line summary of a reading for a confirmation prompt."""
    time = format_local_time(reading.timestamp)
    medication = getattr(reading, "medication", None)

    if category is Category.BLOOD_PRESSURE:
        lines = [
            f"BP: {reading.systolic}/{reading.diastolic} mmHg",
            f"Time: {time}",
        ]
        if getattr(reading, "pulse", None):
            lines.append(f"Pulse: {reading.pulse} bpm")
    elif category is Category.BLOOD_SUGAR:
        lines = [
            f"Glucose: {reading.glucose} mg/dL",
            f"Type: {reading.test_type.value}",
            f"Time: {time}",
        ]
    else:
        raise ValueError(f"Unknown category: {category!r}")

    if medication:
        lines.append(f"Medication: {medication}")
    return "\n".join(lines)
