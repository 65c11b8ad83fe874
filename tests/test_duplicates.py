from __future__ import annotations

import pytest

from lecturas_tool.duplicates import (
    MAX_TIME_WINDOW_MINUTES,
    DuplicateOptions,
    check_duplicate,
    check_for_bp_duplicate,
    check_for_bs_duplicate,
    find_bulk_duplicates,
    format_duplicate_details,
    is_valid_time_window,
)
from lecturas_tool.model import (
    BloodPressureReading,
    BloodSugarReading,
    Category,
    TestType,
)
from lecturas_tool.validation import InvalidTimestampError

T = "2025-01-15T09:30:00Z"
T_PLUS_30S = "2025-01-15T09:30:30Z"
T_PLUS_2M = "2025-01-15T09:32:00Z"


def _bp(
    systolic: int = 120,
    diastolic: int = 80,
    pulse: int | None = 72,
    timestamp: str = T,
    reading_id: str | None = None,
    **extra: str,
) -> BloodPressureReading:
    return BloodPressureReading(
        systolic=systolic,
        diastolic=diastolic,
        pulse=pulse,
        timestamp=timestamp,
        id=reading_id,
        **extra,
    )


def _bs(
    glucose: int = 95,
    test_type: TestType = TestType.FASTING,
    timestamp: str = T,
    reading_id: str | None = None,
    **extra: str,
) -> BloodSugarReading:
    return BloodSugarReading(
        glucose=glucose,
        test_type=test_type,
        timestamp=timestamp,
        id=reading_id,
        **extra,
    )


def test_bp_exact_match_within_window() -> None:
    existing = _bp(timestamp=T_PLUS_30S, reading_id="a")
    result = check_for_bp_duplicate(_bp(), [existing])
    assert result.is_duplicate
    assert result.duplicate_entry == existing
    assert result.message is not None
    assert result.message.startswith("Duplicate entry detected! ")
    assert "120/80 mmHg" in result.message


def test_bp_outside_window_is_unique() -> None:
    existing = _bp(timestamp=T_PLUS_2M, reading_id="a")
    result = check_for_bp_duplicate(_bp(), [existing])
    assert not result.is_duplicate
    assert result.duplicate_entry is None
    assert result.message is None


def test_window_boundary_is_inclusive() -> None:
    existing = _bp(timestamp="2025-01-15T09:31:00Z", reading_id="a")
    assert check_for_bp_duplicate(_bp(), [existing]).is_duplicate


def test_wider_window_option_matches() -> None:
    existing = _bp(timestamp=T_PLUS_2M, reading_id="a")
    result = check_for_bp_duplicate(
        _bp(), [existing], DuplicateOptions(time_window_minutes=5)
    )
    assert result.is_duplicate


@pytest.mark.parametrize(
    ("systolic", "diastolic", "pulse"),
    [(121, 80, 72), (120, 81, 72), (120, 80, 73)],
)
def test_bp_core_field_mismatch_is_unique(
    systolic: int, diastolic: int, pulse: int
) -> None:
    existing = _bp(systolic=systolic, diastolic=diastolic, pulse=pulse)
    assert not check_for_bp_duplicate(_bp(), [existing]).is_duplicate


def test_bp_absent_pulse_equals_zero() -> None:
    no_pulse = _bp(pulse=None)
    zero_pulse = _bp(pulse=0, reading_id="a")
    assert check_for_bp_duplicate(no_pulse, [zero_pulse]).is_duplicate
    assert check_for_bp_duplicate(zero_pulse, [no_pulse]).is_duplicate


def test_timezone_offsets_are_compared_as_instants() -> None:
    existing = _bp(timestamp="2025-01-15T06:30:20-03:00", reading_id="a")
    assert check_for_bp_duplicate(_bp(), [existing]).is_duplicate


def test_first_match_wins_in_input_order() -> None:
    first = _bp(timestamp=T_PLUS_30S, reading_id="first")
    second = _bp(timestamp=T, reading_id="second")
    result = check_for_bp_duplicate(_bp(), [first, second])
    assert result.duplicate_entry == first

    result = check_for_bp_duplicate(_bp(), [second, first])
    assert result.duplicate_entry == second


def test_bs_matches_on_glucose_and_type_ignoring_notes() -> None:
    existing = _bs(reading_id="a", notes="after walk", medication="Metformin")
    candidate = _bs(notes="different", medication="other")
    result = check_for_bs_duplicate(candidate, [existing])
    assert result.is_duplicate
    assert result.message is not None
    assert "A fasting reading with 95 mg/dL" in result.message


def test_bs_different_test_type_is_unique() -> None:
    existing = _bs(test_type=TestType.RANDOM)
    assert not check_for_bs_duplicate(_bs(), [existing]).is_duplicate


def test_unparseable_existing_timestamp_never_matches() -> None:
    broken = _bp(timestamp="not a date", reading_id="broken")
    good = _bp(timestamp=T_PLUS_30S, reading_id="good")
    result = check_for_bp_duplicate(_bp(), [broken, good])
    assert result.duplicate_entry == good


def test_unparseable_candidate_timestamp_is_unique() -> None:
    existing = _bp(reading_id="a")
    result = check_for_bp_duplicate(_bp(timestamp="garbage"), [existing])
    assert not result.is_duplicate


def test_strict_mode_rejects_unparseable_candidate() -> None:
    with pytest.raises(InvalidTimestampError):
        check_for_bp_duplicate(
            _bp(timestamp="garbage"), [], DuplicateOptions(strict_mode=True)
        )


def test_check_duplicate_generic_predicate_and_describe() -> None:
    seen: list[tuple[int, int]] = []

    def _match(existing: BloodPressureReading, new: BloodPressureReading) -> bool:
        seen.append((existing.systolic, new.systolic))
        return existing.systolic == new.systolic

    existing = [_bp(systolic=130), _bp(systolic=120, reading_id="x")]
    result = check_duplicate(_bp(), existing, _match, lambda e: f"id={e.id}")
    assert result.message == "Duplicate entry detected! id=x"
    assert seen == [(130, 120), (120, 120)]


def test_check_does_not_mutate_inputs() -> None:
    existing = [_bp(reading_id="b"), _bp(systolic=140, reading_id="a")]
    snapshot = list(existing)
    check_for_bp_duplicate(_bp(), existing)
    assert existing == snapshot


def test_bulk_partition_is_exhaustive_and_ordered() -> None:
    existing = [_bp(reading_id="stored")]
    candidates = [
        _bp(systolic=130),
        _bp(timestamp=T_PLUS_30S),
        _bp(systolic=140),
        _bp(),
    ]
    result = find_bulk_duplicates(candidates, existing, Category.BLOOD_PRESSURE)

    assert len(result.duplicates) + len(result.unique_readings) == len(candidates)
    assert [d.new_reading for d in result.duplicates] == [candidates[1], candidates[3]]
    assert result.unique_readings == [candidates[0], candidates[2]]
    assert all(d.duplicate_entry == existing[0] for d in result.duplicates)
    assert all(d.message.startswith("Duplicate entry") for d in result.duplicates)


def test_bulk_does_not_cross_check_batch() -> None:
    candidates = [_bs(), _bs()]
    result = find_bulk_duplicates(candidates, [], Category.BLOOD_SUGAR)
    assert result.duplicates == []
    assert result.unique_readings == candidates


def test_bulk_uses_window_option() -> None:
    existing = [_bs(timestamp=T_PLUS_2M)]
    narrow = find_bulk_duplicates([_bs()], existing, Category.BLOOD_SUGAR)
    wide = find_bulk_duplicates(
        [_bs()], existing, Category.BLOOD_SUGAR, DuplicateOptions(5)
    )
    assert len(narrow.duplicates) == 0
    assert len(wide.duplicates) == 1


def test_bulk_rejects_unknown_category() -> None:
    with pytest.raises(ValueError, match="Unknown category"):
        find_bulk_duplicates([], [], "bp")  # type: ignore[arg-type]


def test_bulk_result_to_dict_shape() -> None:
    result = find_bulk_duplicates(
        [_bs(), _bs(glucose=150)], [_bs(reading_id="a")], Category.BLOOD_SUGAR
    )
    out = result.to_dict()
    assert set(out) == {"duplicates", "uniqueReadings"}
    assert set(out["duplicates"][0]) == {"newReading", "duplicateEntry", "message"}
    assert out["uniqueReadings"][0]["glucose"] == 150


def test_format_details_bp_full_and_minimal() -> None:
    full = format_duplicate_details(
        _bp(medication="Lisinopril 10mg"), Category.BLOOD_PRESSURE
    )
    lines = full.split("\n")
    assert lines[0] == "BP: 120/80 mmHg"
    assert lines[1].startswith("Time: ")
    assert lines[2] == "Pulse: 72 bpm"
    assert lines[3] == "Medication: Lisinopril 10mg"

    minimal = format_duplicate_details(_bp(pulse=None), Category.BLOOD_PRESSURE)
    assert "Pulse" not in minimal
    assert "Medication" not in minimal


def test_format_details_bs() -> None:
    text = format_duplicate_details(_bs(), Category.BLOOD_SUGAR)
    assert text.split("\n")[:2] == ["Glucose: 95 mg/dL", "Type: fasting"]
    assert "Medication" not in text


def test_format_details_keeps_unparseable_time_verbatim() -> None:
    text = format_duplicate_details(_bs(timestamp="ayer"), Category.BLOOD_SUGAR)
    assert "Time: ayer" in text


@pytest.mark.parametrize(
    "minutes", [float("inf"), float("nan"), -1, MAX_TIME_WINDOW_MINUTES + 1, "5", True]
)
def test_options_reject_unusable_windows(minutes: object) -> None:
    assert not is_valid_time_window(minutes)
    with pytest.raises(ValueError, match="Time window"):
        DuplicateOptions(time_window_minutes=minutes)  # type: ignore[arg-type]


def test_largest_window_still_checks() -> None:
    existing = _bp(timestamp="2025-01-20T09:30:00Z", reading_id="a")
    options = DuplicateOptions(time_window_minutes=MAX_TIME_WINDOW_MINUTES)
    assert check_for_bp_duplicate(_bp(), [existing], options).is_duplicate


def test_zero_window_matches_same_instant_only() -> None:
    options = DuplicateOptions(time_window_minutes=0)
    assert check_for_bp_duplicate(_bp(), [_bp(reading_id="a")], options).is_duplicate
    later = _bp(timestamp=T_PLUS_30S, reading_id="b")
    assert not check_for_bp_duplicate(_bp(), [later], options).is_duplicate
