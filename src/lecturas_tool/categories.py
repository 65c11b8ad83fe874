"""Clasificación de presión arterial y glucosa según rangos de referencia."""

from __future__ import annotations

from dataclasses import dataclass

from lecturas_tool.model import TestType


@dataclass(frozen=True)
class HealthCategory:
    """Label and guidance for a classified reading."""

    label: str
    description: str
    color: str


@dataclass(frozen=True)
class _BPBand:
    category: HealthCategory
    max_systolic: int
    max_diastolic: int


@dataclass(frozen=True)
class _GlucoseBand:
    category: HealthCategory
    fasting: tuple[int, int]
    random: tuple[int, int]
    post_meal: tuple[int, int]


HYPERTENSIVE_CRISIS = HealthCategory(
    "Hypertensive Crisis",
    "This is a medical emergency. Seek immediate medical attention!",
    "red",
)

_BP_BANDS: tuple[_BPBand, ...] = (
    _BPBand(
        HealthCategory(
            "Normal",
            "Your blood pressure is in the normal range. Keep up the good work!",
            "green",
        ),
        120,
        80,
    ),
    _BPBand(
        HealthCategory(
            "Elevated",
            "Your systolic pressure is elevated. Consider lifestyle changes.",
            "yellow",
        ),
        129,
        80,
    ),
    _BPBand(
        HealthCategory(
            "High BP Stage 1",
            "You have stage 1 high blood pressure. Consult your doctor.",
            "orange",
        ),
        139,
        89,
    ),
    _BPBand(
        HealthCategory(
            "High BP Stage 2",
            "You have stage 2 high blood pressure. See your doctor promptly.",
            "red",
        ),
        179,
        119,
    ),
)

LOW_BLOOD_SUGAR = HealthCategory(
    "Low Blood Sugar",
    "Your blood sugar is dangerously low. Consume glucose immediately and "
    "seek medical help if symptoms persist.",
    "red",
)

CRITICAL_GLUCOSE = HealthCategory(
    "Critical",
    "This is a critical level. Seek immediate medical attention!",
    "red",
)

_GLUCOSE_BANDS: tuple[_GlucoseBand, ...] = (
    _GlucoseBand(
        HealthCategory(
            "Normal",
            "Your blood sugar levels are within the normal range. "
            "Keep up the good work!",
            "green",
        ),
        (70, 99),
        (70, 139),
        (70, 139),
    ),
    _GlucoseBand(
        HealthCategory(
            "Pre-diabetes",
            "Your blood sugar is elevated. Consider lifestyle changes and "
            "consult your doctor.",
            "yellow",
        ),
        (100, 125),
        (140, 199),
        (140, 199),
    ),
    _GlucoseBand(
        HealthCategory(
            "Diabetes",
            "Your blood sugar indicates diabetes. Please consult with your "
            "healthcare provider.",
            "orange",
        ),
        (126, 300),
        (200, 400),
        (200, 400),
    ),
    _GlucoseBand(CRITICAL_GLUCOSE, (300, 999), (400, 999), (400, 999)),
)


def categorize_bp(systolic: int, diastolic: int) -> HealthCategory:
    """Classify a blood pressure pair; the higher of both values decides."""
    if systolic >= 180 or diastolic >= 120:
        return HYPERTENSIVE_CRISIS
    for band in _BP_BANDS:
        if systolic <= band.max_systolic and diastolic <= band.max_diastolic:
            return band.category
    return HYPERTENSIVE_CRISIS


def categorize_glucose(glucose: int, test_type: TestType) -> HealthCategory:
    """Classify a glucose value using the range for its test type.

    Bedtime and pre-meal readings use the random range.
    """
    for band in _GLUCOSE_BANDS:
        if test_type is TestType.FASTING:
            low, high = band.fasting
        elif test_type is TestType.POST_MEAL:
            low, high = band.post_meal
        else:
            low, high = band.random
        if low <= glucose <= high:
            return band.category
    if glucose < 70:
        return LOW_BLOOD_SUGAR
    return CRITICAL_GLUCOSE
