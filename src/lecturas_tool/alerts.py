"""Alertas de salud a partir de las lecturas recientes."""

from __future__ import annotations

from collections.abc import Container, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any

from dateutil import tz

from lecturas_tool.categories import categorize_bp, categorize_glucose
from lecturas_tool.model import (
    BloodPressureReading,
    BloodSugarReading,
    Category,
    TestType,
)
from lecturas_tool.validation import parse_timestamp

_LOCAL_TZ = tz.tzlocal()

RECENT_DAYS = 7
_ELEVATED_COLORS = {"orange", "red"}
_MORNING_HOURS = range(6, 11)
_NIGHT_HOURS = {22, 23, 0, 1, 2, 3, 4}


class Priority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


@dataclass(frozen=True)
class HealthAlert:
    """One alert; kind is threshold, pattern, trend or timing."""

    key: str
    title: str
    message: str
    priority: Priority
    kind: str
    category: Category


def _recent(
    readings: Sequence[Any], now: datetime, days: int = RECENT_DAYS
) -> list[Any]:
    cutoff = now - timedelta(days=days)
    out: list[Any] = []
    for reading in readings:
        ts = parse_timestamp(reading.timestamp)
        if ts is not None and ts >= cutoff:
            out.append(reading)
    return out


def _taken_during(reading: Any, hours: Container[int]) -> bool:
    ts = parse_timestamp(reading.timestamp)
    return ts is not None and ts.astimezone(_LOCAL_TZ).hour in hours


def _elevated_bp(reading: BloodPressureReading) -> bool:
    return categorize_bp(reading.systolic, reading.diastolic).color in _ELEVATED_COLORS


def bp_alerts(
    readings: Sequence[BloodPressureReading], now: datetime
) -> list[HealthAlert]:
    """Alerts for blood pressure readings ordered newest first."""
    if len(readings) < 2:
        return []
    alerts: list[HealthAlert] = []
    cat = Category.BLOOD_PRESSURE
    latest = readings[0]
    values = f"{latest.systolic}/{latest.diastolic} mmHg"
    label = categorize_bp(latest.systolic, latest.diastolic).label
    if label == "Hypertensive Crisis":
        alerts.append(
            HealthAlert(
                "bp-crisis",
                "Hypertensive Crisis Detected",
                f"Your latest blood pressure reading ({values}) indicates a "
                "hypertensive crisis. This is a medical emergency.",
                Priority.CRITICAL,
                "threshold",
                cat,
            )
        )
    elif label == "High BP Stage 2":
        alerts.append(
            HealthAlert(
                "bp-stage2",
                "Stage 2 Hypertension Detected",
                f"Your latest blood pressure reading ({values}) indicates "
                "Stage 2 Hypertension. This requires prompt medical attention.",
                Priority.HIGH,
                "threshold",
                cat,
            )
        )
    elif label == "High BP Stage 1":
        alerts.append(
            HealthAlert(
                "bp-stage1",
                "Stage 1 Hypertension Detected",
                f"Your latest blood pressure reading ({values}) indicates "
                "Stage 1 Hypertension. This requires attention.",
                Priority.MEDIUM,
                "threshold",
                cat,
            )
        )

    recent = _recent(readings, now)
    mornings = [r for r in recent if _taken_during(r, _MORNING_HOURS)][:5]
    if len(mornings) >= 3:
        elevated = sum(1 for r in mornings if _elevated_bp(r))
        if elevated >= 3:
            alerts.append(
                HealthAlert(
                    "bp-morning",
                    "Elevated Morning Blood Pressure",
                    f"Your blood pressure has been elevated for {elevated} "
                    "consecutive mornings.",
                    Priority.HIGH if elevated >= 4 else Priority.MEDIUM,
                    "pattern",
                    cat,
                )
            )

    if len(recent) >= 5:
        last5 = recent[:5]
        old_avg = (last5[4].systolic + last5[3].systolic) / 2
        new_avg = (last5[1].systolic + last5[0].systolic) / 2
        increase = new_avg - old_avg
        if increase >= 15:
            alerts.append(
                HealthAlert(
                    "bp-increase",
                    "Rapid Blood Pressure Increase",
                    f"Your systolic pressure has increased by {round(increase)} "
                    "mmHg in recent readings.",
                    Priority.HIGH if increase >= 25 else Priority.MEDIUM,
                    "trend",
                    cat,
                )
            )

    elevated_nights = [
        r for r in recent if _taken_during(r, _NIGHT_HOURS) and _elevated_bp(r)
    ]
    if len(elevated_nights) >= 2:
        alerts.append(
            HealthAlert(
                "bp-night",
                "Elevated Nighttime Blood Pressure",
                f"You have {len(elevated_nights)} elevated blood pressure "
                "readings at night.",
                Priority.MEDIUM,
                "timing",
                cat,
            )
        )
    return alerts


def bs_alerts(
    readings: Sequence[BloodSugarReading], now: datetime
) -> list[HealthAlert]:
    """Alerts for blood sugar readings ordered newest first."""
    if len(readings) < 2:
        return []
    alerts: list[HealthAlert] = []
    cat = Category.BLOOD_SUGAR
    latest = readings[0]
    if latest.glucose > 300:
        alerts.append(
            HealthAlert(
                "bs-critical-high",
                "Critical High Blood Sugar",
                f"Your latest blood sugar reading ({latest.glucose} mg/dL) is "
                "dangerously high. This requires immediate attention.",
                Priority.CRITICAL,
                "threshold",
                cat,
            )
        )
    elif latest.glucose < 70:
        alerts.append(
            HealthAlert(
                "bs-critical-low",
                "Low Blood Sugar Alert",
                f"Your latest blood sugar reading ({latest.glucose} mg/dL) is "
                "below the safe threshold. This requires immediate action.",
                Priority.CRITICAL,
                "threshold",
                cat,
            )
        )
    elif (
        categorize_glucose(latest.glucose, latest.test_type).label == "Diabetes"
        and latest.glucose >= 200
    ):
        alerts.append(
            HealthAlert(
                "bs-diabetes-range",
                "Diabetes Range Blood Sugar",
                f"Your latest {latest.test_type.value} blood sugar reading "
                f"({latest.glucose} mg/dL) is in the diabetes range.",
                Priority.HIGH,
                "threshold",
                cat,
            )
        )

    recent = _recent(readings, now)
    fasting = [r for r in recent if r.test_type is TestType.FASTING][:5]
    if len(fasting) >= 3:
        high = sum(1 for r in fasting if r.glucose >= 100)
        if high >= 3:
            alerts.append(
                HealthAlert(
                    "bs-fasting",
                    "Elevated Fasting Blood Sugar",
                    f"Your fasting blood sugar has been elevated (>=100 mg/dL) "
                    f"for {high} recent tests.",
                    Priority.HIGH if high >= 4 else Priority.MEDIUM,
                    "pattern",
                    cat,
                )
            )

    lows = [r for r in recent if r.glucose < 70]
    if len(lows) >= 2:
        alerts.append(
            HealthAlert(
                "bs-low",
                "Low Blood Sugar Episodes",
                f"You've had {len(lows)} episodes of low blood sugar "
                "(<70 mg/dL) recently.",
                Priority.HIGH if len(lows) >= 3 else Priority.MEDIUM,
                "threshold",
                cat,
            )
        )

    post_meal = [r for r in recent if r.test_type is TestType.POST_MEAL]
    if len(post_meal) >= 3:
        spikes = sum(1 for r in post_meal if r.glucose > 180)
        if spikes >= 2:
            alerts.append(
                HealthAlert(
                    "bs-postmeal",
                    "High Post-Meal Blood Sugar",
                    f"You have {spikes} high post-meal blood sugar readings "
                    "(>180 mg/dL).",
                    Priority.MEDIUM,
                    "pattern",
                    cat,
                )
            )

    if len(recent) >= 5:
        values = [r.glucose for r in recent]
        low, high = min(values), max(values)
        spread = high - low
        if spread > 100:
            alerts.append(
                HealthAlert(
                    "bs-variability",
                    "High Blood Sugar Variability",
                    f"Your blood sugar has varied by {spread} mg/dL recently "
                    f"(from {low} to {high} mg/dL).",
                    Priority.HIGH if spread > 150 else Priority.MEDIUM,
                    "trend",
                    cat,
                )
            )
    return alerts


def generate_health_alerts(
    bp: Sequence[BloodPressureReading],
    bs: Sequence[BloodSugarReading],
    now: datetime | None = None,
) -> list[HealthAlert]:
    """All alerts, highest priority first.

    Readings are expected newest first, as the store returns them. Pattern
    and trend rules only look at the last RECENT_DAYS days.
    """
    current = now or datetime.now(tz=_LOCAL_TZ)
    alerts = bp_alerts(bp, current) + bs_alerts(bs, current)
    return sorted(alerts, key=lambda alert: alert.priority, reverse=True)
