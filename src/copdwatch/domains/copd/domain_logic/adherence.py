"""Medication adherence over a trailing seven-day window.

Adherence is derived from the patient's active medication schedules and
their dose log, never stored directly:

    adherence % = doses taken / doses expected

Expected doses skip as-needed schedules and doses whose scheduled time is
still in the future relative to ``now``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, time, timedelta

from copdwatch.domains.copd.domain_logic.numeric import round_half_up
from copdwatch.domains.copd.domain_logic.patient_models import (
    Medication,
    MedicationDoseEvent,
    MedicationSchedule,
    PatientSnapshot,
    parse_timestamp,
)

ADHERENCE_WINDOW_DAYS = 7
DEFAULT_DOSE_TIME = time(9, 0)

_AS_NEEDED_RE = re.compile(r"\b(as needed|au besoin|si besoin|prn)\b", re.IGNORECASE)
_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})")


def is_as_needed(schedule: MedicationSchedule) -> bool:
    """True for rescue/as-needed schedules, which never count as expected doses."""
    return schedule.as_needed or bool(_AS_NEEDED_RE.search(schedule.time_of_day))


def dose_time(schedule: MedicationSchedule) -> time:
    """Scheduled time of day parsed from "HH:MM" anywhere in the label (09:00 if absent)."""
    match = _TIME_RE.search(schedule.time_of_day)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour < 24 and minute < 60:
            return time(hour, minute)
    return DEFAULT_DOSE_TIME


def _expected_schedules(medications: Iterable[Medication]) -> list[MedicationSchedule]:
    return [
        schedule
        for med in medications
        if med.active
        for schedule in med.schedules
        if not is_as_needed(schedule)
    ]


def has_scheduled_medication(medications: Iterable[Medication]) -> bool:
    return bool(_expected_schedules(medications))


def calculate_medication_adherence(
    medications: Iterable[Medication],
    dose_events: Iterable[MedicationDoseEvent],
    now: datetime,
) -> int:
    """Percentage of expected doses taken over today and the previous six days.

    Schedule times are interpreted in ``now``'s timezone. Only doses logged
    against an expected schedule inside the window count; the result is
    capped at 100. Returns 100 when no dose was expected.
    """
    now = parse_timestamp(now)
    today = now.date()
    window_start = datetime.combine(
        today - timedelta(days=ADHERENCE_WINDOW_DAYS - 1), time.min, tzinfo=now.tzinfo
    )

    schedules = _expected_schedules(medications)
    expected = 0
    for schedule in schedules:
        at = dose_time(schedule)
        for offset in range(ADHERENCE_WINDOW_DAYS):
            scheduled = datetime.combine(today - timedelta(days=offset), at, tzinfo=now.tzinfo)
            if scheduled < now:
                expected += 1

    if expected == 0:
        return 100

    expected_ids = {s.id for s in schedules}
    taken = sum(
        1
        for event in dose_events
        if event.schedule_id in expected_ids and window_start <= event.taken_at <= now
    )
    return min(100, round_half_up(taken / expected * 100))


def patient_adherence(snapshot: PatientSnapshot, now: datetime) -> int:
    """Adherence used for scoring.

    Computed from the dose log when the patient has scheduled medication,
    otherwise the self-reported percentage.
    """
    if has_scheduled_medication(snapshot.medications):
        return calculate_medication_adherence(snapshot.medications, snapshot.dose_events, now)
    return round_half_up(snapshot.telemetry.reported.medication_adherence_percent)
