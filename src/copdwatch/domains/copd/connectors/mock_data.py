"""Mock COPD patient roster for development and demos.

Three patients: a severe, deteriorating patient who scores High, a stable
patient with heart failure, and a patient recovering from an exacerbation
who scores Low. Measurement series and dose logs are
generated relative to ``now`` from a per-patient seed, so the same patient
always looks the same within one run of the tests.
"""

from __future__ import annotations

import copy
import random
from datetime import datetime, timedelta
from typing import Any, Literal

from copdwatch.domains.copd.domain_logic.adherence import dose_time, is_as_needed
from copdwatch.domains.copd.domain_logic.patient_models import MedicationSchedule, Telemetry

Trend = Literal["stable", "down", "up"]

MEASUREMENT_POINTS = 60
MEASUREMENT_INTERVAL = timedelta(minutes=4)
DOSE_LOG_DAYS = 7


def default_telemetry() -> dict[str, Any]:
    """Telemetry for a newly enrolled patient before any sensor data arrives."""
    return Telemetry().to_dict()


def generate_measurements(
    base_spo2: float,
    base_heart_rate: float,
    trend: Trend,
    now: datetime,
    rng: random.Random,
) -> list[dict[str, Any]]:
    """60 oximeter readings, one every 4 minutes, over the last 4 hours.

    A "down" trend drifts SpO2 lower and heart rate higher; "up" does the
    opposite. SpO2 stays within 88-99 and heart rate within 55-115.
    """
    start = now - timedelta(hours=4)
    spo2 = float(base_spo2)
    heart_rate = float(base_heart_rate)
    readings = []

    for i in range(MEASUREMENT_POINTS):
        readings.append({
            "timestamp": (start + i * MEASUREMENT_INTERVAL).isoformat(),
            "spo2": float(round(spo2)),
            "heart_rate": float(round(heart_rate)),
        })

        if trend == "down":
            spo2 -= 0.05 + rng.random() * 0.1
            heart_rate += 0.1 + rng.random() * 0.15
        elif trend == "up":
            spo2 += 0.05 + rng.random() * 0.08
            heart_rate -= 0.1 + rng.random() * 0.15

        spo2 += (rng.random() - 0.5) * 1
        heart_rate += (rng.random() - 0.5) * 2

        spo2 = max(88.0, min(99.0, spo2))
        heart_rate = max(55.0, min(115.0, heart_rate))

    return readings


def generate_dose_log(
    medications: list[dict[str, Any]],
    miss_probability: dict[str, float],
    now: datetime,
    rng: random.Random,
) -> list[dict[str, Any]]:
    """Dose events for the past week of scheduled (non as-needed) doses.

    ``miss_probability`` maps a medication name to its chance of a missed dose.
    """
    events = []
    for days_ago in range(DOSE_LOG_DAYS):
        day = (now - timedelta(days=days_ago)).date()
        for med in medications:
            if not med.get("active", True):
                continue
            for raw in med["schedules"]:
                schedule = MedicationSchedule(
                    id=raw["id"],
                    time_of_day=raw["time_of_day"],
                    as_needed=raw.get("as_needed", False),
                )
                if is_as_needed(schedule):
                    continue
                scheduled = datetime.combine(day, dose_time(schedule), tzinfo=now.tzinfo)
                if scheduled >= now:
                    continue
                if rng.random() < miss_probability.get(med["name"], 0.0):
                    continue
                events.append({
                    "schedule_id": schedule.id,
                    "taken_at": (scheduled + timedelta(minutes=rng.randint(0, 30))).isoformat(),
                })
    return events


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------

_SEVERE_TELEMETRY: dict[str, Any] = {
    "activity": {
        "steps": 1200,
        "sedentary_minutes": 450,
        "active_minutes": 15,
        "distance_km": 0.8,
        "floors_climbed": 1,
        "movement_speed_kmh": 1.8,
    },
    "sleep": {
        "total_sleep_hours": 4.8,
        "sleep_efficiency": 65,
        "awake_minutes": 90,
        "deep_sleep_minutes": 30,
        "rem_sleep_minutes": 40,
        "night_movements": 45,
        "sleep_position": "sitting",
    },
    "cough": {
        "cough_frequency_per_hour": 12,
        "night_cough_episodes": 8,
        "cough_pattern": "wheezing",
        "cough_intensity_db": 75,
        "respiratory_rate": 24,
    },
    "environment": {
        "air_quality_index": 110,
        "home_time_percent": 95,
        "travel_radius_km": 0.5,
        "weather": {"temperature_c": 3, "humidity_percent": 85},
    },
    "reported": {
        "symptoms": {"breathlessness": 8, "fatigue": 9, "cough": 7},
        "medication_adherence_percent": 75,
        "quality_of_life_cat": 32,
        "smoking": {"cigarettes_today": 5, "cravings_today": 8, "days_smoke_free": 0},
    },
}

_STABLE_TELEMETRY: dict[str, Any] = {
    "activity": {
        "steps": 2800,
        "sedentary_minutes": 280,
        "active_minutes": 40,
        "distance_km": 2.1,
        "floors_climbed": 4,
        "movement_speed_kmh": 2.5,
    },
    "sleep": {
        "total_sleep_hours": 6.1,
        "sleep_efficiency": 82,
        "awake_minutes": 40,
        "deep_sleep_minutes": 60,
        "rem_sleep_minutes": 70,
        "night_movements": 20,
        "sleep_position": "lateral",
    },
    "cough": {
        "cough_frequency_per_hour": 3,
        "night_cough_episodes": 2,
        "cough_pattern": "dry",
        "cough_intensity_db": 60,
        "respiratory_rate": 18,
    },
    "environment": {
        "air_quality_index": 45,
        "home_time_percent": 70,
        "travel_radius_km": 1.1,
        "weather": {"temperature_c": 18, "humidity_percent": 60},
    },
    "reported": {
        "symptoms": {"breathlessness": 4, "fatigue": 4, "cough": 3},
        "medication_adherence_percent": 95,
        "quality_of_life_cat": 18,
        "smoking": {"cigarettes_today": 0, "cravings_today": 2, "days_smoke_free": 12},
    },
}

_RECOVERING_TELEMETRY: dict[str, Any] = {
    "activity": {
        "steps": 4500,
        "sedentary_minutes": 180,
        "active_minutes": 65,
        "distance_km": 3.5,
        "floors_climbed": 8,
        "movement_speed_kmh": 3.5,
    },
    "sleep": {
        "total_sleep_hours": 7.5,
        "sleep_efficiency": 90,
        "awake_minutes": 25,
        "deep_sleep_minutes": 80,
        "rem_sleep_minutes": 90,
        "night_movements": 12,
        "sleep_position": "lateral",
    },
    "cough": {
        "cough_frequency_per_hour": 1,
        "night_cough_episodes": 0,
        "cough_pattern": "dry",
        "cough_intensity_db": 55,
        "respiratory_rate": 16,
    },
    "environment": {
        "air_quality_index": 30,
        "home_time_percent": 50,
        "travel_radius_km": 2.0,
        "weather": {"temperature_c": 22, "humidity_percent": 55},
    },
    "reported": {
        "symptoms": {"breathlessness": 2, "fatigue": 2, "cough": 1},
        "medication_adherence_percent": 100,
        "quality_of_life_cat": 12,
        "smoking": {"cigarettes_today": 0, "cravings_today": 0, "days_smoke_free": 380},
    },
}

_ROSTER: list[dict[str, Any]] = [
    {
        "id": 1,
        "name": "Jean Dupont",
        "age": 67,
        "condition": "Severe COPD",
        "city": "Paris",
        "country": "FR",
        "vitals": (91, 95, "down"),
        "telemetry": _SEVERE_TELEMETRY,
        "medications": [
            {"id": 1, "name": "Spiriva Respimat", "dosage": "2 puffs",
             "schedules": [{"id": 1, "time_of_day": "Morning (09:00)"}]},
            {"id": 2, "name": "Symbicort", "dosage": "2 puffs",
             "schedules": [{"id": 2, "time_of_day": "Morning (09:00)"},
                           {"id": 3, "time_of_day": "Evening (21:00)"}]},
            {"id": 3, "name": "Ventolin", "dosage": "1-2 puffs",
             "schedules": [{"id": 4, "time_of_day": "As needed", "as_needed": True}]},
        ],
        "miss_probability": {"Symbicort": 0.3},
    },
    {
        "id": 2,
        "name": "Marie Lambert",
        "age": 72,
        "condition": "COPD, heart failure",
        "city": "Lyon",
        "country": "FR",
        "vitals": (94, 82, "stable"),
        "telemetry": _STABLE_TELEMETRY,
        "medications": [
            {"id": 4, "name": "Furosemide", "dosage": "40mg",
             "schedules": [{"id": 5, "time_of_day": "Morning (08:00)"}]},
            {"id": 5, "name": "Enalapril", "dosage": "10mg",
             "schedules": [{"id": 6, "time_of_day": "Morning (08:00)"}]},
        ],
        "miss_probability": {"Furosemide": 0.1, "Enalapril": 0.1},
    },
    {
        "id": 3,
        "name": "Pierre Martin",
        "age": 65,
        "condition": "Post-exacerbation",
        "city": "Marseille",
        "country": "FR",
        "vitals": (97, 75, "up"),
        "telemetry": _RECOVERING_TELEMETRY,
        "medications": [
            {"id": 6, "name": "Prednisone", "dosage": "20mg (tapering)",
             "schedules": [{"id": 7, "time_of_day": "Morning"}]},
            {"id": 7, "name": "Amoxicillin", "dosage": "1g",
             "schedules": [{"id": 8, "time_of_day": "Morning (08:00)"},
                           {"id": 9, "time_of_day": "Evening (20:00)"}]},
        ],
        "miss_probability": {},
    },
]


def mock_patient_ids() -> list[int]:
    return [p["id"] for p in _ROSTER]


def get_mock_patient(patient_id: int, now: datetime) -> dict[str, Any] | None:
    """Return the patient record (``PatientSnapshot.from_dict`` shape), or None."""
    entry = next((p for p in _ROSTER if p["id"] == patient_id), None)
    if entry is None:
        return None

    rng = random.Random(patient_id)
    base_spo2, base_hr, trend = entry["vitals"]
    medications = copy.deepcopy(entry["medications"])
    return {
        "id": entry["id"],
        "name": entry["name"],
        "age": entry["age"],
        "condition": entry["condition"],
        "city": entry["city"],
        "country": entry["country"],
        "measurements": generate_measurements(base_spo2, base_hr, trend, now, rng),
        "telemetry": copy.deepcopy(entry["telemetry"]),
        "medications": medications,
        "dose_events": generate_dose_log(medications, entry["miss_probability"], now, rng),
    }


def get_mock_patients(now: datetime) -> list[dict[str, Any]]:
    return [get_mock_patient(pid, now) for pid in mock_patient_ids()]  # type: ignore[misc]
