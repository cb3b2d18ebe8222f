"""Deterministic COPD exacerbation risk scoring.

Converts a patient snapshot into a 0-100 score and a Low/Medium/High level
using fixed weighted thresholds across three tiers:

    critical  (up to 40 pts): activity, sleep, cough, breathlessness
    important (up to 35 pts): vitals, air quality, weather, adherence, home time
    secondary (up to 25 pts): GPS mobility, sleep position

All computation is deterministic: no LLM, no randomness, no I/O. Comparison
operators are part of the clinical rule set (``<`` vs ``<=`` matters at the
thresholds) and must not be changed casually.
"""

from __future__ import annotations

from datetime import datetime, timezone

from copdwatch.domains.copd.domain_logic.adherence import patient_adherence
from copdwatch.domains.copd.domain_logic.numeric import clamp, round_half_up
from copdwatch.domains.copd.domain_logic.patient_models import PatientSnapshot
from copdwatch.domains.copd.domain_logic.prediction_models import (
    RiskAssessment,
    RiskLevel,
    TierBreakdown,
)

HIGH_RISK_THRESHOLD = 61
MEDIUM_RISK_THRESHOLD = 31
MAX_SCORE = 100


def level_for_score(score: int) -> RiskLevel:
    """Map a 0-100 score to its categorical risk level."""
    if score >= HIGH_RISK_THRESHOLD:
        return "High"
    if score >= MEDIUM_RISK_THRESHOLD:
        return "Medium"
    return "Low"


# ---------------------------------------------------------------------------
# Tier I: critical parameters (40 pts)
# ---------------------------------------------------------------------------

def critical_points(snapshot: PatientSnapshot, fired: list[str]) -> float:
    telemetry = snapshot.telemetry
    points = 0.0

    # Activity decline (12)
    steps = telemetry.activity.steps
    if steps < 1500:
        points += 12
        fired.append("steps_below_1500")
    elif steps < 2500:
        points += 6
        fired.append("steps_below_2500")

    # Sleep disturbance (5 + 5, independent)
    if telemetry.sleep.total_sleep_hours < 5:
        points += 5
        fired.append("sleep_below_5h")
    if telemetry.sleep.sleep_efficiency < 70:
        points += 5
        fired.append("sleep_efficiency_below_70")

    # Cough increase (6 + 4, independent)
    if telemetry.cough.cough_frequency_per_hour > 10:
        points += 6
        fired.append("cough_above_10_per_hour")
    if telemetry.cough.night_cough_episodes > 5:
        points += 4
        fired.append("night_cough_above_5")

    # Reported breathlessness (8)
    breathlessness = telemetry.reported.symptoms.breathlessness
    if breathlessness >= 8:
        points += 8
        fired.append("breathlessness_8_plus")
    elif breathlessness >= 6:
        points += 4
        fired.append("breathlessness_6_plus")

    return points


# ---------------------------------------------------------------------------
# Tier II: important parameters (35 pts)
# ---------------------------------------------------------------------------

def important_points(snapshot: PatientSnapshot, adherence: int, fired: list[str]) -> float:
    environment = snapshot.telemetry.environment
    points = 0.0

    latest = snapshot.latest_measurement
    if latest is not None:
        # Heart rate elevation (6)
        if latest.heart_rate > 100:
            points += 6
            fired.append("heart_rate_above_100")
        elif latest.heart_rate > 90:
            points += 3
            fired.append("heart_rate_above_90")

        # Oxygen desaturation (8)
        if latest.spo2 < 90:
            points += 8
            fired.append("spo2_below_90")
        elif latest.spo2 < 92:
            points += 5
            fired.append("spo2_below_92")
        elif latest.spo2 < 94:
            points += 2.5
            fired.append("spo2_below_94")

    # Air quality (5)
    if environment.air_quality_index > 100:
        points += 5
        fired.append("aqi_above_100")
    elif environment.air_quality_index > 75:
        points += 2.5
        fired.append("aqi_above_75")

    # Weather (3.5 + 3.5, independent)
    temperature = environment.weather.temperature_c
    if temperature < 5 or temperature > 30:
        points += 3.5
        fired.append("temperature_extreme")
    if environment.weather.humidity_percent > 80:
        points += 3.5
        fired.append("humidity_above_80")

    # Medication adherence (4)
    if adherence < 80:
        points += 4
        fired.append("adherence_below_80")
    elif adherence < 90:
        points += 2
        fired.append("adherence_below_90")

    # Social withdrawal (5)
    if environment.home_time_percent > 95:
        points += 5
        fired.append("home_time_above_95")
    elif environment.home_time_percent > 85:
        points += 2.5
        fired.append("home_time_above_85")

    return points


# ---------------------------------------------------------------------------
# Tier III: secondary parameters (25 pts)
# ---------------------------------------------------------------------------

def secondary_points(snapshot: PatientSnapshot, fired: list[str]) -> float:
    telemetry = snapshot.telemetry
    points = 0.0

    # GPS mobility (15)
    radius = telemetry.environment.travel_radius_km
    if radius < 1.0:
        points += 15
        fired.append("travel_radius_below_1km")
    elif radius < 2.0:
        points += 7
        fired.append("travel_radius_below_2km")

    # Sleep position (10)
    if telemetry.sleep.sleep_position == "sitting":
        points += 10
        fired.append("sleeping_sitting")
    elif telemetry.sleep.sleep_position == "supine":
        points += 3
        fired.append("sleeping_supine")

    return points


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def score_patient(snapshot: PatientSnapshot, *, now: datetime | None = None) -> RiskAssessment:
    """Score a patient snapshot.

    ``now`` anchors the seven-day adherence window; pass it explicitly for a
    fully reproducible result. Missing measurements simply skip the heart
    rate and SpO2 rules.
    """
    now = now or datetime.now(timezone.utc)
    adherence = patient_adherence(snapshot, now)

    fired: list[str] = []
    breakdown = TierBreakdown(
        critical=critical_points(snapshot, fired),
        important=important_points(snapshot, adherence, fired),
        secondary=secondary_points(snapshot, fired),
        adherence_percent=adherence,
        fired_rules=fired,
    )

    score = round_half_up(clamp(breakdown.total, 0, MAX_SCORE))
    return RiskAssessment(score=score, level=level_for_score(score), breakdown=breakdown)
