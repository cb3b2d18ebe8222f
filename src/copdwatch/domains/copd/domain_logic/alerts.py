"""Alert derivation: per-session anomaly alerts and the ward-level alert list."""

from __future__ import annotations

import logging
import random
import statistics
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Protocol

from copdwatch.domains.copd.domain_logic.patient_models import Measurement, PatientSnapshot
from copdwatch.domains.copd.domain_logic.prediction_models import (
    SEVERITY_ORDER,
    AnomalyAlert,
    DashboardAlert,
    RiskAssessment,
    RiskLevel,
)
from copdwatch.domains.copd.domain_logic.risk_scorer import score_patient

logger = logging.getLogger(__name__)

MISSED_MEASUREMENT_AFTER = timedelta(hours=2)
SPO2_DECLINE_POINTS = 1.0


class RandomSource(Protocol):
    def random(self) -> float: ...


# ---------------------------------------------------------------------------
# Session anomaly alerts
# ---------------------------------------------------------------------------

class AnomalyAlertGenerator:
    """Emits the anomalies considered "currently true" for one refresh cycle.

    Emission is probabilistic and the random source is injected, so tests can
    force either outcome. Only a High level can raise a vital-sign anomaly and
    only a Medium level can raise a mobility decline.
    """

    def __init__(
        self,
        rng: RandomSource | None = None,
        *,
        high_trigger: float = 0.5,
        medium_trigger: float = 0.7,
    ) -> None:
        self._rng = rng or random.Random()
        self.high_trigger = high_trigger
        self.medium_trigger = medium_trigger

    def generate(
        self, level: RiskLevel, snapshot: PatientSnapshot, now: datetime
    ) -> list[AnomalyAlert]:
        alert_id = f"alert-{int(now.timestamp() * 1000)}"

        if level == "High" and self._rng.random() > self.high_trigger:
            latest = snapshot.latest_measurement
            current = f"{latest.spo2:g}%" if latest else "N/A"
            return [
                AnomalyAlert(
                    id=alert_id,
                    type="vital_sign_anomaly",
                    severity="high",
                    description=f"SpO₂ drop detected. Current: {current}",
                    timestamp=now,
                    confidence=95,
                )
            ]

        if level == "Medium" and self._rng.random() > self.medium_trigger:
            return [
                AnomalyAlert(
                    id=alert_id,
                    type="mobility_decline",
                    severity="medium",
                    description="Significant drop in daily steps detected.",
                    timestamp=now,
                    confidence=88,
                )
            ]

        return []


# ---------------------------------------------------------------------------
# Ward-level alert list
# ---------------------------------------------------------------------------

def spo2_direction(measurements: Sequence[Measurement]) -> str:
    """Compare the older and newer halves of the SpO2 series.

    Returns "declining", "improving", "stable" or "insufficient_data".
    """
    if len(measurements) < 4:
        return "insufficient_data"

    mid = len(measurements) // 2
    older_mean = statistics.mean(m.spo2 for m in measurements[:mid])
    recent_mean = statistics.mean(m.spo2 for m in measurements[mid:])
    diff = recent_mean - older_mean
    if diff <= -SPO2_DECLINE_POINTS:
        return "declining"
    if diff >= SPO2_DECLINE_POINTS:
        return "improving"
    return "stable"


def sort_alerts(alerts: Iterable[DashboardAlert]) -> list[DashboardAlert]:
    """Most severe first, then newest first."""
    return sorted(
        alerts,
        key=lambda a: (SEVERITY_ORDER[a.severity], -a.timestamp.timestamp()),
    )


def build_dashboard_alerts(
    snapshots: Iterable[PatientSnapshot],
    *,
    now: datetime,
    scorer: Callable[..., RiskAssessment] = score_patient,
) -> list[DashboardAlert]:
    """Assemble the doctor's alert list across all monitored patients.

    At most one alert of each type per patient.
    """
    alerts: dict[str, DashboardAlert] = {}

    def _add(alert: DashboardAlert) -> None:
        alerts.setdefault(alert.id, alert)

    for snapshot in snapshots:
        assessment = scorer(snapshot, now=now)
        latest = snapshot.latest_measurement

        if assessment.level == "High":
            spo2_detail = f" (latest SpO₂ {latest.spo2:g}%)" if latest else ""
            _add(DashboardAlert(
                id=f"{snapshot.id}-high_risk",
                patient_id=snapshot.id,
                patient_name=snapshot.name,
                type="high_risk",
                severity="high",
                message=f"High risk score: {assessment.score}/100{spo2_detail}",
                timestamp=now,
            ))

        if spo2_direction(snapshot.measurements) == "declining":
            _add(DashboardAlert(
                id=f"{snapshot.id}-declining_trend",
                patient_id=snapshot.id,
                patient_name=snapshot.name,
                type="declining_trend",
                severity="medium",
                message="Declining SpO₂ trend over recent measurements.",
                timestamp=latest.timestamp if latest else now,
            ))

        if assessment.level == "Medium":
            overdue_since = (
                latest.timestamp + MISSED_MEASUREMENT_AFTER if latest else None
            )
            if overdue_since is None or overdue_since <= now:
                _add(DashboardAlert(
                    id=f"{snapshot.id}-missed_measurement",
                    patient_id=snapshot.id,
                    patient_name=snapshot.name,
                    type="missed_measurement",
                    severity="low",
                    message="No oximeter measurement received recently.",
                    timestamp=overdue_since or now,
                ))

    result = sort_alerts(alerts.values())
    logger.debug("Built %d dashboard alerts", len(result))
    return result
