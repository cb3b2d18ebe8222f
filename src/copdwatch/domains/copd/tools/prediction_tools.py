"""MCP tools for risk scoring, ward alerts and live patient monitoring."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from copdwatch.core.weather.client import WeatherError
from copdwatch.domains.copd.domain_logic.adherence import (
    ADHERENCE_WINDOW_DAYS,
    has_scheduled_medication,
    is_as_needed,
    patient_adherence,
)
from copdwatch.domains.copd.domain_logic.alerts import build_dashboard_alerts
from copdwatch.domains.copd.domain_logic.risk_scorer import score_patient as score_snapshot

if TYPE_CHECKING:
    from copdwatch.domains.copd.connectors import PatientDataProvider, WeatherLookup
    from copdwatch.domains.copd.enrichment.narrative import NarrativeEnricher
    from copdwatch.domains.copd.services.prediction_coordinator import PredictionCoordinator

logger = logging.getLogger(__name__)

SUPPORTED_LOCALES = ("en", "fr", "ar")


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def register_prediction_tools(
    mcp: FastMCP,
    coordinator: PredictionCoordinator,
    provider: PatientDataProvider,
    enricher: NarrativeEnricher,
    weather: WeatherLookup | None = None,
    *,
    clock: Callable[[], datetime] | None = None,
    default_locale: str = "en",
) -> None:
    """Register scoring and monitoring tools on the MCP server."""
    now = clock or (lambda: datetime.now(timezone.utc))

    def _superseded(patient_id: int) -> str:
        logger.info("Monitoring of patient %s was replaced before its prediction was ready", patient_id)
        return _error(
            f"Monitoring of patient {patient_id} was stopped or replaced by another session"
        )

    def _monitoring_payload(patient_id: int) -> str:
        # The session may have changed while the refresh was awaiting.
        prediction = coordinator.last_prediction
        if coordinator.active_patient_id != patient_id or (
            prediction is not None and prediction.patient_id != patient_id
        ):
            return _superseded(patient_id)
        return json.dumps({
            "status": "monitoring",
            "patient_id": patient_id,
            "prediction": prediction.to_dict() if prediction else None,
        })

    @mcp.tool
    async def list_patients(ctx: Context) -> str:
        """List monitored patients with their latest vitals and current risk, highest risk first."""
        at = now()
        rows = []
        for snapshot in await provider.list_snapshots():
            assessment = score_snapshot(snapshot, now=at)
            latest = snapshot.latest_measurement
            rows.append({
                "id": snapshot.id,
                "name": snapshot.name,
                "age": snapshot.age,
                "condition": snapshot.condition,
                "location": f"{snapshot.city}, {snapshot.country}" if snapshot.has_location else None,
                "latest_spo2": latest.spo2 if latest else None,
                "latest_heart_rate": latest.heart_rate if latest else None,
                "risk_score": assessment.score,
                "risk_level": assessment.level,
            })
        rows.sort(key=lambda r: r["risk_score"], reverse=True)
        return json.dumps({
            "status": "ok",
            **provider.get_provenance(),
            "patients": rows,
        })

    @mcp.tool
    async def score_patient(ctx: Context, patient_id: int) -> str:
        """Compute the deterministic exacerbation risk score for one patient.

        Args:
            patient_id: The patient's ID.
        """
        snapshot = await provider.get_snapshot(patient_id)
        if snapshot is None:
            return _error(f"Patient {patient_id} not found")
        assessment = score_snapshot(snapshot, now=now())
        return json.dumps({"status": "ok", "patient_id": patient_id, **assessment.to_dict()})

    @mcp.tool
    async def medication_adherence(ctx: Context, patient_id: int) -> str:
        """Seven-day medication adherence computed from the dose log.

        Args:
            patient_id: The patient's ID.
        """
        snapshot = await provider.get_snapshot(patient_id)
        if snapshot is None:
            return _error(f"Patient {patient_id} not found")

        source = "dose_log" if has_scheduled_medication(snapshot.medications) else "patient_reported"

        return json.dumps({
            "status": "ok",
            "patient_id": patient_id,
            "adherence_percent": patient_adherence(snapshot, now()),
            "source": source,
            "window_days": ADHERENCE_WINDOW_DAYS,
            "medications": [
                {
                    "id": med.id,
                    "name": med.name,
                    "dosage": med.dosage,
                    "active": med.active,
                    "schedules": [
                        {"id": s.id, "time_of_day": s.time_of_day, "as_needed": is_as_needed(s)}
                        for s in med.schedules
                    ],
                }
                for med in snapshot.medications
            ],
        })

    @mcp.tool
    async def dashboard_alerts(ctx: Context) -> str:
        """Ward-level alerts across all patients, most severe and most recent first."""
        alerts = build_dashboard_alerts(await provider.list_snapshots(), now=now())
        return json.dumps({
            "status": "ok",
            "count": len(alerts),
            "alerts": [a.to_dict() for a in alerts],
        })

    # ------------------------------------------------------------------
    # Live monitoring session
    # ------------------------------------------------------------------

    @mcp.tool
    async def start_monitoring(ctx: Context, patient_id: int, locale: str = "") -> str:
        """Start live risk monitoring for a patient and compute the first prediction.

        Replaces any session already running.

        Args:
            patient_id: The patient's ID.
            locale: Language for narrative text and day labels: 'en', 'fr' or 'ar'.
                Defaults to the server's DEFAULT_LOCALE.
        """
        locale = locale or default_locale
        if locale not in SUPPORTED_LOCALES:
            return _error(f"Unsupported locale {locale!r}; use one of {', '.join(SUPPORTED_LOCALES)}")

        await coordinator.start(patient_id, locale=locale)
        if not coordinator.is_active:
            return _error(f"Patient {patient_id} not found; monitoring not started")
        if coordinator.active_patient_id != patient_id:
            return _superseded(patient_id)

        await coordinator.refresh()
        return _monitoring_payload(patient_id)

    @mcp.tool
    async def refresh_prediction(ctx: Context) -> str:
        """Recompute the prediction for the patient currently being monitored."""
        patient_id = coordinator.active_patient_id
        if patient_id is None:
            return _error("No patient is being monitored; call start_monitoring first")
        await coordinator.refresh()
        return _monitoring_payload(patient_id)

    @mcp.tool
    def get_prediction() -> str:
        """Return the latest prediction for the monitored patient without recomputing it."""
        if not coordinator.is_active:
            return json.dumps({"status": "idle", "prediction": None})
        prediction = coordinator.last_prediction
        return json.dumps({
            "status": "monitoring",
            "patient_id": coordinator.active_patient_id,
            "locale": coordinator.locale,
            "prediction": prediction.to_dict() if prediction else None,
        })

    @mcp.tool
    def stop_monitoring() -> str:
        """Stop live monitoring and discard the current prediction."""
        patient_id = coordinator.active_patient_id
        coordinator.stop()
        return json.dumps({"status": "idle", "stopped_patient_id": patient_id})

    # ------------------------------------------------------------------
    # Weather
    # ------------------------------------------------------------------

    @mcp.tool
    async def weather_impact(ctx: Context, patient_id: int, locale: str = "") -> str:
        """Current weather at the patient's location and its likely respiratory impact.

        Args:
            patient_id: The patient's ID.
            locale: Language for the impact summary: 'en', 'fr' or 'ar'.
                Defaults to the server's DEFAULT_LOCALE.
        """
        locale = locale or default_locale
        if weather is None:
            return _error("Weather lookups are not configured (set OPENWEATHER_API_KEY)")
        if locale not in SUPPORTED_LOCALES:
            return _error(f"Unsupported locale {locale!r}; use one of {', '.join(SUPPORTED_LOCALES)}")

        snapshot = await provider.get_snapshot(patient_id)
        if snapshot is None:
            return _error(f"Patient {patient_id} not found")
        if not snapshot.has_location:
            return _error(f"Patient {patient_id} has no city/country on file")

        try:
            report = await weather.get_weather(snapshot.city, snapshot.country, locale)
        except WeatherError as exc:
            logger.warning("Weather lookup failed for patient %s: %s", patient_id, exc)
            return _error(str(exc))

        impact = await enricher.analyze_weather_impact(snapshot, report, locale)
        return json.dumps({
            "status": "ok",
            "patient_id": patient_id,
            "weather": report.to_dict(),
            "impact": impact.to_dict(),
        })
