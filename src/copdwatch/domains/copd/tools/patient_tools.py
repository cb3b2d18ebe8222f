"""MCP tools for entering patient data into the encrypted patient store.

Registered only when storage is configured.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from copdwatch.core.storage.repository import RepositoryError

if TYPE_CHECKING:
    from copdwatch.core.storage.repository import PatientRepository

logger = logging.getLogger(__name__)


def register_patient_tools(
    mcp: FastMCP,
    repository: PatientRepository,
) -> None:
    """Register patient data entry tools on the MCP server."""

    @mcp.tool
    async def add_patient(
        ctx: Context,
        name: str,
        age: int | None = None,
        condition: str = "",
        city: str = "",
        country: str = "",
        telemetry: dict[str, Any] | None = None,
    ) -> str:
        """Enroll a new patient for monitoring.

        Args:
            name: Patient's full name.
            age: Age in years.
            condition: Diagnosis, e.g. 'Severe COPD'.
            city: City of residence (used for weather lookups).
            country: ISO country code, e.g. 'FR'.
            telemetry: Optional smartphone telemetry (activity, sleep, cough,
                environment, reported). Missing fields use neutral defaults.
        """
        try:
            patient_id = repository.add_patient(
                name,
                age=age,
                condition=condition,
                city=city,
                country=country,
                telemetry=telemetry,
            )
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({"status": "saved", "patient_id": patient_id})

    @mcp.tool
    async def record_measurement(
        ctx: Context,
        patient_id: int,
        spo2: float,
        heart_rate: float,
        timestamp: str = "",
    ) -> str:
        """Record an oximeter reading.

        Args:
            patient_id: The patient's ID.
            spo2: Blood oxygen saturation (%).
            heart_rate: Heart rate (bpm).
            timestamp: ISO 8601 time of the reading. Defaults to now.
        """
        try:
            measurement_id = repository.add_measurement(
                patient_id,
                spo2=spo2,
                heart_rate=heart_rate,
                timestamp=timestamp or None,
            )
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        logger.info("Recorded measurement %d for patient %d", measurement_id, patient_id)
        return json.dumps({
            "status": "saved",
            "measurement_id": measurement_id,
            "patient_id": patient_id,
        })

    @mcp.tool
    async def add_medication(
        ctx: Context,
        patient_id: int,
        name: str,
        dosage: str = "",
        schedules: list[str] | None = None,
    ) -> str:
        """Add a medication with its daily dose schedule.

        Args:
            patient_id: The patient's ID.
            name: Medication name, e.g. 'Symbicort'.
            dosage: Dose description, e.g. '2 puffs'.
            schedules: Times of day, e.g. ['Morning (09:00)', 'Evening (21:00)'].
                Use 'As needed' for rescue inhalers.
        """
        try:
            medication_id = repository.add_medication(
                patient_id, name, dosage=dosage, schedules=schedules or []
            )
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        medication = next(
            (m for m in repository.get_medications(patient_id) if m.id == medication_id), None
        )
        return json.dumps({
            "status": "saved",
            "medication_id": medication_id,
            "schedules": [
                {"id": s.id, "time_of_day": s.time_of_day}
                for s in (medication.schedules if medication else ())
            ],
        })

    @mcp.tool
    async def log_medication_dose(
        ctx: Context,
        patient_id: int,
        schedule_id: int,
        taken_at: str = "",
    ) -> str:
        """Record that a scheduled dose was taken.

        Args:
            patient_id: The patient's ID.
            schedule_id: The medication schedule the dose belongs to.
            taken_at: ISO 8601 time the dose was taken. Defaults to now.
        """
        try:
            log_id = repository.log_dose(patient_id, schedule_id, taken_at or None)
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({"status": "saved", "log_id": log_id})
