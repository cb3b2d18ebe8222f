"""Patient repository: CRUD operations for the encrypted patient store.

The repository mediates between domain objects (PatientSnapshot and its
parts) and the SQLite database, using FieldEncryptor for patient identity,
medication names and smartphone telemetry.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from copdwatch.core.storage.database import PatientDatabase
from copdwatch.core.storage.encryption import FieldEncryptor
from copdwatch.domains.copd.domain_logic.patient_models import (
    Medication,
    MedicationDoseEvent,
    MedicationSchedule,
    Measurement,
    PatientSnapshot,
    Telemetry,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

MEASUREMENT_HISTORY_LIMIT = 500
DOSE_HISTORY_DAYS = 30


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class PatientRepository:
    """CRUD repository for patients, oximeter readings and medications.

    Usage::

        db = PatientDatabase(":memory:")
        db.initialize()
        repo = PatientRepository(db, FieldEncryptor(key="..."))

        patient_id = repo.add_patient("Jean Dupont", age=67, city="Paris", country="FR")
        repo.add_measurement(patient_id, spo2=91, heart_rate=95)
        snapshot = repo.get_snapshot(patient_id)
    """

    def __init__(self, database: PatientDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _to_utc_iso(value: datetime | str | None) -> str:
        if value is None:
            return datetime.now(timezone.utc).isoformat()
        try:
            return parse_timestamp(value).astimezone(timezone.utc).isoformat()
        except ValueError as exc:
            raise RepositoryError(f"Invalid timestamp: {value!r}") from exc

    def _require_patient(self, patient_id: int) -> None:
        row = self._db.connection.execute(
            "SELECT 1 FROM patients WHERE id = ?", (patient_id,)
        ).fetchone()
        if row is None:
            raise RepositoryError(f"Unknown patient: {patient_id}")

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    def add_patient(
        self,
        name: str,
        *,
        age: int | None = None,
        condition: str = "",
        city: str = "",
        country: str = "",
        telemetry: dict[str, Any] | None = None,
    ) -> int:
        """Enroll a patient. Missing telemetry falls back to neutral defaults.

        Returns:
            The new patient ID.
        """
        if not name or not name.strip():
            raise RepositoryError("Patient name must not be empty")
        if age is not None and not 0 < age < 130:
            raise RepositoryError(f"Implausible age: {age}")

        identity = {
            "name": name.strip(),
            "age": age,
            "condition": condition,
            "city": city,
            "country": country,
        }
        telemetry_data = Telemetry.from_dict(telemetry).to_dict()

        conn = self._db.connection
        cursor = conn.execute(
            "INSERT INTO patients (identity_enc, telemetry_enc) VALUES (?, ?)",
            (self._enc.encrypt(identity), self._enc.encrypt(telemetry_data)),
        )
        conn.commit()
        patient_id = int(cursor.lastrowid)
        logger.info("Enrolled patient %d", patient_id)
        return patient_id

    def update_telemetry(self, patient_id: int, telemetry: dict[str, Any]) -> None:
        """Replace the stored smartphone telemetry for a patient."""
        self._require_patient(patient_id)
        conn = self._db.connection
        conn.execute(
            "UPDATE patients SET telemetry_enc = ?, updated_at = ? WHERE id = ?",
            (
                self._enc.encrypt(Telemetry.from_dict(telemetry).to_dict()),
                self._now_iso(),
                patient_id,
            ),
        )
        conn.commit()
        logger.info("Updated telemetry for patient %d", patient_id)

    def list_patient_ids(self) -> list[int]:
        rows = self._db.connection.execute("SELECT id FROM patients ORDER BY id").fetchall()
        return [row[0] for row in rows]

    def count_patients(self) -> int:
        row = self._db.connection.execute("SELECT COUNT(*) FROM patients").fetchone()
        return row[0]

    def delete_patient(self, patient_id: int) -> bool:
        """Delete a patient and (by cascade) all their readings and medications.

        Returns:
            True if the patient existed.
        """
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM patients WHERE id = ?", (patient_id,))
        conn.commit()
        if cursor.rowcount:
            logger.info("Deleted patient %d", patient_id)
            return True
        return False

    # ------------------------------------------------------------------
    # Measurements (unencrypted, indexed)
    # ------------------------------------------------------------------

    def add_measurement(
        self,
        patient_id: int,
        *,
        spo2: float,
        heart_rate: float,
        timestamp: datetime | str | None = None,
    ) -> int:
        if not 0 < spo2 <= 100:
            raise RepositoryError(f"SpO2 out of range: {spo2}")
        if not 0 < heart_rate < 300:
            raise RepositoryError(f"Heart rate out of range: {heart_rate}")
        self._require_patient(patient_id)

        conn = self._db.connection
        cursor = conn.execute(
            "INSERT INTO measurements (patient_id, timestamp, spo2, heart_rate) VALUES (?, ?, ?, ?)",
            (patient_id, self._to_utc_iso(timestamp), spo2, heart_rate),
        )
        conn.commit()
        return int(cursor.lastrowid)

    def get_measurements(
        self, patient_id: int, *, limit: int = MEASUREMENT_HISTORY_LIMIT
    ) -> list[Measurement]:
        """Most recent ``limit`` readings, oldest first."""
        rows = self._db.connection.execute(
            """SELECT timestamp, spo2, heart_rate FROM measurements
               WHERE patient_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?""",
            (patient_id, limit),
        ).fetchall()
        return [
            Measurement(
                timestamp=parse_timestamp(row["timestamp"]),
                spo2=row["spo2"],
                heart_rate=row["heart_rate"],
            )
            for row in reversed(rows)
        ]

    # ------------------------------------------------------------------
    # Medications
    # ------------------------------------------------------------------

    def add_medication(
        self,
        patient_id: int,
        name: str,
        *,
        dosage: str = "",
        schedules: Iterable[str | dict[str, Any]] = (),
    ) -> int:
        """Add a medication with its dose schedules.

        A schedule is either a time-of-day label ("Morning (09:00)", "As needed")
        or a dict with ``time_of_day`` and optional ``as_needed``.
        """
        if not name or not name.strip():
            raise RepositoryError("Medication name must not be empty")
        self._require_patient(patient_id)

        conn = self._db.connection
        try:
            cursor = conn.execute(
                "INSERT INTO medications (patient_id, name_enc, dosage_enc) VALUES (?, ?, ?)",
                (patient_id, self._enc.encrypt(name.strip()), self._enc.encrypt(dosage)),
            )
            medication_id = int(cursor.lastrowid)
            for schedule in schedules:
                if isinstance(schedule, str):
                    schedule = {"time_of_day": schedule}
                conn.execute(
                    """INSERT INTO medication_schedules (medication_id, time_of_day, as_needed)
                       VALUES (?, ?, ?)""",
                    (
                        medication_id,
                        schedule.get("time_of_day", ""),
                        int(bool(schedule.get("as_needed", False))),
                    ),
                )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to add medication: {exc}") from exc

        logger.info("Added medication %d for patient %d", medication_id, patient_id)
        return medication_id

    def set_medication_active(self, medication_id: int, active: bool) -> bool:
        conn = self._db.connection
        cursor = conn.execute(
            "UPDATE medications SET is_active = ? WHERE id = ?",
            (int(active), medication_id),
        )
        conn.commit()
        return bool(cursor.rowcount)

    def get_medications(self, patient_id: int) -> list[Medication]:
        conn = self._db.connection
        med_rows = conn.execute(
            "SELECT id, name_enc, dosage_enc, is_active FROM medications WHERE patient_id = ? ORDER BY id",
            (patient_id,),
        ).fetchall()

        medications = []
        for row in med_rows:
            schedule_rows = conn.execute(
                """SELECT id, time_of_day, as_needed FROM medication_schedules
                   WHERE medication_id = ? ORDER BY id""",
                (row["id"],),
            ).fetchall()
            medications.append(
                Medication(
                    id=row["id"],
                    name=self._enc.decrypt(row["name_enc"]) or "",
                    dosage=self._enc.decrypt(row["dosage_enc"]) or "",
                    active=bool(row["is_active"]),
                    schedules=tuple(
                        MedicationSchedule(
                            id=s["id"],
                            time_of_day=s["time_of_day"],
                            as_needed=bool(s["as_needed"]),
                        )
                        for s in schedule_rows
                    ),
                )
            )
        return medications

    def log_dose(
        self,
        patient_id: int,
        schedule_id: int,
        taken_at: datetime | str | None = None,
    ) -> int:
        """Record that a scheduled dose was taken."""
        row = self._db.connection.execute(
            """SELECT m.patient_id FROM medication_schedules s
               JOIN medications m ON m.id = s.medication_id
               WHERE s.id = ?""",
            (schedule_id,),
        ).fetchone()
        if row is None:
            raise RepositoryError(f"Unknown medication schedule: {schedule_id}")
        if row[0] != patient_id:
            raise RepositoryError(
                f"Schedule {schedule_id} does not belong to patient {patient_id}"
            )

        conn = self._db.connection
        cursor = conn.execute(
            "INSERT INTO medication_logs (patient_id, schedule_id, taken_at) VALUES (?, ?, ?)",
            (patient_id, schedule_id, self._to_utc_iso(taken_at)),
        )
        conn.commit()
        return int(cursor.lastrowid)

    def get_dose_events(
        self, patient_id: int, *, since: datetime | None = None
    ) -> list[MedicationDoseEvent]:
        since = since or datetime.now(timezone.utc) - timedelta(days=DOSE_HISTORY_DAYS)
        rows = self._db.connection.execute(
            """SELECT schedule_id, taken_at FROM medication_logs
               WHERE patient_id = ? AND taken_at >= ? ORDER BY taken_at""",
            (patient_id, self._to_utc_iso(since)),
        ).fetchall()
        return [
            MedicationDoseEvent(schedule_id=row["schedule_id"], taken_at=parse_timestamp(row["taken_at"]))
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Snapshot assembly
    # ------------------------------------------------------------------

    def get_snapshot(self, patient_id: int) -> PatientSnapshot | None:
        """Assemble the full scoring input for a patient, or None if unknown."""
        row = self._db.connection.execute(
            "SELECT id, identity_enc, telemetry_enc FROM patients WHERE id = ?",
            (patient_id,),
        ).fetchone()
        if row is None:
            return None

        identity = self._enc.decrypt(row["identity_enc"]) or {}
        return PatientSnapshot(
            id=row["id"],
            name=identity.get("name", ""),
            age=identity.get("age"),
            condition=identity.get("condition", ""),
            city=identity.get("city", ""),
            country=identity.get("country", ""),
            measurements=tuple(self.get_measurements(patient_id)),
            telemetry=Telemetry.from_dict(self._enc.decrypt(row["telemetry_enc"])),
            medications=tuple(self.get_medications(patient_id)),
            dose_events=tuple(self.get_dose_events(patient_id)),
        )

    # ------------------------------------------------------------------
    # Key rotation
    # ------------------------------------------------------------------

    def rotate_encryption(self) -> int:
        """Re-encrypt every encrypted field under the primary key.

        Returns:
            The number of rows rewritten.
        """
        conn = self._db.connection
        count = 0
        for row in conn.execute("SELECT id, identity_enc, telemetry_enc FROM patients").fetchall():
            conn.execute(
                "UPDATE patients SET identity_enc = ?, telemetry_enc = ? WHERE id = ?",
                (self._enc.rotate(row["identity_enc"]), self._enc.rotate(row["telemetry_enc"]), row["id"]),
            )
            count += 1
        for row in conn.execute("SELECT id, name_enc, dosage_enc FROM medications").fetchall():
            conn.execute(
                "UPDATE medications SET name_enc = ?, dosage_enc = ? WHERE id = ?",
                (self._enc.rotate(row["name_enc"]), self._enc.rotate(row["dosage_enc"]), row["id"]),
            )
            count += 1
        conn.commit()
        logger.info("Rotated encryption for %d rows", count)
        return count
