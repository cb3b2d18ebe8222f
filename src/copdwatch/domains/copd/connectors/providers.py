"""Concrete PatientDataProvider implementations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from copdwatch.core.storage.repository import PatientRepository
from copdwatch.domains.copd.connectors.mock_data import get_mock_patient, mock_patient_ids
from copdwatch.domains.copd.domain_logic.patient_models import PatientSnapshot

logger = logging.getLogger(__name__)


class MockPatientProvider:
    """Serves the built-in demonstration roster. Always available."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_snapshot(self, patient_id: int) -> PatientSnapshot | None:
        record = get_mock_patient(patient_id, self._clock())
        if record is None:
            return None
        return PatientSnapshot.from_dict(record)

    async def list_snapshots(self) -> list[PatientSnapshot]:
        now = self._clock()
        return [
            PatientSnapshot.from_dict(get_mock_patient(pid, now))  # type: ignore[arg-type]
            for pid in mock_patient_ids()
        ]

    @property
    def data_source(self) -> str:
        return "mock"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": (
                "Using simulated demonstration patients. "
                "Configure the encrypted store for real monitoring data."
            ),
        }


class StoredPatientProvider:
    """Reads patients from the encrypted patient store."""

    def __init__(self, repository: PatientRepository) -> None:
        self._repo = repository

    async def get_snapshot(self, patient_id: int) -> PatientSnapshot | None:
        return self._repo.get_snapshot(patient_id)

    async def list_snapshots(self) -> list[PatientSnapshot]:
        snapshots = []
        for patient_id in self._repo.list_patient_ids():
            snapshot = self._repo.get_snapshot(patient_id)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    @property
    def data_source(self) -> str:
        return "stored"

    def get_provenance(self) -> dict[str, Any]:
        count = self._repo.count_patients()
        return {
            "data_source": self.data_source,
            "data_source_note": f"Encrypted patient store ({count} patients enrolled).",
        }
