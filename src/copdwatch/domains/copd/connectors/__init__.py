"""Collaborator contracts for the prediction coordinator.

The coordinator only talks to these protocols. Whether patients come from
the encrypted store or the demo roster, and whether narratives come from a
real LLM or a stub, is decided in the application factory.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from copdwatch.domains.copd.domain_logic.patient_models import PatientSnapshot
from copdwatch.domains.copd.domain_logic.prediction_models import (
    NarrativeAnalysis,
    RiskLevel,
    WeatherReport,
)


@runtime_checkable
class PatientDataProvider(Protocol):
    """Source of truth for patient telemetry."""

    async def get_snapshot(self, patient_id: int) -> PatientSnapshot | None:
        """Return the patient's current snapshot, or None if unknown."""
        ...

    async def list_snapshots(self) -> list[PatientSnapshot]:
        """Snapshots for every monitored patient."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active data source: 'stored' or 'mock'."""
        ...

    def get_provenance(self) -> dict[str, Any]:
        """Data source label plus a human-readable note for tool output."""
        ...


@runtime_checkable
class NarrativeEnrichment(Protocol):
    """Opaque, slow and fallible narrative generator."""

    async def analyze(
        self,
        snapshot: PatientSnapshot,
        score: int,
        level: RiskLevel,
        locale: str = "en",
        *,
        adherence: int | None = None,
    ) -> NarrativeAnalysis:
        ...


@runtime_checkable
class WeatherLookup(Protocol):
    """Current weather and air quality for a location."""

    async def get_weather(self, city: str, country: str, locale: str = "en") -> WeatherReport:
        ...
