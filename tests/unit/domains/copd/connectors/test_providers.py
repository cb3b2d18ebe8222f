"""Tests for the mock roster and the patient data providers."""

from __future__ import annotations

import asyncio
import random

from conftest import FIXED_NOW

from copdwatch.domains.copd.connectors import PatientDataProvider
from copdwatch.domains.copd.connectors.mock_data import (
    default_telemetry,
    generate_dose_log,
    generate_measurements,
    get_mock_patient,
    get_mock_patients,
    mock_patient_ids,
)
from copdwatch.domains.copd.connectors.providers import MockPatientProvider, StoredPatientProvider
from copdwatch.domains.copd.domain_logic.patient_models import PatientSnapshot
from copdwatch.domains.copd.domain_logic.risk_scorer import score_patient


def _run(coro):
    """Run an async function synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestMockRoster:
    def test_three_patients(self):
        assert mock_patient_ids() == [1, 2, 3]
        assert [p["name"] for p in get_mock_patients(FIXED_NOW)] == [
            "Jean Dupont",
            "Marie Lambert",
            "Pierre Martin",
        ]

    def test_unknown_patient(self):
        assert get_mock_patient(42, FIXED_NOW) is None

    def test_same_patient_is_reproducible(self):
        assert get_mock_patient(1, FIXED_NOW) == get_mock_patient(1, FIXED_NOW)

    def test_records_are_independent_copies(self):
        first = get_mock_patient(1, FIXED_NOW)
        first["telemetry"]["activity"]["steps"] = 99999
        first["medications"][0]["name"] = "changed"
        second = get_mock_patient(1, FIXED_NOW)
        assert second["telemetry"]["activity"]["steps"] == 1200
        assert second["medications"][0]["name"] == "Spiriva Respimat"

    def test_severe_patient_scores_high(self):
        snapshot = PatientSnapshot.from_dict(get_mock_patient(1, FIXED_NOW))
        assert score_patient(snapshot, now=FIXED_NOW).level == "High"

    def test_recovering_patient_scores_low(self):
        snapshot = PatientSnapshot.from_dict(get_mock_patient(3, FIXED_NOW))
        assert score_patient(snapshot, now=FIXED_NOW).level == "Low"

    def test_default_telemetry_reads_as_inactive(self):
        # No steps, no sleep and no travel recorded yet: 12 + 5 + 5 + 15
        snapshot = PatientSnapshot.from_dict({"id": 9, "telemetry": default_telemetry()})
        assert score_patient(snapshot, now=FIXED_NOW).score == 37


class TestGenerators:
    def test_measurements_span_four_hours(self):
        readings = generate_measurements(95, 80, "stable", FIXED_NOW, random.Random(1))
        assert len(readings) == 60
        assert readings[0]["timestamp"] == "2026-03-04T10:30:00+00:00"
        assert readings[-1]["timestamp"] == "2026-03-04T14:26:00+00:00"

    def test_measurements_stay_in_range(self):
        for trend in ("down", "up", "stable"):
            readings = generate_measurements(89, 112, trend, FIXED_NOW, random.Random(7))
            assert all(88 <= r["spo2"] <= 99 for r in readings)
            assert all(55 <= r["heart_rate"] <= 115 for r in readings)

    def test_down_trend_drifts_lower(self):
        readings = generate_measurements(96, 80, "down", FIXED_NOW, random.Random(2))
        first, last = readings[:10], readings[-10:]
        assert sum(r["spo2"] for r in last) < sum(r["spo2"] for r in first)
        assert sum(r["heart_rate"] for r in last) > sum(r["heart_rate"] for r in first)

    def test_dose_log_skips_as_needed_and_future_doses(self):
        medications = [
            {"id": 1, "name": "A", "schedules": [{"id": 1, "time_of_day": "Evening (21:00)"}]},
            {"id": 2, "name": "B", "schedules": [{"id": 2, "time_of_day": "As needed", "as_needed": True}]},
        ]
        events = generate_dose_log(medications, {}, FIXED_NOW, random.Random(1))
        assert len(events) == 6
        assert {e["schedule_id"] for e in events} == {1}

    def test_dose_log_misses_doses(self):
        medications = [{"id": 1, "name": "A", "schedules": [{"id": 1, "time_of_day": "08:00"}]}]
        assert generate_dose_log(medications, {"A": 1.0}, FIXED_NOW, random.Random(1)) == []


class TestMockPatientProvider:
    def test_satisfies_protocol(self):
        assert isinstance(MockPatientProvider(), PatientDataProvider)

    def test_get_snapshot(self):
        provider = MockPatientProvider(clock=lambda: FIXED_NOW)
        snapshot = _run(provider.get_snapshot(1))
        assert snapshot.name == "Jean Dupont"
        assert len(snapshot.measurements) == 60
        assert snapshot.measurements[0].timestamp < snapshot.measurements[-1].timestamp
        assert {e.schedule_id for e in snapshot.dose_events} <= {1, 2, 3}

    def test_unknown_patient(self):
        assert _run(MockPatientProvider().get_snapshot(404)) is None

    def test_list_snapshots(self):
        snapshots = _run(MockPatientProvider(clock=lambda: FIXED_NOW).list_snapshots())
        assert [s.id for s in snapshots] == [1, 2, 3]

    def test_provenance(self):
        provenance = MockPatientProvider().get_provenance()
        assert provenance["data_source"] == "mock"
        assert "simulated" in provenance["data_source_note"]


class TestStoredPatientProvider:
    def test_reads_from_repository(self, patient_repository):
        patient_id = patient_repository.add_patient("Anne Roux", age=70, city="Nice", country="FR")
        patient_repository.add_measurement(patient_id, spo2=93, heart_rate=88)
        provider = StoredPatientProvider(patient_repository)

        snapshot = _run(provider.get_snapshot(patient_id))
        assert snapshot.name == "Anne Roux"
        assert snapshot.latest_measurement.spo2 == 93
        assert provider.data_source == "stored"

    def test_unknown_patient(self, patient_repository):
        assert _run(StoredPatientProvider(patient_repository).get_snapshot(5)) is None

    def test_list_snapshots(self, patient_repository):
        patient_repository.add_patient("A")
        patient_repository.add_patient("B")
        provider = StoredPatientProvider(patient_repository)
        assert [s.name for s in _run(provider.list_snapshots())] == ["A", "B"]
        assert "2 patients" in provider.get_provenance()["data_source_note"]
