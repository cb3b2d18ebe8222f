"""Shared test fixtures for COPD Watch tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("OPENWEATHER_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DATA_SOURCE", "mock")
    monkeypatch.setenv("DEFAULT_LOCALE", "en")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from copdwatch.domains.copd.domain_logic.patient_models import (  # noqa: E402
    Measurement,
    PatientSnapshot,
    Telemetry,
)

# Wednesday 14:30 UTC; far enough into the day that morning doses are due.
FIXED_NOW = datetime(2026, 3, 4, 14, 30, tzinfo=timezone.utc)


def make_telemetry(**sections) -> Telemetry:
    """Telemetry with no risk rule firing, overridden per section.

    ``make_telemetry(activity={"steps": 1000})`` replaces only the given keys.
    """
    base = {
        "activity": {"steps": 6000, "active_minutes": 45},
        "sleep": {"total_sleep_hours": 7.5, "sleep_efficiency": 88, "sleep_position": "lateral"},
        "cough": {"cough_frequency_per_hour": 2, "night_cough_episodes": 1},
        "environment": {
            "air_quality_index": 30,
            "home_time_percent": 60,
            "travel_radius_km": 5,
            "weather": {"temperature_c": 18, "humidity_percent": 55},
        },
        "reported": {
            "symptoms": {"breathlessness": 2, "fatigue": 2, "cough": 2},
            "medication_adherence_percent": 100,
            "quality_of_life_cat": 8,
        },
    }
    for section, values in sections.items():
        if section == "environment" and "weather" in values:
            values = {**values, "weather": {**base["environment"]["weather"], **values["weather"]}}
        base[section] = {**base[section], **values}
    return Telemetry.from_dict(base)


def make_snapshot(
    patient_id: int = 1,
    *,
    spo2: float | None = 97,
    heart_rate: float = 72,
    telemetry: Telemetry | None = None,
    **fields,
) -> PatientSnapshot:
    """A low-risk patient with one fresh oximeter reading (or none if spo2 is None)."""
    measurements = ()
    if spo2 is not None:
        measurements = (Measurement(timestamp=FIXED_NOW, spo2=spo2, heart_rate=heart_rate),)
    defaults = dict(
        id=patient_id,
        name=f"Patient {patient_id}",
        age=70,
        condition="COPD",
        city="Paris",
        country="FR",
        measurements=measurements,
        telemetry=telemetry or make_telemetry(),
    )
    defaults.update(fields)
    return PatientSnapshot(**defaults)


class FixedRandom:
    """Random source returning the same value forever."""

    def __init__(self, value: float = 0.5) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def patient_db():
    """Create an in-memory PatientDatabase for testing."""
    from copdwatch.core.storage.database import PatientDatabase

    db = PatientDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def fernet_key() -> str:
    from cryptography.fernet import Fernet

    return Fernet.generate_key().decode()


@pytest.fixture
def field_encryptor(fernet_key: str):
    """Create a FieldEncryptor with a test key."""
    from copdwatch.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(fernet_key)


@pytest.fixture
def patient_repository(patient_db, field_encryptor):
    """Create a PatientRepository backed by in-memory SQLite."""
    from copdwatch.core.storage.repository import PatientRepository

    return PatientRepository(patient_db, field_encryptor)
