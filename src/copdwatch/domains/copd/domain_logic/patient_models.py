"""Patient snapshot models: vitals, smartphone telemetry and medications.

A ``PatientSnapshot`` is the read-only input to risk scoring. Every
``from_dict`` tolerates missing keys and falls back to the neutral defaults
used for a freshly enrolled patient, so scoring never fails on partial data.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from copdwatch.domains.copd.domain_logic.prediction_models import WeatherReport

SleepPosition = Literal["supine", "lateral", "prone", "sitting"]
CoughPattern = Literal["dry", "productive", "wheezing"]

SLEEP_POSITIONS = ("supine", "lateral", "prone", "sitting")
COUGH_PATTERNS = ("dry", "productive", "wheezing")


def _num(val: Any, default: float = 0.0) -> float:
    """Safely convert to float, returning default for None or non-numeric."""
    if val is None:
        return default
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


def _choice(val: Any, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(val, str) and val.lower() in allowed:
        return val.lower()
    return default


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO 8601 string (or pass a datetime through) as an aware datetime.

    Naive values are assumed to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Vitals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Measurement:
    """A single oximeter reading."""

    timestamp: datetime
    spo2: float
    heart_rate: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Measurement:
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            spo2=_num(data.get("spo2")),
            heart_rate=_num(data.get("heart_rate")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "spo2": self.spo2,
            "heart_rate": self.heart_rate,
        }


# ---------------------------------------------------------------------------
# Smartphone telemetry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ActivityData:
    steps: float = 0
    sedentary_minutes: float = 0
    active_minutes: float = 0
    distance_km: float = 0
    floors_climbed: float = 0
    movement_speed_kmh: float = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ActivityData:
        data = data or {}
        return cls(
            steps=_num(data.get("steps")),
            sedentary_minutes=_num(data.get("sedentary_minutes")),
            active_minutes=_num(data.get("active_minutes")),
            distance_km=_num(data.get("distance_km")),
            floors_climbed=_num(data.get("floors_climbed")),
            movement_speed_kmh=_num(data.get("movement_speed_kmh")),
        )


@dataclass(frozen=True)
class SleepData:
    total_sleep_hours: float = 0
    sleep_efficiency: float = 0  # 0-100
    awake_minutes: float = 0
    deep_sleep_minutes: float = 0
    rem_sleep_minutes: float = 0
    night_movements: float = 0
    sleep_position: SleepPosition = "lateral"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SleepData:
        data = data or {}
        return cls(
            total_sleep_hours=_num(data.get("total_sleep_hours")),
            sleep_efficiency=_num(data.get("sleep_efficiency")),
            awake_minutes=_num(data.get("awake_minutes")),
            deep_sleep_minutes=_num(data.get("deep_sleep_minutes")),
            rem_sleep_minutes=_num(data.get("rem_sleep_minutes")),
            night_movements=_num(data.get("night_movements")),
            sleep_position=_choice(data.get("sleep_position"), SLEEP_POSITIONS, "lateral"),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class CoughData:
    cough_frequency_per_hour: float = 0
    night_cough_episodes: float = 0
    cough_pattern: CoughPattern = "dry"
    cough_intensity_db: float = 0
    respiratory_rate: float = 16

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CoughData:
        data = data or {}
        return cls(
            cough_frequency_per_hour=_num(data.get("cough_frequency_per_hour")),
            night_cough_episodes=_num(data.get("night_cough_episodes")),
            cough_pattern=_choice(data.get("cough_pattern"), COUGH_PATTERNS, "dry"),  # type: ignore[arg-type]
            cough_intensity_db=_num(data.get("cough_intensity_db")),
            respiratory_rate=_num(data.get("respiratory_rate"), default=16),
        )


@dataclass(frozen=True)
class WeatherConditions:
    temperature_c: float = 20
    humidity_percent: float = 50


@dataclass(frozen=True)
class EnvironmentData:
    air_quality_index: float = 50
    home_time_percent: float = 0
    travel_radius_km: float = 0
    weather: WeatherConditions = field(default_factory=WeatherConditions)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EnvironmentData:
        data = data or {}
        weather = data.get("weather") or {}
        return cls(
            air_quality_index=_num(data.get("air_quality_index"), default=50),
            home_time_percent=_num(data.get("home_time_percent")),
            travel_radius_km=_num(data.get("travel_radius_km")),
            weather=WeatherConditions(
                temperature_c=_num(weather.get("temperature_c"), default=20),
                humidity_percent=_num(weather.get("humidity_percent"), default=50),
            ),
        )


@dataclass(frozen=True)
class SymptomScores:
    breathlessness: float = 0  # 0-10
    fatigue: float = 0  # 0-10
    cough: float = 0  # 0-10


@dataclass(frozen=True)
class SmokingData:
    cigarettes_today: float = 0
    cravings_today: float = 0
    days_smoke_free: float = 0


@dataclass(frozen=True)
class ReportedData:
    """Patient-reported outcomes."""

    symptoms: SymptomScores = field(default_factory=SymptomScores)
    medication_adherence_percent: float = 100
    quality_of_life_cat: float = 0  # COPD Assessment Test, 0-40
    smoking: SmokingData = field(default_factory=SmokingData)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ReportedData:
        data = data or {}
        symptoms = data.get("symptoms") or {}
        smoking = data.get("smoking") or {}
        return cls(
            symptoms=SymptomScores(
                breathlessness=_num(symptoms.get("breathlessness")),
                fatigue=_num(symptoms.get("fatigue")),
                cough=_num(symptoms.get("cough")),
            ),
            medication_adherence_percent=_num(
                data.get("medication_adherence_percent"), default=100
            ),
            quality_of_life_cat=_num(data.get("quality_of_life_cat")),
            smoking=SmokingData(
                cigarettes_today=_num(smoking.get("cigarettes_today")),
                cravings_today=_num(smoking.get("cravings_today")),
                days_smoke_free=_num(smoking.get("days_smoke_free")),
            ),
        )


@dataclass(frozen=True)
class Telemetry:
    """Smartphone-sensed and patient-reported signals."""

    activity: ActivityData = field(default_factory=ActivityData)
    sleep: SleepData = field(default_factory=SleepData)
    cough: CoughData = field(default_factory=CoughData)
    environment: EnvironmentData = field(default_factory=EnvironmentData)
    reported: ReportedData = field(default_factory=ReportedData)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Telemetry:
        data = data or {}
        return cls(
            activity=ActivityData.from_dict(data.get("activity")),
            sleep=SleepData.from_dict(data.get("sleep")),
            cough=CoughData.from_dict(data.get("cough")),
            environment=EnvironmentData.from_dict(data.get("environment")),
            reported=ReportedData.from_dict(data.get("reported")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MedicationSchedule:
    id: int
    time_of_day: str  # "HH:MM" or descriptive, e.g. "Morning (09:00)"
    as_needed: bool = False


@dataclass(frozen=True)
class Medication:
    id: int
    name: str
    dosage: str = ""
    active: bool = True
    schedules: tuple[MedicationSchedule, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Medication:
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            dosage=data.get("dosage", ""),
            active=bool(data.get("active", True)),
            schedules=tuple(
                MedicationSchedule(
                    id=int(s["id"]),
                    time_of_day=s.get("time_of_day", ""),
                    as_needed=bool(s.get("as_needed", False)),
                )
                for s in data.get("schedules", [])
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MedicationDoseEvent:
    schedule_id: int
    taken_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "taken_at", parse_timestamp(self.taken_at))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MedicationDoseEvent:
        return cls(
            schedule_id=int(data["schedule_id"]),
            taken_at=parse_timestamp(data["taken_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"schedule_id": self.schedule_id, "taken_at": self.taken_at.isoformat()}


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatientSnapshot:
    """Everything known about one patient at a point in time."""

    id: int
    name: str = ""
    age: int | None = None
    condition: str = ""
    city: str = ""
    country: str = ""
    measurements: tuple[Measurement, ...] = ()  # oldest first
    telemetry: Telemetry = field(default_factory=Telemetry)
    medications: tuple[Medication, ...] = ()
    dose_events: tuple[MedicationDoseEvent, ...] = ()

    @property
    def latest_measurement(self) -> Measurement | None:
        return self.measurements[-1] if self.measurements else None

    @property
    def has_location(self) -> bool:
        return bool(self.city and self.country)

    def with_weather(self, report: WeatherReport) -> PatientSnapshot:
        """Return a copy whose environment reflects a live weather lookup."""
        env = self.telemetry.environment
        environment = replace(
            env,
            air_quality_index=report.air_quality_index,
            weather=WeatherConditions(
                temperature_c=report.temperature_c,
                humidity_percent=report.humidity_percent,
            ),
        )
        return replace(self, telemetry=replace(self.telemetry, environment=environment))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatientSnapshot:
        measurements = sorted(
            (Measurement.from_dict(m) for m in data.get("measurements", [])),
            key=lambda m: m.timestamp,
        )
        age = data.get("age")
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            age=int(age) if age is not None else None,
            condition=data.get("condition", ""),
            city=data.get("city", "") or "",
            country=data.get("country", "") or "",
            measurements=tuple(measurements),
            telemetry=Telemetry.from_dict(data.get("telemetry")),
            medications=tuple(Medication.from_dict(m) for m in data.get("medications", [])),
            dose_events=tuple(
                MedicationDoseEvent.from_dict(e) for e in data.get("dose_events", [])
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "condition": self.condition,
            "city": self.city,
            "country": self.country,
            "measurements": [m.to_dict() for m in self.measurements],
            "telemetry": self.telemetry.to_dict(),
            "medications": [m.to_dict() for m in self.medications],
            "dose_events": [e.to_dict() for e in self.dose_events],
        }
