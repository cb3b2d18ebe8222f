"""Risk, alert and prediction result models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

RiskLevel = Literal["Low", "Medium", "High"]
Severity = Literal["low", "medium", "high"]
AnomalyType = Literal[
    "vital_sign_anomaly",
    "mobility_decline",
    "sleep_disruption",
    "cough_increase",
]
DashboardAlertType = Literal["high_risk", "declining_trend", "missed_measurement"]

SEVERITY_ORDER: dict[str, int] = {"high": 1, "medium": 2, "low": 3}


# ---------------------------------------------------------------------------
# Risk scoring
# ---------------------------------------------------------------------------

@dataclass
class TierBreakdown:
    """Points contributed by each scoring tier, with the rules that fired."""

    critical: float = 0.0
    important: float = 0.0
    secondary: float = 0.0
    adherence_percent: int = 100
    fired_rules: list[str] = field(default_factory=list)

    @property
    def total(self) -> float:
        return self.critical + self.important + self.secondary


@dataclass
class RiskAssessment:
    score: int  # 0-100
    level: RiskLevel
    breakdown: TierBreakdown = field(default_factory=TierBreakdown)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level,
            "breakdown": {
                "critical": self.breakdown.critical,
                "important": self.breakdown.important,
                "secondary": self.breakdown.secondary,
                "adherence_percent": self.breakdown.adherence_percent,
                "fired_rules": list(self.breakdown.fired_rules),
            },
        }


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

@dataclass
class AnomalyAlert:
    """A currently-true anomaly for the monitored patient (regenerated each cycle)."""

    id: str
    type: AnomalyType
    severity: Severity
    description: str
    timestamp: datetime
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class DashboardAlert:
    """A ward-level alert shown on the doctor's patient list."""

    id: str
    patient_id: int
    patient_name: str
    type: DashboardAlertType
    severity: Severity
    message: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


# ---------------------------------------------------------------------------
# Enrichment results
# ---------------------------------------------------------------------------

@dataclass
class FactorAnalysis:
    name: str
    impact: Severity
    description: str


@dataclass
class NarrativeAnalysis:
    """What the narrative collaborator returns for one prediction cycle."""

    summary: str
    contributing_factors: list[FactorAnalysis] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class WeatherReport:
    location: str
    condition: str
    temperature_c: float
    humidity_percent: float
    wind_speed_kmh: float
    air_quality_index: float
    pollen_level: Literal["Low", "Medium", "High", "Very High"] = "Low"
    uv_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class WeatherImpact:
    impact_level: RiskLevel
    summary: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Composite prediction
# ---------------------------------------------------------------------------

@dataclass
class ActivityPoint:
    time: str  # "HH:MM"
    steps: int
    active_minutes: int


@dataclass
class HeatmapDay:
    day_label: str
    activity_level: Severity
    grid: list[list[float]]


@dataclass
class CompletePrediction:
    """Composite result of one refresh cycle. Replaces the previous one wholesale."""

    patient_id: int
    risk_score: int
    risk_level: RiskLevel
    confidence: int
    time_horizon_hours: int
    summary: str
    contributing_factors: list[FactorAnalysis]
    alerts: list[AnomalyAlert]
    recommendations: list[str]
    activity_series: list[ActivityPoint]
    heatmap_series: list[HeatmapDay]
    last_update: datetime
    weather: WeatherReport | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "confidence": self.confidence,
            "time_horizon_hours": self.time_horizon_hours,
            "summary": self.summary,
            "contributing_factors": [asdict(f) for f in self.contributing_factors],
            "alerts": [a.to_dict() for a in self.alerts],
            "recommendations": list(self.recommendations),
            "activity_series": [asdict(p) for p in self.activity_series],
            "heatmap_series": [asdict(d) for d in self.heatmap_series],
            "last_update": self.last_update.isoformat(),
            "weather": self.weather.to_dict() if self.weather else None,
            "error": self.error,
        }
