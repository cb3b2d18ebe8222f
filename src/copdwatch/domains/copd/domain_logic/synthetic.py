"""Synthetic supporting visualisations for the prediction view.

The hourly activity series and positional heatmaps are filler with no real
sensor behind them. They live here, apart from the scoring code, so a real
data source can replace them without touching the risk scorer.
"""

from __future__ import annotations

import math
import random
from datetime import datetime, timedelta

from copdwatch.domains.copd.domain_logic.alerts import RandomSource
from copdwatch.domains.copd.domain_logic.numeric import round_half_up
from copdwatch.domains.copd.domain_logic.prediction_models import (
    ActivityPoint,
    HeatmapDay,
    RiskLevel,
    Severity,
)

HEATMAP_ROWS = 8
HEATMAP_COLS = 12

# Risk level -> activity density for (day-2, day-1, today), oldest first.
TREND_PATTERNS: dict[str, tuple[Severity, Severity, Severity]] = {
    "High": ("medium", "low", "low"),  # worsening
    "Medium": ("high", "medium", "low"),  # sharp decline
    "Low": ("medium", "high", "high"),  # stable / improving
}

# (base points, random extra points) per density
_DENSITY: dict[str, tuple[int, int]] = {
    "high": (15, 10),
    "medium": (8, 7),
    "low": (3, 5),
}

DAY_LABELS: dict[str, tuple[str, str, str]] = {
    "en": ("2 days ago", "Yesterday", "Today"),
    "fr": ("Avant-hier", "Hier", "Aujourd'hui"),
    "ar": ("قبل يومين", "أمس", "اليوم"),
}


def day_labels(locale: str) -> tuple[str, str, str]:
    return DAY_LABELS.get(locale, DAY_LABELS["en"])


class SyntheticSeriesGenerator:
    """Random activity and heatmap series, driven by an injectable random source."""

    def __init__(self, rng: RandomSource | None = None) -> None:
        self._rng = rng or random.Random()

    def _below(self, n: int) -> int:
        return math.floor(self._rng.random() * n)

    def activity_series(self, now: datetime) -> list[ActivityPoint]:
        """24 hourly points ending at ``now``, busier between 07:00 and 21:00."""
        points: list[ActivityPoint] = []
        for hours_ago in range(23, -1, -1):
            at = now - timedelta(hours=hours_ago)
            if 7 < at.hour < 21:
                steps = self._rng.random() * 500
                active = self._rng.random() * 10
            else:
                steps = self._rng.random() * 50
                active = self._rng.random() * 2
            points.append(
                ActivityPoint(
                    time=at.strftime("%H:%M"),
                    steps=round_half_up(steps),
                    active_minutes=round_half_up(active),
                )
            )
        return points

    def heatmap_grid(
        self,
        activity_level: Severity = "medium",
        rows: int = HEATMAP_ROWS,
        cols: int = HEATMAP_COLS,
    ) -> list[list[float]]:
        grid = [[0.0] * cols for _ in range(rows)]
        base, extra = _DENSITY[activity_level]
        for _ in range(base + self._below(extra)):
            r = self._below(rows)
            c = self._below(cols)
            grid[r][c] = self._rng.random()
        return grid

    def heatmap_series(
        self, level: RiskLevel, labels: tuple[str, str, str] | None = None
    ) -> list[HeatmapDay]:
        """Three days of positional heatmaps, oldest first, shaped by the risk level."""
        labels = labels or DAY_LABELS["en"]
        return [
            HeatmapDay(day_label=label, activity_level=density, grid=self.heatmap_grid(density))
            for label, density in zip(labels, TREND_PATTERNS[level])
        ]
