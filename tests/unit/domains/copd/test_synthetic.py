"""Tests for the synthetic activity and heatmap series."""

from __future__ import annotations

import random

from conftest import FIXED_NOW, FixedRandom

from copdwatch.domains.copd.domain_logic.synthetic import (
    HEATMAP_COLS,
    HEATMAP_ROWS,
    SyntheticSeriesGenerator,
    day_labels,
)


class TestActivitySeries:
    def test_24_hourly_points_ending_now(self):
        series = SyntheticSeriesGenerator(FixedRandom(0.5)).activity_series(FIXED_NOW)
        assert len(series) == 24
        assert series[-1].time == "14:30"
        assert series[0].time == "15:30"

    def test_daytime_is_busier_than_night(self):
        series = SyntheticSeriesGenerator(FixedRandom(0.5)).activity_series(FIXED_NOW)
        by_time = {p.time: p for p in series}
        assert by_time["14:30"].steps == 250
        assert by_time["14:30"].active_minutes == 5
        assert by_time["03:30"].steps == 25
        assert by_time["03:30"].active_minutes == 1


class TestHeatmap:
    def test_grid_shape_and_values(self):
        grid = SyntheticSeriesGenerator(random.Random(3)).heatmap_grid("high")
        assert len(grid) == HEATMAP_ROWS
        assert all(len(row) == HEATMAP_COLS for row in grid)
        cells = [v for row in grid for v in row]
        assert all(0.0 <= v < 1.0 for v in cells)
        assert sum(1 for v in cells if v > 0) <= 25

    def test_low_density_is_sparse(self):
        grid = SyntheticSeriesGenerator(random.Random(3)).heatmap_grid("low")
        assert sum(1 for row in grid for v in row if v > 0) <= 8

    def test_series_follows_risk_trend(self):
        generator = SyntheticSeriesGenerator(random.Random(1))
        assert [d.activity_level for d in generator.heatmap_series("High")] == ["medium", "low", "low"]
        assert [d.activity_level for d in generator.heatmap_series("Medium")] == ["high", "medium", "low"]
        assert [d.activity_level for d in generator.heatmap_series("Low")] == ["medium", "high", "high"]

    def test_series_uses_given_labels_oldest_first(self):
        series = SyntheticSeriesGenerator(random.Random(1)).heatmap_series("Low", day_labels("fr"))
        assert [d.day_label for d in series] == ["Avant-hier", "Hier", "Aujourd'hui"]

    def test_default_labels_are_english(self):
        series = SyntheticSeriesGenerator(random.Random(1)).heatmap_series("Low")
        assert series[-1].day_label == "Today"


class TestDayLabels:
    def test_unknown_locale_falls_back_to_english(self):
        assert day_labels("de") == day_labels("en")

    def test_arabic(self):
        assert day_labels("ar")[1] == "أمس"
