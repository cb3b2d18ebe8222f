"""Tests for LLM narrative enrichment and the prompt catalog."""

from __future__ import annotations

import asyncio
import json

import pytest
from conftest import make_snapshot

from copdwatch.core.llm.client import ClinicalLLMClient
from copdwatch.core.llm.providers.mock import MockProvider
from copdwatch.domains.copd.domain_logic.prediction_models import WeatherReport
from copdwatch.domains.copd.enrichment.narrative import NarrativeEnricher, is_quota_error
from copdwatch.domains.copd.enrichment.prompts import (
    PromptCatalog,
    PromptCatalogError,
    default_catalog,
)


def _run(coro):
    """Run an async function synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _enricher(provider: MockProvider) -> NarrativeEnricher:
    return NarrativeEnricher(ClinicalLLMClient(provider))


WEATHER = WeatherReport(
    location="Lyon, FR",
    condition="Light Rain",
    temperature_c=4,
    humidity_percent=88,
    wind_speed_kmh=18,
    air_quality_index=75,
    pollen_level="Medium",
    uv_index=2,
)


class _QuotaError(Exception):
    status_code = 429


class TestPromptCatalog:
    def test_packaged_catalog_loads(self):
        catalog = default_catalog()
        assert catalog.language("fr") == "French"
        assert catalog.level_name("fr", "High") == "Élevé"
        assert catalog.level_name("ar", "Low") == "منخفض"

    def test_unknown_locale_uses_english(self):
        catalog = default_catalog()
        assert catalog.language("de") == "English"
        fallback = catalog.fallback_narrative("de", "oops")
        assert fallback.summary == "The AI analysis could not be completed."

    def test_unknown_error_key_uses_generic_message(self):
        catalog = default_catalog()
        assert catalog.error_message("nope") == catalog.error_message("prediction_failed")

    def test_fallback_weather_impact(self):
        impact = default_catalog().fallback_weather_impact("fr", "down")
        assert impact.impact_level == "Medium"
        assert impact.summary == "Analyse IA indisponible."
        assert impact.error == "down"

    def test_malformed_catalog_raises(self):
        with pytest.raises(PromptCatalogError, match="Malformed"):
            PromptCatalog.from_dict({"prediction": {}})

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(PromptCatalogError, match="Cannot read"):
            PromptCatalog.load(tmp_path / "missing.yaml")

    def test_non_mapping_file_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(PromptCatalogError, match="not a mapping"):
            PromptCatalog.load(path)


class TestQuotaDetection:
    def test_status_code(self):
        assert is_quota_error(_QuotaError("too many"))

    def test_message_markers(self):
        assert is_quota_error(RuntimeError("429 RESOURCE_EXHAUSTED"))
        assert is_quota_error(RuntimeError("Error code: insufficient_quota"))

    def test_other_errors(self):
        assert not is_quota_error(RuntimeError("connection reset"))


class TestAnalyze:
    def test_mock_response_is_parsed(self):
        provider = MockProvider()
        result = _run(_enricher(provider).analyze(make_snapshot(spo2=91), 42, "Medium", "en"))
        assert result.error is None
        assert result.summary.startswith("Simulated analysis")
        assert result.contributing_factors[0].impact == "medium"
        assert len(result.recommendations) == 1
        assert provider.call_count == 1

    def test_prompt_carries_patient_data_and_language(self):
        provider = MockProvider()
        _run(_enricher(provider).analyze(make_snapshot(spo2=91, heart_rate=95), 64, "High", "fr"))
        prompt = provider.last_user_message
        assert "SpO2=91%" in prompt
        assert "HR=95 bpm" in prompt
        assert "Risk score: 64/100 (level: Élevé)" in prompt
        assert "Write every text field in French." in prompt
        assert "COPD" in provider.last_system_message

    def test_prompt_uses_scored_adherence(self):
        provider = MockProvider()
        _run(_enricher(provider).analyze(make_snapshot(), 10, "Low", adherence=63))
        assert "Medication adherence (7 days): 63%" in provider.last_user_message

    def test_missing_measurements_render_na(self):
        provider = MockProvider()
        _run(_enricher(provider).analyze(make_snapshot(spo2=None), 0, "Low"))
        assert "SpO2=N/A" in provider.last_user_message

    def test_factors_and_recommendations_are_capped(self):
        payload = {
            "summary": "Worsening.",
            "contributingFactors": [
                {"name": f"F{i}", "impact": "élevé", "description": "d"} for i in range(5)
            ] + [{"impact": "low"}],
            "recommendations": ["a", "b", "c", "d", ""],
        }
        provider = MockProvider(json.dumps(payload))
        result = _run(_enricher(provider).analyze(make_snapshot(), 70, "High"))
        assert [f.name for f in result.contributing_factors] == ["F0", "F1", "F2"]
        assert all(f.impact == "high" for f in result.contributing_factors)
        assert result.recommendations == ["a", "b", "c"]

    def test_fenced_json_is_accepted(self):
        content = '```json\n{"summary": "ok", "contributingFactors": [], "recommendations": []}\n```'
        result = _run(_enricher(MockProvider(content)).analyze(make_snapshot(), 10, "Low"))
        assert result.summary == "ok"
        assert result.error is None

    def test_invalid_json_falls_back(self):
        result = _run(_enricher(MockProvider("not json")).analyze(make_snapshot(), 10, "Low"))
        assert result.error == default_catalog().error_message("prediction_failed")
        assert result.contributing_factors[0].name == "AI Analysis Error"

    def test_missing_keys_fall_back(self):
        content = json.dumps({"summary": "partial"})
        result = _run(_enricher(MockProvider(content)).analyze(make_snapshot(), 10, "Low"))
        assert result.error is not None

    def test_blank_summary_falls_back(self):
        content = json.dumps({"summary": "  ", "contributingFactors": [], "recommendations": []})
        result = _run(_enricher(MockProvider(content)).analyze(make_snapshot(), 10, "Low", "ar"))
        assert result.error is not None
        assert result.summary == "لم يتمكن تحليل الذكاء الاصطناعي من الاكتمال."

    def test_quota_error_message(self):
        provider = MockProvider(error=_QuotaError("rate limited"))
        result = _run(_enricher(provider).analyze(make_snapshot(), 10, "Low"))
        assert result.error == default_catalog().error_message("quota")

    def test_provider_error_message(self):
        provider = MockProvider(error=ConnectionError("reset"))
        result = _run(_enricher(provider).analyze(make_snapshot(), 10, "Low"))
        assert result.error == default_catalog().error_message("prediction_failed")


class TestWeatherImpact:
    def test_impact_is_normalized(self):
        content = json.dumps({"impactLevel": "élevé", "summary": " Cold and humid air. "})
        provider = MockProvider(content)
        impact = _run(_enricher(provider).analyze_weather_impact(make_snapshot(), WEATHER, "fr"))
        assert impact.impact_level == "High"
        assert impact.summary == "Cold and humid air."
        assert impact.error is None
        assert "Weather in Lyon, FR: Light Rain, 4 °C" in provider.last_user_message
        assert "pollen Medium, UV index 2" in provider.last_user_message

    def test_failure_falls_back(self):
        provider = MockProvider(error=RuntimeError("boom"))
        impact = _run(_enricher(provider).analyze_weather_impact(make_snapshot(), WEATHER, "en"))
        assert impact.impact_level == "Medium"
        assert impact.summary == "AI analysis unavailable."
        assert impact.error == default_catalog().error_message("weather_failed")

    def test_quota_failure_reports_quota(self):
        provider = MockProvider(error=RuntimeError("insufficient_quota"))
        impact = _run(_enricher(provider).analyze_weather_impact(make_snapshot(), WEATHER))
        assert impact.error == default_catalog().error_message("quota")
