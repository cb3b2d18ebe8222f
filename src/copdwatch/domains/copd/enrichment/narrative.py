"""LLM-backed narrative enrichment for predictions and weather impact.

Both analyses are best effort: any failure (provider error, quota, invalid
JSON) yields the locale's fallback text with ``error`` set, never an
exception.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from copdwatch.core.llm.client import ClinicalLLMClient, LLMResponseError
from copdwatch.core.llm.response import normalize_impact
from copdwatch.domains.copd.domain_logic.adherence import patient_adherence
from copdwatch.domains.copd.domain_logic.alerts import spo2_direction
from copdwatch.domains.copd.domain_logic.patient_models import PatientSnapshot
from copdwatch.domains.copd.domain_logic.prediction_models import (
    FactorAnalysis,
    NarrativeAnalysis,
    RiskLevel,
    WeatherImpact,
    WeatherReport,
)
from copdwatch.domains.copd.enrichment.prompts import PromptCatalog, default_catalog

logger = logging.getLogger(__name__)

PREDICTION_KEYS = ("summary", "contributingFactors", "recommendations")
WEATHER_KEYS = ("impactLevel", "summary")
MAX_FACTORS = 3
MAX_RECOMMENDATIONS = 3


def is_quota_error(exc: BaseException) -> bool:
    """True for provider errors that mean the API quota or rate limit is exhausted."""
    if getattr(exc, "status_code", None) == 429 or getattr(exc, "code", None) == 429:
        return True
    text = str(exc)
    return "RESOURCE_EXHAUSTED" in text or "insufficient_quota" in text


def _fmt(value: Any) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _parse_factors(raw: Any) -> list[FactorAnalysis]:
    factors = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        factors.append(
            FactorAnalysis(
                name=str(item["name"]),
                impact=normalize_impact(item.get("impact")),  # type: ignore[arg-type]
                description=str(item.get("description", "")),
            )
        )
    return factors[:MAX_FACTORS]


class NarrativeEnricher:
    """Implements ``NarrativeEnrichment`` on top of the inner LLM client."""

    def __init__(
        self,
        llm_client: ClinicalLLMClient,
        catalog: PromptCatalog | None = None,
    ) -> None:
        self._llm = llm_client
        self._catalog = catalog or default_catalog()

    def _failure_message(self, exc: BaseException, failed_key: str) -> str:
        if is_quota_error(exc):
            return self._catalog.error_message("quota")
        return self._catalog.error_message(failed_key)

    # ------------------------------------------------------------------
    # Prediction narrative
    # ------------------------------------------------------------------

    def build_prediction_prompt(
        self,
        snapshot: PatientSnapshot,
        score: int,
        level: RiskLevel,
        locale: str,
        adherence: int | None = None,
    ) -> str:
        if adherence is None:
            adherence = patient_adherence(snapshot, datetime.now(timezone.utc))
        telemetry = snapshot.telemetry
        latest = snapshot.latest_measurement
        environment = telemetry.environment
        return self._catalog.render_prediction(
            age=_fmt(snapshot.age),
            condition=snapshot.condition or "COPD",
            spo2=f"{latest.spo2:g}%" if latest else "N/A",
            heart_rate=f"{latest.heart_rate:g} bpm" if latest else "N/A",
            spo2_trend=spo2_direction(snapshot.measurements).replace("_", " "),
            steps=_fmt(telemetry.activity.steps),
            travel_radius_km=_fmt(environment.travel_radius_km),
            home_time_percent=_fmt(environment.home_time_percent),
            sleep_hours=_fmt(telemetry.sleep.total_sleep_hours),
            sleep_efficiency=_fmt(telemetry.sleep.sleep_efficiency),
            sleep_position=telemetry.sleep.sleep_position,
            cough_per_hour=_fmt(telemetry.cough.cough_frequency_per_hour),
            night_cough=_fmt(telemetry.cough.night_cough_episodes),
            cough_pattern=telemetry.cough.cough_pattern,
            breathlessness=_fmt(telemetry.reported.symptoms.breathlessness),
            cat_score=_fmt(telemetry.reported.quality_of_life_cat),
            adherence=adherence,
            aqi=_fmt(environment.air_quality_index),
            temperature_c=_fmt(environment.weather.temperature_c),
            humidity_percent=_fmt(environment.weather.humidity_percent),
            score=score,
            level_name=self._catalog.level_name(locale, level),
            language=self._catalog.language(locale),
        )

    async def analyze(
        self,
        snapshot: PatientSnapshot,
        score: int,
        level: RiskLevel,
        locale: str = "en",
        *,
        adherence: int | None = None,
    ) -> NarrativeAnalysis:
        """Ask the inner LLM for a summary, contributing factors and recommendations.

        ``adherence`` is the percentage the score was computed with; when omitted
        it is recomputed from the dose log as of now.
        """
        prompt = self.build_prediction_prompt(snapshot, score, level, locale, adherence)
        try:
            response = await self._llm.generate_json(
                self._catalog.prediction_instructions,
                prompt,
                required_keys=PREDICTION_KEYS,
            )
        except LLMResponseError as exc:
            logger.warning("Unusable prediction narrative for patient %s: %s", snapshot.id, exc)
            return self._catalog.fallback_narrative(
                locale, self._catalog.error_message("prediction_failed")
            )
        except Exception as exc:
            logger.exception("Prediction narrative failed for patient %s", snapshot.id)
            return self._catalog.fallback_narrative(
                locale, self._failure_message(exc, "prediction_failed")
            )

        data = response.data
        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            logger.warning("Prediction narrative for patient %s has no summary", snapshot.id)
            return self._catalog.fallback_narrative(
                locale, self._catalog.error_message("prediction_failed")
            )

        recommendations = data.get("recommendations")
        return NarrativeAnalysis(
            summary=summary.strip(),
            contributing_factors=_parse_factors(data.get("contributingFactors")),
            recommendations=[
                str(r) for r in (recommendations if isinstance(recommendations, list) else [])
                if str(r).strip()
            ][:MAX_RECOMMENDATIONS],
        )

    # ------------------------------------------------------------------
    # Weather impact
    # ------------------------------------------------------------------

    async def analyze_weather_impact(
        self,
        snapshot: PatientSnapshot,
        weather: WeatherReport,
        locale: str = "en",
    ) -> WeatherImpact:
        """Short assessment of how the current weather may affect this patient."""
        prompt = self._catalog.render_weather(
            condition=snapshot.condition or "COPD",
            age=_fmt(snapshot.age),
            location=weather.location,
            condition_text=weather.condition,
            temperature_c=_fmt(weather.temperature_c),
            humidity_percent=_fmt(weather.humidity_percent),
            wind_speed_kmh=_fmt(weather.wind_speed_kmh),
            aqi=_fmt(weather.air_quality_index),
            pollen_level=weather.pollen_level,
            uv_index=weather.uv_index,
            language=self._catalog.language(locale),
        )
        try:
            response = await self._llm.generate_json(
                self._catalog.weather_instructions,
                prompt,
                required_keys=WEATHER_KEYS,
                max_tokens=512,
            )
        except LLMResponseError as exc:
            logger.warning("Unusable weather impact for patient %s: %s", snapshot.id, exc)
            return self._catalog.fallback_weather_impact(
                locale, self._catalog.error_message("weather_failed")
            )
        except Exception as exc:
            logger.exception("Weather impact analysis failed for patient %s", snapshot.id)
            return self._catalog.fallback_weather_impact(
                locale, self._failure_message(exc, "weather_failed")
            )

        level = normalize_impact(response.data.get("impactLevel")).capitalize()
        return WeatherImpact(
            impact_level=level,  # type: ignore[arg-type]
            summary=str(response.data.get("summary", "")).strip(),
        )
