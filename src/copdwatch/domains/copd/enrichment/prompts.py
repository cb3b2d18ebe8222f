"""Prompt catalog loader: reads templates and locale fallbacks from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from copdwatch.domains.copd.domain_logic.prediction_models import (
    FactorAnalysis,
    NarrativeAnalysis,
    RiskLevel,
    WeatherImpact,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"
PROMPTS_FILE = Path(__file__).resolve().parent.parent / "prompts" / "prediction_prompts.yaml"


class PromptCatalogError(Exception):
    """Raised when the prompt catalog file is missing or malformed."""


@dataclass
class PromptCatalog:
    """Prompt templates, localized level names and degraded-mode texts."""

    prediction_instructions: str
    prediction_template: str
    weather_instructions: str
    weather_template: str
    languages: dict[str, str] = field(default_factory=dict)
    level_names: dict[str, dict[str, str]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    prediction_fallbacks: dict[str, dict[str, Any]] = field(default_factory=dict)
    weather_fallbacks: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PromptCatalog:
        try:
            fallbacks = data.get("fallbacks", {})
            return cls(
                prediction_instructions=data["prediction"]["instructions"].strip(),
                prediction_template=data["prediction"]["user_template"],
                weather_instructions=data["weather_impact"]["instructions"].strip(),
                weather_template=data["weather_impact"]["user_template"],
                languages=dict(data.get("languages", {})),
                level_names=dict(data.get("level_names", {})),
                errors=dict(data.get("errors", {})),
                prediction_fallbacks=dict(fallbacks.get("prediction", {})),
                weather_fallbacks=dict(fallbacks.get("weather_impact", {})),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise PromptCatalogError(f"Malformed prompt catalog: {exc}") from exc

    @classmethod
    def load(cls, path: str | Path = PROMPTS_FILE) -> PromptCatalog:
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise PromptCatalogError(f"Cannot read prompt catalog {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise PromptCatalogError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PromptCatalogError(f"Prompt catalog {path} is not a mapping")
        catalog = cls.from_dict(data)
        logger.info("Loaded prompt catalog v%s from %s", data.get("version", "?"), path)
        return catalog

    # ------------------------------------------------------------------
    # Localisation
    # ------------------------------------------------------------------

    def _locale(self, locale: str, table: dict[str, Any]) -> str:
        return locale if locale in table else DEFAULT_LOCALE

    def language(self, locale: str) -> str:
        return self.languages.get(self._locale(locale, self.languages), "English")

    def level_name(self, locale: str, level: RiskLevel) -> str:
        names = self.level_names.get(self._locale(locale, self.level_names), {})
        return names.get(level, level)

    def error_message(self, key: str) -> str:
        return self.errors.get(key, self.errors.get("prediction_failed", "AI analysis failed."))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_prediction(self, **fields: Any) -> str:
        return self.prediction_template.format(**fields)

    def render_weather(self, **fields: Any) -> str:
        return self.weather_template.format(**fields)

    # ------------------------------------------------------------------
    # Degraded results
    # ------------------------------------------------------------------

    def fallback_narrative(self, locale: str, error: str) -> NarrativeAnalysis:
        """Narrative shown when enrichment failed; ``error`` doubles as the factor text."""
        fallback = self.prediction_fallbacks.get(
            self._locale(locale, self.prediction_fallbacks), {}
        )
        return NarrativeAnalysis(
            summary=fallback.get("summary", "The AI analysis could not be completed."),
            contributing_factors=[
                FactorAnalysis(
                    name=fallback.get("factor_name", "AI Analysis Error"),
                    impact="high",
                    description=error,
                )
            ],
            recommendations=list(fallback.get("recommendations", [])),
            error=error,
        )

    def fallback_weather_impact(self, locale: str, error: str) -> WeatherImpact:
        summary = self.weather_fallbacks.get(
            self._locale(locale, self.weather_fallbacks), "AI analysis unavailable."
        )
        return WeatherImpact(impact_level="Medium", summary=summary, error=error)


@lru_cache(maxsize=1)
def default_catalog() -> PromptCatalog:
    """The packaged prompt catalog, loaded once."""
    return PromptCatalog.load(PROMPTS_FILE)
