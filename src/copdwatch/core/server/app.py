"""COPD Watch MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery (`fastmcp run ...app.py:mcp`)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from fastmcp import FastMCP

from copdwatch.core.config.settings import get_settings
from copdwatch.core.llm.client import ClinicalLLMClient
from copdwatch.core.llm.provider import LLMProvider, create_provider
from copdwatch.core.storage.database import DatabaseError, PatientDatabase
from copdwatch.core.storage.encryption import EncryptionError, FieldEncryptor
from copdwatch.core.storage.repository import PatientRepository
from copdwatch.core.weather.client import OpenWeatherClient
from copdwatch.domains.copd.connectors import PatientDataProvider, WeatherLookup
from copdwatch.domains.copd.connectors.providers import MockPatientProvider, StoredPatientProvider
from copdwatch.domains.copd.domain_logic.alerts import RandomSource
from copdwatch.domains.copd.enrichment.narrative import NarrativeEnricher
from copdwatch.domains.copd.enrichment.prompts import default_catalog
from copdwatch.domains.copd.services.prediction_coordinator import PredictionCoordinator
from copdwatch.domains.copd.tools.prediction_tools import register_prediction_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "COPD Watch"
SERVER_VERSION = "0.1.0"


def _select_llm_provider(settings) -> LLMProvider:
    if settings.llm_provider == "mock":
        provider_name = "mock"
        api_key = ""
        model = ""
    elif settings.llm_provider == "anthropic":
        api_key = settings.anthropic_api_key
        model = settings.anthropic_model
        provider_name = "anthropic" if api_key else "mock"
    elif settings.llm_provider == "openai":
        api_key = settings.openai_api_key
        model = settings.openai_model
        provider_name = "openai" if api_key else "mock"
    else:  # pragma: no cover
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

    if provider_name == "mock" and settings.llm_provider != "mock":
        logger.warning(
            "No API key configured for provider '%s'; falling back to mock provider",
            settings.llm_provider,
        )

    return create_provider(provider_name=provider_name, api_key=api_key, model=model)


def create_app(
    *,
    patient_provider_override: PatientDataProvider | None = None,
    llm_provider_override: LLMProvider | None = None,
    weather_override: WeatherLookup | None = None,
    repository_override: PatientRepository | None = None,
    rng: RandomSource | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastMCP:
    """Create and configure the COPD Watch MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Creates the inner LLM client and narrative enricher
    3. Initializes the encrypted patient store (when ENCRYPTION_KEY is set)
    4. Selects the patient data provider (stored or mock)
    5. Configures weather lookups (when OPENWEATHER_API_KEY is set)
    6. Creates the prediction coordinator
    7. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "COPD remote monitoring server. Scores exacerbation risk from oximeter "
            "readings and smartphone telemetry, raises ward alerts, and runs a live "
            "monitoring session that combines the deterministic risk score with an "
            "AI-written clinical narrative and local weather."
        ),
    )

    # --- Initialize inner LLM ---
    llm_provider = llm_provider_override or _select_llm_provider(settings)
    catalog = default_catalog()
    enricher = NarrativeEnricher(ClinicalLLMClient(provider=llm_provider), catalog)

    # --- Initialize encrypted storage ---
    repository: PatientRepository | None = None
    if repository_override is not None:
        repository = repository_override
    elif settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            patient_db = PatientDatabase(settings.db_path)
            patient_db.initialize()
            repository = PatientRepository(patient_db, encryptor)
            logger.info(
                "Patient store initialized: %s (schema v%d)",
                settings.db_path,
                patient_db.get_schema_version(),
            )
        except (EncryptionError, DatabaseError) as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence; patient data entry is disabled")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured; running without persistence. "
            "Set ENCRYPTION_KEY to enable the encrypted patient store."
        )

    # --- Initialize patient data provider ---
    if patient_provider_override is not None:
        patient_provider = patient_provider_override
    elif settings.data_source == "stored" and repository is not None:
        patient_provider = StoredPatientProvider(repository)
        logger.info("Using stored patient data provider")
    else:
        if settings.data_source == "stored":
            logger.warning("DATA_SOURCE=stored requires ENCRYPTION_KEY; using mock patients")
        patient_provider = MockPatientProvider(clock=clock)
        logger.info("Using mock patient data provider")

    # --- Initialize weather ---
    weather: WeatherLookup | None
    if weather_override is not None:
        weather = weather_override
    elif settings.openweather_api_key:
        weather = OpenWeatherClient(
            settings.openweather_api_key,
            base_url=settings.openweather_base_url,
            cache_ttl=settings.weather_cache_ttl_seconds,
            timeout=settings.weather_timeout_seconds,
        )
        logger.info("Weather lookups enabled (%s)", settings.openweather_base_url)
    else:
        weather = None
        logger.info("No OPENWEATHER_API_KEY configured; predictions use stored environment data")

    # --- Prediction coordinator ---
    coordinator = PredictionCoordinator(
        patient_provider,
        enricher,
        weather=weather,
        rng=rng,
        clock=clock,
        enrichment_timeout=settings.enrichment_timeout_seconds,
        fallbacks=catalog,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "data_source": patient_provider.data_source,
            "llm_provider": type(llm_provider).__name__,
            "weather_enabled": weather is not None,
            "storage_enabled": repository is not None,
            "monitoring_patient_id": coordinator.active_patient_id,
        }
        if repository is not None:
            status["patients_stored"] = repository.count_patients()
        return status

    register_prediction_tools(
        server,
        coordinator,
        patient_provider,
        enricher,
        weather,
        clock=clock,
        default_locale=settings.default_locale,
    )
    logger.info("Prediction tools registered")

    # --- Register patient data entry tools (requires storage) ---
    if repository is not None:
        from copdwatch.domains.copd.tools.patient_tools import register_patient_tools

        register_patient_tools(server, repository)
        logger.info("Patient data entry tools registered")

    return server


# Module-level instance for FastMCP discovery (`fastmcp run src/copdwatch/core/server/app.py:mcp`).
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
