"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """COPD Watch server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Server
    # Loopback by default: patient data must not reach the LAN by accident.
    copd_host: str = "127.0.0.1"
    copd_port: int = 8001
    copd_log_level: str = "info"
    # Binding to a non-loopback host is refused unless this is set (no auth layer).
    copd_allow_insecure_bind: bool = False

    # Inner LLM (narrative enrichment)
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    enrichment_timeout_seconds: float = 30.0

    # Weather (OpenWeatherMap)
    openweather_api_key: str = ""
    openweather_base_url: str = "https://api.openweathermap.org"
    weather_cache_ttl_seconds: int = 3600
    weather_timeout_seconds: float = 10.0

    # Patient data
    data_source: Literal["mock", "stored"] = "mock"
    db_path: str = "~/.copdwatch/patients.db"
    # One Fernet key, or several comma-separated (first encrypts, all decrypt).
    encryption_key: str = ""

    # Localisation
    default_locale: Literal["en", "fr", "ar"] = "en"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
