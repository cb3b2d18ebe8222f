"""Weather and air quality lookups (OpenWeatherMap).

Lookups geocode the patient's city, then fetch current weather and air
pollution concurrently. OpenWeatherMap's 1-5 air quality index is mapped onto
a 0-250 scale so it can be compared with the AQI thresholds used in scoring.
Pollen and UV are not available on the free tier and are simulated.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from typing import Any

import httpx

from copdwatch.domains.copd.domain_logic.alerts import RandomSource
from copdwatch.domains.copd.domain_logic.numeric import round_half_up
from copdwatch.domains.copd.domain_logic.prediction_models import WeatherReport

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openweathermap.org"
DEFAULT_CACHE_TTL_SECONDS = 3600

# OpenWeatherMap AQI 1 (good) .. 5 (very poor) -> 0-250 scale; index 0 = unknown
AQI_SCALE = (0, 25, 75, 125, 175, 250)
POLLEN_LEVELS = ("Low", "Medium", "High", "Very High")
MAX_SIMULATED_UV = 7


class WeatherError(Exception):
    """Base class for weather lookup failures."""


class WeatherConfigError(WeatherError):
    """Raised when the weather client is not configured (no API key)."""


class WeatherLookupError(WeatherError):
    """Raised when a location cannot be resolved or an API call fails."""


def map_air_quality(owm_aqi: Any) -> int:
    try:
        index = int(owm_aqi)
    except (TypeError, ValueError):
        return 0
    return AQI_SCALE[index] if 0 <= index < len(AQI_SCALE) else 0


def capitalize_words(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


class OpenWeatherClient:
    """Implements ``WeatherLookup`` against the OpenWeatherMap REST API.

    Results are cached per ``city,country,locale`` for ``cache_ttl`` seconds.

    Usage::

        client = OpenWeatherClient(api_key="...")
        report = await client.get_weather("Paris", "FR", locale="fr")
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        cache_ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
        rng: RandomSource | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._cache_ttl = cache_ttl
        self._timeout = timeout
        self._http_client = http_client
        self._rng = rng or random.Random()
        self._clock = clock
        self._cache: dict[str, tuple[float, WeatherReport]] = {}

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def get_weather(self, city: str, country: str, locale: str = "en") -> WeatherReport:
        if not city or not country:
            raise WeatherLookupError("City and country are required for a weather lookup")
        if not self._api_key:
            raise WeatherConfigError("OpenWeatherMap API key is not configured")

        cache_key = f"{city},{country},{locale}".lower()
        cached = self._cache.get(cache_key)
        if cached is not None and self._clock() - cached[0] < self._cache_ttl:
            logger.debug("Weather cache hit for %s", cache_key)
            return cached[1]

        logger.debug("Weather cache miss for %s", cache_key)
        if self._http_client is not None:
            report = await self._fetch(self._http_client, city, country, locale)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                report = await self._fetch(client, city, country, locale)

        self._cache[cache_key] = (self._clock(), report)
        return report

    async def _get_json(
        self, client: httpx.AsyncClient, path: str, params: dict[str, Any]
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = await client.get(url, params={**params, "appid": self._api_key})
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise WeatherLookupError(
                f"OpenWeatherMap {path} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise WeatherLookupError(f"OpenWeatherMap {path} request failed: {exc}") from exc
        except ValueError as exc:
            raise WeatherLookupError(f"OpenWeatherMap {path} returned invalid JSON") from exc

    async def _fetch(
        self, client: httpx.AsyncClient, city: str, country: str, locale: str
    ) -> WeatherReport:
        places = await self._get_json(
            client, "/geo/1.0/direct", {"q": f"{city},{country}", "limit": 1}
        )
        if not places:
            raise WeatherLookupError(f"City not found: {city}, {country}")
        lat, lon = places[0]["lat"], places[0]["lon"]

        weather, pollution = await asyncio.gather(
            self._get_json(
                client,
                "/data/2.5/weather",
                {"lat": lat, "lon": lon, "units": "metric", "lang": locale},
            ),
            self._get_json(client, "/data/2.5/air_pollution", {"lat": lat, "lon": lon}),
        )

        main = weather.get("main") or {}
        description = ((weather.get("weather") or [{}])[0]).get("description") or "N/A"
        pollution_list = pollution.get("list") or [{}]
        owm_aqi = (pollution_list[0].get("main") or {}).get("aqi")

        report = WeatherReport(
            location=f"{city}, {country}",
            condition=capitalize_words(description),
            temperature_c=round_half_up(main.get("temp") or 0),
            humidity_percent=main.get("humidity") or 0,
            wind_speed_kmh=round_half_up(((weather.get("wind") or {}).get("speed") or 0) * 3.6),
            air_quality_index=map_air_quality(owm_aqi),
            pollen_level=POLLEN_LEVELS[int(self._rng.random() * len(POLLEN_LEVELS))],  # type: ignore[arg-type]
            uv_index=int(self._rng.random() * (MAX_SIMULATED_UV + 1)),
        )
        logger.info(
            "Weather for %s: %s, %s°C, AQI %s",
            report.location,
            report.condition,
            report.temperature_c,
            report.air_quality_index,
        )
        return report


class StaticWeatherProvider:
    """Returns a fixed report for every location (offline mode and tests)."""

    def __init__(self, report: WeatherReport | None = None) -> None:
        self.report = report
        self.calls: list[tuple[str, str, str]] = []

    async def get_weather(self, city: str, country: str, locale: str = "en") -> WeatherReport:
        self.calls.append((city, country, locale))
        if self.report is not None:
            return self.report
        return WeatherReport(
            location=f"{city}, {country}",
            condition="Clear Sky",
            temperature_c=20,
            humidity_percent=50,
            wind_speed_kmh=10,
            air_quality_index=25,
        )
