"""HTTP clients for the primary and fallback air quality APIs."""

import logging
from typing import Any, Dict, Optional

import httpx

from city_dashboard.config import (
    GOOGLE_AIR_QUALITY_API_KEY, GOOGLE_AIR_QUALITY_BASE_URL,
    OPENWEATHER_API_KEY, OPENWEATHER_BASE_URL
)
from city_dashboard.providers.base import ProviderClient
from city_dashboard.providers.errors import ProviderRejection

logger = logging.getLogger(__name__)


class GoogleAirQualityClient(ProviderClient):
    """Async client for the Google Air Quality current conditions lookup."""

    name = "Google Air Quality"

    def __init__(
        self,
        api_key: str = GOOGLE_AIR_QUALITY_API_KEY,
        base_url: str = GOOGLE_AIR_QUALITY_BASE_URL,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(base_url, api_key, client=client)

    async def lookup(self, lat: float, lon: float) -> Dict[str, Any]:
        """Look up current index-based air quality.

        Args:
            lat: Latitude in decimal degrees
            lon: Longitude in decimal degrees

        Returns:
            Raw payload with a non-empty ``indexes`` list

        Raises:
            TransportError: If the request fails
            ProviderRejection: If ``indexes`` is missing or empty
        """
        logger.info(f"Fetching Google air quality for ({lat}, {lon})")
        payload = {"location": {"latitude": lat, "longitude": lon}}
        data = await self._request(
            "POST",
            "/currentConditions:lookup",
            params={"key": self.api_key},
            json=payload
        )

        indexes = data.get("indexes")
        if not isinstance(indexes, list) or not indexes:
            logger.warning(f"No air quality indexes for ({lat}, {lon})")
            raise ProviderRejection("Air quality response contained no indexes")

        logger.info(f"Successfully fetched {len(indexes)} air quality indexes")
        return data


class OpenWeatherAirPollutionClient(ProviderClient):
    """Async client for the OpenWeatherMap air pollution API."""

    name = "OpenWeather Air Pollution"

    def __init__(
        self,
        api_key: str = OPENWEATHER_API_KEY,
        base_url: str = OPENWEATHER_BASE_URL,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(base_url, api_key, client=client)

    async def fetch(self, lat: float, lon: float) -> Dict[str, Any]:
        """Fetch component-based air pollution data.

        Args:
            lat: Latitude in decimal degrees
            lon: Longitude in decimal degrees

        Returns:
            The first entry of the ``list`` array

        Raises:
            TransportError: If the request fails
            ProviderRejection: If ``list`` is missing or empty
        """
        logger.info(f"Fetching OpenWeather air pollution for ({lat}, {lon})")
        data = await self._request(
            "GET",
            "/air_pollution",
            params={"lat": lat, "lon": lon, "appid": self.api_key}
        )

        entries = data.get("list")
        if not isinstance(entries, list) or not entries:
            logger.warning(f"No air pollution data for ({lat}, {lon})")
            raise ProviderRejection("Air pollution response contained no data")

        return entries[0]
