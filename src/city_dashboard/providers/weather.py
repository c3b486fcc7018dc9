"""HTTP client for the OpenWeatherMap current weather API."""

import logging
from typing import Any, Dict, Optional

import httpx

from city_dashboard.config import OPENWEATHER_API_KEY, OPENWEATHER_BASE_URL
from city_dashboard.providers.base import ProviderClient
from city_dashboard.providers.errors import ProviderRejection

logger = logging.getLogger(__name__)


class OpenWeatherClient(ProviderClient):
    """Async client for current weather by city name or coordinates."""

    name = "OpenWeather"

    def __init__(
        self,
        api_key: str = OPENWEATHER_API_KEY,
        base_url: str = OPENWEATHER_BASE_URL,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(base_url, api_key, client=client)

    async def fetch_current(
        self,
        *,
        city: Optional[str] = None,
        lat: Optional[float] = None,
        lon: Optional[float] = None
    ) -> Dict[str, Any]:
        """Fetch current weather.

        Coordinates are used when both are given, otherwise the city name.

        Args:
            city: City name
            lat: Latitude in decimal degrees
            lon: Longitude in decimal degrees

        Returns:
            Raw weather payload

        Raises:
            ValueError: If neither a city nor both coordinates are provided
            TransportError: If the request fails
            ProviderRejection: If the payload's ``cod`` is not 200
        """
        params: Dict[str, Any] = {"appid": self.api_key, "units": "metric"}
        if lat is not None and lon is not None:
            params.update(lat=lat, lon=lon)
            target = f"({lat}, {lon})"
        elif city:
            params["q"] = city
            target = city
        else:
            raise ValueError("Must provide either city name or coordinates")

        logger.info(f"Fetching weather for {target}")
        data = await self._request("GET", "/weather", params=params)

        # cod is an int on success but a string on most error payloads
        if str(data.get("cod")) != "200":
            message = data.get("message") or "city not found"
            logger.error(f"Weather API error for {target}: {message}")
            raise ProviderRejection(f"Weather API error: {message}")

        logger.info(f"Successfully fetched weather for {data.get('name', target)}")
        return data
