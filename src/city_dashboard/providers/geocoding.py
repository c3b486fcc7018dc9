"""Geocoding client backed by the Google Geocoding API."""

import logging
from typing import Any, Dict, Optional

import httpx

from city_dashboard.config import GOOGLE_MAPS_API_KEY, GOOGLE_MAPS_BASE_URL
from city_dashboard.providers.base import ProviderClient
from city_dashboard.providers.errors import ProviderRejection

logger = logging.getLogger(__name__)


class GoogleGeocodingClient(ProviderClient):
    """Async client for forward and reverse geocoding."""

    name = "Google Geocoding"

    def __init__(
        self,
        api_key: str = GOOGLE_MAPS_API_KEY,
        base_url: str = GOOGLE_MAPS_BASE_URL,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(base_url, api_key, client=client)

    async def forward_geocode(self, address: str) -> Dict[str, Any]:
        """Convert an address to its best geocoding result.

        Args:
            address: Free-text address or city name

        Returns:
            The first result, with ``formatted_address`` and
            ``geometry.location.{lat,lng}``

        Raises:
            TransportError: If the request fails
            ProviderRejection: If status is not OK or there are no results
        """
        logger.info(f"Geocoding address: {address}")
        result = await self._geocode({"address": address}, address)
        logger.info(f"Successfully geocoded '{address}' to {result.get('formatted_address')}")
        return result

    async def reverse_geocode(self, lat: float, lon: float) -> Dict[str, Any]:
        """Convert coordinates to their best geocoding result.

        Args:
            lat: Latitude
            lon: Longitude

        Returns:
            The first result

        Raises:
            TransportError: If the request fails
            ProviderRejection: If status is not OK or there are no results
        """
        # Round coordinates
        lat_rounded = round(lat, 4)
        lon_rounded = round(lon, 4)

        logger.info(f"Reverse geocoding coordinates: ({lat_rounded}, {lon_rounded})")
        return await self._geocode(
            {"latlng": f"{lat_rounded},{lon_rounded}"},
            f"({lat_rounded}, {lon_rounded})"
        )

    async def _geocode(self, query: Dict[str, str], label: str) -> Dict[str, Any]:
        data = await self._request("GET", "/geocode/json", params={**query, "key": self.api_key})

        status = data.get("status")
        results = data.get("results") or []
        if status != "OK" or not results:
            logger.warning(f"Geocoding failed for {label}: {status}")
            raise ProviderRejection(f"Geocoding failed with status {status}")

        return results[0]
