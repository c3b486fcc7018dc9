"""Shared async HTTP plumbing for provider clients."""

import logging
from typing import Any, Dict, Optional

import httpx

from city_dashboard.config import HTTP_TIMEOUT_SECONDS, USER_AGENT
from city_dashboard.providers.errors import FormatError, TransportError

logger = logging.getLogger(__name__)


class ProviderClient:
    """Base async client for a single third-party API.

    Subclasses set ``name`` and build requests with ``_request``, which maps
    httpx failures and non-2xx responses to ``TransportError`` and non-JSON
    bodies to ``FormatError``.
    """

    name = "provider"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS
    ):
        """Initialize the provider client.

        Args:
            base_url: Base URL of the provider API
            api_key: API key sent as a query parameter
            client: Optional preconfigured httpx client (used by tests)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=timeout
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            TransportError: On network errors and non-2xx status codes
            FormatError: If the body is not a JSON object
        """
        url = f"{self.base_url}{path}"

        try:
            response = await self.client.request(method, url, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"HTTP error from {self.name}: {status} - {e.response.text[:200]}")
            raise TransportError(f"{self.name} returned HTTP {status}", status_code=status) from e
        except httpx.RequestError as e:
            logger.error(f"Request error to {self.name}: {type(e).__name__}: {e}")
            raise TransportError(f"{self.name} request failed: {type(e).__name__}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Non-JSON response from {self.name}: {response.text[:200]}")
            raise FormatError(f"{self.name} returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise FormatError(f"{self.name} returned {type(data).__name__}, expected an object")

        return data

    async def aclose(self):
        """Close the async HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()
