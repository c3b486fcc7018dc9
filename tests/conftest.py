"""Shared test fixtures for the city dashboard."""

import os
from typing import Callable, List
from unittest.mock import AsyncMock

import httpx
import pytest

# Set test environment before any imports
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("OPENWEATHER_API_KEY", "test-openweather-key")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-maps-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")

from city_dashboard.dashboard.orchestrator import DashboardOrchestrator, NarrativeCandidate  # noqa: E402
from city_dashboard.dashboard.sink import DashboardState  # noqa: E402
from city_dashboard.providers.air_quality import (  # noqa: E402
    GoogleAirQualityClient, OpenWeatherAirPollutionClient
)
from city_dashboard.providers.geocoding import GoogleGeocodingClient  # noqa: E402
from city_dashboard.providers.narrative import GeminiClient  # noqa: E402
from city_dashboard.providers.weather import OpenWeatherClient  # noqa: E402


@pytest.fixture
def weather_payload() -> dict:
    """OpenWeather current weather response for Paris."""
    return {
        "coord": {"lon": 2.3488, "lat": 48.8534},
        "weather": [{"id": 800, "main": "Clear", "description": "clear sky", "icon": "01d"}],
        "main": {
            "temp": 18.6,
            "feels_like": 17.9,
            "temp_min": 16.2,
            "temp_max": 20.1,
            "pressure": 1016,
            "humidity": 58
        },
        "visibility": 10000,
        "wind": {"speed": 4.12, "deg": 250},
        "clouds": {"all": 0},
        "dt": 1760781600,
        "sys": {"country": "FR", "sunrise": 1760767860, "sunset": 1760806680},
        "timezone": 7200,
        "id": 2988507,
        "name": "Paris",
        "cod": 200
    }


@pytest.fixture
def not_found_payload() -> dict:
    """OpenWeather error body for an unknown city."""
    return {"cod": "404", "message": "city not found"}


@pytest.fixture
def google_air_quality_payload() -> dict:
    """Google Air Quality currentConditions response."""
    return {
        "dateTime": "2026-10-18T10:00:00Z",
        "regionCode": "fr",
        "indexes": [
            {
                "code": "uaqi",
                "displayName": "Universal AQI",
                "aqi": 42,
                "category": "Good air quality",
                "dominantPollutant": "o3"
            },
            {
                "code": "fra_atmo",
                "displayName": "ATMO (FR)",
                "aqi": 2,
                "category": "Fair air quality",
                "dominantPollutant": "pm10"
            }
        ],
        "pollutants": [
            {
                "code": "pm25",
                "displayName": "PM2.5",
                "concentration": {"value": 12.4, "units": "MICROGRAMS_PER_CUBIC_METER"}
            },
            {
                "code": "o3",
                "displayName": "O3",
                "concentration": {"value": 61.2, "units": "PARTS_PER_BILLION"}
            }
        ]
    }


@pytest.fixture
def air_pollution_entry() -> dict:
    """First entry of an OpenWeather air pollution response."""
    return {
        "main": {"aqi": 4},
        "components": {
            "co": 201.94,
            "no": 0.02,
            "no2": 0.77,
            "o3": 68.66,
            "so2": 0.64,
            "pm2_5": 120.5,
            "pm10": 55.1,
            "nh3": 0.12
        },
        "dt": 1760781600
    }


@pytest.fixture
def geocode_result() -> dict:
    """First result of a Google Geocoding response."""
    return {
        "formatted_address": "Paris, France",
        "geometry": {"location": {"lat": 48.856614, "lng": 2.3522219}},
        "place_id": "ChIJD7fiBh9u5kcRYJSMaMOCCwQ"
    }


@pytest.fixture
def gemini_payload() -> dict:
    """Gemini generateContent response."""
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": "**Paris**\nA great city.\n1. Museums"}], "role": "model"},
                "finishReason": "STOP"
            }
        ]
    }


@pytest.fixture
def mock_transport() -> Callable:
    """Build an httpx client whose requests are answered by a handler.

    Every request is appended to the returned client's ``sent`` list.
    """
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        sent: List[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        client.sent = sent
        return client

    return factory


@pytest.fixture
def clients(weather_payload, google_air_quality_payload, air_pollution_entry, geocode_result) -> dict:
    """Mocked provider clients that all succeed."""
    weather = AsyncMock(spec=OpenWeatherClient)
    weather.fetch_current.return_value = weather_payload

    air_quality = AsyncMock(spec=GoogleAirQualityClient)
    air_quality.lookup.return_value = google_air_quality_payload

    fallback = AsyncMock(spec=OpenWeatherAirPollutionClient)
    fallback.fetch.return_value = air_pollution_entry

    geocoding = AsyncMock(spec=GoogleGeocodingClient)
    geocoding.forward_geocode.return_value = geocode_result
    geocoding.reverse_geocode.return_value = {"formatted_address": "1er Arrondissement, Paris, France"}

    narrative = AsyncMock(spec=GeminiClient)
    narrative.generate.return_value = "Paris is the capital of France."

    return {
        "weather_client": weather,
        "air_quality_client": air_quality,
        "fallback_air_quality_client": fallback,
        "geocoding_client": geocoding,
        "narrative_client": narrative,
    }


@pytest.fixture
def sink() -> DashboardState:
    """Fresh in-memory display state."""
    return DashboardState()


@pytest.fixture
def make_orchestrator(clients, sink) -> Callable[..., DashboardOrchestrator]:
    """Build an orchestrator from the mocked clients, with overrides."""
    def factory(**overrides) -> DashboardOrchestrator:
        options = {
            **clients,
            "sink": sink,
            "narrative_candidates": [
                NarrativeCandidate("v1", "gemini-1.5-flash"),
                NarrativeCandidate("v1beta", "gemini-1.5-flash"),
            ],
            "stage_timeout": 5.0,
        }
        options.update(overrides)
        return DashboardOrchestrator(**options)

    return factory
