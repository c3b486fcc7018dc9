"""Conversion of raw provider payloads into dashboard snapshots."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from city_dashboard.dashboard.models import (
    AirQualityIndex, ChartSeries, ComponentAirQuality, Coordinates,
    IndexAirQuality, PollutantConcentration, PollutantRow, WeatherSnapshot
)
from city_dashboard.dashboard.severity import pollutant_status
from city_dashboard.providers.errors import FormatError

logger = logging.getLogger(__name__)

CONCENTRATION_UNIT = "μg/m³"
# Status of primary-provider pollutant rows, whose units vary (ppb, µg/m³)
PROVIDER_DATA_STATUS = "Google Data"

# Table names for the fallback provider's components
POLLUTANT_NAMES: Dict[str, str] = {
    "co": "Carbon Monoxide (CO)",
    "no": "Nitrogen Monoxide (NO)",
    "no2": "Nitrogen Dioxide (NO2)",
    "o3": "Ozone (O3)",
    "so2": "Sulphur Dioxide (SO2)",
    "pm2_5": "PM2.5",
    "pm10": "PM10",
    "nh3": "Ammonia (NH3)",
}

# Short chart labels for the fallback provider's components
POLLUTANT_LABELS: Dict[str, str] = {
    "co": "CO",
    "no": "NO",
    "no2": "NO₂",
    "o3": "O₃",
    "so2": "SO₂",
    "pm2_5": "PM2.5",
    "pm10": "PM10",
    "nh3": "NH₃",
}


def _timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def coordinates_from_geocode(result: Dict[str, Any]) -> Coordinates:
    """Extract coordinates from a geocoding result.

    Raises:
        FormatError: If the result has no usable location
    """
    try:
        location = result["geometry"]["location"]
        return Coordinates(lat=location["lat"], lon=location["lng"], source="geocoding")
    except (KeyError, TypeError, ValidationError) as e:
        raise FormatError(f"Geocoding result has no usable location: {e}") from e


def normalize_weather(data: Dict[str, Any]) -> WeatherSnapshot:
    """Build a weather snapshot from a raw OpenWeather payload.

    Raises:
        FormatError: If required fields are missing or invalid
    """
    try:
        main = data["main"]
        wind = data.get("wind") or {}
        sys = data.get("sys") or {}
        conditions = data.get("weather") or [{}]

        return WeatherSnapshot(
            name=data["name"],
            country=sys.get("country"),
            description=conditions[0].get("description", ""),
            temperature=main["temp"],
            feels_like=main["feels_like"],
            temp_min=main["temp_min"],
            temp_max=main["temp_max"],
            humidity=main["humidity"],
            pressure=main["pressure"],
            wind_speed=wind.get("speed", 0.0),
            wind_deg=wind.get("deg"),
            visibility=data.get("visibility"),
            cloudiness=(data.get("clouds") or {}).get("all", 0),
            sunrise=_timestamp(sys["sunrise"]),
            sunset=_timestamp(sys["sunset"]),
            timezone_offset=data.get("timezone", 0),
            coordinates=Coordinates(
                lat=data["coord"]["lat"],
                lon=data["coord"]["lon"],
                source="weather"
            )
        )
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        logger.error(f"Invalid weather payload: {e}")
        raise FormatError(f"Invalid weather payload: {e}") from e


def normalize_index_payload(data: Dict[str, Any]) -> IndexAirQuality:
    """Build an index-based snapshot from a primary provider payload.

    Raises:
        FormatError: If there are no usable indexes
    """
    try:
        indexes = [
            AirQualityIndex(
                code=index.get("code") or "aqi",
                display_name=index.get("displayName"),
                aqi=index["aqi"],
                category=index.get("category"),
                dominant_pollutant=index.get("dominantPollutant")
            )
            for index in data.get("indexes") or []
        ]
        pollutants = [
            PollutantConcentration(
                code=pollutant.get("code") or "",
                display_name=pollutant.get("displayName"),
                value=(pollutant.get("concentration") or {}).get("value"),
                units=(pollutant.get("concentration") or {}).get("units")
            )
            for pollutant in data.get("pollutants") or []
        ]
        return IndexAirQuality(indexes=indexes, pollutants=pollutants)
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        logger.error(f"Invalid air quality index payload: {e}")
        raise FormatError(f"Invalid air quality index payload: {e}") from e


def normalize_component_payload(data: Dict[str, Any]) -> ComponentAirQuality:
    """Build a component-based snapshot from a fallback provider entry.

    Accepts either a ``list`` entry (``{"main": {"aqi": 4}, "components": ...}``)
    or the bare ``{"aqi": 4}`` shape.

    Raises:
        FormatError: If the scale is missing
    """
    try:
        main = data.get("main")
        scale = main["aqi"] if isinstance(main, dict) else data["aqi"]
        return ComponentAirQuality(scale=scale, components=data.get("components") or {})
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        logger.error(f"Invalid air pollution payload: {e}")
        raise FormatError(f"Invalid air pollution payload: {e}") from e


def pollutant_rows(snapshot: Union[IndexAirQuality, ComponentAirQuality]) -> List[PollutantRow]:
    """Build the air quality table rows for a snapshot."""
    rows = []
    if isinstance(snapshot, IndexAirQuality):
        for index in snapshot.indexes:
            rows.append(PollutantRow(
                name=index.display_name or index.code,
                value=index.aqi,
                unit="AQI",
                status=index.category or "N/A",
                source=snapshot.source
            ))
        for pollutant in snapshot.pollutants:
            rows.append(PollutantRow(
                name=pollutant.display_name or pollutant.code,
                value=pollutant.value,
                unit=pollutant.units or "",
                status=PROVIDER_DATA_STATUS,
                source=snapshot.source
            ))
    else:
        for code, value in snapshot.components.items():
            rows.append(PollutantRow(
                name=POLLUTANT_NAMES.get(code, code.upper()),
                value=round(value, 2),
                unit=CONCENTRATION_UNIT,
                status=pollutant_status(value),
                source=snapshot.source
            ))
    return rows


def temperature_series(weather: WeatherSnapshot) -> ChartSeries:
    """Current, feels-like, min and max temperature in °C."""
    return ChartSeries(
        name="Temperature (°C)",
        labels=["Current", "Feels Like", "Min", "Max"],
        values=[
            round(weather.temperature),
            round(weather.feels_like),
            round(weather.temp_min),
            round(weather.temp_max)
        ]
    )


def _index_band(value: float) -> str:
    if value <= 50:
        return "good"
    if value <= 100:
        return "moderate"
    return "unhealthy"


def _concentration_band(value: float) -> str:
    if value < 50:
        return "good"
    if value < 100:
        return "moderate"
    return "unhealthy"


def air_quality_series(snapshot: Union[IndexAirQuality, ComponentAirQuality]) -> Optional[ChartSeries]:
    """Index values or component concentrations, with color bands."""
    if isinstance(snapshot, IndexAirQuality):
        labels = [index.display_name or index.code for index in snapshot.indexes]
        values = [index.aqi for index in snapshot.indexes]
        bands = [_index_band(value) for value in values]
    else:
        labels = [POLLUTANT_LABELS.get(code, code.upper()) for code in snapshot.components]
        values = list(snapshot.components.values())
        bands = [_concentration_band(value) for value in values]

    if not labels:
        return None

    return ChartSeries(name="Air Quality Levels", labels=labels, values=values, bands=bands)


def weather_metrics_series(weather: WeatherSnapshot) -> ChartSeries:
    """Weather metrics scaled to 0-100 with their real values as display text."""
    wind_kmh = weather.wind_speed * 3.6
    visibility_km = (weather.visibility or 0) / 1000

    return ChartSeries(
        name="Weather Metrics",
        labels=["Humidity", "Cloudiness", "Wind Speed", "Visibility", "Pressure"],
        values=[
            weather.humidity,
            weather.cloudiness,
            min(wind_kmh / 50 * 100, 100),
            min(visibility_km / 10 * 100, 100),
            max(min((weather.pressure - 950) / 100 * 100, 100), 0)
        ],
        display_values=[
            f"{weather.humidity}%",
            f"{weather.cloudiness}%",
            f"{wind_kmh:.1f} km/h",
            f"{visibility_km:.1f} km",
            f"{weather.pressure} hPa"
        ]
    )
