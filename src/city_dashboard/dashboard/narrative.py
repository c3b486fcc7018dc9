"""Prompt construction and formatting for generated city descriptions."""

import re
from typing import List, Optional, Union

from city_dashboard.dashboard.models import (
    ComponentAirQuality, IndexAirQuality, NarrativeBlock, NarrativeResult,
    WeatherSnapshot
)
from city_dashboard.dashboard.severity import COMPONENT_SCALE_LABELS

AIR_QUALITY_LOADING = "Air quality data loading..."

PROMPT_TEMPLATE = """You are a smart city advisor helping people decide where to live, work, or study.

Analyze {place} and provide a comprehensive, engaging description (200-250 words) covering:

Current Real-Time Data:
- Temperature: {temperature}°C
- Weather Condition: {description}
- {air_quality}
- Location Coordinates: {coordinates}
- Humidity: {humidity}%
- Wind Speed: {wind_kmh:.1f} km/h

Please provide:
1. **Smart City Rating**: How technologically advanced and smart is this city? (infrastructure, connectivity, innovation, digital services)
2. **For Students**: Education opportunities, universities, cost of living, student life, safety
3. **For Professionals**: Job market, industries, work culture, career growth, business opportunities
4. **Quality of Life**: Safety, healthcare, transportation, entertainment, culture, climate
5. **Why Choose This City**: Top 3 compelling reasons to move here based on current data

Write in an enthusiastic, informative tone. Be specific and practical. Make it engaging and helpful for someone considering relocation. Use the real-time weather and air quality data to make your description current and relevant."""

_NUMBERED = re.compile(r"^\d+\.")


def describe_air_quality(
    air_quality: Optional[Union[IndexAirQuality, ComponentAirQuality]]
) -> str:
    """One-line air quality summary for the prompt."""
    if air_quality is None:
        return AIR_QUALITY_LOADING
    if isinstance(air_quality, IndexAirQuality):
        return f"Current AQI: {air_quality.aqi:g} ({air_quality.severity.value} air quality)"
    label = COMPONENT_SCALE_LABELS.get(air_quality.scale, "Unknown")
    return f"Air quality: {label}"


def build_prompt(
    city: str,
    weather: WeatherSnapshot,
    air_quality: Optional[Union[IndexAirQuality, ComponentAirQuality]] = None
) -> str:
    """Build the narrative prompt from the current snapshots."""
    place = f"{city}, {weather.country}" if weather.country else city
    coordinates = weather.coordinates
    return PROMPT_TEMPLATE.format(
        place=place,
        temperature=round(weather.temperature),
        description=weather.description,
        air_quality=describe_air_quality(air_quality),
        coordinates=f"{coordinates.lat:.4f}, {coordinates.lon:.4f}",
        humidity=weather.humidity,
        wind_kmh=weather.wind_speed * 3.6
    )


def format_blocks(text: str) -> List[NarrativeBlock]:
    """Split generated text into headings, numbered items and paragraphs."""
    blocks = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith("**") and line.endswith("**") and len(line) > 4:
            blocks.append(NarrativeBlock(kind="heading", text=line.replace("**", "")))
        elif _NUMBERED.match(line):
            blocks.append(NarrativeBlock(kind="item", text=line))
        else:
            blocks.append(NarrativeBlock(kind="paragraph", text=line))
    return blocks


def fallback_narrative(city: str, weather: WeatherSnapshot, attempts: int = 0) -> NarrativeResult:
    """Placeholder description shown when generation is unavailable."""
    text = f"{city} is a great city with {round(weather.temperature)}°C weather and {weather.description}."
    return NarrativeResult(
        city=city,
        text=text,
        blocks=[NarrativeBlock(kind="paragraph", text=text)],
        attempts=attempts,
        generated=False
    )
