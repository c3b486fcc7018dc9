"""Configuration settings for the city dashboard service."""

import os
from typing import Final, List
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Provider API keys
OPENWEATHER_API_KEY: str = os.getenv("OPENWEATHER_API_KEY", "")
GOOGLE_MAPS_API_KEY: str = os.getenv("GOOGLE_MAPS_API_KEY", "")
# The Air Quality API is usually enabled on the same Google Cloud key as Maps
GOOGLE_AIR_QUALITY_API_KEY: str = os.getenv("GOOGLE_AIR_QUALITY_API_KEY", GOOGLE_MAPS_API_KEY)
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

# Provider endpoints
OPENWEATHER_BASE_URL: str = os.getenv("OPENWEATHER_BASE_URL", "https://api.openweathermap.org/data/2.5")
GOOGLE_MAPS_BASE_URL: str = os.getenv("GOOGLE_MAPS_BASE_URL", "https://maps.googleapis.com/maps/api")
GOOGLE_AIR_QUALITY_BASE_URL: str = os.getenv("GOOGLE_AIR_QUALITY_BASE_URL", "https://airquality.googleapis.com/v1")
GEMINI_BASE_URL: str = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
USER_AGENT: Final[str] = "CityDashboard/0.1"

# Narrative generation: every version is tried with every model, in order
NARRATIVE_API_VERSIONS: List[str] = _csv(os.getenv("NARRATIVE_API_VERSIONS", "v1,v1beta"))
NARRATIVE_MODELS: List[str] = _csv(os.getenv(
    "NARRATIVE_MODELS",
    "gemini-1.5-flash,gemini-1.5-pro,gemini-2.0-flash-exp,gemini-2.5-flash,gemini-pro,gemini-1.0-pro"
))
NARRATIVE_TEMPERATURE: float = float(os.getenv("NARRATIVE_TEMPERATURE", "0.7"))
NARRATIVE_MAX_OUTPUT_TOKENS: int = int(os.getenv("NARRATIVE_MAX_OUTPUT_TOKENS", "800"))

# Timeouts
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
STAGE_TIMEOUT_SECONDS: float = float(os.getenv("STAGE_TIMEOUT_SECONDS", "30"))

# Server configuration
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))
DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

# Redis configuration
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

# Rate limiting configuration (searches fan out to several metered APIs)
RATE_LIMIT_REQUESTS_PER_SECOND: int = int(os.getenv("RATE_LIMIT_REQUESTS_PER_SECOND", "5"))
RATE_LIMIT_REDIS_KEY_PREFIX: str = os.getenv("RATE_LIMIT_REDIS_KEY_PREFIX", "city_dashboard_rate_limit")
RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def is_configured(key: str) -> bool:
    """Return True if an API key looks usable.

    Empty values and the ``YOUR_..._HERE`` placeholders shipped in example
    configs count as missing.
    """
    key = (key or "").strip()
    return bool(key) and not (key.startswith("YOUR_") and key.endswith("_HERE"))
