"""Air quality severity classification.

Both air quality providers are reported on one six-tier scale keyed by a
numeric AQI. The fallback provider only reports a pre-bucketed 1-5 scale, so
each bucket carries its own severity from a translation table, plus a
representative AQI for display. That AQI is an approximation, not a unit
conversion, and is never fed back through the numeric tiers.

Per-pollutant table rows use a separate two-threshold rule. The two
classifications may disagree and are not reconciled.
"""

from enum import Enum
from typing import Dict, Optional


class Severity(str, Enum):
    """Six-tier air quality severity scale."""
    GOOD = "Good"
    MODERATE = "Moderate"
    UNHEALTHY_SENSITIVE = "Unhealthy for Sensitive Groups"
    UNHEALTHY = "Unhealthy"
    VERY_UNHEALTHY = "Very Unhealthy"
    HAZARDOUS = "Hazardous"


# Upper bound (inclusive) of each tier, in ascending order
SEVERITY_TIERS = (
    (50, Severity.GOOD),
    (100, Severity.MODERATE),
    (150, Severity.UNHEALTHY_SENSITIVE),
    (200, Severity.UNHEALTHY),
    (300, Severity.VERY_UNHEALTHY),
)

HEALTH_MESSAGES: Dict[Severity, str] = {
    Severity.GOOD: "Air quality is excellent",
    Severity.MODERATE: "Air quality is acceptable",
    Severity.UNHEALTHY_SENSITIVE: "May affect sensitive people",
    Severity.UNHEALTHY: "Everyone may experience health effects",
    Severity.VERY_UNHEALTHY: "Health alert - everyone may be affected",
    Severity.HAZARDOUS: "Health warning of emergency conditions",
}

SEVERITY_BANDS: Dict[Severity, str] = {
    Severity.GOOD: "good",
    Severity.MODERATE: "moderate",
    Severity.UNHEALTHY_SENSITIVE: "moderate",
    Severity.UNHEALTHY: "unhealthy",
    Severity.VERY_UNHEALTHY: "unhealthy",
    Severity.HAZARDOUS: "unhealthy",
}

# Representative AQI for each bucket of the fallback provider's 1-5 scale
COMPONENT_SCALE_AQI: Dict[int, int] = {1: 25, 2: 60, 3: 100, 4: 150, 5: 250}

COMPONENT_SCALE_LABELS: Dict[int, str] = {
    1: "Good",
    2: "Fair",
    3: "Moderate",
    4: "Poor",
    5: "Very Poor",
}

# Severity and display band of each bucket of the 1-5 scale
COMPONENT_SCALE_SEVERITY: Dict[int, Severity] = {
    1: Severity.GOOD,
    2: Severity.MODERATE,
    3: Severity.UNHEALTHY_SENSITIVE,
    4: Severity.UNHEALTHY,
    5: Severity.VERY_UNHEALTHY,
}

COMPONENT_SCALE_BANDS: Dict[int, str] = {
    1: "good",
    2: "good",
    3: "moderate",
    4: "unhealthy",
    5: "unhealthy",
}


def classify_aqi(value: Optional[float]) -> Optional[Severity]:
    """Classify a numeric AQI into the six-tier scale.

    Returns None when the value is unknown.
    """
    if value is None:
        return None
    for upper, severity in SEVERITY_TIERS:
        if value <= upper:
            return severity
    return Severity.HAZARDOUS


def component_scale_to_aqi(scale: Optional[int]) -> Optional[int]:
    """Map the fallback provider's 1-5 scale to a representative AQI."""
    return COMPONENT_SCALE_AQI.get(scale)


def classify_component_scale(scale: Optional[int]) -> Optional[Severity]:
    """Severity of a 1-5 bucket, or None outside the scale."""
    return COMPONENT_SCALE_SEVERITY.get(scale)


def pollutant_status(value: Optional[float]) -> str:
    """Classify a single pollutant concentration for the table view."""
    if value is None:
        return "N/A"
    if value > 100:
        return "Unhealthy"
    if value > 50:
        return "Moderate"
    return "Good"
