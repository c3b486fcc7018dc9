"""Data models for the city dashboard."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from city_dashboard.dashboard.severity import (
    Severity, classify_aqi, classify_component_scale, component_scale_to_aqi
)


class PipelineState(str, Enum):
    """States of one search through the orchestrator."""
    IDLE = "idle"
    RESOLVING_COORDINATES = "resolving_coordinates"
    FETCHING_WEATHER = "fetching_weather"
    FETCHING_AIR_QUALITY = "fetching_air_quality"
    GENERATING_NARRATIVE = "generating_narrative"
    DONE = "done"
    ERROR = "error"


class CityQuery(BaseModel):
    """A user search, reduced to the city name."""
    raw: str = Field(..., description="Text as typed by the user")
    city: str = Field(..., min_length=1, description="First comma-delimited segment, trimmed")

    @classmethod
    def parse(cls, text: str) -> "CityQuery":
        """Build a query from free text, dropping locality qualifiers.

        Raises:
            ValueError: If no city name remains
        """
        raw = (text or "").strip()
        city = raw.split(",")[0].strip()
        if not city:
            raise ValueError("Please enter a city name!")
        return cls(raw=raw, city=city)


class Coordinates(BaseModel):
    """WGS84 coordinates with the provider they came from."""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    lon: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")
    source: Literal["geocoding", "weather"] = Field(..., description="Provider that produced them")


class WeatherSnapshot(BaseModel):
    """Current weather for one query."""
    name: str = Field(..., description="Place name resolved by the provider")
    country: Optional[str] = None
    description: str = ""
    temperature: float = Field(..., description="Temperature in Celsius")
    feels_like: float
    temp_min: float
    temp_max: float
    humidity: int = Field(..., description="Relative humidity in percent")
    pressure: int = Field(..., description="Pressure in hPa")
    wind_speed: float = Field(..., description="Wind speed in m/s")
    wind_deg: Optional[int] = None
    visibility: Optional[int] = Field(None, description="Visibility in metres")
    cloudiness: int = Field(0, description="Cloud cover in percent")
    sunrise: datetime
    sunset: datetime
    timezone_offset: int = Field(0, description="Offset from UTC in seconds")
    coordinates: Coordinates


class AirQualityIndex(BaseModel):
    """One named index from the primary provider."""
    code: str
    display_name: Optional[str] = None
    aqi: float
    category: Optional[str] = None
    dominant_pollutant: Optional[str] = None


class PollutantConcentration(BaseModel):
    """One pollutant reading from the primary provider."""
    code: str
    display_name: Optional[str] = None
    value: Optional[float] = None
    units: Optional[str] = None


class IndexAirQuality(BaseModel):
    """Index-based air quality reported by the primary provider."""
    kind: Literal["index"] = "index"
    source: str = "Google Air Quality"
    indexes: List[AirQualityIndex] = Field(..., min_length=1)
    pollutants: List[PollutantConcentration] = Field(default_factory=list)

    @property
    def headline(self) -> AirQualityIndex:
        """The universal AQI if present, else the first index."""
        return next((index for index in self.indexes if index.code == "uaqi"), self.indexes[0])

    @computed_field
    @property
    def aqi(self) -> Optional[float]:
        return self.headline.aqi

    @computed_field
    @property
    def severity(self) -> Optional[Severity]:
        return classify_aqi(self.aqi)


class ComponentAirQuality(BaseModel):
    """Component-based air quality reported by the fallback provider."""
    kind: Literal["component"] = "component"
    source: str = "OpenWeather"
    scale: int = Field(..., description="Provider's qualitative 1-5 scale")
    components: Dict[str, float] = Field(default_factory=dict, description="Concentrations in µg/m³")

    @computed_field
    @property
    def aqi(self) -> Optional[float]:
        return component_scale_to_aqi(self.scale)

    @computed_field
    @property
    def severity(self) -> Optional[Severity]:
        return classify_component_scale(self.scale)


AirQualitySnapshot = Annotated[
    Union[IndexAirQuality, ComponentAirQuality],
    Field(discriminator="kind")
]


class PollutantRow(BaseModel):
    """One row of the air quality table."""
    name: str
    value: Optional[float] = None
    unit: str = ""
    status: str
    source: str


class ChartSeries(BaseModel):
    """Numeric series handed to a chart."""
    name: str
    labels: List[str]
    values: List[float]
    display_values: Optional[List[str]] = None
    bands: Optional[List[Literal["good", "moderate", "unhealthy"]]] = None


class NarrativeBlock(BaseModel):
    """A formatted piece of generated text."""
    kind: Literal["heading", "item", "paragraph"]
    text: str


class NarrativeResult(BaseModel):
    """Generated description of a city."""
    city: str
    text: str
    blocks: List[NarrativeBlock] = Field(default_factory=list)
    api_version: Optional[str] = None
    model: Optional[str] = None
    attempts: int = 0
    generated: bool = Field(True, description="False when this is placeholder text")


class StageError(BaseModel):
    """Failure of one pipeline stage, as shown to the user."""
    stage: PipelineState
    kind: str
    message: str
    placeholder: str


class QueryResult(BaseModel):
    """Everything one search produced."""
    query_id: int
    query: CityQuery
    state: PipelineState = PipelineState.IDLE
    coordinates: Optional[Coordinates] = None
    weather: Optional[WeatherSnapshot] = None
    location_label: Optional[str] = None
    air_quality: Optional[AirQualitySnapshot] = None
    pollutant_rows: List[PollutantRow] = Field(default_factory=list)
    narrative: Optional[NarrativeResult] = None
    charts: List[ChartSeries] = Field(default_factory=list)
    errors: List[StageError] = Field(default_factory=list)
    notices: List[str] = Field(default_factory=list)

    def error_for(self, stage: PipelineState) -> Optional[StageError]:
        return next((error for error in self.errors if error.stage == stage), None)
