"""Presentation sink: where the orchestrator sends normalized results."""

import logging
from typing import Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, Field

from city_dashboard.dashboard.models import (
    AirQualitySnapshot, ChartSeries, CityQuery, ComponentAirQuality, IndexAirQuality,
    NarrativeResult, PipelineState, PollutantRow, StageError, WeatherSnapshot
)
from city_dashboard.dashboard.severity import (
    COMPONENT_SCALE_BANDS, COMPONENT_SCALE_LABELS, HEALTH_MESSAGES, SEVERITY_BANDS
)

logger = logging.getLogger(__name__)

LOADING = "Loading..."
GENERATING = "AI is analyzing the city... Generating insights..."


class Renderer(Protocol):
    """Receives normalized records for one query."""

    def begin(self, query_id: int, query: CityQuery) -> None: ...

    def render_stage(self, query_id: int, state: PipelineState) -> None: ...

    def render_weather(self, query_id: int, weather: WeatherSnapshot, location_label: str) -> None: ...

    def render_air_quality(
        self,
        query_id: int,
        snapshot: Union[IndexAirQuality, ComponentAirQuality],
        rows: List[PollutantRow]
    ) -> None: ...

    def render_narrative(self, query_id: int, narrative: NarrativeResult) -> None: ...

    def render_error(self, query_id: int, error: StageError) -> None: ...


class ChartSink(Protocol):
    """Receives numeric series for one query."""

    def plot(self, query_id: int, series: ChartSeries) -> None: ...


class PresentationSink(Renderer, ChartSink, Protocol):
    """Renderer and chart sink in one."""


class DisplayState(BaseModel):
    """What the dashboard currently shows."""
    query_id: int = 0
    city: Optional[str] = None
    stage: PipelineState = PipelineState.IDLE
    weather_status: Optional[str] = None
    weather: Optional[WeatherSnapshot] = None
    location_label: Optional[str] = None
    aqi_value: Optional[float] = None
    aqi_status: Optional[str] = None
    aqi_band: Optional[str] = None
    air_quality: Optional[AirQualitySnapshot] = None
    pollutant_rows: List[PollutantRow] = Field(default_factory=list)
    narrative_status: Optional[str] = None
    narrative: Optional[NarrativeResult] = None
    charts: Dict[str, ChartSeries] = Field(default_factory=dict)
    errors: List[StageError] = Field(default_factory=list)


def air_quality_status(snapshot: Union[IndexAirQuality, ComponentAirQuality]) -> str:
    """Status line for the AQI widget."""
    severity = snapshot.severity
    if severity is None:
        return "Unknown"
    if isinstance(snapshot, ComponentAirQuality):
        label = COMPONENT_SCALE_LABELS[snapshot.scale]
        return f"{label} - {HEALTH_MESSAGES[severity]} ({snapshot.source})"
    return f"{severity.value} - {HEALTH_MESSAGES[severity]}"


def air_quality_band(snapshot: Union[IndexAirQuality, ComponentAirQuality]) -> Optional[str]:
    """Display band for the AQI widget."""
    if isinstance(snapshot, ComponentAirQuality):
        return COMPONENT_SCALE_BANDS.get(snapshot.scale)
    return SEVERITY_BANDS.get(snapshot.severity)


class DashboardState:
    """In-memory presentation sink that drops stale updates.

    Every query gets an increasing id from the orchestrator. Once a query has
    begun, updates carrying an older id are ignored, so a slow response for an
    earlier search cannot overwrite the results of a newer one.
    """

    def __init__(self):
        self.current = DisplayState()
        self.dropped_updates = 0

    def _accept(self, query_id: int, what: str) -> bool:
        if query_id != self.current.query_id:
            self.dropped_updates += 1
            logger.info(
                f"Dropping stale {what} for query {query_id} "
                f"(current query is {self.current.query_id})"
            )
            return False
        return True

    def begin(self, query_id: int, query: CityQuery) -> None:
        if query_id <= self.current.query_id:
            self.dropped_updates += 1
            logger.info(f"Ignoring start of stale query {query_id}")
            return
        # New query replaces everything shown before
        self.current = DisplayState(query_id=query_id, city=query.city)

    def render_stage(self, query_id: int, state: PipelineState) -> None:
        if not self._accept(query_id, f"stage {state.value}"):
            return
        self.current.stage = state
        if state == PipelineState.FETCHING_WEATHER:
            self.current.weather_status = LOADING
        elif state == PipelineState.FETCHING_AIR_QUALITY:
            self.current.aqi_status = LOADING
        elif state == PipelineState.GENERATING_NARRATIVE:
            self.current.narrative_status = GENERATING

    def render_weather(self, query_id: int, weather: WeatherSnapshot, location_label: str) -> None:
        if not self._accept(query_id, "weather"):
            return
        self.current.weather = weather
        self.current.weather_status = weather.description.upper()
        self.current.location_label = location_label

    def render_air_quality(
        self,
        query_id: int,
        snapshot: Union[IndexAirQuality, ComponentAirQuality],
        rows: List[PollutantRow]
    ) -> None:
        if not self._accept(query_id, "air quality"):
            return
        self.current.air_quality = snapshot
        self.current.aqi_value = snapshot.aqi
        self.current.aqi_status = air_quality_status(snapshot)
        self.current.aqi_band = air_quality_band(snapshot)
        self.current.pollutant_rows = list(rows)

    def render_narrative(self, query_id: int, narrative: NarrativeResult) -> None:
        if not self._accept(query_id, "narrative"):
            return
        self.current.narrative = narrative
        self.current.narrative_status = None

    def render_error(self, query_id: int, error: StageError) -> None:
        if not self._accept(query_id, f"{error.stage.value} error"):
            return
        self.current.errors.append(error)
        if error.stage in (PipelineState.RESOLVING_COORDINATES, PipelineState.FETCHING_WEATHER):
            self.current.weather_status = error.placeholder
        elif error.stage == PipelineState.FETCHING_AIR_QUALITY:
            self.current.aqi_status = error.placeholder
        elif error.stage == PipelineState.GENERATING_NARRATIVE:
            self.current.narrative_status = error.placeholder

    def plot(self, query_id: int, series: ChartSeries) -> None:
        if not self._accept(query_id, f"chart {series.name}"):
            return
        self.current.charts[series.name] = series

    def snapshot(self) -> DisplayState:
        """Copy of the current display state."""
        return self.current.model_copy(deep=True)
