"""Search pipeline: geocoding, weather, air quality and narrative in order."""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Dict, List, NamedTuple, Optional, Sequence, TypeVar

from city_dashboard.config import (
    GEMINI_API_KEY, GOOGLE_AIR_QUALITY_API_KEY, GOOGLE_MAPS_API_KEY,
    NARRATIVE_API_VERSIONS, NARRATIVE_MODELS, OPENWEATHER_API_KEY,
    STAGE_TIMEOUT_SECONDS, is_configured
)
from city_dashboard.dashboard.models import (
    CityQuery, NarrativeResult, PipelineState, QueryResult, StageError,
    WeatherSnapshot
)
from city_dashboard.dashboard.narrative import build_prompt, fallback_narrative, format_blocks
from city_dashboard.dashboard.normalizer import (
    air_quality_series, coordinates_from_geocode, normalize_component_payload,
    normalize_index_payload, normalize_weather, pollutant_rows,
    temperature_series, weather_metrics_series
)
from city_dashboard.dashboard.retry import first_success
from city_dashboard.dashboard.sink import DashboardState, PresentationSink
from city_dashboard.providers.air_quality import GoogleAirQualityClient, OpenWeatherAirPollutionClient
from city_dashboard.providers.errors import (
    CandidatesExhausted, ConfigMissing, DashboardError, FormatError,
    ProviderRejection, SafetyBlocked, TransportError
)
from city_dashboard.providers.geocoding import GoogleGeocodingClient
from city_dashboard.providers.narrative import GeminiClient
from city_dashboard.providers.weather import OpenWeatherClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

CITY_NOT_FOUND = "City not found"
FAILED_TO_LOAD = "Failed to load"
DATA_NOT_AVAILABLE = "Data not available"
NARRATIVE_FAILED = "AI description unavailable"


class NarrativeCandidate(NamedTuple):
    """One API version and model to try for narrative generation."""
    api_version: str
    model: str

    def __str__(self) -> str:
        return f"{self.api_version}/{self.model}"


def default_narrative_candidates(
    versions: Sequence[str] = NARRATIVE_API_VERSIONS,
    models: Sequence[str] = NARRATIVE_MODELS
) -> List[NarrativeCandidate]:
    """Every model under the first version, then every model under the next."""
    return [NarrativeCandidate(version, model) for version in versions for model in models]


def _narrative_retryable(error: BaseException) -> bool:
    return isinstance(error, (TransportError, ProviderRejection, SafetyBlocked, FormatError))


class DashboardOrchestrator:
    """Runs one search at a time through the provider pipeline.

    Stages run strictly in sequence. A failed stage is recorded on the
    ``QueryResult`` and shown through the sink; later stages still run unless
    they need the weather snapshot, which every stage after weather does.
    """

    def __init__(
        self,
        weather_client: OpenWeatherClient,
        fallback_air_quality_client: OpenWeatherAirPollutionClient,
        air_quality_client: Optional[GoogleAirQualityClient] = None,
        geocoding_client: Optional[GoogleGeocodingClient] = None,
        narrative_client: Optional[GeminiClient] = None,
        sink: Optional[PresentationSink] = None,
        narrative_candidates: Optional[Sequence[NarrativeCandidate]] = None,
        stage_timeout: float = STAGE_TIMEOUT_SECONDS
    ):
        """Initialize the orchestrator.

        Args:
            weather_client: Current weather provider
            fallback_air_quality_client: Component-based air quality provider
            air_quality_client: Index-based air quality provider, None to disable
            geocoding_client: Geocoding provider, None to disable
            narrative_client: Narrative provider, None to disable
            sink: Presentation sink (creates a DashboardState if None)
            narrative_candidates: Ordered (version, model) pairs to try
            stage_timeout: Seconds before a single provider call is abandoned
        """
        self.weather_client = weather_client
        self.fallback_air_quality_client = fallback_air_quality_client
        self.air_quality_client = air_quality_client
        self.geocoding_client = geocoding_client
        self.narrative_client = narrative_client
        self.sink = sink if sink is not None else DashboardState()
        self.narrative_candidates = list(
            narrative_candidates if narrative_candidates is not None else default_narrative_candidates()
        )
        self.stage_timeout = stage_timeout
        self._query_ids = itertools.count(1)

    @classmethod
    def from_config(
        cls,
        sink: Optional[PresentationSink] = None,
        *,
        openweather_api_key: str = OPENWEATHER_API_KEY,
        google_maps_api_key: str = GOOGLE_MAPS_API_KEY,
        google_air_quality_api_key: str = GOOGLE_AIR_QUALITY_API_KEY,
        gemini_api_key: str = GEMINI_API_KEY
    ) -> "DashboardOrchestrator":
        """Build an orchestrator with clients for every configured key.

        Raises:
            ConfigMissing: If the OpenWeather key is missing
        """
        if not is_configured(openweather_api_key):
            raise ConfigMissing(["OPENWEATHER_API_KEY"])

        optional = {
            "GOOGLE_MAPS_API_KEY": google_maps_api_key,
            "GOOGLE_AIR_QUALITY_API_KEY": google_air_quality_api_key,
            "GEMINI_API_KEY": gemini_api_key,
        }
        for name, key in optional.items():
            if not is_configured(key):
                logger.warning(f"{name} is not configured, dependent features are disabled")

        return cls(
            weather_client=OpenWeatherClient(api_key=openweather_api_key),
            fallback_air_quality_client=OpenWeatherAirPollutionClient(api_key=openweather_api_key),
            air_quality_client=(
                GoogleAirQualityClient(api_key=google_air_quality_api_key)
                if is_configured(google_air_quality_api_key) else None
            ),
            geocoding_client=(
                GoogleGeocodingClient(api_key=google_maps_api_key)
                if is_configured(google_maps_api_key) else None
            ),
            narrative_client=GeminiClient(api_key=gemini_api_key) if is_configured(gemini_api_key) else None,
            sink=sink
        )

    @property
    def notices(self) -> List[str]:
        """User-facing notes about disabled capabilities."""
        notices = []
        if self.geocoding_client is None:
            notices.append("Geocoding is disabled; weather is looked up by city name")
        if self.air_quality_client is None:
            notices.append("Google Air Quality is disabled; using OpenWeather air pollution data")
        if self.narrative_client is None:
            notices.append("AI city descriptions are disabled")
        return notices

    async def search(self, text: str) -> QueryResult:
        """Run one search through every stage.

        Args:
            text: City name, optionally followed by comma-separated qualifiers

        Returns:
            QueryResult with everything the search produced

        Raises:
            ValueError: If no city name is given
        """
        query = CityQuery.parse(text)
        query_id = next(self._query_ids)
        result = QueryResult(query_id=query_id, query=query, notices=self.notices)

        logger.info(f"Query {query_id}: searching for '{query.city}'")
        self.sink.begin(query_id, query)

        geocoded = await self._resolve_coordinates(result)

        weather = await self._fetch_weather(result)
        if weather is None:
            result.state = PipelineState.ERROR
            logger.info(f"Query {query_id}: stopped after weather failure")
            return result

        await self._resolve_location_label(result, weather, geocoded)
        self.sink.render_weather(query_id, weather, result.location_label)
        self._plot(result, temperature_series(weather))
        self._plot(result, weather_metrics_series(weather))

        await self._fetch_air_quality(result)
        await self._generate_narrative(result, weather)

        result.state = PipelineState.ERROR if result.errors else PipelineState.DONE
        logger.info(f"Query {query_id}: finished in state {result.state.value}")
        return result

    async def _call(self, awaitable: Awaitable[T], what: str) -> T:
        """Await a provider call, turning a stage timeout into a TransportError."""
        try:
            return await asyncio.wait_for(awaitable, self.stage_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{what} timed out after {self.stage_timeout}s")
            raise TransportError(f"{what} timed out") from e

    def _enter(self, result: QueryResult, state: PipelineState) -> None:
        result.state = state
        self.sink.render_stage(result.query_id, state)

    def _fail(
        self,
        result: QueryResult,
        stage: PipelineState,
        error: BaseException,
        placeholder: str
    ) -> None:
        stage_error = StageError(
            stage=stage,
            kind=getattr(error, "kind", type(error).__name__),
            message=str(error),
            placeholder=placeholder
        )
        result.errors.append(stage_error)
        self.sink.render_error(result.query_id, stage_error)

    def _plot(self, result: QueryResult, series) -> None:
        if series is None:
            return
        result.charts.append(series)
        self.sink.plot(result.query_id, series)

    async def _resolve_coordinates(self, result: QueryResult) -> Optional[Dict[str, Any]]:
        if self.geocoding_client is None:
            return None

        self._enter(result, PipelineState.RESOLVING_COORDINATES)
        city = result.query.city
        try:
            geocoded = await self._call(self.geocoding_client.forward_geocode(city), "Geocoding")
            result.coordinates = coordinates_from_geocode(geocoded)
        except DashboardError as e:
            logger.warning(f"Geocoding failed for '{city}', falling back to city name: {e}")
            return None

        logger.info(f"Query {result.query_id}: geocoded to ({result.coordinates.lat}, {result.coordinates.lon})")
        return geocoded

    async def _fetch_weather(self, result: QueryResult) -> Optional[WeatherSnapshot]:
        self._enter(result, PipelineState.FETCHING_WEATHER)
        coordinates = result.coordinates

        try:
            if coordinates is not None:
                request = self.weather_client.fetch_current(lat=coordinates.lat, lon=coordinates.lon)
            else:
                request = self.weather_client.fetch_current(city=result.query.city)
            weather = normalize_weather(await self._call(request, "Weather"))
        except ProviderRejection as e:
            self._fail(result, PipelineState.FETCHING_WEATHER, e, CITY_NOT_FOUND)
            return None
        except TransportError as e:
            placeholder = CITY_NOT_FOUND if e.status_code == 404 else FAILED_TO_LOAD
            self._fail(result, PipelineState.FETCHING_WEATHER, e, placeholder)
            return None
        except FormatError as e:
            self._fail(result, PipelineState.FETCHING_WEATHER, e, FAILED_TO_LOAD)
            return None

        result.weather = weather
        if result.coordinates is None:
            result.coordinates = weather.coordinates
        return weather

    async def _resolve_location_label(
        self,
        result: QueryResult,
        weather: WeatherSnapshot,
        geocoded: Optional[Dict[str, Any]]
    ) -> None:
        result.location_label = result.query.city
        if self.geocoding_client is None:
            return

        try:
            details = await self._call(
                self.geocoding_client.reverse_geocode(weather.coordinates.lat, weather.coordinates.lon),
                "Reverse geocoding"
            )
        except DashboardError as e:
            logger.warning(f"Could not fetch location details for '{weather.name}': {e}")
            details = geocoded or {}

        result.location_label = details.get("formatted_address") or result.query.city

    async def _fetch_air_quality(self, result: QueryResult) -> None:
        self._enter(result, PipelineState.FETCHING_AIR_QUALITY)
        lat, lon = result.coordinates.lat, result.coordinates.lon
        snapshot = None

        if self.air_quality_client is not None:
            try:
                raw = await self._call(self.air_quality_client.lookup(lat, lon), "Air quality")
                snapshot = normalize_index_payload(raw)
            except (TransportError, ProviderRejection, FormatError) as e:
                logger.warning(f"Primary air quality failed ({e}), falling back to OpenWeather")

        if snapshot is None:
            try:
                raw = await self._call(
                    self.fallback_air_quality_client.fetch(lat, lon),
                    "Fallback air quality"
                )
                snapshot = normalize_component_payload(raw)
            except ProviderRejection as e:
                self._fail(result, PipelineState.FETCHING_AIR_QUALITY, e, DATA_NOT_AVAILABLE)
                return
            except (TransportError, FormatError) as e:
                self._fail(result, PipelineState.FETCHING_AIR_QUALITY, e, FAILED_TO_LOAD)
                return

        rows = pollutant_rows(snapshot)
        result.air_quality = snapshot
        result.pollutant_rows = rows
        self.sink.render_air_quality(result.query_id, snapshot, rows)
        self._plot(result, air_quality_series(snapshot))

    async def _generate_narrative(self, result: QueryResult, weather: WeatherSnapshot) -> None:
        city = weather.name or result.query.city
        if self.narrative_client is None:
            result.narrative = fallback_narrative(city, weather)
            self.sink.render_narrative(result.query_id, result.narrative)
            return

        self._enter(result, PipelineState.GENERATING_NARRATIVE)
        prompt = build_prompt(city, weather, result.air_quality)

        async def attempt(candidate: NarrativeCandidate) -> str:
            return await self._call(
                self.narrative_client.generate(candidate.api_version, candidate.model, prompt),
                f"Narrative {candidate}"
            )

        try:
            candidate, text, attempts = await first_success(
                self.narrative_candidates, attempt, _narrative_retryable
            )
        except CandidatesExhausted as e:
            logger.error(f"All {e.attempts} narrative candidates failed for '{city}'")
            result.narrative = fallback_narrative(city, weather, attempts=e.attempts)
            self.sink.render_narrative(result.query_id, result.narrative)
            self._fail(result, PipelineState.GENERATING_NARRATIVE, e.last_error or e, NARRATIVE_FAILED)
            return

        logger.info(f"Query {result.query_id}: narrative generated with {candidate} after {attempts} attempt(s)")
        result.narrative = NarrativeResult(
            city=city,
            text=text,
            blocks=format_blocks(text),
            api_version=candidate.api_version,
            model=candidate.model,
            attempts=attempts
        )
        self.sink.render_narrative(result.query_id, result.narrative)

    async def aclose(self):
        """Close every provider client."""
        clients = [
            self.weather_client, self.fallback_air_quality_client, self.air_quality_client,
            self.geocoding_client, self.narrative_client
        ]
        for client in clients:
            if client is None:
                continue
            try:
                await client.aclose()
            except Exception as e:
                logger.error(f"Error closing {getattr(client, 'name', client)} client: {e}")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()
