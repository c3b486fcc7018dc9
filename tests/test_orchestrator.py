"""Tests for the search pipeline."""

import asyncio

import httpx
import pytest

from city_dashboard.dashboard.models import ComponentAirQuality, IndexAirQuality, PipelineState
from city_dashboard.dashboard.orchestrator import (
    CITY_NOT_FOUND, DATA_NOT_AVAILABLE, FAILED_TO_LOAD, NARRATIVE_FAILED,
    DashboardOrchestrator, NarrativeCandidate, default_narrative_candidates
)
from city_dashboard.dashboard.severity import Severity
from city_dashboard.providers.errors import (
    ConfigMissing, FormatError, ProviderRejection, SafetyBlocked, TransportError
)
from city_dashboard.providers.narrative import GeminiClient


class TestSearchFlow:

    @pytest.mark.asyncio
    async def test_full_search(self, make_orchestrator, clients, sink):
        orchestrator = make_orchestrator()

        result = await orchestrator.search("Paris, France")

        assert result.state == PipelineState.DONE
        assert result.query.city == "Paris"
        assert result.weather.name == "Paris"
        assert result.location_label == "1er Arrondissement, Paris, France"
        assert isinstance(result.air_quality, IndexAirQuality)
        assert result.air_quality.aqi == 42
        assert result.narrative.text == "Paris is the capital of France."
        assert result.narrative.model == "gemini-1.5-flash"
        assert result.narrative.attempts == 1
        assert [series.name for series in result.charts] == [
            "Temperature (°C)", "Weather Metrics", "Air Quality Levels"
        ]
        assert result.errors == []
        clients["fallback_air_quality_client"].fetch.assert_not_called()

        display = sink.snapshot()
        assert display.query_id == result.query_id
        assert display.weather_status == "CLEAR SKY"
        assert display.aqi_status == "Good - Air quality is excellent"

    @pytest.mark.asyncio
    async def test_qualifiers_are_dropped(self, make_orchestrator, clients):
        await make_orchestrator().search("  Springfield , IL, USA ")

        clients["geocoding_client"].forward_geocode.assert_awaited_once_with("Springfield")

    @pytest.mark.asyncio
    async def test_empty_query_is_rejected(self, make_orchestrator, clients):
        with pytest.raises(ValueError, match="Please enter a city name!"):
            await make_orchestrator().search(" , France")

        clients["weather_client"].fetch_current.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_ids_increase(self, make_orchestrator):
        orchestrator = make_orchestrator()

        first = await orchestrator.search("Paris")
        second = await orchestrator.search("Paris")

        assert second.query_id > first.query_id


class TestCoordinateResolution:

    @pytest.mark.asyncio
    async def test_geocoded_coordinates_take_precedence(self, make_orchestrator, clients):
        result = await make_orchestrator().search("Paris")

        clients["weather_client"].fetch_current.assert_awaited_once_with(lat=48.856614, lon=2.3522219)
        assert result.coordinates.source == "geocoding"
        clients["air_quality_client"].lookup.assert_awaited_once_with(48.856614, 2.3522219)

    @pytest.mark.asyncio
    async def test_without_geocoding_uses_city_name(self, make_orchestrator, clients):
        result = await make_orchestrator(geocoding_client=None).search("Paris")

        clients["weather_client"].fetch_current.assert_awaited_once_with(city="Paris")
        clients["geocoding_client"].forward_geocode.assert_not_called()
        assert result.coordinates.source == "weather"
        assert result.location_label == "Paris"
        assert result.state == PipelineState.DONE

    @pytest.mark.asyncio
    async def test_geocoding_failure_falls_back_to_name(self, make_orchestrator, clients):
        clients["geocoding_client"].forward_geocode.side_effect = ProviderRejection("ZERO_RESULTS")

        result = await make_orchestrator().search("Paris")

        clients["weather_client"].fetch_current.assert_awaited_once_with(city="Paris")
        assert result.coordinates.source == "weather"
        assert result.state == PipelineState.DONE
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_reverse_geocode_failure_uses_forward_result(self, make_orchestrator, clients):
        clients["geocoding_client"].reverse_geocode.side_effect = TransportError("down")

        result = await make_orchestrator().search("Paris")

        assert result.location_label == "Paris, France"
        assert result.state == PipelineState.DONE


class TestWeatherFailures:

    @pytest.mark.asyncio
    async def test_rejection_stops_pipeline(self, make_orchestrator, clients, sink):
        clients["weather_client"].fetch_current.side_effect = ProviderRejection("city not found")

        result = await make_orchestrator().search("Atlantis")

        assert result.state == PipelineState.ERROR
        assert result.error_for(PipelineState.FETCHING_WEATHER).placeholder == CITY_NOT_FOUND
        assert result.weather is None
        clients["air_quality_client"].lookup.assert_not_called()
        clients["fallback_air_quality_client"].fetch.assert_not_called()
        clients["narrative_client"].generate.assert_not_called()
        assert sink.snapshot().weather_status == CITY_NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,placeholder", [
        (TransportError("HTTP 404", status_code=404), CITY_NOT_FOUND),
        (TransportError("HTTP 500", status_code=500), FAILED_TO_LOAD),
        (TransportError("connection refused"), FAILED_TO_LOAD),
        (FormatError("not JSON"), FAILED_TO_LOAD),
    ])
    async def test_failure_placeholders(self, make_orchestrator, clients, error, placeholder):
        clients["weather_client"].fetch_current.side_effect = error

        result = await make_orchestrator().search("Paris")

        stage_error = result.error_for(PipelineState.FETCHING_WEATHER)
        assert stage_error.placeholder == placeholder
        assert stage_error.kind == error.kind

    @pytest.mark.asyncio
    async def test_malformed_payload(self, make_orchestrator, clients, weather_payload):
        del weather_payload["main"]
        clients["weather_client"].fetch_current.return_value = weather_payload

        result = await make_orchestrator().search("Paris")

        assert result.error_for(PipelineState.FETCHING_WEATHER).kind == "format"
        clients["narrative_client"].generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self, make_orchestrator, clients):
        async def hang(**kwargs):
            await asyncio.sleep(10)

        clients["weather_client"].fetch_current.side_effect = hang

        result = await make_orchestrator(stage_timeout=0.01).search("Paris")

        stage_error = result.error_for(PipelineState.FETCHING_WEATHER)
        assert stage_error.kind == "transport"
        assert stage_error.placeholder == FAILED_TO_LOAD


class TestAirQualityFallback:

    @pytest.mark.asyncio
    async def test_empty_indexes_use_fallback_once(self, make_orchestrator, clients, sink):
        clients["air_quality_client"].lookup.side_effect = ProviderRejection("no indexes")

        result = await make_orchestrator().search("Paris")

        clients["fallback_air_quality_client"].fetch.assert_awaited_once_with(48.856614, 2.3522219)
        assert isinstance(result.air_quality, ComponentAirQuality)
        assert result.air_quality.aqi == 150
        assert result.air_quality.severity == Severity.UNHEALTHY
        assert len(result.pollutant_rows) == 8
        assert result.state == PipelineState.DONE
        assert sink.snapshot().aqi_status.endswith("(OpenWeather)")
        assert sink.snapshot().aqi_band == "unhealthy"

    @pytest.mark.asyncio
    async def test_malformed_primary_uses_fallback(self, make_orchestrator, clients):
        clients["air_quality_client"].lookup.return_value = {"indexes": [{"code": "uaqi"}]}

        result = await make_orchestrator().search("Paris")

        assert isinstance(result.air_quality, ComponentAirQuality)

    @pytest.mark.asyncio
    async def test_without_primary_uses_fallback(self, make_orchestrator, clients):
        result = await make_orchestrator(air_quality_client=None).search("Paris")

        clients["fallback_air_quality_client"].fetch.assert_awaited_once()
        assert result.air_quality.kind == "component"

    @pytest.mark.asyncio
    async def test_fallback_rejection_is_not_available(self, make_orchestrator, clients, sink):
        clients["air_quality_client"].lookup.side_effect = TransportError("HTTP 403", status_code=403)
        clients["fallback_air_quality_client"].fetch.side_effect = ProviderRejection("empty list")

        result = await make_orchestrator().search("Paris")

        assert clients["fallback_air_quality_client"].fetch.await_count == 1
        assert result.error_for(PipelineState.FETCHING_AIR_QUALITY).placeholder == DATA_NOT_AVAILABLE
        assert result.state == PipelineState.ERROR
        assert result.air_quality is None
        assert result.narrative.generated
        assert sink.snapshot().aqi_status == DATA_NOT_AVAILABLE

    @pytest.mark.asyncio
    async def test_fallback_transport_error_is_failed_to_load(self, make_orchestrator, clients):
        clients["air_quality_client"].lookup.side_effect = ProviderRejection("no indexes")
        clients["fallback_air_quality_client"].fetch.side_effect = TransportError("timeout")

        result = await make_orchestrator().search("Paris")

        assert result.error_for(PipelineState.FETCHING_AIR_QUALITY).placeholder == FAILED_TO_LOAD

    @pytest.mark.asyncio
    async def test_prompt_mentions_fallback_scale(self, make_orchestrator, clients):
        clients["air_quality_client"].lookup.side_effect = ProviderRejection("no indexes")

        await make_orchestrator().search("Paris")

        prompt = clients["narrative_client"].generate.await_args.args[2]
        assert "Air quality: Poor" in prompt


class TestNarrative:

    @pytest.mark.asyncio
    async def test_candidates_tried_in_order_until_success(self, make_orchestrator, clients):
        candidates = [
            NarrativeCandidate("v1", "a"),
            NarrativeCandidate("v1", "b"),
            NarrativeCandidate("v1beta", "a"),
        ]
        clients["narrative_client"].generate.side_effect = [
            TransportError("HTTP 404", status_code=404),
            SafetyBlocked("blocked"),
            "**Paris**\nLovely.",
        ]

        result = await make_orchestrator(narrative_candidates=candidates).search("Paris")

        calls = clients["narrative_client"].generate.await_args_list
        assert [c.args[:2] for c in calls] == [("v1", "a"), ("v1", "b"), ("v1beta", "a")]
        assert result.narrative.attempts == 3
        assert result.narrative.api_version == "v1beta"
        assert result.narrative.blocks[0].kind == "heading"
        assert result.state == PipelineState.DONE

    @pytest.mark.asyncio
    async def test_exhaustion_uses_fallback_text(self, make_orchestrator, clients, sink):
        clients["narrative_client"].generate.side_effect = [
            TransportError("HTTP 404", status_code=404),
            FormatError("No text found in response"),
        ]

        result = await make_orchestrator().search("Paris")

        stage_error = result.error_for(PipelineState.GENERATING_NARRATIVE)
        assert stage_error.kind == "format"
        assert stage_error.message == "No text found in response"
        assert stage_error.placeholder == NARRATIVE_FAILED
        assert result.narrative.generated is False
        assert result.narrative.attempts == 2
        assert result.narrative.text == "Paris is a great city with 19°C weather and clear sky."
        assert result.state == PipelineState.ERROR
        assert sink.snapshot().narrative_status == NARRATIVE_FAILED

    @pytest.mark.asyncio
    async def test_without_client_uses_fallback_text(self, make_orchestrator):
        result = await make_orchestrator(narrative_client=None).search("Paris")

        assert result.narrative.generated is False
        assert result.narrative.attempts == 0
        assert result.state == PipelineState.DONE

    @pytest.mark.asyncio
    async def test_prompt_uses_weather_and_air_quality(self, make_orchestrator, clients):
        await make_orchestrator().search("Paris")

        prompt = clients["narrative_client"].generate.await_args.args[2]
        assert "Analyze Paris, FR" in prompt
        assert "Temperature: 19°C" in prompt
        assert "Current AQI: 42 (Good air quality)" in prompt
        assert "Location Coordinates: 48.8534, 2.3488" in prompt

    def test_default_candidates_iterate_models_within_version(self):
        candidates = default_narrative_candidates(["v1", "v1beta"], ["m1", "m2"])

        assert [str(c) for c in candidates] == ["v1/m1", "v1/m2", "v1beta/m1", "v1beta/m2"]


class TestStaleResults:

    @pytest.mark.asyncio
    async def test_older_search_does_not_overwrite_newer(self, make_orchestrator, clients, sink, weather_payload):
        release = asyncio.Event()
        london = {**weather_payload, "name": "London"}

        async def fetch_current(**kwargs):
            if kwargs.get("city") == "Paris":
                await release.wait()
                return weather_payload
            return london

        clients["weather_client"].fetch_current.side_effect = fetch_current
        orchestrator = make_orchestrator(geocoding_client=None)

        slow = asyncio.create_task(orchestrator.search("Paris"))
        await asyncio.sleep(0)
        newer = await orchestrator.search("London")
        release.set()
        older = await slow

        display = sink.snapshot()
        assert older.weather.name == "Paris"
        assert display.query_id == newer.query_id
        assert display.weather.name == "London"
        assert sink.dropped_updates > 0


class TestConfiguration:

    def test_missing_openweather_key(self):
        with pytest.raises(ConfigMissing) as excinfo:
            DashboardOrchestrator.from_config(openweather_api_key="YOUR_OPENWEATHER_API_KEY_HERE")

        assert excinfo.value.missing == ["OPENWEATHER_API_KEY"]
        assert "OPENWEATHER_API_KEY" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_optional_keys_disable_capabilities(self):
        orchestrator = DashboardOrchestrator.from_config(
            openweather_api_key="ow",
            google_maps_api_key="",
            google_air_quality_api_key="",
            gemini_api_key=""
        )

        assert orchestrator.geocoding_client is None
        assert orchestrator.air_quality_client is None
        assert orchestrator.narrative_client is None
        assert len(orchestrator.notices) == 3
        await orchestrator.aclose()

    @pytest.mark.asyncio
    async def test_all_keys_configured(self):
        orchestrator = DashboardOrchestrator.from_config(
            openweather_api_key="ow",
            google_maps_api_key="maps",
            google_air_quality_api_key="aq",
            gemini_api_key="gem"
        )

        assert orchestrator.air_quality_client.api_key == "aq"
        assert orchestrator.notices == []
        await orchestrator.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_clients(self, make_orchestrator, clients):
        async with make_orchestrator():
            pass

        for client in clients.values():
            client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_aclose_survives_client_errors(self, make_orchestrator, clients):
        clients["weather_client"].aclose.side_effect = RuntimeError("already closed")

        await make_orchestrator().aclose()

        clients["narrative_client"].aclose.assert_awaited_once()


class TestNarrativeOverHttp:

    @pytest.mark.asyncio
    async def test_malformed_body_moves_to_next_candidate(self, make_orchestrator, mock_transport, gemini_payload):
        bodies = iter([{"candidates": ["oops"]}, gemini_payload])
        http = mock_transport(lambda request: httpx.Response(200, json=next(bodies)))
        narrative_client = GeminiClient(api_key="ai", base_url="https://gen.test", client=http)

        result = await make_orchestrator(narrative_client=narrative_client).search("Paris")

        assert [request.url.path for request in http.sent] == [
            "/v1/models/gemini-1.5-flash:generateContent",
            "/v1beta/models/gemini-1.5-flash:generateContent",
        ]
        assert result.narrative.generated is True
        assert result.narrative.attempts == 2
        assert result.narrative.api_version == "v1beta"
        assert result.state == PipelineState.DONE

    @pytest.mark.asyncio
    async def test_only_malformed_bodies_exhaust_candidates(self, make_orchestrator, mock_transport):
        http = mock_transport(lambda request: httpx.Response(200, json={"choices": [{"message": "hi"}]}))
        narrative_client = GeminiClient(api_key="ai", base_url="https://gen.test", client=http)

        result = await make_orchestrator(narrative_client=narrative_client).search("Paris")

        assert len(http.sent) == 2
        assert result.weather.name == "Paris"
        assert result.air_quality is not None
        assert result.narrative.generated is False
        assert result.error_for(PipelineState.GENERATING_NARRATIVE).kind == "format"
