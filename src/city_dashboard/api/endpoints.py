"""API endpoints for the city dashboard service."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from city_dashboard.dashboard.models import QueryResult
from city_dashboard.dashboard.orchestrator import DashboardOrchestrator
from city_dashboard.dashboard.sink import DisplayState

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def get_orchestrator(request: Request) -> DashboardOrchestrator:
    """Dependency returning the application's orchestrator.

    Raises:
        HTTPException: 503 with the configuration notice if startup found
            required API keys missing
    """
    orchestrator: Optional[DashboardOrchestrator] = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        notice = getattr(request.app.state, "config_notice", None) or "Dashboard is not configured"
        raise HTTPException(status_code=503, detail=notice)
    return orchestrator


@router.get("/search", response_model=QueryResult)
async def search_city(
    city: str = Query(..., description="City name, optionally followed by ', country'"),
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator)
) -> QueryResult:
    """Run one dashboard search.

    Args:
        city: City to look up
        orchestrator: Injected search pipeline

    Returns:
        QueryResult with weather, air quality and narrative for the city

    Raises:
        HTTPException: If the city is empty or the pipeline fails unexpectedly
    """
    try:
        result = await orchestrator.search(city)

    except ValidationError as e:
        logger.error(f"Data validation error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error: data validation failed")

    except ValueError as e:
        logger.info(f"Rejected search: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Search {result.query_id} for '{result.query.city}' ended in state {result.state.value}")
    return result


@router.get("/state", response_model=DisplayState)
async def get_display_state(
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator)
) -> DisplayState:
    """Get what the dashboard currently shows.

    Returns:
        Display state of the most recent search
    """
    sink = orchestrator.sink
    if not hasattr(sink, "snapshot"):
        raise HTTPException(status_code=404, detail="Display state is not kept by this sink")
    return sink.snapshot()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Health status response
    """
    return {"status": "healthy", "service": "city-dashboard"}


@router.get("/info")
async def get_service_info(request: Request) -> dict:
    """Get service information.

    Returns:
        Service information including enabled providers
    """
    orchestrator: Optional[DashboardOrchestrator] = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        return {
            "service": "City Dashboard Service",
            "version": "0.1.0",
            "configured": False,
            "notice": getattr(request.app.state, "config_notice", None)
        }

    return {
        "service": "City Dashboard Service",
        "version": "0.1.0",
        "configured": True,
        "providers": {
            "weather": True,
            "geocoding": orchestrator.geocoding_client is not None,
            "air_quality_primary": orchestrator.air_quality_client is not None,
            "air_quality_fallback": True,
            "narrative": orchestrator.narrative_client is not None
        },
        "narrative_candidates": [str(candidate) for candidate in orchestrator.narrative_candidates],
        "notices": orchestrator.notices
    }
