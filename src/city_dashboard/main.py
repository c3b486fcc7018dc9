"""Main FastAPI application for the city dashboard service."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
import traceback
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from city_dashboard.api.endpoints import router as dashboard_router
from city_dashboard.config import HOST, PORT, DEBUG, RATE_LIMIT_REQUESTS_PER_SECOND
from city_dashboard.dashboard.orchestrator import DashboardOrchestrator
from city_dashboard.logging_config import configure_logging
from city_dashboard.middleware.rate_limit import RateLimitMiddleware
from city_dashboard.providers.errors import ConfigMissing

# Configure logging
configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    orchestrator = None
    try:
        try:
            orchestrator = DashboardOrchestrator.from_config()
            app.state.config_notice = None
        except ConfigMissing as e:
            # Reported once here; searches answer 503 without touching the network
            logger.error(str(e))
            app.state.config_notice = str(e)
        app.state.orchestrator = orchestrator

        logger.info("Starting City Dashboard Service")
        yield
    except Exception as e:
        logger.error(f"Startup error: {e}")
        logger.error(traceback.format_exc())
        raise
    finally:
        try:
            logger.info("Shutting down City Dashboard Service")
            if orchestrator is not None:
                await orchestrator.aclose()
        except Exception as e:
            logger.error(f"Shutdown error: {e}")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="City Dashboard Service",
        description="Weather, air quality and AI city descriptions from several providers",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add rate limiting middleware
    app.add_middleware(RateLimitMiddleware, calls=RATE_LIMIT_REQUESTS_PER_SECOND)

    # Include API routers
    app.include_router(dashboard_router)

    @app.get("/api", tags=["root"])
    async def api_info() -> dict:
        """API information endpoint.

        Returns:
            Basic service information
        """
        return {
            "message": "City Dashboard Service",
            "docs": "/docs",
            "redoc": "/redoc",
            "search": "/dashboard/search",
            "state": "/dashboard/state",
            "health": "/dashboard/health"
        }

    return app


# Create app instance for uvicorn
app = create_app()


def main() -> None:
    """Main entry point for the application."""
    logger.info(f"Starting server on {HOST}:{PORT}")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        reload=DEBUG,
        log_level="info" if not DEBUG else "debug"
    )


if __name__ == "__main__":
    main()
