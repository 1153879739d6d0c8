"""
FastAPI Application for the Telehealth Coordination Services.

Exposes the registration, scheduling and session delivery endpoints and
runs the event consumers for the lifetime of the process.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI

from bootstrap import Services, build_services
from config import settings
from core.exception_handlers import register_exception_handlers
from services.delivery.routes import mapping_router, session_router
from services.registration.routes import router as registration_router
from services.scheduling.routes import router as scheduling_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce Azure SDK logging verbosity
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
logging.getLogger("azure.core").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(services: Optional[Services] = None, start_consumers: Optional[bool] = None) -> FastAPI:
    """
    Create the application.

    Args:
        services: Pre-wired components (tests); built from settings at startup otherwise
        start_consumers: Run the event consumers; defaults to START_CONSUMERS
    """
    if start_consumers is None:
        start_consumers = settings.start_consumers

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - handles startup and shutdown."""
        logger.info("Starting telehealth coordination services...")

        owned = app.state.services is None
        if owned:
            app.state.services = build_services(settings)

        if start_consumers:
            app.state.services.runner.start()
            logger.info(f"Event consumers running for: {', '.join(app.state.services.registry.get_topics())}")

        yield

        # Cleanup
        logger.info("Shutting down...")
        await app.state.services.runner.stop()
        if owned:
            await app.state.services.bus.close()

    app = FastAPI(
        title="Telehealth Coordination Services",
        description="Patient registration, appointment scheduling and virtual session delivery",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.services = services

    register_exception_handlers(app)
    app.include_router(registration_router)
    app.include_router(scheduling_router)
    app.include_router(mapping_router)
    app.include_router(session_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        current = app.state.services
        return {
            "status": "healthy",
            "service": settings.service_name,
            "storage_backend": current.storage_backend if current else settings.storage_backend,
            "event_bus_backend": current.event_bus_backend if current else settings.event_bus_backend,
            "consumers_running": bool(current and current.runner.running),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
