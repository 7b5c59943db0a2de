"""
FastAPI main application for CareRoute.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from careroute.core.config import Config
from careroute.core.event_bus import get_event_bus
from careroute.core.exceptions import (
    BatchUpdateError,
    CareRouteError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from careroute.core.storage import get_storage
from careroute.reasoning.ranking import ProviderRankingService
from careroute.services.capacity import ProviderCapacityService
from careroute.services.validation_queue import ValidationQueueManager
from careroute.api.routes.queue import router as queue_router
from careroute.api.routes.providers import router as providers_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting CareRoute backend...")

    storage = get_storage()
    event_bus = get_event_bus()
    event_bus.start()

    capacity_service = ProviderCapacityService(storage, event_bus=event_bus)
    app.state.storage = storage
    app.state.event_bus = event_bus
    app.state.queue_manager = ValidationQueueManager(storage, event_bus=event_bus)
    app.state.capacity_service = capacity_service
    app.state.ranking_service = ProviderRankingService(capacity_service=capacity_service)

    logger.info("CareRoute backend started successfully")

    yield

    logger.info("Shutting down CareRoute backend...")
    event_bus.stop()
    logger.info("Backend shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="CareRoute API",
    description="Validation queue, provider capacity and provider ranking API",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================
# Error mapping
# ========================

def _status_for(error: CareRouteError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (BatchUpdateError, StorageError)):
        return 502
    return 500


@app.exception_handler(CareRouteError)
async def careroute_error_handler(request: Request, exc: CareRouteError):
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# ========================
# Health
# ========================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "CareRoute API",
        "version": "1.0.0",
        "timestamp": datetime.now().isoformat()
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    state = app.state
    return {
        "status": "healthy",
        "components": {
            "storage": type(state.storage).__name__ if hasattr(state, "storage") else "not initialized",
            "queue_manager": "running" if hasattr(state, "queue_manager") else "not initialized",
            "capacity_service": "running" if hasattr(state, "capacity_service") else "not initialized",
        },
        "config": {
            "debug": Config.DEBUG,
            "storage_backend": Config.STORAGE_BACKEND
        }
    }


app.include_router(queue_router, prefix="/validation-queue", tags=["validation-queue"])
app.include_router(providers_router, prefix="/providers", tags=["providers"])
