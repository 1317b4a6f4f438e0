# backend/innkeeper/main.py
"""
Innkeeper API application.

Mounts the v1 routers under /api/v1 plus the health and Prometheus
endpoints. Configuration is validated before the app starts serving.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import settings
from .core.constants import BRAND_NAME
from .core.logging import setup_logging
from .core.startup import validate_startup_config
from .routes import prometheus
from .routes.v1 import (
    invoices as invoices_v1,
    key_cards as key_cards_v1,
    overstay as overstay_v1,
    stays as stays_v1,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    setup_logging()
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment} (hotel timezone {settings.hotel_timezone})")

    validate_startup_config()

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description="Hotel guest-stay lifecycle: check-in, check-out, overstay billing and holds",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

# V1 routers; each module declares its routes without a prefix
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(stays_v1.router, prefix="/stays")
api_v1.include_router(overstay_v1.router, prefix="/overstay")
api_v1.include_router(invoices_v1.router, prefix="/invoices")
api_v1.include_router(key_cards_v1.router, prefix="/key-cards")

app.include_router(api_v1)

# Prometheus scrapes the fixed /metrics/prometheus path
app.include_router(prometheus.router, prefix="/metrics")


@app.get("/health")
def health_check() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": f"{BRAND_NAME.lower()}-api",
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
