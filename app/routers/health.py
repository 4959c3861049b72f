"""
Health check endpoint.

- GET /health — cheap: process alive, version, uptime. No provider calls.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from app.config import settings
from app.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Liveness only: Asaas and the database are not contacted."""
    return {
        "status": "ok",
        "version": APP_VERSION,
        "service": SERVICE_NAME,
        "asaas_configured": settings.asaas_configured,
        "uptime_s": round(get_uptime_s(), 1),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
