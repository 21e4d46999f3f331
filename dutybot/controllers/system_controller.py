# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: System endpoints — health, readiness, metrics.
Pure HTTP layer — no business logic.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from dutybot.core.config import settings
from dutybot.core.dependencies import get_console_service, get_state_repo, get_task_service

router = APIRouter(tags=["System"])


@router.get("/health")
def health_check():
    """Liveness probe for Docker and orchestration."""
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stored_keys": get_state_repo().count(),
        "scheduled_tasks": len(get_task_service().list_tasks()),
    }


@router.get("/health/ready")
def readiness_check():
    """Readiness probe — reports whether LINE and Gemini credentials are present."""
    return {
        "status": "ready",
        "service": settings.SERVICE_NAME,
        "line_configured": bool(settings.CHANNEL_ACCESS_TOKEN and settings.CHANNEL_SECRET),
        "gemini_configured": bool(settings.GEMINI_API_KEY),
        "roster_size": len(get_console_service().settings.staff_list),
    }


@router.get("/metrics")
def prometheus_metrics():
    """Expose Prometheus metrics in OpenMetrics format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
