"""Health check endpoints.

Provides:
- Liveness probe (/health)
- Dependency check (/health/ready), pings the shared key-value store
"""

import time
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.config import Settings
from app.dependencies import get_app_settings, get_kv_storage
from core.storage import KeyValueStorage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("", response_model=dict[str, Any])
async def liveness(settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """
    Get API name, version and uptime.
    Used as a simple liveness probe.
    """
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "started_at": _start_datetime,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


@router.get("/ready", response_model=dict[str, Any])
async def readiness(kv: KeyValueStorage = Depends(get_kv_storage)) -> dict[str, Any]:
    """
    Readiness check with dependency verification.
    Returns 503 if the key-value store is unreachable.
    """
    checks: dict[str, str] = {}

    try:
        checks["storage"] = "ok" if await kv.ping() else "degraded"
    except Exception as e:
        logger.error("Storage health check failed", error=str(e))
        checks["storage"] = "unavailable"

    if checks["storage"] == "unavailable":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": checks},
        )

    return {"status": "healthy", **checks}
