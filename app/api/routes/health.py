from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from app.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe used by load balancers and uptime monitors.

    Not rate limited, so monitoring keeps working while clients are throttled.
    """

    return {
        "success": True,
        "message": f"{settings.app.name} is running",
        "version": settings.app.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
