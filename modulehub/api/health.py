"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from modulehub.database import health_check as db_health_check

router = APIRouter(prefix="/v1", tags=["Health"])


@router.get("/healthcheck")
async def healthcheck() -> dict:
    """Report service status and database reachability.

    Returns:
        Status and timestamp in ISO8601 format
    """
    db_healthy = await db_health_check()
    return {
        "status": "available",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "healthy" if db_healthy else "unhealthy",
    }
