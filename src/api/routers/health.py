"""Health check API endpoint."""

import logging
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Depends

from ..dependencies import get_service
from ..schemas.common import HealthStatus, HealthStatusEnum

logger = logging.getLogger(__name__)
router = APIRouter()

SERVICE_VERSION = "1.0.0"


@router.get(
    "/health",
    response_model=HealthStatus,
    operation_id="getHealth",
    summary="Check service health",
)
async def health_check(service=Depends(get_service)):
    """
    Check the health of the service components.

    **No authentication required**.

    Returns status of:
    - Usage ledger (database with connection pool stats, or in-memory when DATABASE_ENABLED=false)
    - Tier catalog (default tier seeded)
    - Period reset task
    """
    components: Dict[str, Dict[str, Any]] = {}

    # Check ledger storage
    if service.config.use_database:
        try:
            from src.db.connection import db
            connected = await db.test_connection(timeout=5.0)
            components["database"] = {
                "status": "healthy" if connected else "unhealthy",
                "message": "Connected" if connected else "Connection failed",
                "pool": db.get_pool_stats(),
            }
        except Exception as e:
            components["database"] = {
                "status": "unhealthy",
                "message": str(e)
            }
    else:
        components["database"] = {
            "status": "disabled",
            "message": "In-memory usage ledger"
        }

    # Check the default tier resolves
    default_tier = service.catalog.default_tier_name
    try:
        if await service.catalog.exists(default_tier):
            components["tier_catalog"] = {"status": "healthy", "default_tier": default_tier}
        else:
            components["tier_catalog"] = {
                "status": "degraded",
                "message": f"Default tier {default_tier!r} not seeded",
            }
    except Exception as e:
        components["tier_catalog"] = {
            "status": "unhealthy",
            "message": str(e)
        }

    components["period_reset"] = {
        "status": "healthy" if service.scheduler.running or not service.config.reset_scheduler_enabled else "degraded",
        "running": service.scheduler.running,
        "interval_seconds": service.config.reset_interval_seconds,
    }

    statuses = {c.get("status") for c in components.values()}
    if "unhealthy" in statuses:
        status = HealthStatusEnum.unhealthy
    elif "degraded" in statuses:
        status = HealthStatusEnum.degraded
    else:
        status = HealthStatusEnum.healthy

    return HealthStatus(
        status=status,
        version=SERVICE_VERSION,
        timestamp=datetime.now(timezone.utc),
        components=components,
    )


@router.get(
    "/",
    response_model=Dict[str, str],
    operation_id="getRoot",
    summary="Get API information",
)
async def root():
    """Root endpoint with API information and documentation links."""
    return {
        "service": "Message Quota Service",
        "version": SERVICE_VERSION,
        "docs": "/docs",
        "health": "/health",
    }
