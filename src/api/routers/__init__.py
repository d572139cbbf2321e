"""API routers package."""

from .health import router as health_router
from .tiers import router as tiers_router
from .quota import router as quota_router
from .admin import router as admin_router

__all__ = [
    "health_router",
    "tiers_router",
    "quota_router",
    "admin_router",
]
