"""Shared dependencies for API routes.

User context is taken from the X-User-ID header; in production this header
is set by the authenticating gateway in front of the service.
"""

import logging
import os
from typing import Optional

from fastapi import HTTPException, Header

from src.core.quota import QuotaService, get_quota_service
from src.utils.env_utils import parse_bool_env

logger = logging.getLogger(__name__)


# =============================================================================
# Service Dependency
# =============================================================================

def get_service() -> QuotaService:
    """Get the QuotaService singleton (overridable in tests)."""
    return get_quota_service()


# =============================================================================
# User Context
# =============================================================================

async def get_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID")
) -> str:
    """
    Extract user ID from request header.

    Raises:
        HTTPException 400: If header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=400,
            detail="X-User-ID header required"
        )
    return x_user_id.strip()


# =============================================================================
# Optional API Key Authentication
# =============================================================================

def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key")
) -> Optional[str]:
    """
    Optional API key authentication.

    If API_KEY_REQUIRED is set to 'true' in environment, validates the key.
    Otherwise, returns the key for logging purposes.
    """
    api_key_required = parse_bool_env("API_KEY_REQUIRED", False)
    expected_key = os.getenv("API_KEY", "")

    if api_key_required:
        if not x_api_key:
            raise HTTPException(
                status_code=401,
                detail="API key required. Provide X-API-Key header."
            )
        if x_api_key != expected_key:
            raise HTTPException(
                status_code=403,
                detail="Invalid API key"
            )

    return x_api_key


def require_admin_key(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")
) -> None:
    """
    Guard for tier updates and operational triggers.

    Enforced only when ADMIN_API_KEY is set.
    """
    expected_key = os.getenv("ADMIN_API_KEY", "")
    if not expected_key:
        return

    if not x_admin_key:
        raise HTTPException(
            status_code=401,
            detail="Admin key required. Provide X-Admin-Key header."
        )
    if x_admin_key != expected_key:
        logger.warning("Rejected admin request with invalid X-Admin-Key")
        raise HTTPException(
            status_code=403,
            detail="Invalid admin key"
        )
