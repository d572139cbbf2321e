"""Shared error response definitions for OpenAPI documentation.

Use these in FastAPI route definitions for consistent error documentation.
"""

from .common import ErrorResponse

# =============================================================================
# Base Error Responses
# =============================================================================

BASE_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request parameters"},
    401: {"model": ErrorResponse, "description": "API key required but not provided"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}

# =============================================================================
# API-Specific Error Responses
# =============================================================================

QUOTA_ERROR_RESPONSES = {
    **BASE_ERROR_RESPONSES,
    402: {"model": ErrorResponse, "description": "Monthly message limit reached, or tier not recognised"},
    503: {"model": ErrorResponse, "description": "Usage ledger unavailable"},
}

TIER_ERROR_RESPONSES = {
    **BASE_ERROR_RESPONSES,
    403: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Tier not found"},
    422: {"model": ErrorResponse, "description": "Invalid tier definition"},
}

ADMIN_ERROR_RESPONSES = {
    **BASE_ERROR_RESPONSES,
    403: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Tier not available"},
    409: {"model": ErrorResponse, "description": "Default tier not seeded"},
    503: {"model": ErrorResponse, "description": "Usage ledger unavailable"},
}

__all__ = [
    "BASE_ERROR_RESPONSES",
    "QUOTA_ERROR_RESPONSES",
    "TIER_ERROR_RESPONSES",
    "ADMIN_ERROR_RESPONSES",
]
