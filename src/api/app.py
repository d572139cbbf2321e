"""FastAPI application factory."""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from src.utils.env_utils import parse_bool_env, parse_list_env

from .middleware import add_middleware, register_exception_handlers
from .routers import (
    admin_router,
    health_router,
    quota_router,
    tiers_router,
)

logger = logging.getLogger(__name__)

# =============================================================================
# OpenAPI Configuration
# =============================================================================

OPENAPI_TAGS = [
    {
        "name": "Health",
        "description": "Service health checks and status endpoints",
    },
    {
        "name": "Tiers",
        "description": "Subscription tiers and their monthly message allowances",
    },
    {
        "name": "Quota",
        "description": "Per-user admission checks and quota status",
    },
    {
        "name": "Admin",
        "description": "User tier assignment, period reset sweep and usage ledger audit",
    },
]

API_DESCRIPTION = """
Monthly message quotas by subscription tier.

## Quota
Every chat message is admitted through `POST /quota/consume`, which answers
allowed/denied and records the message in one atomic step. Metered tiers
(freemium) are blocked once the monthly allowance is used; unmetered tiers
(pro, team, enterprise) are never blocked.
A user's tier is assigned through the admin endpoints; callers cannot choose
their own.

## Billing periods
Each user's counter resets one month after the previous reset, anchored to
the day the account first used the service.

---

## Authentication

### Required Headers
- `X-User-ID`: Caller's user identifier (quota endpoints)

### Optional Headers
- `X-API-Key`: API key (required if `API_KEY_REQUIRED=true` in environment)
- `X-Admin-Key`: Admin key for tier updates and admin endpoints (required if `ADMIN_API_KEY` is set)

---

## Response Codes
- **402**: monthly message limit reached (includes an upgrade suggestion)
- **503**: usage ledger unavailable, retry shortly
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    from src.core.quota import get_quota_service

    # Startup
    logger.info("Starting Message Quota API...")

    service = get_quota_service()

    if service.config.use_database:
        try:
            from src.db.connection import db
            await db.get_engine_async()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")

    if parse_bool_env("SEED_TIERS_ON_STARTUP", True):
        try:
            await service.seed_default_tiers()
        except Exception as e:
            logger.warning(f"Tier seeding skipped: {e}")

    # Start periodic reset task
    service.start_scheduler()

    yield

    # Shutdown - stop the reset task before closing the store
    logger.info("Shutting down Message Quota API...")

    try:
        await service.close()
        logger.info("Quota service closed")
    except Exception as e:
        logger.warning(f"Quota service shutdown error: {e}")

    logger.info("Shutdown complete")


def custom_openapi(app: FastAPI) -> Dict[str, Any]:
    """Generate custom OpenAPI schema with security schemes and server configuration."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=OPENAPI_TAGS,
    )

    api_port = os.getenv("API_PORT", "8000")
    openapi_schema["servers"] = [
        {"url": f"http://localhost:{api_port}", "description": "Local development server"},
    ]

    if "components" not in openapi_schema:
        openapi_schema["components"] = {}

    openapi_schema["components"]["securitySchemes"] = {
        "UserId": {
            "type": "apiKey",
            "in": "header",
            "name": "X-User-ID",
            "description": "Caller's user ID (required for quota endpoints)",
        },
        "ApiKey": {
            "type": "apiKey",
            "in": "header",
            "name": "X-API-Key",
            "description": "API key for authentication (optional, required if API_KEY_REQUIRED=true)",
        },
        "AdminKey": {
            "type": "apiKey",
            "in": "header",
            "name": "X-Admin-Key",
            "description": "Admin key for tier updates and admin endpoints (required if ADMIN_API_KEY is set)",
        },
    }

    openapi_schema["security"] = [
        {"UserId": []},
    ]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    # Get configuration from environment
    api_prefix = os.getenv("API_PREFIX", "/api/v1")
    debug = parse_bool_env("DEBUG", False)

    app = FastAPI(
        title="Message Quota Service",
        description=API_DESCRIPTION,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
        debug=debug,
    )

    app.openapi = lambda: custom_openapi(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_list_env("CORS_ORIGINS", ["*"]),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add custom middleware (logging, error handling)
    add_middleware(app)

    # Register custom exception handlers
    register_exception_handlers(app)

    # Include routers
    app.include_router(
        health_router,
        tags=["Health"],
    )

    app.include_router(
        tiers_router,
        prefix=f"{api_prefix}/tiers",
        tags=["Tiers"],
    )

    app.include_router(
        quota_router,
        prefix=f"{api_prefix}/quota",
        tags=["Quota"],
    )

    app.include_router(
        admin_router,
        prefix=f"{api_prefix}/admin",
        tags=["Admin"],
    )

    return app
