"""
FastAPI service for monthly message quotas.

This service provides a REST API for:
- Per-user admission checks against the subscription tier's allowance
- Quota status for the caller
- Tier catalog listing and administration
- Period reset sweeps and usage ledger audits

Usage:
    uvicorn src.main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
import os
import sys
from pathlib import Path

# Add project root to Python path for direct execution
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

# Load environment variables before importing anything else
load_dotenv()

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from src.api import create_app
from src.utils.env_utils import parse_bool_env, parse_int_env

app = create_app()

logger.info("Message Quota Service initialized")
logger.info("API documentation available at /docs and /redoc")


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("API_HOST", "0.0.0.0")
    port = parse_int_env("API_PORT", 8000)
    reload = parse_bool_env("DEBUG", False)

    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(
        "src.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
    )
