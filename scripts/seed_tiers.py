#!/usr/bin/env python3
"""
Seed subscription tiers into the database.

Creates the default Freemium, Pro, Team and Enterprise tiers. Existing tiers
are left alone unless --overwrite is given, so administrative changes to an
allowance survive a re-run.

Usage:
    python scripts/seed_tiers.py               # Seed missing default tiers
    python scripts/seed_tiers.py --list        # List current tiers
    python scripts/seed_tiers.py --overwrite   # Reset default tiers to their defaults
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from src.core.quota import get_quota_service


async def list_tiers(service):
    """List existing subscription tiers."""
    tiers = await service.list_tiers(include_inactive=True)

    if not tiers:
        logger.info("No subscription tiers found in database")
        return

    logger.info(f"Subscription Tiers ({len(tiers)}):")
    logger.info("-" * 60)

    for tier in tiers:
        status = "active" if tier.is_active else "inactive"
        allowance = "unlimited" if tier.is_unlimited else f"{tier.monthly_allowance:,} messages/mo"
        logger.info(f"  {tier.name:12} | {allowance:>22} | [{status}]")


async def seed_tiers(service, overwrite: bool = False):
    """Seed default subscription tiers."""
    seeded = await service.seed_default_tiers(overwrite=overwrite)
    if seeded:
        logger.info(f"Seeded {len(seeded)} tier(s): {', '.join(t.name for t in seeded)}")
    else:
        logger.info("All default tiers already present (use --overwrite to reset them)")


async def run(list_only: bool, overwrite: bool):
    service = get_quota_service()
    try:
        if not list_only:
            await seed_tiers(service, overwrite=overwrite)
        await list_tiers(service)
    finally:
        await service.close()


# =============================================================================
# MAIN
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description="Seed subscription tiers into the database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Default Tiers:
    Freemium   - 10 messages/month
    Pro        - unlimited
    Team       - unlimited
    Enterprise - unlimited
        """
    )

    parser.add_argument(
        "--list", "-l",
        action="store_true",
        help="List current subscription tiers"
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing default tiers with their default definitions"
    )

    args = parser.parse_args()

    service = get_quota_service()
    if not service.config.use_database:
        logger.error("DATABASE_ENABLED=false - tiers would only be seeded in memory")
        sys.exit(1)

    asyncio.run(run(list_only=args.list, overwrite=args.overwrite))


if __name__ == "__main__":
    main()
