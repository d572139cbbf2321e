#!/usr/bin/env python3
"""
Audit the usage ledger and repair inconsistent rows.

Finds rows whose tier is missing or unknown (including the legacy 'free'
tier), rows without a reset instant and rows with a negative counter, and
rewrites them to the default tier, a fresh period and zero usage.

Usage:
    python scripts/audit_usage.py              # Dry run - show what would be repaired
    python scripts/audit_usage.py --execute    # Actually repair the rows
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

from src.core.quota import UnknownTier, get_quota_service


async def run_audit(dry_run: bool = True):
    """
    Audit the ledger.

    Args:
        dry_run: If True, only show what would be done without making changes
    """
    service = get_quota_service()
    try:
        try:
            report = await service.run_audit(dry_run=dry_run)
        except UnknownTier as e:
            logger.error(f"Default tier {e.tier_name!r} not found in subscription_tiers!")
            logger.error("Please run 'python scripts/seed_tiers.py' first.")
            return

        logger.info("=" * 60)
        logger.info("Usage Ledger Audit" + (" [DRY RUN]" if dry_run else ""))
        logger.info("=" * 60)
        logger.info(f"Rows checked: {report.checked}")

        for invariant, count in report.found.items():
            logger.info(
                f"  {invariant:18}: found {count}"
                + ("" if dry_run else f", corrected {report.corrected.get(invariant, 0)}")
            )

        ids = report.repaired_user_ids
        if ids:
            logger.info(f"Affected users ({len(ids)}):")
            for user_id in ids[:10]:  # Show first 10
                logger.info(f"  - {user_id}")
            if len(ids) > 10:
                logger.info(f"  ... and {len(ids) - 10} more")

        if report.tier_distribution:
            logger.info("Tier distribution:")
            for tier_name, count in sorted(report.tier_distribution.items()):
                logger.info(f"  {tier_name:12}: {count}")

        if dry_run and ids:
            logger.info("[DRY RUN] No changes were made.")
            logger.info("Run with --execute to repair the rows.")

    finally:
        await service.close()


def main():
    parser = argparse.ArgumentParser(
        description="Audit the usage ledger and repair inconsistent rows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Repairs:
    unknown_tier      tier null, empty or not in subscription_tiers -> default tier
    missing_reset_at  period_reset_at null -> now + one period
    negative_usage    messages_used negative or null -> 0

Examples:
    python scripts/audit_usage.py              # Dry run
    python scripts/audit_usage.py --execute    # Repair
        """
    )

    parser.add_argument(
        "--execute", "-e",
        action="store_true",
        help="Actually repair the rows (default is dry run)"
    )

    args = parser.parse_args()

    asyncio.run(run_audit(dry_run=not args.execute))


if __name__ == "__main__":
    main()
