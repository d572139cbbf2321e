#!/usr/bin/env python3
"""
Run one period reset sweep.

For deployments that schedule resets with cron (or Cloud Scheduler) instead
of the API's background task. Safe to run while the API is serving: rows
already reset are skipped.

Usage:
    python scripts/reset_periods.py            # Reset every counter whose period has ended
    python scripts/reset_periods.py --verbose  # Also log rows skipped after losing a race

Exit code is 1 if any row failed to reset.
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
from src.utils.timer_utils import Timer


async def run_sweep() -> int:
    """Run the sweep and return the number of failed rows."""
    service = get_quota_service()
    try:
        with Timer() as t:
            report = await service.run_reset_sweep()

        logger.info("=" * 60)
        logger.info("Period Reset Sweep")
        logger.info("=" * 60)
        logger.info(f"Rows checked: {report.checked}")
        logger.info(f"Rows reset:   {report.reset}")
        logger.info(f"Rows skipped: {report.skipped}")
        logger.info(f"Rows failed:  {report.failed}")
        logger.info(f"Duration:     {t.elapsed_ms:.0f}ms")
        return report.failed

    finally:
        await service.close()


def main():
    parser = argparse.ArgumentParser(
        description="Reset monthly message counters whose period has ended",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    failed = asyncio.run(run_sweep())
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
