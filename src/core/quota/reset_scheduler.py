"""
PeriodResetScheduler - Rolls usage counters into their next billing period.

Each sweep walks the ledger and applies the shared conditional reset to
every row whose period has ended. A row reset by the admission path (or by
another replica's sweep) in the meantime is skipped, so sweeps may overlap
and may be re-run after a crash.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from .config import QuotaConfig
from .exceptions import StorageUnavailable
from .periods import is_due, utcnow
from .schemas import SweepReport
from .store import UsageStore

logger = logging.getLogger(__name__)


class PeriodResetScheduler:
    """Periodic sweep over the usage ledger."""

    def __init__(
        self,
        store: UsageStore,
        config: Optional[QuotaConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._config = config or QuotaConfig()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> SweepReport:
        """
        Reset every row whose period has ended.

        Returns:
            SweepReport with rows checked, reset, skipped (not due, missing
            reset instant, or already reset by another caller) and failed
        """
        now = self._clock()
        report = SweepReport(started_at=now)

        async for row in self._store.list_usage_rows():
            report.checked += 1

            if row.period_reset_at is None or not is_due(row.period_reset_at, now):
                report.skipped += 1
                continue

            try:
                applied = await self._store.reset_if_due(
                    row.user_id, now, self._config.period_months
                )
            except StorageUnavailable as e:
                report.failed += 1
                logger.error(f"Period reset failed for user {row.user_id}: {e.message}")
                continue

            if applied:
                report.reset += 1
            else:
                report.skipped += 1

        report.finished_at = utcnow()
        logger.info(
            f"Period reset sweep complete: checked={report.checked}, reset={report.reset}, "
            f"skipped={report.skipped}, failed={report.failed}"
        )
        return report

    async def _run_loop(self) -> None:
        """Background task running sweep() every reset_interval_seconds."""
        interval = self._config.reset_interval_seconds

        while True:
            try:
                await self.sweep()
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Period reset task cancelled")
                break
            except Exception as e:
                logger.error(f"Unexpected error in period reset sweep: {e}")
                await asyncio.sleep(interval)

    def start(self) -> None:
        """Start the background sweep task on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Started period reset task (interval={self._config.reset_interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Period reset task stopped")


__all__ = [
    "PeriodResetScheduler",
]
