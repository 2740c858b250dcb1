"""Service for scheduling background jobs."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from kilncost.config import settings
from kilncost.services.costing import CostingService, RecalculationStats

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages scheduled tasks for the application."""

    def __init__(self, costing_service: CostingService, scheduler: AsyncIOScheduler):
        self._costing_service = costing_service
        self._scheduler = scheduler

    def start(self):
        """Starts the scheduler and adds jobs."""
        logger.info("Starting scheduler...")
        self._scheduler.add_job(
            self._run_nightly_recalculation,
            trigger=CronTrigger(
                hour=settings.RECALCULATION_HOUR, minute=settings.RECALCULATION_MINUTE
            ),
            id="nightly_recalculation",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Scheduler started.")

    async def _run_nightly_recalculation(self) -> RecalculationStats:
        """
        Recalculates the stored cost of every completed batch and reports
        batches whose data needs an operator's attention.
        """
        logger.info("Starting nightly cost recalculation job.")
        stats = await self._costing_service.recalculate_completed()

        for detail in stats.details:
            if detail.anomaly_count:
                logger.warning(
                    f"Batch {detail.batch_number} has {detail.anomaly_count} "
                    f"unresolved data issue(s)."
                )
        if stats.errors:
            failed = ", ".join(f.batch_number for f in stats.errors)
            logger.error(f"Costs of {failed} were not stored.")
        logger.info(
            f"Nightly cost recalculation finished: total {stats.total_new_cost} "
            f"(was {stats.total_old_cost})."
        )
        return stats
