"""Main entry point for the cost recalculation worker."""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from tortoise import Tortoise

from kilncost.config import settings
from kilncost.core.db import TORTOISE_ORM
from kilncost.core.repositories.process import ProcessRepository
from kilncost.core.repositories.reading import ReadingRepository
from kilncost.core.repositories.recharge import RechargeRepository
from kilncost.core.repositories.setting import SettingRepository
from kilncost.services.costing import CostingService
from kilncost.services.scheduler import SchedulerService

logger = logging.getLogger(__name__)


def build_costing_service() -> CostingService:
    return CostingService(
        process_repo=ProcessRepository(),
        reading_repo=ReadingRepository(),
        recharge_repo=RechargeRepository(),
        setting_repo=SettingRepository(),
    )


async def main():
    """Initializes the database and runs the scheduler until stopped."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info("Initializing database...")
    await Tortoise.init(config=TORTOISE_ORM)
    logger.info("Database initialized.")

    scheduler = SchedulerService(build_costing_service(), AsyncIOScheduler())
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Closing connections...")
        await Tortoise.close_connections()
        logger.info("Connections closed.")


def run():
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Worker stopped manually.")


if __name__ == "__main__":
    run()
