"""
Cron scheduler for the daily recurring-booking run and weekly Sunday slots.

Run as a separate worker process:

    python -m sniperzone.workers.cron_scheduler
"""

import asyncio
import logging
from typing import Any, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from sniperzone.core.database import AsyncSessionLocal
from sniperzone.core.settings import settings
from sniperzone.services.booking_service import BookingService
from sniperzone.services.recurring_service import RecurringBookingProcessor
from sniperzone.utils.timezone import VENUE_TZ

logger = logging.getLogger(__name__)


async def run_recurring_bookings() -> Dict[str, Any]:
    """One pass of the recurring processor in its own session."""
    async with AsyncSessionLocal() as db:
        stats = await RecurringBookingProcessor(db).run()
    return stats.to_dict()


async def run_sunday_slot_generation() -> int:
    async with AsyncSessionLocal() as db:
        return await BookingService(db).generate_sunday_slots()


class CronScheduler:
    """Owns the APScheduler instance and its two jobs."""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=VENUE_TZ)
        self.is_running = False

    def start(self):
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.add_job(
            self._recurring_job,
            CronTrigger(hour=settings.recurring_cron_hour, minute=0, timezone=VENUE_TZ),
            id="process_recurring_bookings",
            name="Daily recurring booking run",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self._sunday_slots_job,
            CronTrigger(day_of_week="mon", hour=0, minute=0, timezone=VENUE_TZ),
            id="generate_sunday_slots",
            name="Weekly Sunday slot generation",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self.is_running = True

        logger.info(f"✅ Recurring bookings scheduled daily at {settings.recurring_cron_hour:02d}:00 ({settings.timezone})")
        logger.info(f"✅ Sunday slot generation scheduled Mondays 00:00 ({settings.timezone})")

    def stop(self):
        if not self.is_running:
            return
        self.scheduler.shutdown()
        self.is_running = False
        logger.info("🛑 Scheduler stopped")

    async def _recurring_job(self):
        try:
            stats = await run_recurring_bookings()
            logger.info(f"🔁 Recurring run finished: {stats}")
        except Exception as e:
            logger.error(f"❌ Recurring run failed: {e}")

    async def _sunday_slots_job(self):
        try:
            created = await run_sunday_slot_generation()
            logger.info(f"🏒 Sunday slot generation finished: {created} created")
        except Exception as e:
            logger.error(f"❌ Sunday slot generation failed: {e}")


async def _serve():
    cron = CronScheduler()
    cron.start()
    try:
        # Keep the loop alive for the scheduler
        await asyncio.Event().wait()
    finally:
        cron.stop()


def main():
    """Entry point for the worker process."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("🚀 Starting cron scheduler...")

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("🛑 Keyboard interrupt received")


if __name__ == "__main__":
    main()
