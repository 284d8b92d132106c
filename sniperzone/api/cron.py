"""Batch job triggers for an external cron runner."""

import logging

from fastapi import APIRouter

from sniperzone.api.dependencies import CronAuth, DbSession
from sniperzone.services.booking_service import BookingService
from sniperzone.services.recurring_service import RecurringBookingProcessor

router = APIRouter(prefix="/api/cron", tags=["cron"], dependencies=[CronAuth])
logger = logging.getLogger(__name__)


@router.post("/process-recurring")
async def process_recurring(db: DbSession):
    """Book every recurring schedule that is due today."""
    stats = await RecurringBookingProcessor(db).run()
    return {"success": True, **stats.to_dict()}


@router.post("/generate-sunday-slots")
async def generate_sunday_slots(db: DbSession):
    created = await BookingService(db).generate_sunday_slots()
    return {"success": True, "created": created}
