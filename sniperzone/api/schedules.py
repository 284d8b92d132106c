"""Registration schedule API: reschedules, exceptions and resolved calendar."""

import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from sniperzone.api.dependencies import DbSession, ParentUid
from sniperzone.services.schedule_service import ScheduleService, get_owned_registration

router = APIRouter(prefix="/api/registrations", tags=["schedules"])
logger = logging.getLogger(__name__)


class RescheduleRequest(BaseModel):
    """Request model for a reschedule."""
    change_type: Literal["one_time", "permanent"]
    new_days: List[str] = Field(..., min_length=1)
    new_time: Optional[str] = None
    specific_date: Optional[date] = None
    effective_date: Optional[date] = None
    # Private/semi-private one-time swaps with several days
    replaced_day: Optional[str] = None
    reason: Optional[str] = None


class AvailabilityRequest(BaseModel):
    new_days: List[str] = Field(..., min_length=1)
    new_time: Optional[str] = None


class ExceptionResponse(BaseModel):
    """Response model for a schedule exception."""
    id: int
    exception_date: date
    original_day: str
    replacement_day: str
    replacement_time: Optional[str]
    reason: Optional[str]

    class Config:
        from_attributes = True


@router.post("/{registration_id}/reschedule")
async def reschedule(registration_id: int, data: RescheduleRequest, db: DbSession, firebase_uid: ParentUid):
    """Apply a one-time or permanent schedule change."""
    result = await ScheduleService(db).propose_change(
        registration_id,
        firebase_uid,
        data.change_type,
        data.new_days,
        new_time=data.new_time,
        specific_date=data.specific_date,
        effective_date=data.effective_date,
        replaced_day=data.replaced_day,
        reason=data.reason,
    )
    return result.to_dict()


@router.post("/{registration_id}/check-availability")
async def check_availability(registration_id: int, data: AvailabilityRequest, db: DbSession, firebase_uid: ParentUid):
    """Preview whether the target slots would admit this registration."""
    return await ScheduleService(db).check_reschedule_availability(
        registration_id, firebase_uid, data.new_days, data.new_time
    )


@router.get("/{registration_id}/occurrences")
async def get_occurrences(
    registration_id: int,
    db: DbSession,
    firebase_uid: ParentUid,
    weeks: int = Query(4, ge=1, le=12),
):
    """Upcoming training dates with one-time swaps applied."""
    registration = await get_owned_registration(db, registration_id, firebase_uid)
    occurrences = await ScheduleService(db).resolve_occurrences(registration, weeks=weeks)
    return {"success": True, "occurrences": [o.to_dict() for o in occurrences]}


@router.get("/{registration_id}/exceptions", response_model=List[ExceptionResponse])
async def get_exceptions(registration_id: int, db: DbSession, firebase_uid: ParentUid):
    """Upcoming one-time exceptions for a registration."""
    await get_owned_registration(db, registration_id, firebase_uid)
    return await ScheduleService(db).list_exceptions(registration_id)
