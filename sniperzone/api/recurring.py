"""Recurring auto-booking API endpoints."""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel

from sniperzone.api.dependencies import DbSession, ParentUid
from sniperzone.services.recurring_service import RecurringScheduleService

router = APIRouter(prefix="/api/recurring", tags=["recurring"])


class RecurringCreateRequest(BaseModel):
    """Request model for opting into weekly auto-booking."""
    registration_id: int
    day_of_week: str
    time_slot: Optional[str] = None


class RecurringUpdateRequest(BaseModel):
    is_active: bool


class RecurringResponse(BaseModel):
    """Response model for a recurring schedule."""
    id: int
    registration_id: int
    session_type: str
    day_of_week: str
    time_slot: str
    is_active: bool
    paused_reason: Optional[str]
    last_booked_date: Optional[date]
    next_booking_date: Optional[date]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("", response_model=List[RecurringResponse])
async def list_schedules(db: DbSession, firebase_uid: ParentUid):
    return await RecurringScheduleService(db).list_for_parent(firebase_uid)


@router.post("", response_model=RecurringResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(data: RecurringCreateRequest, db: DbSession, firebase_uid: ParentUid):
    return await RecurringScheduleService(db).create(
        firebase_uid, data.registration_id, data.day_of_week, data.time_slot
    )


@router.patch("/{schedule_id}", response_model=RecurringResponse)
async def update_schedule(schedule_id: int, data: RecurringUpdateRequest, db: DbSession, firebase_uid: ParentUid):
    """Pause or resume a schedule."""
    return await RecurringScheduleService(db).set_active(schedule_id, firebase_uid, data.is_active)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(schedule_id: int, db: DbSession, firebase_uid: ParentUid):
    await RecurringScheduleService(db).delete(schedule_id, firebase_uid)
