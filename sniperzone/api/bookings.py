"""Session booking API endpoints."""

import logging
from datetime import date, datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel

from sniperzone.api.dependencies import DbSession, ParentUid
from sniperzone.models import BookingStatus
from sniperzone.services.booking_service import BookingService
from sniperzone.services.credit_ledger import SqlCreditLedger
from sniperzone.services.notification_service import list_notifications

router = APIRouter(prefix="/api", tags=["bookings"])
logger = logging.getLogger(__name__)


class BookingCreateRequest(BaseModel):
    """Request model for booking a session."""
    registration_id: int
    session_type: Literal["group", "private", "semi_private"]
    session_date: date
    time_slot: str


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = None


class BookingResponse(BaseModel):
    """Response model for a session booking."""
    id: int
    registration_id: int
    session_type: str
    session_date: date
    time_slot: str
    credits_used: int
    status: BookingStatus
    is_recurring: bool
    recurring_schedule_id: Optional[int]
    cancelled_at: Optional[datetime] = None
    credits_refunded: bool

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    priority: str
    data: Optional[dict]
    read: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book_session(data: BookingCreateRequest, db: DbSession, firebase_uid: ParentUid):
    """Book one dated session with a credit."""
    return await BookingService(db).book_session(
        firebase_uid, data.registration_id, data.session_type, data.session_date, data.time_slot
    )


@router.get("/bookings", response_model=List[BookingResponse])
async def list_bookings(db: DbSession, firebase_uid: ParentUid, upcoming_only: bool = True):
    return await BookingService(db).list_bookings(firebase_uid, upcoming_only)


@router.post("/bookings/{booking_id}/cancel")
async def cancel_booking(booking_id: int, db: DbSession, firebase_uid: ParentUid, data: Optional[BookingCancelRequest] = None):
    """Cancel a booking; refunds only outside the cancellation window."""
    return await BookingService(db).cancel_booking(booking_id, firebase_uid, data.reason if data else None)


@router.get("/credits")
async def get_credit_balance(db: DbSession, firebase_uid: ParentUid):
    return {"success": True, "total_credits": await SqlCreditLedger(db).get_balance(firebase_uid)}


@router.get("/notifications", response_model=List[NotificationResponse])
async def get_notifications(db: DbSession, firebase_uid: ParentUid, unread_only: bool = False):
    return await list_notifications(db, firebase_uid, unread_only)
