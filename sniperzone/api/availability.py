"""Slot availability API endpoints."""

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Query

from sniperzone.api.dependencies import DbSession
from sniperzone.services.capacity_service import CapacityLedger

router = APIRouter(prefix="/api/availability", tags=["availability"])


@router.get("")
async def get_availability(
    db: DbSession,
    program_type: str = Query(..., description="group, private, semi_private or sunday"),
    day: str = Query(...),
    time_slot: Optional[str] = None,
    on_date: Optional[date] = None,
):
    """Occupancy of a weekday slot. Errors out rather than guessing."""
    availability = await CapacityLedger(db).check_availability(program_type, day, time_slot, on_date=on_date)
    return {"success": True, **availability.to_dict()}


@router.get("/session")
async def get_session_availability(
    db: DbSession,
    session_date: date,
    time_slot: str,
    session_type: Literal["group", "private", "semi_private"] = "group",
):
    """Seats taken on one dated session."""
    availability = await CapacityLedger(db).get_slot_capacity(session_date, time_slot, session_type)
    return {"success": True, **availability.to_dict()}
