"""Semi-private pairing API endpoints."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from sniperzone.api.dependencies import AdminUid, DbSession, ParentUid
from sniperzone.services.pairing_service import PairingEngine, list_unpaired
from sniperzone.services.schedule_service import get_owned_registration

router = APIRouter(prefix="/api/semi-private", tags=["semi-private"])


class UnpairedResponse(BaseModel):
    """Response model for a waiting semi-private player."""
    id: int
    registration_id: int
    player_name: Optional[str]
    age_category: Optional[str]
    preferred_days: Optional[List[str]]
    preferred_time_slots: Optional[List[str]]
    unpaired_since_date: date

    class Config:
        from_attributes = True


@router.get("/{registration_id}/suggestions")
async def get_suggestions(registration_id: int, db: DbSession, firebase_uid: ParentUid):
    """Slots where a same-category player is waiting for a partner."""
    registration = await get_owned_registration(db, registration_id, firebase_uid)
    engine = PairingEngine(db)
    return {
        "success": True,
        "current_pairing": await engine.get_current_pairing(registration),
        "suggestions": await engine.get_suggested_times(registration),
    }


@router.get("/{registration_id}/week-availability")
async def get_week_availability(registration_id: int, db: DbSession, firebase_uid: ParentUid):
    registration = await get_owned_registration(db, registration_id, firebase_uid)
    return {"success": True, "days": await PairingEngine(db).get_week_availability(registration)}


@router.get("/admin/unpaired", response_model=List[UnpairedResponse])
async def get_unpaired(db: DbSession, admin_uid: AdminUid, age_category: Optional[str] = None):
    """Waitlist for the admin panel, longest-waiting first."""
    return await list_unpaired(db, age_category)
