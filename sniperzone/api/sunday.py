"""Sunday ice practice API endpoints."""

import io
import logging
from datetime import date
from typing import Literal, Optional

import pandas as pd
from fastapi import APIRouter, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from sniperzone.api.dependencies import AdminUid, DbSession, ParentUid
from sniperzone.services.booking_service import BookingService

router = APIRouter(prefix="/api/sunday", tags=["sunday"])
logger = logging.getLogger(__name__)

ROSTER_COLUMNS = {
    "time_range": "Time",
    "player_name": "Player",
    "age_category": "Category",
    "parent_name": "Parent",
    "parent_email": "Email",
    "status": "Status",
}


class SundayBookRequest(BaseModel):
    slot_id: int
    registration_id: int


class AttendanceRequest(BaseModel):
    attended: bool
    marked_by: Optional[str] = None


@router.get("/slots/{registration_id}")
async def get_next_slots(registration_id: int, db: DbSession, firebase_uid: ParentUid):
    """Upcoming Sunday slots the player is eligible for."""
    return await BookingService(db).get_next_sunday_slots(registration_id, firebase_uid)


@router.post("/book", status_code=status.HTTP_201_CREATED)
async def book_slot(data: SundayBookRequest, db: DbSession, firebase_uid: ParentUid):
    booking = await BookingService(db).book_sunday_slot(data.slot_id, data.registration_id, firebase_uid)
    return {
        "success": True,
        "booking_id": booking.id,
        "practice_date": booking.session_date.isoformat(),
        "time_range": booking.time_slot,
        "message": "Sunday practice booked",
    }


@router.post("/bookings/{booking_id}/cancel")
async def cancel_booking(booking_id: int, db: DbSession, firebase_uid: ParentUid):
    return await BookingService(db).cancel_sunday_booking(booking_id, firebase_uid)


@router.post("/bookings/{booking_id}/attendance")
async def mark_attendance(booking_id: int, data: AttendanceRequest, db: DbSession, admin_uid: AdminUid):
    """Mark a Sunday booking attended or no-show."""
    booking = await BookingService(db).mark_sunday_attendance(booking_id, data.attended, data.marked_by or admin_uid)
    return {
        "success": True,
        "booking_id": booking.id,
        "status": booking.status.value,
        "message": f"Attendance marked as {'attended' if data.attended else 'no-show'}",
    }


@router.get("/roster/{practice_date}")
async def get_roster(practice_date: date, db: DbSession, admin_uid: AdminUid):
    """Admin roster for one Sunday."""
    roster = await BookingService(db).get_sunday_roster(practice_date)
    return {"success": True, "practice_date": practice_date.isoformat(), "total": len(roster), "players": roster}


@router.get("/roster/{practice_date}/export")
async def export_roster(
    practice_date: date,
    db: DbSession,
    admin_uid: AdminUid,
    format: Literal["csv", "xlsx"] = Query("csv"),
):
    """Download the Sunday roster as CSV or Excel."""
    roster = await BookingService(db).get_sunday_roster(practice_date)
    df = pd.DataFrame(roster, columns=list(ROSTER_COLUMNS)).rename(columns=ROSTER_COLUMNS)
    filename = f"sunday_roster_{practice_date.isoformat()}"

    output = io.BytesIO()
    if format == "xlsx":
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Roster", index=False)

            # Auto-adjust column widths
            worksheet = writer.sheets["Roster"]
            for column in worksheet.columns:
                max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
                worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    else:
        df.to_csv(output, index=False, encoding="utf-8")
        media_type = "text/csv"

    output.seek(0)
    logger.info(f"📄 Exported Sunday roster for {practice_date} ({len(df)} rows, {format})")
    return StreamingResponse(
        output,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}.{format}"},
    )
