"""Recurring schedule model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class PausedReason(str, Enum):
    """Why a recurring schedule stopped auto-booking."""

    INSUFFICIENT_CREDITS = "insufficient_credits"
    SLOT_UNAVAILABLE = "slot_unavailable"
    USER_PAUSED = "user_paused"


class RecurringSchedule(Base):
    """Parent opt-in to a weekly credit-funded auto-booking.

    ``next_booking_date`` only moves forward, 7 days per processed cycle.
    Once ``is_active`` is False it stays so until resumed by the parent.
    """

    __tablename__ = "recurring_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    firebase_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id"), nullable=False, index=True)
    session_type: Mapped[str] = mapped_column(String(20), nullable=False, default="group")
    day_of_week: Mapped[str] = mapped_column(String(10), nullable=False)
    time_slot: Mapped[str] = mapped_column(String(50), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    paused_reason: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    last_booked_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    next_booking_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("registration_id", "day_of_week", "time_slot", name="uq_recurring_slot"),
        Index("idx_recurring_active_next", "is_active", "next_booking_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<RecurringSchedule(id={self.id}, registration_id={self.registration_id}, "
            f"{self.day_of_week} {self.time_slot}, next={self.next_booking_date}, active={self.is_active})>"
        )
