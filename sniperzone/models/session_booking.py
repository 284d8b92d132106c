"""Session booking model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class BookingStatus(str, Enum):
    """Session booking status enum."""

    BOOKED = "booked"
    ATTENDED = "attended"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that occupy a seat
SEAT_HOLDING_STATUSES = (BookingStatus.BOOKED, BookingStatus.ATTENDED)


class SessionBooking(Base):
    """A concrete booked seat on a specific date and time."""

    __tablename__ = "session_bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    firebase_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id"), nullable=False)
    session_type: Mapped[str] = mapped_column(String(20), nullable=False)  # group | private | semi_private | sunday
    session_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time_slot: Mapped[str] = mapped_column(String(50), nullable=False)

    credits_used: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    credit_purchase_id: Mapped[Optional[int]] = mapped_column(ForeignKey("credit_purchases.id"), nullable=True)
    sunday_slot_id: Mapped[Optional[int]] = mapped_column(ForeignKey("sunday_practice_slots.id"), nullable=True)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus), default=BookingStatus.BOOKED, nullable=False
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_schedule_id: Mapped[Optional[int]] = mapped_column(ForeignKey("recurring_schedules.id"), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    credits_refunded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attendance_marked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    attendance_marked_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # One live booking per registration, date, time and session type.
    # Enum columns store member names, hence 'CANCELLED'.
    __table_args__ = (
        Index(
            "uq_session_booking_live",
            "registration_id",
            "session_date",
            "time_slot",
            "session_type",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
        Index("idx_session_bookings_slot", "session_date", "time_slot", "session_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<SessionBooking(id={self.id}, registration_id={self.registration_id}, "
            f"{self.session_type} {self.session_date} {self.time_slot}, status={self.status})>"
        )
