"""Schedule exception model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class ExceptionStatus(str, Enum):
    """Schedule exception status enum."""

    APPLIED = "applied"
    CANCELLED = "cancelled"


class ScheduleException(Base):
    """One-time override of a registration's recurring schedule.

    ``exception_date`` is the date of the ORIGINAL training day that gets
    replaced; the player trains on ``replacement_day`` that week instead.
    """

    __tablename__ = "schedule_exceptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id"), nullable=False)
    exception_date: Mapped[date] = mapped_column(Date, nullable=False)
    exception_type: Mapped[str] = mapped_column(String(20), nullable=False, default="swap")
    original_day: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    replacement_day: Mapped[str] = mapped_column(String(10), nullable=False)
    replacement_time: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[ExceptionStatus] = mapped_column(
        SQLEnum(ExceptionStatus), default=ExceptionStatus.APPLIED, nullable=False
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_schedule_exceptions_reg_date", "registration_id", "exception_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleException(id={self.id}, registration_id={self.registration_id}, "
            f"date={self.exception_date}, replacement={self.replacement_day} {self.replacement_time or ''})>"
        )
