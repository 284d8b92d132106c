"""Schedule change audit model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class ChangeType(str, Enum):
    """Reschedule kind."""

    ONE_TIME = "one_time"
    PERMANENT = "permanent"


class ScheduleChange(Base):
    """Append-only audit row, one per reschedule action."""

    __tablename__ = "schedule_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id"), nullable=False, index=True)
    change_type: Mapped[ChangeType] = mapped_column(SQLEnum(ChangeType), nullable=False)
    program_type: Mapped[str] = mapped_column(String(20), nullable=False)

    original_days: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    original_time: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_days: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    new_time: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    specific_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # one_time
    effective_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # permanent

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="approved")
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return (
            f"<ScheduleChange(id={self.id}, registration_id={self.registration_id}, "
            f"type={self.change_type}, {self.original_days} -> {self.new_days})>"
        )
