"""Sunday ice practice slot model."""

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, String, Time, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class SundayPracticeSlot(Base):
    """Persisted Sunday ice slot with its own seat counter.

    ``current_bookings`` never exceeds ``max_capacity``; every increment
    is a conditional update guarded by that comparison.
    """

    __tablename__ = "sunday_practice_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    practice_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    min_category: Mapped[str] = mapped_column(String(20), nullable=False)
    max_category: Mapped[str] = mapped_column(String(20), nullable=False)
    eligible_categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("practice_date", "start_time", name="uq_sunday_slot_date_time"),
    )

    @property
    def available_spots(self) -> int:
        return max(0, self.max_capacity - self.current_bookings)

    @property
    def time_label(self) -> str:
        return f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"

    def __repr__(self) -> str:
        return (
            f"<SundayPracticeSlot(id={self.id}, date={self.practice_date}, "
            f"time={self.time_label}, {self.current_bookings}/{self.max_capacity})>"
        )
