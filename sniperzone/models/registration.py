"""Registration model."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class ProgramType(str, Enum):
    """Training program a registration belongs to."""

    GROUP = "group"
    PRIVATE = "private"
    SEMI_PRIVATE = "semi_private"
    SUNDAY = "sunday"


class RegistrationStatus(str, Enum):
    """Soft lifecycle status; registrations are never deleted."""

    ACTIVE = "active"
    CANCELLED = "cancelled"


# Payment states that make a registration count against capacity
PAID_STATUSES = ("succeeded", "verified", "active")


class Registration(Base):
    """One child's enrollment in a recurring training program."""

    __tablename__ = "registrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    firebase_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    player_name: Mapped[str] = mapped_column(String(200), nullable=False)
    parent_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    parent_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    program_type: Mapped[ProgramType] = mapped_column(SQLEnum(ProgramType), nullable=False, index=True)
    age_category: Mapped[str] = mapped_column(String(20), nullable=False)
    frequency: Mapped[str] = mapped_column(String(2), nullable=False, default="1x")  # '1x' | '2x'

    # Lowercase weekday tokens, e.g. ["monday", "wednesday"]
    selected_days: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    time_slot: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # Derived cache of this month's training dates (YYYY-MM-DD)
    monthly_dates: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    status: Mapped[RegistrationStatus] = mapped_column(
        SQLEnum(RegistrationStatus), default=RegistrationStatus.ACTIVE, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_paid(self) -> bool:
        return self.payment_status in PAID_STATUSES

    @property
    def days(self) -> list[str]:
        """Selected days, lowercased."""
        return [d.lower() for d in (self.selected_days or []) if d]

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id}, player='{self.player_name}', "
            f"program={self.program_type}, days={self.selected_days}, time={self.time_slot})>"
        )
