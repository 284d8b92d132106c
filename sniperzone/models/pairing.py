"""Semi-private pairing and waitlist models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class PairingStatus(str, Enum):
    """Pairing status enum."""

    ACTIVE = "active"
    DISSOLVED = "dissolved"


class WaitlistStatus(str, Enum):
    """Waitlist entry status enum."""

    WAITING = "waiting"
    PAIRED = "paired"


class SemiPrivatePairing(Base):
    """Two semi-private players sharing one weekly session.

    A registration belongs to at most one ACTIVE pairing at a time.
    """

    __tablename__ = "semi_private_pairings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    player_1_registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id"), nullable=False, index=True)
    player_2_registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id"), nullable=False, index=True)
    scheduled_day: Mapped[str] = mapped_column(String(10), nullable=False)
    scheduled_time: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[PairingStatus] = mapped_column(
        SQLEnum(PairingStatus), default=PairingStatus.ACTIVE, nullable=False
    )
    paired_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    dissolved_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    dissolved_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dissolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def partner_of(self, registration_id: int) -> int:
        if self.player_1_registration_id == registration_id:
            return self.player_2_registration_id
        return self.player_1_registration_id

    def __repr__(self) -> str:
        return (
            f"<SemiPrivatePairing(id={self.id}, players=({self.player_1_registration_id}, "
            f"{self.player_2_registration_id}), slot={self.scheduled_day} {self.scheduled_time}, "
            f"status={self.status})>"
        )


class UnpairedSemiPrivate(Base):
    """Waitlist entry for a semi-private player without a partner."""

    __tablename__ = "unpaired_semi_private"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    registration_id: Mapped[int] = mapped_column(ForeignKey("registrations.id"), nullable=False, unique=True)
    player_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    age_category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    preferred_days: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    preferred_time_slots: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    parent_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    parent_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    status: Mapped[WaitlistStatus] = mapped_column(
        SQLEnum(WaitlistStatus), default=WaitlistStatus.WAITING, nullable=False
    )
    unpaired_since_date: Mapped[date] = mapped_column(Date, nullable=False)
    paired_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    def prefers(self, day: str, time_slot: str) -> bool:
        days = [d.lower() for d in (self.preferred_days or [])]
        return day.lower() in days and time_slot in (self.preferred_time_slots or [])

    def __repr__(self) -> str:
        return (
            f"<UnpairedSemiPrivate(registration_id={self.registration_id}, "
            f"category='{self.age_category}', status={self.status})>"
        )
