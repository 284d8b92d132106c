"""Credit balance and purchase models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sniperzone.core.database import Base


class PurchaseStatus(str, Enum):
    """Credit purchase status enum."""

    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"


class ParentCredits(Base):
    """Per-parent credit balance.

    ``total_credits`` is the spendable balance; purchases track the
    per-package remainder used for FIFO consumption.
    """

    __tablename__ = "parent_credits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    firebase_uid: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    total_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ParentCredits(uid='{self.firebase_uid}', total={self.total_credits})>"


class CreditPurchase(Base):
    """A purchased credit package."""

    __tablename__ = "credit_purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    firebase_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    package_type: Mapped[str] = mapped_column(String(30), nullable=False)
    credits_purchased: Mapped[int] = mapped_column(Integer, nullable=False)
    credits_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[PurchaseStatus] = mapped_column(
        SQLEnum(PurchaseStatus), default=PurchaseStatus.ACTIVE, nullable=False
    )
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CreditPurchase(id={self.id}, uid='{self.firebase_uid}', "
            f"{self.credits_remaining}/{self.credits_purchased}, status={self.status})>"
        )
