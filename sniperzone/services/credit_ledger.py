"""Credit ledger: balance, deduction and refund of session credits."""

import logging
from typing import Awaitable, Callable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.core.exceptions import CompensationFailed, InsufficientCreditsError, StoreError
from sniperzone.models import CreditPurchase, ParentCredits, PurchaseStatus, SessionBooking
from sniperzone.utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CreditLedger(Protocol):
    """Atomic credit primitives keyed by parent uid."""

    async def get_balance(self, firebase_uid: str) -> int:
        ...

    async def deduct(self, firebase_uid: str, amount: int = 1) -> Optional[int]:
        """Returns the purchase the credit came from (None for admin credits)."""
        ...

    async def refund(self, firebase_uid: str, purchase_ref: Optional[int], amount: int = 1) -> None:
        ...


class SqlCreditLedger:
    """Credit ledger backed by ``parent_credits`` and ``credit_purchases``.

    Deductions consume the purchase that expires first. Credits granted by
    an admin live only in the parent total and are spent after purchases.
    Every call commits its own transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(self, firebase_uid: str) -> int:
        try:
            result = await self.db.execute(
                select(ParentCredits.total_credits).where(ParentCredits.firebase_uid == firebase_uid)
            )
            balance = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read credit balance for {firebase_uid}: {e}")
            raise StoreError("Could not read credit balance, please retry") from e
        return balance or 0

    async def deduct(self, firebase_uid: str, amount: int = 1) -> Optional[int]:
        """
        Deduct credits, oldest-expiring purchase first.

        Returns:
            ID of the purchase charged, or None when admin credits were used

        Raises:
            InsufficientCreditsError: nothing left to spend
            StoreError: the write failed
        """
        try:
            totals = await self._totals_for_update(firebase_uid)
            if totals is None or totals.total_credits < amount:
                raise InsufficientCreditsError(
                    f"Insufficient credits: need {amount}, have {totals.total_credits if totals else 0}"
                )

            result = await self.db.execute(
                select(CreditPurchase)
                .where(
                    CreditPurchase.firebase_uid == firebase_uid,
                    CreditPurchase.status == PurchaseStatus.ACTIVE,
                    CreditPurchase.credits_remaining >= amount,
                    CreditPurchase.expires_at > now_utc(),
                )
                .order_by(CreditPurchase.expires_at.asc(), CreditPurchase.id.asc())
                .limit(1)
                .with_for_update()
            )
            purchase = result.scalar_one_or_none()

            purchase_ref = None
            if purchase is not None:
                purchase.credits_remaining -= amount
                if purchase.credits_remaining == 0:
                    purchase.status = PurchaseStatus.EXHAUSTED
                purchase_ref = purchase.id

            totals.total_credits -= amount
            totals.updated_at = now_utc()
            await self.db.commit()
        except InsufficientCreditsError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Credit deduction failed for {firebase_uid}: {e}")
            raise StoreError("Could not deduct credit, please retry") from e

        logger.info(f"💳 Deducted {amount} credit(s) from {firebase_uid} (purchase {purchase_ref})")
        return purchase_ref

    async def refund(self, firebase_uid: str, purchase_ref: Optional[int], amount: int = 1) -> None:
        """Return credits to the purchase they came from and to the total."""
        try:
            if purchase_ref is not None:
                purchase = await self.db.get(CreditPurchase, purchase_ref)
                if purchase is not None and purchase.firebase_uid == firebase_uid:
                    purchase.credits_remaining += amount
                    purchase.status = PurchaseStatus.ACTIVE

            totals = await self._totals_for_update(firebase_uid)
            if totals is None:
                totals = ParentCredits(firebase_uid=firebase_uid, total_credits=0)
                self.db.add(totals)
            totals.total_credits += amount
            totals.updated_at = now_utc()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Credit refund failed for {firebase_uid}: {e}")
            raise StoreError("Could not refund credit") from e

        logger.info(f"↩️ Refunded {amount} credit(s) to {firebase_uid} (purchase {purchase_ref})")

    async def _totals_for_update(self, firebase_uid: str) -> Optional[ParentCredits]:
        result = await self.db.execute(
            select(ParentCredits).where(ParentCredits.firebase_uid == firebase_uid).with_for_update()
        )
        return result.scalar_one_or_none()


async def charge_and_book(
    ledger: CreditLedger,
    firebase_uid: str,
    create_booking: Callable[[Optional[int]], Awaitable[SessionBooking]],
    amount: int = 1,
) -> SessionBooking:
    """
    Deduct credits, then create the booking they pay for.

    When the booking can not be created the same amount is refunded before
    the original error is re-raised, so a parent is never charged for a
    session that does not exist.

    Raises:
        InsufficientCreditsError: nothing was charged
        CompensationFailed: booking and refund both failed
    """
    purchase_ref = await ledger.deduct(firebase_uid, amount)
    try:
        return await create_booking(purchase_ref)
    except Exception as booking_error:
        logger.warning(f"Booking failed after charging {firebase_uid}, refunding: {booking_error}")
        try:
            await ledger.refund(firebase_uid, purchase_ref, amount)
        except Exception as refund_error:
            logger.critical(
                f"🚨 Refund of {amount} credit(s) to {firebase_uid} (purchase {purchase_ref}) failed "
                f"after booking error '{booking_error}': {refund_error}. Manual reconciliation required."
            )
            raise CompensationFailed(
                "Credit was charged but the booking failed and the refund did not go through",
                {"firebase_uid": firebase_uid, "purchase_id": purchase_ref, "credits": amount},
            ) from refund_error
        raise
