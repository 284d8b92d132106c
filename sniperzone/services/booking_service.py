"""Dated session bookings: credit sessions and Sunday ice."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.core.exceptions import (
    AdmissionRejected,
    NotFoundOrUnauthorized,
    StoreError,
    ValidationError,
)
from sniperzone.core.settings import settings
from sniperzone.models import (
    SEAT_HOLDING_STATUSES,
    BookingStatus,
    ProgramType,
    Registration,
    RegistrationStatus,
    SessionBooking,
    SundayPracticeSlot,
)
from sniperzone.services.capacity_service import CapacityLedger
from sniperzone.services.credit_ledger import CreditLedger, SqlCreditLedger, charge_and_book
from sniperzone.services.notification_service import DbNotificationSink, NotificationSink
from sniperzone.services.schedule_service import get_owned_registration
from sniperzone.services.slot_catalog import (
    SUNDAY_SLOTS,
    group_time_for_category,
    is_valid_private_slot,
    slot_start_time,
    sunday_slot_for_category,
)
from sniperzone.utils.timezone import next_occurrence, now_utc, session_start_utc, today_local

logger = logging.getLogger(__name__)

BOOKABLE_SESSION_TYPES = ("group", "private", "semi_private")


class BookingService:
    """Books and cancels concrete dated sessions."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: Optional[CreditLedger] = None,
        notifier: Optional[NotificationSink] = None,
    ):
        self.db = db
        self.capacity = CapacityLedger(db)
        self.ledger = ledger or SqlCreditLedger(db)
        self.notifier = notifier or DbNotificationSink(db)

    # ---------------------------------------------------------------- credits

    async def book_session(
        self,
        firebase_uid: str,
        registration_id: int,
        session_type: str,
        session_date: date,
        time_slot: str,
        today: Optional[date] = None,
    ) -> SessionBooking:
        """
        Book one dated session paid with a single credit.

        Raises:
            ValidationError: bad slot, past date or duplicate booking
            AdmissionRejected: session full
            InsufficientCreditsError: no credit left
            CompensationFailed: booking and refund both failed
        """
        today = today or today_local()
        registration = await get_owned_registration(self.db, registration_id, firebase_uid)
        self._require_active(registration)

        if session_type not in BOOKABLE_SESSION_TYPES:
            raise ValidationError(f"Invalid session type: '{session_type}'")
        if session_date < today:
            raise ValidationError("Cannot book a session in the past")

        if session_type == "group":
            allowed = group_time_for_category(registration.age_category)
            if time_slot != allowed:
                raise ValidationError(
                    f"Time slot {time_slot} is not available for {registration.age_category}. "
                    f"Group training for this category is at {allowed}"
                )
        elif not is_valid_private_slot(time_slot):
            raise ValidationError(f"Invalid time slot: '{time_slot}'")

        existing = await self._live_booking(registration.id, session_date, time_slot, session_type)
        if existing is not None:
            raise ValidationError("This session is already booked for this player")

        availability = await self.capacity.get_slot_capacity(session_date, time_slot, session_type)
        if not availability.available:
            raise AdmissionRejected(
                f"The {time_slot} session on {session_date.isoformat()} is full",
                [availability.to_dict()],
            )

        async def create(purchase_ref: Optional[int]) -> SessionBooking:
            return await self.capacity.admit_booking(
                SessionBooking(
                    firebase_uid=firebase_uid,
                    registration_id=registration.id,
                    session_type=session_type,
                    session_date=session_date,
                    time_slot=time_slot,
                    credits_used=1,
                    credit_purchase_id=purchase_ref,
                    status=BookingStatus.BOOKED,
                )
            )

        booking = await charge_and_book(self.ledger, firebase_uid, create)

        await self.notifier.notify(
            firebase_uid,
            "parent",
            "booking_confirmed",
            "Session Booked",
            f"{registration.player_name} is booked for {session_type.replace('_', '-')} training "
            f"on {session_date.isoformat()} at {time_slot}.",
            "normal",
            {"booking_id": booking.id, "registration_id": registration.id},
        )
        return booking

    async def cancel_booking(
        self,
        booking_id: int,
        firebase_uid: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Cancel a booking; credits come back only outside the cutoff window.

        The seat is freed immediately because capacity counts skip
        cancelled bookings.
        """
        booking = await self._get_owned_booking(booking_id, firebase_uid)
        if booking.session_type == ProgramType.SUNDAY.value:
            return await self.cancel_sunday_booking(booking_id, firebase_uid)
        if booking.status != BookingStatus.BOOKED:
            raise ValidationError(f"Only booked sessions can be cancelled (status: {booking.status.value})")

        now = now or now_utc()
        starts_at = session_start_utc(booking.session_date, slot_start_time(booking.time_slot))
        refundable = starts_at - now >= timedelta(hours=settings.cancellation_window_hours)

        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        booking.updated_at = now
        credits = booking.credits_used or 0
        purchase_ref = booking.credit_purchase_id
        await self.db.commit()

        refunded = 0
        if refundable and credits > 0:
            await self.ledger.refund(firebase_uid, purchase_ref, credits)
            booking = await self.db.get(SessionBooking, booking_id, populate_existing=True)
            booking.credits_refunded = True
            await self.db.commit()
            refunded = credits

        logger.info(
            f"🚫 Cancelled booking {booking_id} ({booking.session_date} {booking.time_slot}), "
            f"refunded {refunded} credit(s)"
        )
        return {
            "success": True,
            "booking_id": booking_id,
            "credits_refunded": refunded,
            "message": (
                f"Booking cancelled. {refunded} credit(s) returned to your account."
                if refunded
                else f"Booking cancelled. No refund within {settings.cancellation_window_hours}h of the session."
            ),
        }

    async def list_bookings(self, firebase_uid: str, upcoming_only: bool = True, today: Optional[date] = None) -> List[SessionBooking]:
        today = today or today_local()
        query = select(SessionBooking).where(SessionBooking.firebase_uid == firebase_uid)
        if upcoming_only:
            query = query.where(
                SessionBooking.session_date >= today,
                SessionBooking.status.in_(SEAT_HOLDING_STATUSES),
            )
        result = await self.db.execute(query.order_by(SessionBooking.session_date.asc(), SessionBooking.id.asc()))
        return list(result.scalars().all())

    # ----------------------------------------------------------------- sunday

    async def generate_sunday_slots(self, weeks_ahead: Optional[int] = None, today: Optional[date] = None) -> int:
        """Create the Sunday ice slots for the coming weeks.

        Existing (date, start time) rows are left untouched.

        Returns:
            Number of slots created
        """
        weeks_ahead = weeks_ahead or settings.sunday_slot_weeks_ahead
        first_sunday = next_occurrence("sunday", today or today_local(), include_today=True)

        created = 0
        try:
            for week in range(weeks_ahead):
                practice_date = first_sunday + timedelta(weeks=week)
                result = await self.db.execute(
                    select(SundayPracticeSlot.start_time).where(SundayPracticeSlot.practice_date == practice_date)
                )
                existing = set(result.scalars().all())
                for template in SUNDAY_SLOTS:
                    if template.start_time in existing:
                        continue
                    self.db.add(
                        SundayPracticeSlot(
                            practice_date=practice_date,
                            start_time=template.start_time,
                            end_time=template.end_time,
                            min_category=template.min_category,
                            max_category=template.max_category,
                            eligible_categories=list(template.categories),
                            max_capacity=template.capacity,
                            current_bookings=0,
                            is_active=True,
                        )
                    )
                    created += 1
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to generate Sunday slots: {e}")
            raise StoreError("Could not generate Sunday slots") from e

        logger.info(f"🏒 Generated {created} Sunday slot(s) for the next {weeks_ahead} week(s)")
        return created

    async def get_next_sunday_slots(
        self, registration_id: int, firebase_uid: str, today: Optional[date] = None
    ) -> Dict[str, Any]:
        """Upcoming Sunday slots this player may book."""
        today = today or today_local()
        registration = await get_owned_registration(self.db, registration_id, firebase_uid)
        template = sunday_slot_for_category(registration.age_category)
        if ProgramType(registration.program_type) != ProgramType.GROUP or template is None:
            return {"success": True, "eligible": False, "slots": []}

        result = await self.db.execute(
            select(SundayPracticeSlot)
            .where(
                SundayPracticeSlot.practice_date >= today,
                SundayPracticeSlot.start_time == template.start_time,
                SundayPracticeSlot.is_active.is_(True),
            )
            .order_by(SundayPracticeSlot.practice_date.asc())
        )
        slots = list(result.scalars().all())

        booked = await self.db.execute(
            select(SessionBooking.sunday_slot_id).where(
                SessionBooking.registration_id == registration.id,
                SessionBooking.session_type == ProgramType.SUNDAY.value,
                SessionBooking.status.in_(SEAT_HOLDING_STATUSES),
            )
        )
        booked_slot_ids = set(booked.scalars().all())

        return {
            "success": True,
            "eligible": True,
            "slots": [
                {
                    "slot_id": slot.id,
                    "practice_date": slot.practice_date.isoformat(),
                    "time_range": slot.time_label,
                    "available_spots": slot.available_spots,
                    "max_capacity": slot.max_capacity,
                    "is_booked": slot.id in booked_slot_ids,
                }
                for slot in slots
            ],
        }

    async def book_sunday_slot(
        self, slot_id: int, registration_id: int, firebase_uid: str, today: Optional[date] = None
    ) -> SessionBooking:
        """
        Take one seat on a Sunday ice slot.

        The seat counter is incremented with a conditional update, so the
        slot never goes over ``max_capacity``.
        """
        today = today or today_local()
        slot = await self.db.get(SundayPracticeSlot, slot_id)
        if slot is None or not slot.is_active:
            raise NotFoundOrUnauthorized("Slot not found")

        registration = await get_owned_registration(self.db, registration_id, firebase_uid)
        self._require_active(registration)
        if ProgramType(registration.program_type) != ProgramType.GROUP:
            raise ValidationError("Sunday ice practice is only available to Group Training players")
        if not registration.is_paid:
            raise ValidationError("Active subscription required")

        template = sunday_slot_for_category(registration.age_category)
        if template is None:
            raise ValidationError(f"{registration.age_category} players are not eligible for Sunday ice practice")
        if template.start_time != slot.start_time:
            raise ValidationError("Category mismatch for this slot")
        if slot.practice_date < today:
            raise ValidationError("Cannot book a past Sunday")

        result = await self.db.execute(
            select(SessionBooking.id).where(
                SessionBooking.registration_id == registration.id,
                SessionBooking.session_type == ProgramType.SUNDAY.value,
                SessionBooking.session_date == slot.practice_date,
                SessionBooking.status.in_(SEAT_HOLDING_STATUSES),
            )
        )
        if result.first() is not None:
            raise ValidationError("Already booked for this Sunday")

        practice_date, time_label = slot.practice_date, slot.time_label
        try:
            if not await self.capacity.reserve_sunday_seat(slot_id):
                await self.db.rollback()
                raise AdmissionRejected(
                    f"Sunday {practice_date.isoformat()} {time_label} is full",
                    [{"day": "sunday", "session_date": practice_date.isoformat(), "time_slot": time_label}],
                )
            booking = SessionBooking(
                firebase_uid=firebase_uid,
                registration_id=registration.id,
                session_type=ProgramType.SUNDAY.value,
                session_date=practice_date,
                time_slot=time_label,
                credits_used=0,
                sunday_slot_id=slot_id,
                status=BookingStatus.BOOKED,
            )
            self.db.add(booking)
            await self.db.commit()
            await self.db.refresh(booking)
        except IntegrityError as e:
            await self.db.rollback()
            raise ValidationError("Already booked for this Sunday") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Sunday booking failed for registration {registration_id}: {e}")
            raise StoreError("Could not book Sunday practice, please retry") from e

        logger.info(f"🏒 Sunday booking {booking.id}: registration {registration_id} on {practice_date} {time_label}")
        await self.notifier.notify(
            firebase_uid,
            "parent",
            "sunday_booking",
            "Sunday Ice Practice Booked",
            f"{registration.player_name} is booked for Sunday ice on {practice_date.isoformat()} at {time_label}.",
            "normal",
            {"booking_id": booking.id, "slot_id": slot_id},
        )
        return booking

    async def cancel_sunday_booking(self, booking_id: int, firebase_uid: str, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or today_local()
        booking = await self._get_owned_booking(booking_id, firebase_uid)
        if booking.session_type != ProgramType.SUNDAY.value:
            raise ValidationError("Not a Sunday booking")
        if booking.status == BookingStatus.CANCELLED:
            raise ValidationError("Already cancelled")
        if booking.session_date < today:
            raise ValidationError("Cannot cancel a past Sunday booking")

        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now_utc()
        booking.updated_at = now_utc()
        if booking.sunday_slot_id is not None:
            await self.capacity.release_sunday_seat(booking.sunday_slot_id)
        await self.db.commit()
        logger.info(f"🚫 Cancelled Sunday booking {booking_id}")
        return {"success": True, "booking_id": booking_id, "message": "Booking cancelled"}

    async def mark_sunday_attendance(self, booking_id: int, attended: bool, marked_by: str) -> SessionBooking:
        """
        Record whether a player showed up to Sunday practice.

        The seat stays counted either way; only cancelled bookings are refused.

        Raises:
            NotFoundOrUnauthorized: no such Sunday booking
            ValidationError: the booking was cancelled
            StoreError: the update failed
        """
        booking = await self.db.get(SessionBooking, booking_id)
        if booking is None or booking.session_type != ProgramType.SUNDAY.value:
            raise NotFoundOrUnauthorized("Booking not found")
        if booking.status == BookingStatus.CANCELLED:
            raise ValidationError("Cannot mark attendance for cancelled booking")

        booking.status = BookingStatus.ATTENDED if attended else BookingStatus.NO_SHOW
        booking.attendance_marked_at = now_utc()
        booking.attendance_marked_by = marked_by
        booking.updated_at = now_utc()
        try:
            await self.db.commit()
            await self.db.refresh(booking)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to mark attendance for booking {booking_id}: {e}")
            raise StoreError("Failed to update attendance") from e

        logger.info(f"📝 Sunday booking {booking_id} marked {booking.status.value} by {marked_by}")
        return booking

    async def get_sunday_roster(self, practice_date: date) -> List[Dict[str, Any]]:
        """Everyone booked on a Sunday, grouped by slot start time."""
        result = await self.db.execute(
            select(SessionBooking, Registration, SundayPracticeSlot)
            .join(Registration, SessionBooking.registration_id == Registration.id)
            .join(SundayPracticeSlot, SessionBooking.sunday_slot_id == SundayPracticeSlot.id)
            .where(
                SundayPracticeSlot.practice_date == practice_date,
                SessionBooking.session_type == ProgramType.SUNDAY.value,
                SessionBooking.status != BookingStatus.CANCELLED,
            )
            .order_by(SundayPracticeSlot.start_time.asc(), Registration.player_name.asc())
        )
        return [
            {
                "booking_id": booking.id,
                "practice_date": slot.practice_date.isoformat(),
                "time_range": slot.time_label,
                "player_name": registration.player_name,
                "age_category": registration.age_category,
                "parent_name": registration.parent_name,
                "parent_email": registration.parent_email,
                "status": booking.status.value,
            }
            for booking, registration, slot in result.all()
        ]

    # ---------------------------------------------------------------- helpers

    def _require_active(self, registration: Registration) -> None:
        if registration.status == RegistrationStatus.CANCELLED:
            raise ValidationError("This registration has been cancelled")

    async def _live_booking(
        self, registration_id: int, session_date: date, time_slot: str, session_type: str
    ) -> Optional[SessionBooking]:
        result = await self.db.execute(
            select(SessionBooking).where(
                SessionBooking.registration_id == registration_id,
                SessionBooking.session_date == session_date,
                SessionBooking.time_slot == time_slot,
                SessionBooking.session_type == session_type,
                SessionBooking.status != BookingStatus.CANCELLED,
            )
        )
        return result.scalars().first()

    async def _get_owned_booking(self, booking_id: int, firebase_uid: str) -> SessionBooking:
        booking = await self.db.get(SessionBooking, booking_id)
        if booking is None or booking.firebase_uid != firebase_uid:
            raise NotFoundOrUnauthorized("Booking not found or unauthorized")
        return booking
