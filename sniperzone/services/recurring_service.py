"""Recurring weekly auto-booking funded by stored credits."""

import logging
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.core.exceptions import (
    AdmissionRejected,
    CompensationFailed,
    InsufficientCreditsError,
    NotFoundOrUnauthorized,
    StoreError,
    ValidationError,
)
from sniperzone.models import (
    BookingStatus,
    PausedReason,
    ProgramType,
    RecurringSchedule,
    SessionBooking,
)
from sniperzone.services.capacity_service import CapacityLedger
from sniperzone.services.credit_ledger import CreditLedger, SqlCreditLedger, charge_and_book
from sniperzone.services.notification_service import DbNotificationSink, NotificationSink
from sniperzone.services.schedule_service import get_owned_registration
from sniperzone.services.slot_catalog import group_time_for_category, normalize_day
from sniperzone.utils.timezone import next_occurrence, now_utc, today_local

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)


@dataclass
class RecurringRunStats:
    processed: int = 0
    booked: int = 0
    paused_insufficient_credits: int = 0
    paused_slot_unavailable: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class RecurringBookingProcessor:
    """
    Daily batch that books every due recurring schedule.

    For each active schedule whose ``next_booking_date`` has come:
    skip ahead if the session is already booked, pause when the parent
    has no credit or the slot is full, otherwise charge one credit and
    book. One schedule failing never stops the rest of the batch.
    """

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

    async def run(self, today: Optional[date] = None) -> RecurringRunStats:
        today = today or today_local()
        stats = RecurringRunStats()

        try:
            result = await self.db.execute(
                select(RecurringSchedule.id)
                .where(
                    RecurringSchedule.is_active.is_(True),
                    RecurringSchedule.next_booking_date <= today,
                )
                .order_by(RecurringSchedule.next_booking_date.asc(), RecurringSchedule.id.asc())
            )
            schedule_ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch due recurring schedules: {e}")
            raise StoreError("Could not load recurring schedules") from e

        if not schedule_ids:
            logger.info("No recurring schedules due for processing")
            return stats

        logger.info(f"🔁 Processing {len(schedule_ids)} recurring schedule(s) due by {today}")

        for schedule_id in schedule_ids:
            stats.processed += 1
            try:
                await self._process(schedule_id, stats)
            except CompensationFailed:
                # Already logged as critical by the compensation helper
                stats.errors += 1
            except Exception as e:
                await self.db.rollback()
                logger.exception(f"❌ Error processing recurring schedule {schedule_id}: {e}")
                stats.errors += 1

        logger.info(f"✅ Recurring processing complete: {stats.to_dict()}")
        return stats

    async def _process(self, schedule_id: int, stats: RecurringRunStats) -> None:
        schedule = await self.db.get(RecurringSchedule, schedule_id, populate_existing=True)
        booking_date = schedule.next_booking_date
        session_type = schedule.session_type or ProgramType.GROUP.value

        # Rerun guard: a live booking means this week was already charged.
        # Checked before credits and capacity so a rerun never pauses a booked week.
        if await self._existing_booking(schedule, booking_date, session_type) is not None:
            self._advance(schedule)
            await self.db.commit()
            logger.info(f"Schedule {schedule.id} already booked for {booking_date}, advancing")
            return

        if await self.ledger.get_balance(schedule.firebase_uid) < 1:
            await self._pause(schedule_id, PausedReason.INSUFFICIENT_CREDITS)
            stats.paused_insufficient_credits += 1
            return

        availability = await self.capacity.get_slot_capacity(booking_date, schedule.time_slot, session_type)
        if not availability.available:
            await self._pause(schedule_id, PausedReason.SLOT_UNAVAILABLE)
            stats.paused_slot_unavailable += 1
            return

        try:
            await charge_and_book(
                self.ledger,
                schedule.firebase_uid,
                lambda purchase_ref: self._create_booking(schedule, booking_date, session_type, purchase_ref),
            )
        except InsufficientCreditsError:
            await self._pause(schedule_id, PausedReason.INSUFFICIENT_CREDITS)
            stats.paused_insufficient_credits += 1
            return
        except AdmissionRejected:
            # Seat taken between the check and the insert; charge already refunded
            await self._pause(schedule_id, PausedReason.SLOT_UNAVAILABLE)
            stats.paused_slot_unavailable += 1
            return

        schedule = await self.db.get(RecurringSchedule, schedule_id, populate_existing=True)
        self._advance(schedule)
        await self.db.commit()
        stats.booked += 1
        logger.info(f"📗 Booked {session_type} {booking_date} {schedule.time_slot} for schedule {schedule.id}")

    async def _create_booking(
        self, schedule: RecurringSchedule, booking_date: date, session_type: str, purchase_ref: Optional[int]
    ) -> SessionBooking:
        booking = SessionBooking(
            firebase_uid=schedule.firebase_uid,
            registration_id=schedule.registration_id,
            session_type=session_type,
            session_date=booking_date,
            time_slot=schedule.time_slot,
            credits_used=1,
            credit_purchase_id=purchase_ref,
            is_recurring=True,
            recurring_schedule_id=schedule.id,
            status=BookingStatus.BOOKED,
        )
        return await self.capacity.admit_booking(booking)

    async def _existing_booking(
        self, schedule: RecurringSchedule, booking_date: date, session_type: str
    ) -> Optional[SessionBooking]:
        result = await self.db.execute(
            select(SessionBooking).where(
                SessionBooking.registration_id == schedule.registration_id,
                SessionBooking.session_date == booking_date,
                SessionBooking.time_slot == schedule.time_slot,
                SessionBooking.session_type == session_type,
                SessionBooking.status != BookingStatus.CANCELLED,
            )
        )
        return result.scalars().first()

    def _advance(self, schedule: RecurringSchedule) -> None:
        schedule.last_booked_date = schedule.next_booking_date
        schedule.next_booking_date = schedule.next_booking_date + WEEK
        schedule.updated_at = now_utc()

    async def _pause(self, schedule_id: int, reason: PausedReason) -> None:
        schedule = await self.db.get(RecurringSchedule, schedule_id, populate_existing=True)
        schedule.is_active = False
        schedule.paused_reason = reason.value
        schedule.updated_at = now_utc()
        await self.db.commit()
        logger.warning(f"⏸️ Paused recurring schedule {schedule.id}: {reason.value}")

        message = (
            "You are out of credits, so weekly auto-booking has been paused. "
            "Buy more credits and resume it from your schedule page."
            if reason == PausedReason.INSUFFICIENT_CREDITS
            else f"The {schedule.time_slot} session on {schedule.next_booking_date.isoformat()} is full, "
            f"so weekly auto-booking has been paused."
        )
        await self.notifier.notify(
            schedule.firebase_uid,
            "parent",
            "recurring_paused",
            "Recurring Booking Paused",
            message,
            "high",
            {"recurring_schedule_id": schedule.id, "paused_reason": reason.value},
        )


class RecurringScheduleService:
    """Parent-facing management of recurring schedules."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        firebase_uid: str,
        registration_id: int,
        day_of_week: str,
        time_slot: Optional[str] = None,
        today: Optional[date] = None,
    ) -> RecurringSchedule:
        """Opt a group registration into weekly auto-booking.

        Re-creating the same (registration, day, time) reactivates it.
        The first booking is the next matching day after today.
        """
        today = today or today_local()
        registration = await get_owned_registration(self.db, registration_id, firebase_uid)
        if ProgramType(registration.program_type) != ProgramType.GROUP:
            raise ValidationError("Recurring booking is only available for group training")
        if not registration.is_paid:
            raise ValidationError("Registration must be paid before enabling recurring booking")

        day = normalize_day(day_of_week)
        if day is None:
            raise ValidationError(f"Invalid day name: '{day_of_week}'")
        fixed_time = registration.time_slot or group_time_for_category(registration.age_category)
        if time_slot and time_slot != fixed_time:
            raise ValidationError(f"Group training time is fixed at {fixed_time} for this age category")
        if not fixed_time:
            raise ValidationError(f"No group time slot for category '{registration.age_category}'")

        try:
            result = await self.db.execute(
                select(RecurringSchedule).where(
                    RecurringSchedule.registration_id == registration.id,
                    RecurringSchedule.day_of_week == day,
                    RecurringSchedule.time_slot == fixed_time,
                )
            )
            schedule = result.scalar_one_or_none()
            if schedule is None:
                schedule = RecurringSchedule(
                    firebase_uid=firebase_uid,
                    registration_id=registration.id,
                    session_type=ProgramType.GROUP.value,
                    day_of_week=day,
                    time_slot=fixed_time,
                )
                self.db.add(schedule)
            schedule.is_active = True
            schedule.paused_reason = None
            schedule.next_booking_date = next_occurrence(day, today, include_today=False)
            schedule.updated_at = now_utc()
            await self.db.commit()
            await self.db.refresh(schedule)
        except IntegrityError as e:
            await self.db.rollback()
            raise ValidationError("A recurring schedule for this day and time already exists") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to save recurring schedule for registration {registration_id}: {e}")
            raise StoreError("Could not save recurring schedule, please retry") from e

        logger.info(f"🔁 Recurring schedule {schedule.id} active, first booking {schedule.next_booking_date}")
        return schedule

    async def set_active(
        self, schedule_id: int, firebase_uid: str, is_active: bool, today: Optional[date] = None
    ) -> RecurringSchedule:
        """Pause (user_paused) or resume a schedule."""
        today = today or today_local()
        schedule = await self._get_owned(schedule_id, firebase_uid)
        if is_active:
            schedule.is_active = True
            schedule.paused_reason = None
            schedule.next_booking_date = next_occurrence(schedule.day_of_week, today, include_today=False)
        else:
            schedule.is_active = False
            schedule.paused_reason = PausedReason.USER_PAUSED.value
        schedule.updated_at = now_utc()
        await self.db.commit()
        await self.db.refresh(schedule)
        logger.info(f"Recurring schedule {schedule.id} {'resumed' if is_active else 'paused by parent'}")
        return schedule

    async def delete(self, schedule_id: int, firebase_uid: str) -> None:
        schedule = await self._get_owned(schedule_id, firebase_uid)
        # Past bookings stay; they just lose the link
        await self.db.execute(
            update(SessionBooking)
            .where(SessionBooking.recurring_schedule_id == schedule.id)
            .values(recurring_schedule_id=None)
        )
        await self.db.delete(schedule)
        await self.db.commit()
        logger.info(f"🗑️ Deleted recurring schedule {schedule_id}")

    async def list_for_parent(self, firebase_uid: str) -> List[RecurringSchedule]:
        result = await self.db.execute(
            select(RecurringSchedule)
            .where(RecurringSchedule.firebase_uid == firebase_uid)
            .order_by(RecurringSchedule.created_at.desc(), RecurringSchedule.id.desc())
        )
        return list(result.scalars().all())

    async def _get_owned(self, schedule_id: int, firebase_uid: str) -> RecurringSchedule:
        schedule = await self.db.get(RecurringSchedule, schedule_id)
        if schedule is None or schedule.firebase_uid != firebase_uid:
            raise NotFoundOrUnauthorized("Recurring schedule not found or unauthorized")
        return schedule
