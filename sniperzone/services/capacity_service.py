"""Capacity ledger: slot occupancy counting and admission."""

import logging
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.core.exceptions import AdmissionRejected, StoreError, ValidationError
from sniperzone.models import (
    SEAT_HOLDING_STATUSES,
    ExceptionStatus,
    ProgramType,
    Registration,
    RegistrationStatus,
    ScheduleException,
    SessionBooking,
    SundayPracticeSlot,
)
from sniperzone.services.slot_catalog import capacity_for, normalize_day, slot_start_time
from sniperzone.utils.timezone import date_in_same_week, weekday_name

logger = logging.getLogger(__name__)

# Programs that share the hourly private pool
HOURLY_PROGRAMS = (ProgramType.PRIVATE, ProgramType.SEMI_PRIVATE)


@dataclass
class SlotAvailability:
    """Occupancy of one slot at check time."""

    program_type: str
    day: Optional[str]
    time_slot: Optional[str]
    booked_count: int
    capacity: int
    available: bool
    session_date: Optional[date] = None

    @property
    def spots_remaining(self) -> int:
        return max(0, self.capacity - self.booked_count)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["spots_remaining"] = self.spots_remaining
        if self.session_date:
            data["session_date"] = self.session_date.isoformat()
        return data


class CapacityLedger:
    """Counts occupancy of weekday, hourly and Sunday slots.

    Every read fails closed: a store failure raises StoreError instead of
    reporting the slot as available.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def check_availability(
        self,
        program_type: str,
        day: str,
        time_slot: Optional[str] = None,
        exclude_registration_ids: Iterable[int] = (),
        on_date: Optional[date] = None,
    ) -> SlotAvailability:
        """
        Check whether a recurring weekday slot can take one more registration.

        Args:
            program_type: group, private, semi_private or sunday
            day: Weekday name, case-insensitive
            time_slot: Required for private/semi-private and Sunday
            exclude_registration_ids: Registrations ignored by the count,
                usually the one being moved
            on_date: Practice date, Sunday only

        Returns:
            SlotAvailability with the current count and capacity
        """
        day_token = normalize_day(day)
        if day_token is None:
            raise ValidationError(f"Invalid day name: '{day}'")
        excluded = set(exclude_registration_ids or ())

        try:
            if program_type == ProgramType.SUNDAY.value:
                return await self._sunday_availability(on_date, time_slot)

            if program_type == ProgramType.GROUP.value:
                holders = await self._active_paid_registrations((ProgramType.GROUP,))
                count = sum(
                    1 for reg in holders
                    if reg.id not in excluded and day_token in reg.days
                )
            elif program_type in (p.value for p in HOURLY_PROGRAMS):
                if not time_slot:
                    raise ValidationError("time_slot is required for private and semi-private slots")
                holders = await self._active_paid_registrations(HOURLY_PROGRAMS)
                count = sum(
                    1 for reg in holders
                    if reg.id not in excluded and day_token in reg.days and reg.time_slot == time_slot
                )
            else:
                raise ValidationError(f"Unknown program type: '{program_type}'")
        except SQLAlchemyError as e:
            logger.error(f"Availability check failed for {program_type} {day_token} {time_slot}: {e}")
            raise StoreError("Could not check slot availability, please retry") from e

        capacity = capacity_for(program_type)
        return SlotAvailability(
            program_type=program_type,
            day=day_token,
            time_slot=time_slot,
            booked_count=count,
            capacity=capacity,
            available=count < capacity,
        )

    async def ensure_admissible(
        self,
        program_type: str,
        days: List[str],
        time_slot: Optional[str] = None,
        exclude_registration_ids: Iterable[int] = (),
    ) -> List[SlotAvailability]:
        """All-or-nothing admission check over several days.

        Raises:
            AdmissionRejected: listing every full day, if any is full
        """
        excluded = tuple(exclude_registration_ids or ())
        results = [
            await self.check_availability(program_type, day, time_slot, excluded)
            for day in days
        ]
        full = [r for r in results if not r.available]
        if full:
            names = ", ".join(
                f"{r.day.capitalize()}" + (f" at {r.time_slot}" if program_type != "group" and r.time_slot else "")
                for r in full
            )
            raise AdmissionRejected(
                f"The following slots are full: {names}",
                [{"day": r.day, "time_slot": r.time_slot, "booked": r.booked_count, "capacity": r.capacity} for r in full],
            )
        return results

    async def check_dated_availability(
        self,
        program_type: str,
        session_date: date,
        time_slot: Optional[str] = None,
        exclude_registration_ids: Iterable[int] = (),
    ) -> SlotAvailability:
        """
        Occupancy of one concrete training date with one-time swaps applied.

        Regular holders whose own swap moves them off ``session_date`` are not
        counted; players swapped onto it from another day that week are.
        """
        if program_type == ProgramType.GROUP.value:
            programs = (ProgramType.GROUP,)
        elif program_type in (p.value for p in HOURLY_PROGRAMS):
            if not time_slot:
                raise ValidationError("time_slot is required for private and semi-private slots")
            programs = HOURLY_PROGRAMS
        else:
            raise ValidationError(f"Unknown program type: '{program_type}'")
        excluded = set(exclude_registration_ids or ())
        day_token = weekday_name(session_date)

        try:
            holders = {
                reg.id: reg
                for reg in await self._active_paid_registrations(programs)
                if reg.id not in excluded
            }
            exceptions = []
            if holders:
                result = await self.db.execute(
                    select(ScheduleException).where(
                        ScheduleException.registration_id.in_(list(holders)),
                        ScheduleException.status == ExceptionStatus.APPLIED,
                        ScheduleException.exception_date >= session_date - timedelta(days=6),
                        ScheduleException.exception_date <= session_date + timedelta(days=6),
                    )
                )
                exceptions = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Dated availability check failed for {program_type} {session_date} {time_slot}: {e}")
            raise StoreError("Could not check slot availability, please retry") from e

        def at_slot(slot_time: Optional[str]) -> bool:
            return program_type == ProgramType.GROUP.value or slot_time == time_slot

        moved_away = set()
        arriving = set()
        for exc in exceptions:
            reg = holders[exc.registration_id]
            if exc.exception_date == session_date:
                moved_away.add(reg.id)
            if date_in_same_week(exc.exception_date, exc.replacement_day) == session_date and at_slot(
                exc.replacement_time or reg.time_slot
            ):
                arriving.add(reg.id)

        present = {
            reg.id
            for reg in holders.values()
            if day_token in reg.days and at_slot(reg.time_slot) and reg.id not in moved_away
        }
        count = len(present | arriving)

        capacity = capacity_for(program_type)
        return SlotAvailability(
            program_type=program_type,
            day=day_token,
            time_slot=time_slot,
            booked_count=count,
            capacity=capacity,
            available=count < capacity,
            session_date=session_date,
        )

    async def ensure_dated_admissible(
        self,
        program_type: str,
        session_dates: List[date],
        time_slot: Optional[str] = None,
        exclude_registration_ids: Iterable[int] = (),
    ) -> List[SlotAvailability]:
        """All-or-nothing admission over concrete dates.

        Raises:
            AdmissionRejected: listing every full date, if any is full
        """
        excluded = tuple(exclude_registration_ids or ())
        results = [
            await self.check_dated_availability(program_type, session_date, time_slot, excluded)
            for session_date in session_dates
        ]
        full = [r for r in results if not r.available]
        if full:
            names = ", ".join(
                f"{r.day.capitalize()} {r.session_date.isoformat()}"
                + (f" at {r.time_slot}" if program_type != "group" and r.time_slot else "")
                for r in full
            )
            raise AdmissionRejected(
                f"The following slots are full: {names}",
                [
                    {
                        "day": r.day,
                        "date": r.session_date.isoformat(),
                        "time_slot": r.time_slot,
                        "booked": r.booked_count,
                        "capacity": r.capacity,
                    }
                    for r in full
                ],
            )
        return results

    async def occupied_hourly_slots(self, exclude_registration_ids: Iterable[int] = ()) -> set:
        """(day, time_slot) pairs held by private or semi-private registrations."""
        excluded = set(exclude_registration_ids or ())
        try:
            holders = await self._active_paid_registrations(HOURLY_PROGRAMS)
        except SQLAlchemyError as e:
            logger.error(f"Hourly occupancy query failed: {e}")
            raise StoreError("Could not check slot availability, please retry") from e
        return {
            (day, reg.time_slot)
            for reg in holders
            if reg.id not in excluded
            for day in reg.days
        }

    async def get_slot_capacity(
        self,
        session_date: date,
        time_slot: str,
        session_type: str = "group",
        max_capacity: Optional[int] = None,
    ) -> SlotAvailability:
        """Seat count of a dated session from booked and attended bookings."""
        try:
            result = await self.db.execute(
                select(func.count(SessionBooking.id)).where(
                    SessionBooking.session_date == session_date,
                    SessionBooking.time_slot == time_slot,
                    SessionBooking.session_type == session_type,
                    SessionBooking.status.in_(SEAT_HOLDING_STATUSES),
                )
            )
            count = result.scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Slot capacity query failed for {session_date} {time_slot}: {e}")
            raise StoreError("Could not read slot capacity, please retry") from e

        capacity = max_capacity if max_capacity is not None else capacity_for(session_type)
        return SlotAvailability(
            program_type=session_type,
            day=None,
            time_slot=time_slot,
            booked_count=count,
            capacity=capacity,
            available=count < capacity,
            session_date=session_date,
        )

    async def admit_booking(self, booking: SessionBooking, max_capacity: Optional[int] = None) -> SessionBooking:
        """
        Check capacity and insert a dated booking in one transaction.

        The slot is serialized with a transaction-scoped advisory lock on
        PostgreSQL so two requests can not both take the last seat.

        Raises:
            AdmissionRejected: the session is full
            ValidationError: the registration already holds this session
            StoreError: the insert failed
        """
        try:
            await self._lock_slot(booking.session_date, booking.time_slot, booking.session_type)
            availability = await self.get_slot_capacity(
                booking.session_date, booking.time_slot, booking.session_type, max_capacity
            )
            if not availability.available:
                await self.db.rollback()
                raise AdmissionRejected(
                    f"{booking.session_type.replace('_', '-').capitalize()} session on "
                    f"{booking.session_date.isoformat()} at {booking.time_slot} is full",
                    [availability.to_dict()],
                )
            self.db.add(booking)
            await self.db.commit()
            await self.db.refresh(booking)
        except IntegrityError as e:
            await self.db.rollback()
            raise ValidationError(
                f"Registration {booking.registration_id} is already booked on "
                f"{booking.session_date.isoformat()} at {booking.time_slot}"
            ) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Booking insert failed for registration {booking.registration_id}: {e}")
            raise StoreError("Could not create booking, please retry") from e

        logger.info(
            f"✅ Admitted {booking.session_type} booking {booking.id} for registration "
            f"{booking.registration_id} on {booking.session_date} {booking.time_slot}"
        )
        return booking

    async def reserve_sunday_seat(self, slot_id: int) -> bool:
        """Take one Sunday seat if any is left. Does not commit.

        Returns:
            False when the slot is full or inactive
        """
        result = await self.db.execute(
            update(SundayPracticeSlot)
            .where(
                SundayPracticeSlot.id == slot_id,
                SundayPracticeSlot.is_active.is_(True),
                SundayPracticeSlot.current_bookings < SundayPracticeSlot.max_capacity,
            )
            .values(current_bookings=SundayPracticeSlot.current_bookings + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_sunday_seat(self, slot_id: int) -> None:
        """Give one Sunday seat back. Does not commit."""
        await self.db.execute(
            update(SundayPracticeSlot)
            .where(SundayPracticeSlot.id == slot_id, SundayPracticeSlot.current_bookings > 0)
            .values(current_bookings=SundayPracticeSlot.current_bookings - 1)
            .execution_options(synchronize_session=False)
        )

    async def _sunday_availability(self, on_date: Optional[date], time_slot: Optional[str]) -> SlotAvailability:
        if on_date is None or not time_slot:
            raise ValidationError("Sunday availability needs a practice date and time slot")
        start = slot_start_time(time_slot)
        result = await self.db.execute(
            select(SundayPracticeSlot).where(
                SundayPracticeSlot.practice_date == on_date,
                SundayPracticeSlot.start_time == start,
            )
        )
        slot = result.scalar_one_or_none()
        if slot is None or not slot.is_active:
            return SlotAvailability("sunday", "sunday", time_slot, 0, 0, False, on_date)
        return SlotAvailability(
            program_type="sunday",
            day="sunday",
            time_slot=slot.time_label,
            booked_count=slot.current_bookings,
            capacity=slot.max_capacity,
            available=slot.current_bookings < slot.max_capacity,
            session_date=on_date,
        )

    async def _active_paid_registrations(self, programs) -> List[Registration]:
        result = await self.db.execute(
            select(Registration).where(
                Registration.program_type.in_(programs),
                Registration.status == RegistrationStatus.ACTIVE,
            )
        )
        # JSON day arrays are matched in Python; paid filter shares PAID_STATUSES
        return [reg for reg in result.scalars().all() if reg.is_paid]

    async def _lock_slot(self, session_date: date, time_slot: str, session_type: str) -> None:
        if self.db.get_bind().dialect.name != "postgresql":
            return
        key = f"{session_type}:{session_date.isoformat()}:{time_slot}"
        await self.db.execute(select(func.pg_advisory_xact_lock(func.hashtext(key))))
