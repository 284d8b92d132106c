"""Reschedule service: permanent changes and one-time exceptions."""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.core.exceptions import NotFoundOrUnauthorized, SchedulingError, StoreError, ValidationError
from sniperzone.core.settings import settings
from sniperzone.models import (
    ChangeType,
    ExceptionStatus,
    ProgramType,
    Registration,
    RegistrationStatus,
    ScheduleChange,
    ScheduleException,
)
from sniperzone.services.capacity_service import CapacityLedger
from sniperzone.services.notification_service import DbNotificationSink, NotificationSink
from sniperzone.services.pairing_service import PairingEngine, PairingOutcome, waiting_at_slot
from sniperzone.services.program_schedule import normalize_days, schedule_from_registration
from sniperzone.services.slot_catalog import (
    expected_day_count,
    group_time_for_category,
    is_valid_private_slot,
)
from sniperzone.utils.timezone import (
    date_in_same_week,
    month_dates,
    next_n_weekly,
    next_occurrence,
    now_utc,
    today_local,
    weekday_name,
)

logger = logging.getLogger(__name__)


@dataclass
class DaySwap:
    """One original training date replaced by another day that week."""

    original_day: str
    original_date: date
    replacement_day: str
    replacement_date: date


@dataclass
class Occurrence:
    """A resolved training date for display."""

    date: date
    day: str
    time_slot: Optional[str]
    is_exception: bool = False
    original_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day": self.day,
            "time_slot": self.time_slot,
            "is_exception": self.is_exception,
            "original_date": self.original_date.isoformat() if self.original_date else None,
        }


@dataclass
class RescheduleResult:
    change: ScheduleChange
    exceptions: List[ScheduleException] = field(default_factory=list)
    pairing: Optional[PairingOutcome] = None

    @property
    def message(self) -> str:
        if self.change.change_type == ChangeType.PERMANENT:
            return "Your schedule has been permanently updated"
        return "Your one-time schedule change has been applied"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": True,
            "message": self.message,
            "schedule_change_id": self.change.id,
            "change_type": self.change.change_type.value,
            "new_schedule": {"days": self.change.new_days, "time_slot": self.change.new_time},
            "exceptions": [
                {
                    "id": exc.id,
                    "exception_date": exc.exception_date.isoformat(),
                    "original_day": exc.original_day,
                    "replacement_day": exc.replacement_day,
                    "replacement_time": exc.replacement_time,
                }
                for exc in self.exceptions
            ],
        }
        if self.pairing is not None:
            data["pairing_status"] = self.pairing.to_dict()
        return data


async def get_owned_registration(db: AsyncSession, registration_id: int, firebase_uid: str) -> Registration:
    """Load a registration only if it belongs to the caller."""
    try:
        registration = await db.get(Registration, registration_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load registration {registration_id}: {e}")
        raise StoreError("Could not load registration, please retry") from e
    if registration is None or registration.firebase_uid != firebase_uid:
        raise NotFoundOrUnauthorized("Registration not found or unauthorized")
    return registration


class ScheduleService:
    """Applies reschedule requests and resolves the resulting calendar."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationSink] = None,
        pairing: Optional[PairingEngine] = None,
    ):
        self.db = db
        self.capacity = CapacityLedger(db)
        self.pairing = pairing or PairingEngine(db)
        self.notifier = notifier or DbNotificationSink(db)

    async def propose_change(
        self,
        registration_id: int,
        firebase_uid: str,
        change_type: str,
        new_days: List[str],
        new_time: Optional[str] = None,
        specific_date: Optional[date] = None,
        effective_date: Optional[date] = None,
        replaced_day: Optional[str] = None,
        reason: Optional[str] = None,
        today: Optional[date] = None,
    ) -> RescheduleResult:
        """
        Apply a one-time or permanent reschedule.

        Either every target slot is admitted and the whole change is
        committed, or nothing is written.

        Args:
            registration_id: Registration being moved
            firebase_uid: Caller; must own the registration
            change_type: 'one_time' or 'permanent'
            new_days: Full set of new training days
            new_time: New hourly slot (private/semi-private)
            specific_date: One-time only; the single original date to swap
            effective_date: Permanent only; defaults to today
            replaced_day: One-time only; which original day is swapped when
                a private registration trains on several days
            reason: Free text stored on the audit row
            today: Reference date, venue-local today by default

        Raises:
            NotFoundOrUnauthorized, ValidationError, AdmissionRejected, StoreError
        """
        today = today or today_local()
        registration = await get_owned_registration(self.db, registration_id, firebase_uid)
        if registration.status == RegistrationStatus.CANCELLED:
            raise ValidationError("This registration has been cancelled")

        try:
            kind = ChangeType(change_type)
        except ValueError:
            raise ValidationError(f"Unknown change type: '{change_type}'") from None

        program = ProgramType(registration.program_type)
        current = schedule_from_registration(registration)
        days = normalize_days(new_days)
        time_slot = self._validate_target(registration, program, days, new_time)

        if specific_date is not None and specific_date < today:
            raise ValidationError("Cannot reschedule a date in the past")

        excluded = [registration.id]
        if program == ProgramType.SEMI_PRIVATE:
            # A waiting partner at the target slot is joined, not displaced
            excluded += [w.registration_id for w in await waiting_at_slot(self.db, registration, days[0], time_slot)]

        swaps: List[DaySwap] = []
        if kind == ChangeType.ONE_TIME:
            swaps = self._map_swaps(registration, program, current.days, days, time_slot, replaced_day, specific_date, today)
            # One-time swaps are admitted against the concrete dates they land on
            await self.capacity.ensure_dated_admissible(
                program.value, [s.replacement_date for s in swaps], time_slot, excluded
            )
        else:
            await self.capacity.ensure_admissible(program.value, days, time_slot, excluded)

        try:
            outcome = None
            if program == ProgramType.SEMI_PRIVATE:
                outcome = await self.pairing.try_reschedule(registration, days[0], time_slot, dissolved_by=firebase_uid)

            original_days = list(current.days)
            original_time = registration.time_slot

            exceptions = []
            if kind == ChangeType.PERMANENT:
                registration.selected_days = days
                registration.time_slot = time_slot
                registration.monthly_dates = [d.isoformat() for d in month_dates(days, today)]
                registration.updated_at = now_utc()
            else:
                for swap in swaps:
                    exceptions.append(
                        await self._upsert_exception(registration, swap, time_slot, reason, firebase_uid)
                    )

            change = ScheduleChange(
                registration_id=registration.id,
                change_type=kind,
                program_type=program.value,
                original_days=original_days,
                original_time=original_time,
                new_days=days,
                new_time=time_slot,
                specific_date=swaps[0].original_date if swaps else None,
                effective_date=(effective_date or today) if kind == ChangeType.PERMANENT else None,
                status="approved",
                reason=reason,
                created_by=firebase_uid,
                approved_by="system",
                applied_at=now_utc(),
            )
            self.db.add(change)
            await self.db.commit()
            await self.db.refresh(change)
            for exc in exceptions:
                await self.db.refresh(exc)
        except SchedulingError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Reschedule failed for registration {registration.id}: {e}")
            raise StoreError("Could not save the schedule change, please retry") from e

        logger.info(
            f"📅 {kind.value} reschedule for registration {registration.id}: "
            f"{original_days} {original_time or ''} -> {days} {time_slot or ''}"
        )

        result = RescheduleResult(change=change, exceptions=exceptions, pairing=outcome)
        await self._notify(registration, result, original_days, original_time)
        return result

    async def check_reschedule_availability(
        self,
        registration_id: int,
        firebase_uid: str,
        new_days: List[str],
        new_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Preview admission for a reschedule without writing anything."""
        registration = await get_owned_registration(self.db, registration_id, firebase_uid)
        program = ProgramType(registration.program_type)
        if program == ProgramType.SUNDAY:
            raise ValidationError("Sunday registrations can not be rescheduled")
        days = normalize_days(new_days)
        if not days:
            raise ValidationError("Please provide new days to check availability")

        if program == ProgramType.GROUP:
            results = [
                await self.capacity.check_availability("group", day, exclude_registration_ids=[registration.id])
                for day in days
            ]
            return {"success": True, "availability": [r.to_dict() for r in results]}

        if not is_valid_private_slot(new_time):
            raise ValidationError(f"Invalid time slot: '{new_time}'")

        excluded = [registration.id]
        partner = None
        if program == ProgramType.SEMI_PRIVATE:
            waiting = await waiting_at_slot(self.db, registration, days[0], new_time)
            excluded += [w.registration_id for w in waiting]
            partner = waiting[0] if waiting else None

        availability = await self.capacity.check_availability(program.value, days[0], new_time, excluded)
        data = {"success": True, "available": availability.available, "day": days[0], "time": new_time}
        if program == ProgramType.SEMI_PRIVATE:
            data["has_unpaired_partner"] = partner is not None
            data["partner_info"] = (
                {"name": partner.player_name, "category": partner.age_category} if partner else None
            )
        return data

    async def resolve_occurrences(
        self, registration: Registration, start: Optional[date] = None, weeks: int = 4
    ) -> List[Occurrence]:
        """
        Upcoming training dates with one-time exceptions applied.

        An exception only replaces the single date it names; the replacement
        lands on its day inside the same Sunday-based week.
        """
        start = start or today_local()
        schedule = schedule_from_registration(registration)
        base_time = schedule.time_slot

        end = start + timedelta(weeks=weeks)
        result = await self.db.execute(
            select(ScheduleException).where(
                ScheduleException.registration_id == registration.id,
                ScheduleException.status == ExceptionStatus.APPLIED,
                ScheduleException.exception_date >= start,
                ScheduleException.exception_date < end,
            )
        )
        by_date = {exc.exception_date: exc for exc in result.scalars().all()}

        occurrences = []
        for day in schedule.days:
            for original in next_n_weekly(day, start, n=weeks):
                exc = by_date.get(original)
                if exc is None:
                    occurrences.append(Occurrence(original, day, base_time))
                    continue
                occurrences.append(
                    Occurrence(
                        date=date_in_same_week(original, exc.replacement_day),
                        day=exc.replacement_day,
                        time_slot=exc.replacement_time or base_time,
                        is_exception=True,
                        original_date=original,
                    )
                )
        return sorted(occurrences, key=lambda o: (o.date, o.original_date or o.date))

    async def list_exceptions(self, registration_id: int, today: Optional[date] = None) -> List[ScheduleException]:
        """Applied exceptions dated today or later."""
        today = today or today_local()
        result = await self.db.execute(
            select(ScheduleException)
            .where(
                ScheduleException.registration_id == registration_id,
                ScheduleException.status == ExceptionStatus.APPLIED,
                ScheduleException.exception_date >= today,
            )
            .order_by(ScheduleException.exception_date.asc())
        )
        return list(result.scalars().all())

    def _validate_target(
        self, registration: Registration, program: ProgramType, days: List[str], new_time: Optional[str]
    ) -> Optional[str]:
        """Check day count and time for the program; returns the target time."""
        if program == ProgramType.SUNDAY:
            raise ValidationError("Sunday registrations can not be rescheduled")

        expected = expected_day_count(program.value, registration.frequency)
        if len(days) != expected:
            raise ValidationError(
                f"You must select exactly {expected} day(s) based on your {registration.frequency} frequency"
                if program == ProgramType.GROUP
                else "Select exactly one day"
            )

        if program == ProgramType.GROUP:
            # Group time is fixed by age category
            fixed = registration.time_slot or group_time_for_category(registration.age_category)
            if new_time and new_time != fixed:
                raise ValidationError(f"Group training time is fixed at {fixed} for this age category")
            return fixed

        if not new_time:
            raise ValidationError("Please provide a new time slot")
        if not is_valid_private_slot(new_time):
            raise ValidationError(f"Invalid time slot: '{new_time}'")
        return new_time

    def _map_swaps(
        self,
        registration: Registration,
        program: ProgramType,
        original_days: List[str],
        new_days: List[str],
        new_time: Optional[str],
        replaced_day: Optional[str],
        specific_date: Optional[date],
        today: date,
    ) -> List[DaySwap]:
        """Pair each replaced original day with its replacement and date it."""
        if program == ProgramType.GROUP:
            removed = [d for d in original_days if d not in new_days]
            added = [d for d in new_days if d not in original_days]
            if not removed:
                raise ValidationError("The new days are the same as the current schedule")
            pairs: List[Tuple[str, str]] = list(zip(removed, added))
        else:
            if replaced_day:
                original = replaced_day.strip().lower()
                if original not in original_days:
                    raise ValidationError(f"'{replaced_day}' is not one of the current training days")
            elif len(original_days) == 1:
                original = original_days[0]
            elif specific_date is not None:
                original = weekday_name(specific_date)
            else:
                raise ValidationError("Specify which training day is being replaced")
            if original == new_days[0] and new_time == registration.time_slot:
                raise ValidationError("The new slot is the same as the current schedule")
            pairs = [(original, new_days[0])]

        if specific_date is not None:
            original = weekday_name(specific_date)
            matched = [p for p in pairs if p[0] == original]
            if not matched:
                raise ValidationError(
                    f"{specific_date.isoformat()} is a {original.capitalize()}, "
                    f"not one of the days being replaced"
                )
            dated = [(original, specific_date, matched[0][1])]
        else:
            dated = [
                (original, next_occurrence(original, today, include_today=settings.swap_includes_today), replacement)
                for original, replacement in pairs
            ]

        swaps = []
        for original, original_date, replacement in dated:
            replacement_date = date_in_same_week(original_date, replacement)
            if replacement_date < today:
                raise ValidationError(
                    f"{replacement.capitalize()} {replacement_date.isoformat()} has already passed; "
                    f"pick a later day that week"
                )
            swaps.append(DaySwap(original, original_date, replacement, replacement_date))
        return swaps

    async def _upsert_exception(
        self,
        registration: Registration,
        swap: DaySwap,
        time_slot: Optional[str],
        reason: Optional[str],
        firebase_uid: str,
    ) -> ScheduleException:
        result = await self.db.execute(
            select(ScheduleException).where(
                ScheduleException.registration_id == registration.id,
                ScheduleException.exception_date == swap.original_date,
            )
        )
        exc = result.scalars().first()
        if exc is None:
            exc = ScheduleException(
                registration_id=registration.id,
                exception_date=swap.original_date,
                exception_type="swap",
                created_by=firebase_uid,
            )
            self.db.add(exc)
        exc.original_day = swap.original_day
        exc.replacement_day = swap.replacement_day
        exc.replacement_time = time_slot if registration.program_type != ProgramType.GROUP else None
        exc.status = ExceptionStatus.APPLIED
        exc.reason = reason or f"One-time swap: {swap.original_day} -> {swap.replacement_day}"
        exc.applied_at = now_utc()
        return exc

    async def _notify(
        self,
        registration: Registration,
        result: RescheduleResult,
        original_days: List[str],
        original_time: Optional[str],
    ) -> None:
        permanent = result.change.change_type == ChangeType.PERMANENT
        program = ProgramType(registration.program_type).value
        before = _describe(original_days, original_time)
        after = _describe(result.change.new_days, result.change.new_time)
        data = {
            "registration_id": registration.id,
            "player_name": registration.player_name,
            "change_type": result.change.change_type.value,
            "original_schedule": before,
            "new_schedule": after,
        }

        await self.notifier.notify(
            registration.firebase_uid,
            "parent",
            "schedule_changed",
            "Schedule Updated" if permanent else "One-Time Schedule Change",
            f"{registration.player_name}'s training schedule has been updated from {before} to {after}."
            if permanent
            else f"{registration.player_name}'s training has been moved from {before} to {after} for this week.",
            "normal",
            data,
        )
        await self.notifier.notify(
            "admin",
            "admin",
            "schedule_changed",
            "Parent Rescheduled Training",
            f"{registration.player_name} ({program}) "
            f"{'permanently changed' if permanent else 'made a one-time change to'} schedule "
            f"from {before} to {after}.",
            "normal",
            {**data, "program_type": program},
        )

        outcome = result.pairing
        if outcome is None:
            return
        if outcome.previous_partner and outcome.previous_partner.firebase_uid:
            await self.notifier.notify(
                outcome.previous_partner.firebase_uid,
                "parent",
                "pairing_dissolved",
                "Semi-Private Partner Changed",
                f"{registration.player_name} has moved to a different time. "
                f"{outcome.previous_partner.name} is now looking for a new partner.",
                "high",
                {"registration_id": outcome.previous_partner.registration_id},
            )
        if outcome.new_partner and outcome.new_partner.firebase_uid:
            await self.notifier.notify(
                outcome.new_partner.firebase_uid,
                "parent",
                "partner_found",
                "Semi-Private Partner Found!",
                f"{outcome.new_partner.name} has been paired with {registration.player_name} "
                f"on {result.change.new_days[0].capitalize()} at {result.change.new_time}.",
                "high",
                {"registration_id": outcome.new_partner.registration_id, "pairing_id": outcome.pairing_id},
            )


def _describe(days: List[str], time_slot: Optional[str]) -> str:
    label = ", ".join(d.capitalize() for d in days) or "no days"
    return f"{label} at {time_slot}" if time_slot else label
