"""Typed weekly schedules, one shape per program type."""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from sniperzone.core.exceptions import ValidationError
from sniperzone.models import ProgramType, Registration
from sniperzone.services.slot_catalog import (
    group_time_for_category,
    is_valid_private_slot,
    normalize_day,
)


@dataclass
class GroupSchedule:
    days: List[str]
    frequency: str
    time_slot: Optional[str] = None

    program_type: str = field(default="group", init=False)


@dataclass
class PrivateSchedule:
    days: List[str]
    time_slot: str

    program_type: str = field(default="private", init=False)


@dataclass
class SemiPrivateSchedule:
    day: str
    time_slot: str

    program_type: str = field(default="semi_private", init=False)

    @property
    def days(self) -> List[str]:
        return [self.day]


ProgramSchedule = Union[GroupSchedule, PrivateSchedule, SemiPrivateSchedule]


def normalize_days(days: List[str]) -> List[str]:
    """Lowercase and validate a list of day names, rejecting duplicates."""
    normalized = []
    for raw in days or []:
        day = normalize_day(raw)
        if day is None:
            raise ValidationError(f"Invalid day name: '{raw}'")
        if day in normalized:
            raise ValidationError(f"Day '{day}' listed more than once")
        normalized.append(day)
    return normalized


def schedule_from_registration(registration: Registration) -> ProgramSchedule:
    """Build the typed schedule of a registration.

    Raises:
        ValidationError: for Sunday-only registrations or stored data that
            does not fit the program shape
    """
    program = ProgramType(registration.program_type)
    days = [d for d in (normalize_day(x) for x in registration.selected_days or []) if d]

    if program == ProgramType.GROUP:
        time_slot = registration.time_slot or group_time_for_category(registration.age_category)
        return GroupSchedule(days=days, frequency=registration.frequency or "1x", time_slot=time_slot)

    if program == ProgramType.PRIVATE:
        if not is_valid_private_slot(registration.time_slot):
            raise ValidationError(f"Registration {registration.id} has no valid private time slot")
        return PrivateSchedule(days=days, time_slot=registration.time_slot)

    if program == ProgramType.SEMI_PRIVATE:
        if not days or not is_valid_private_slot(registration.time_slot):
            raise ValidationError(f"Registration {registration.id} has no semi-private day/time")
        return SemiPrivateSchedule(day=days[0], time_slot=registration.time_slot)

    raise ValidationError("Sunday registrations have no weekly schedule")
