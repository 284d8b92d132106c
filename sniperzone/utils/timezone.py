"""Venue-local calendar helpers.

Every stored date is the venue's local calendar date, never a UTC-shifted one.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from sniperzone.core.settings import settings

VENUE_TZ = ZoneInfo(settings.timezone)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def now_utc() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    """Get current time in the venue timezone."""
    return datetime.now(VENUE_TZ)


def today_local() -> date:
    """Today's calendar date at the venue."""
    return now_local().date()


def weekday_name(day: date) -> str:
    """Lowercase weekday token for a date ('monday'...'sunday')."""
    return WEEKDAYS[day.weekday()]


def weekday_index(day_name: str) -> int:
    """0=Monday ... 6=Sunday."""
    return WEEKDAYS.index(day_name.lower())


def next_occurrence(day_name: str, from_date: date, include_today: bool = True) -> date:
    """Next calendar date falling on ``day_name``.

    Args:
        day_name: Weekday token, case-insensitive
        from_date: Reference date (usually today)
        include_today: Whether ``from_date`` itself counts when it already
            falls on ``day_name``

    Returns:
        The matching date, ``from_date`` included only if allowed
    """
    days_ahead = (weekday_index(day_name) - from_date.weekday()) % 7
    if days_ahead == 0 and not include_today:
        days_ahead = 7
    return from_date + timedelta(days=days_ahead)


def sunday_index(day: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return (day.weekday() + 1) % 7


def date_in_same_week(day: date, day_name: str) -> date:
    """The ``day_name`` date inside the Sunday-based week of ``day``.

    A Sunday session swapped to Monday lands on the following day.
    """
    target = (weekday_index(day_name) + 1) % 7
    return day + timedelta(days=target - sunday_index(day))


def next_n_weekly(day_name: str, from_date: date, n: int = 8, include_today: bool = True) -> List[date]:
    """Next N weekly occurrences of a weekday as local dates."""
    first = next_occurrence(day_name, from_date, include_today=include_today)
    return [first + timedelta(days=7 * i) for i in range(n)]


def month_dates(day_names: List[str], reference: date) -> List[date]:
    """All dates of ``reference``'s month that fall on one of ``day_names``."""
    wanted = {weekday_index(d) for d in day_names}
    current = reference.replace(day=1)
    dates = []
    while current.month == reference.month:
        if current.weekday() in wanted:
            dates.append(current)
        current += timedelta(days=1)
    return dates


def session_start_utc(session_date: date, start: Optional[time]) -> datetime:
    """Combine a local session date and start time and convert to UTC."""
    local_dt = datetime.combine(session_date, start or time(0, 0), tzinfo=VENUE_TZ)
    return local_dt.astimezone(timezone.utc)
