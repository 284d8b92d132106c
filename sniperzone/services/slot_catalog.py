"""Fixed slot catalog for every training program.

Pure lookups, no database access.
"""

from dataclasses import dataclass
from datetime import datetime, time
from typing import Dict, List, Optional

from sniperzone.core.settings import settings
from sniperzone.utils.timezone import WEEKDAYS

# Weekday group training times and the categories that train in them
GROUP_SLOTS_BY_TIME: Dict[str, List[str]] = {
    "4:30 PM": ["M7", "M9", "M11"],
    "5:45 PM": ["M13", "M13 Elite"],
    "7:00 PM": ["M15", "M15 Elite"],
    "8:15 PM": ["M18", "Junior"],
}

# Private and semi-private hourly slots, bookable on any day
PRIVATE_TIME_SLOTS = ["8-9", "9-10", "10-11", "11-12", "12-13", "13-14", "14-15"]

PRIVATE_CAPACITY = 1
# Two players share one session; at slot level it is still one seat
SEMI_PRIVATE_PLAYERS = 2
SEMI_PRIVATE_CAPACITY = 1

_CATEGORY_MAP = {
    "m7": "M7",
    "m9": "M9",
    "m11": "M11",
    "m13": "M13",
    "m13 elite": "M13 Elite",
    "m15": "M15",
    "m15 elite": "M15 Elite",
    "m18": "M18",
    "junior": "Junior",
    "adult": "Junior",
    "unknown": "Unknown",
}


@dataclass(frozen=True)
class SundaySlotTemplate:
    """One Sunday ice window with its category range and seat count."""

    start_time: time
    end_time: time
    min_category: str
    max_category: str
    categories: tuple
    capacity: int

    @property
    def label(self) -> str:
        return f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"


SUNDAY_SLOTS: List[SundaySlotTemplate] = [
    SundaySlotTemplate(time(7, 30), time(8, 30), "M7", "M11", ("M7", "M9", "M11"), 12),
    SundaySlotTemplate(
        time(8, 30), time(9, 30), "M13", "M15 Elite", ("M13", "M13 Elite", "M15", "M15 Elite"), 10
    ),
]


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Canonical age category; unknown spellings are returned trimmed."""
    if not category:
        return None
    trimmed = category.strip()
    return _CATEGORY_MAP.get(trimmed.lower(), trimmed)


def normalize_day(day: Optional[str]) -> Optional[str]:
    """Lowercase weekday token, or None when it is not a weekday."""
    if not day:
        return None
    token = day.strip().lower()
    return token if token in WEEKDAYS else None


def group_time_for_category(category: Optional[str]) -> Optional[str]:
    """Weekday group time assigned to an age category."""
    normalized = normalize_category(category)
    for slot_time, categories in GROUP_SLOTS_BY_TIME.items():
        if normalized in categories:
            return slot_time
    return None


def sunday_slot_for_category(category: Optional[str]) -> Optional[SundaySlotTemplate]:
    """Sunday ice window for a category; None for M18, Junior and Unknown."""
    normalized = normalize_category(category)
    for slot in SUNDAY_SLOTS:
        if normalized in slot.categories:
            return slot
    return None


def is_valid_private_slot(time_slot: Optional[str]) -> bool:
    return time_slot in PRIVATE_TIME_SLOTS


def capacity_for(program_type: str) -> int:
    """Slot-level seat ceiling of a weekday program."""
    if program_type == "group":
        return settings.group_capacity
    if program_type == "private":
        return PRIVATE_CAPACITY
    if program_type == "semi_private":
        return SEMI_PRIVATE_CAPACITY
    raise ValueError(f"No weekday capacity for program type '{program_type}'")


def expected_day_count(program_type: str, frequency: Optional[str]) -> int:
    """How many days a reschedule request must name."""
    if program_type == "group":
        return 2 if frequency == "2x" else 1
    return 1


def slot_start_time(time_slot: str) -> Optional[time]:
    """Start time of a slot label.

    Handles group labels ('5:45 PM'), private ranges ('10-11'),
    Sunday ranges ('07:30-08:30') and plain 'HH:MM'.
    """
    label = (time_slot or "").strip()
    if not label:
        return None
    for fmt in ("%I:%M %p", "%H:%M"):
        try:
            return datetime.strptime(label, fmt).time()
        except ValueError:
            continue
    head = label.split("-")[0].strip()
    if ":" in head:
        try:
            return datetime.strptime(head, "%H:%M").time()
        except ValueError:
            return None
    if head.isdigit() and 0 <= int(head) <= 23:
        return time(int(head), 0)
    return None
