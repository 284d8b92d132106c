"""Database models for the SniperZone training scheduler."""

from sniperzone.models.registration import PAID_STATUSES, ProgramType, Registration, RegistrationStatus
from sniperzone.models.schedule_exception import ExceptionStatus, ScheduleException
from sniperzone.models.schedule_change import ChangeType, ScheduleChange
from sniperzone.models.pairing import PairingStatus, SemiPrivatePairing, UnpairedSemiPrivate, WaitlistStatus
from sniperzone.models.recurring_schedule import PausedReason, RecurringSchedule
from sniperzone.models.credits import CreditPurchase, ParentCredits, PurchaseStatus
from sniperzone.models.sunday_slot import SundayPracticeSlot
from sniperzone.models.session_booking import SEAT_HOLDING_STATUSES, BookingStatus, SessionBooking
from sniperzone.models.notification import Notification

__all__ = [
    "Registration",
    "RegistrationStatus",
    "ProgramType",
    "PAID_STATUSES",
    "ScheduleException",
    "ExceptionStatus",
    "ScheduleChange",
    "ChangeType",
    "SemiPrivatePairing",
    "PairingStatus",
    "UnpairedSemiPrivate",
    "WaitlistStatus",
    "RecurringSchedule",
    "PausedReason",
    "ParentCredits",
    "CreditPurchase",
    "PurchaseStatus",
    "SundayPracticeSlot",
    "SessionBooking",
    "BookingStatus",
    "SEAT_HOLDING_STATUSES",
    "Notification",
]
