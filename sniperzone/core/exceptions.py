"""Error taxonomy shared by services and the HTTP layer."""

from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    """Base class for all errors raised by the scheduling core."""

    status_code = 400
    code = "SCHEDULING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(SchedulingError):
    """Malformed or missing input. Nothing was written."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundOrUnauthorized(SchedulingError):
    """The record does not exist or does not belong to the caller."""

    status_code = 404
    code = "NOT_FOUND"


class AdmissionRejected(SchedulingError):
    """One or more target slots are at capacity."""

    status_code = 409
    code = "SLOT_FULL"

    def __init__(self, message: str, full_slots: List[Dict[str, Any]]):
        super().__init__(message, {"full_slots": full_slots})
        self.full_slots = full_slots


class InsufficientCreditsError(SchedulingError):
    """The parent has no credit left to pay for the session."""

    status_code = 402
    code = "INSUFFICIENT_CREDITS"


class StoreError(SchedulingError):
    """Underlying query or write failed. Safe to retry."""

    status_code = 503
    code = "STORE_ERROR"


class CompensationFailed(SchedulingError):
    """Credit was deducted, booking failed and the refund failed too.

    Requires manual reconciliation of the parent's balance.
    """

    status_code = 500
    code = "COMPENSATION_FAILED"
