"""
Typed errors raised by the scheduling core.

Every error carries a stable ``code`` and the HTTP status the API layer maps it
to, plus optional context (slot id, date, window bounds...) so callers can tell
patients and staff which rule stopped the request.
"""

from typing import Any


class SchedulingError(Exception):
    """Base class for all scheduling failures"""

    code = "scheduling_error"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "code": self.code}
        for key, value in self.context.items():
            payload[key] = value.isoformat() if hasattr(value, "isoformat") else value
        return payload


class ValidationError(SchedulingError):
    code = "validation_error"
    status_code = 400


class InvalidDayOfWeek(ValidationError):
    code = "invalid_day_of_week"


class InvalidCapacity(ValidationError):
    code = "invalid_capacity"


class InvalidDate(ValidationError):
    code = "invalid_date"


class CapacityExceeded(SchedulingError):
    code = "capacity_exceeded"
    status_code = 409


class AllocationTimeout(CapacityExceeded):
    """The capacity row stayed locked past the timeout; nothing was allocated"""

    code = "allocation_timeout"
    status_code = 503


class SlotInactive(SchedulingError):
    code = "slot_inactive"
    status_code = 409


class DuplicateSlot(SchedulingError):
    code = "duplicate_slot"
    status_code = 409


class NotFound(SchedulingError):
    code = "not_found"
    status_code = 404


class InvalidTransition(SchedulingError):
    code = "invalid_transition"
    status_code = 409


class CheckInWindowClosed(InvalidTransition):
    code = "check_in_window_closed"


class AlreadyCheckedIn(SchedulingError):
    code = "already_checked_in"
    status_code = 409


class InvalidState(SchedulingError):
    code = "invalid_state"
    status_code = 409


class PatientNotEligible(SchedulingError):
    code = "patient_not_eligible"
    status_code = 403


class ConcurrentAllocationRetry(SchedulingError):
    """Transient conflict; the whole allocation transaction must be retried"""

    code = "concurrent_allocation_retry"
    status_code = 503


class PersistenceError(SchedulingError):
    code = "persistence_error"
    status_code = 500
