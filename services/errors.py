"""
Typed failures of the capacity core.

Every failure a caller can see is one of these. Routes render them through a
single error handler, so the client always receives a stable ``code`` it can
branch on (re-fetch availability, re-pick a slot, or retry).
"""


class BookingError(Exception):
    code = "booking_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str = None, **details):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFound(BookingError):
    """Unknown id, or an id owned by another tenant."""
    code = "not_found"
    status_code = 404


class SlotUnavailable(BookingError):
    code = "slot_unavailable"
    status_code = 409


class InvalidInput(BookingError):
    code = "invalid_input"
    status_code = 400


class CapacityExceeded(BookingError):
    code = "capacity_exceeded"
    status_code = 409


class LockExpired(BookingError):
    code = "lock_expired"
    status_code = 409


class LockMismatch(BookingError):
    code = "lock_mismatch"
    status_code = 403


class LockInsufficientCapacity(BookingError):
    code = "lock_insufficient_capacity"
    status_code = 409


class InvalidRelease(BookingError):
    """Capacity release would underflow booked_count: upstream bookkeeping bug."""
    code = "invalid_release"
    status_code = 500


class TransactionConflict(BookingError):
    """Lock wait timeout or contention at the database. Safe to retry."""
    code = "transaction_conflict"
    status_code = 503
    retryable = True


class TenantInactive(BookingError):
    code = "tenant_inactive"
    status_code = 403


class InvalidTransition(BookingError):
    code = "invalid_transition"
    status_code = 400
