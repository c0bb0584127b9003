"""Error taxonomy for the reservation core.

Raised by the catalog and the scheduler, translated to HTTP responses by
the handlers registered in reservations.main.
"""

from enum import Enum


class ErrorCode(Enum):
    """Machine-readable error codes."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"


ORDER_NOT_FOUND = "订单不存在"
VENUE_NOT_FOUND = "Venue not found"


class ReservationError(Exception):
    """Base error with code and user-safe message."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(ReservationError):
    """Malformed or out-of-policy input: bad duration, past time, outside hours."""

    code = ErrorCode.VALIDATION_FAILED


class NotFoundError(ReservationError):
    """A referenced venue or order does not exist."""

    code = ErrorCode.NOT_FOUND


class ConflictError(ReservationError):
    """Slot already taken, or the order's state changed underneath the caller."""

    code = ErrorCode.CONFLICT
