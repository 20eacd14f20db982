"""Error taxonomy for the booking core.

Every expected outcome is a ``BookingError`` subclass carrying the HTTP status and a
stable machine-readable code. ``InternalError`` is the only one whose message is never
taken from the underlying failure.
"""

from typing import Any


class BookingError(Exception):
    """Base exception for all expected booking failures."""

    status_code: int = 500
    code: str = "BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Body returned to API callers."""
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BookingError):
    """Malformed date/time, missing field, non-future appointment time."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(BookingError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        details: dict[str, Any] = {"resource": resource}
        if resource_id is not None:
            message += f" with id: {resource_id}"
            details["resource_id"] = resource_id
        super().__init__(message, details)


class InactiveResourceError(BookingError):
    """Company or service exists but is not bookable."""

    status_code = 400
    code = "INACTIVE_RESOURCE"


class SlotConflictError(BookingError):
    status_code = 409
    code = "SLOT_CONFLICT"

    def __init__(self, message: str = "Time slot is not available", details: dict[str, Any] | None = None):
        super().__init__(message, details)


class InvalidTransitionError(BookingError):
    status_code = 409
    code = "INVALID_TRANSITION"


class PermissionDeniedError(BookingError):
    status_code = 403
    code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Permission denied", details: dict[str, Any] | None = None):
        super().__init__(message, details)


class AlreadyRecordedError(BookingError):
    status_code = 409
    code = "ALREADY_RECORDED"

    def __init__(self, appointment_id: int):
        super().__init__(
            "History already exists for this appointment",
            {"appointment_id": appointment_id},
        )


class InternalError(BookingError):
    status_code = 500
    code = "INTERNAL"

    def __init__(self) -> None:
        super().__init__("Internal server error")
