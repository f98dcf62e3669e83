"""Error taxonomy for the booking engine.

Every exception here is caught at the service boundary and turned into a
typed outcome, so callers can tell which invariant failed.
"""

from __future__ import annotations

from booking_engine.domain.models import AppointmentStatus, Conflict


class BookingError(Exception):
    """Base class for rejections raised inside the engine."""


class ValidationError(BookingError):
    """The candidate or requested change is malformed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidTransition(ValidationError):
    """The requested status is not reachable from the current one."""

    def __init__(
        self,
        current: AppointmentStatus,
        requested: AppointmentStatus,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or f"Cannot change status from {current} to {requested}.",
            field="status",
        )
        self.current = current
        self.requested = requested


class ConflictError(BookingError):
    def __init__(self, conflict: Conflict) -> None:
        super().__init__(conflict.message)
        self.conflict = conflict

    @property
    def kind(self):
        return self.conflict.kind


class StorageUnavailable(BookingError):
    """Availability could not be established; safe to retry the whole request."""

    retryable = True


class NotFound(BookingError):
    def __init__(self, appointment_id: str) -> None:
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class StorageError(Exception):
    """Raised by store adapters when a read or write fails."""
