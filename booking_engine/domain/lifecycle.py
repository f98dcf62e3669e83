"""Appointment status state machine."""

from __future__ import annotations

from booking_engine.domain.errors import InvalidTransition, ValidationError
from booking_engine.domain.models import AppointmentStatus

_S = AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    _S.PENDING: frozenset({_S.CONFIRMED, _S.CANCELLED}),
    _S.CONFIRMED: frozenset({_S.COMPLETED, _S.NO_SHOW, _S.CANCELLED}),
    _S.COMPLETED: frozenset(),
    _S.CANCELLED: frozenset(),
    _S.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Appointments in these states no longer hold their slot
INACTIVE_STATUSES = TERMINAL_STATUSES

INITIAL_STATUS = _S.CONFIRMED

_ALIASES = {
    "noshow": _S.NO_SHOW,
    "no_show": _S.NO_SHOW,
    "no show": _S.NO_SHOW,
}


def parse_status(value: str | AppointmentStatus | None) -> AppointmentStatus:
    """Resolve a caller-supplied status string to an ``AppointmentStatus``.

    Matching is case-insensitive; the lower-case document spellings
    (``no-show``, ``no_show``) are accepted too.
    """
    if isinstance(value, AppointmentStatus):
        return value
    if not value or not value.strip():
        raise ValidationError("A status is required.", field="status")
    key = value.strip().lower()
    for status in AppointmentStatus:
        if status.value.lower() == key:
            return status
    if key in _ALIASES:
        return _ALIASES[key]
    raise ValidationError(f"Unknown status: {value!r}", field="status")


def is_terminal(status: AppointmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: AppointmentStatus, requested: AppointmentStatus) -> bool:
    return current == requested or requested in TRANSITIONS[current]


def validate_transition(
    current: AppointmentStatus, requested: AppointmentStatus
) -> None:
    """Raise ``InvalidTransition`` unless *requested* is reachable from *current*.

    Re-asserting the current status is allowed and is a no-op for callers.
    """
    if not can_transition(current, requested):
        raise InvalidTransition(current, requested)
