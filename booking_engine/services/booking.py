"""Booking entry points: propose, reschedule and change the status of appointments.

Each write runs the conflict check and the commit while holding the locks for
the staff member and the client involved, so two requests cannot both pass
the check before either has been stored.
"""

from __future__ import annotations

import logging
import re

import pydantic

from booking_engine import config
from booking_engine.domain import errors
from booking_engine.domain.bus import EventBus
from booking_engine.domain.events import (
    AppointmentBooked,
    AppointmentRescheduled,
    AppointmentStatusChanged,
)
from booking_engine.domain.lifecycle import (
    INITIAL_STATUS,
    is_terminal,
    parse_status,
    validate_transition,
)
from booking_engine.domain.models import (
    Appointment,
    BookingOutcome,
    BookingRequest,
    RejectionReason,
    StatusChangeOutcome,
)
from booking_engine.repos.memory import AppointmentRepository
from booking_engine.services.conflicts import ConflictChecker, day_bounds
from booking_engine.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_REQUIRED_IDS = {
    "location_id": "Please select a location.",
    "staff_id": "Please select a staff member.",
    "service_id": "Please select a service.",
}


def build_candidate(
    request: BookingRequest,
    base: Appointment | None = None,
    min_phone_length: int = config.MIN_CLIENT_PHONE_LENGTH,
    default_duration: int = config.DEFAULT_DURATION_MINUTES,
) -> Appointment:
    """Validate *request* and turn it into a candidate Appointment.

    With *base* (an edit), fields left as ``None`` keep the stored value and
    the candidate keeps the stored id, status and client link. Raises
    ``errors.ValidationError`` naming the first offending field.
    """
    values = base.model_dump() if base is not None else {}
    values.update(request.model_dump(exclude_none=True))

    name = (values.get("client_name") or "").strip()
    if len(name) < 2:
        raise errors.ValidationError("Client name is required.", field="client_name")

    phone = (values.get("client_phone") or "").strip()
    if len(phone) < min_phone_length:
        raise errors.ValidationError(
            "A valid phone number is required.", field="client_phone"
        )

    email = (values.get("client_email") or "").strip() or None
    if email is not None and not _EMAIL_RE.match(email):
        raise errors.ValidationError("Invalid email address.", field="client_email")

    for field, message in _REQUIRED_IDS.items():
        if not (values.get(field) or "").strip():
            raise errors.ValidationError(message, field=field)

    if values.get("start_time") is None:
        raise errors.ValidationError(
            "Appointment date and time are required.", field="start_time"
        )

    duration = values.get("duration_minutes")
    if duration is None:
        duration = default_duration
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise errors.ValidationError(
            "Duration must be a positive number of minutes.", field="duration_minutes"
        )

    values.update(
        client_name=name,
        client_phone=phone,
        client_email=email,
        location_id=values["location_id"].strip(),
        staff_id=values["staff_id"].strip(),
        service_id=values["service_id"].strip(),
        duration_minutes=duration,
    )
    if base is None:
        values["status"] = INITIAL_STATUS

    try:
        candidate = Appointment(**values)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or None
        raise errors.ValidationError(first["msg"], field=field) from exc

    # The day queries need the next midnight to exist, as well as the end time
    try:
        day_bounds(candidate.start_time)
    except OverflowError as exc:
        raise errors.ValidationError(
            "Appointment date is out of range.", field="start_time"
        ) from exc
    try:
        candidate.end_time
    except OverflowError as exc:
        raise errors.ValidationError(
            "Appointment ends past the last supported date.", field="duration_minutes"
        ) from exc
    return candidate


def _lock_keys(*appointments: Appointment) -> list[str]:
    keys = []
    for appointment in appointments:
        keys.append(f"staff:{appointment.staff_id}")
        keys.append(f"client:{appointment.client_phone}")
    return keys


def _rejected(exc: errors.BookingError) -> BookingOutcome:
    if isinstance(exc, errors.ConflictError):
        conflict = exc.conflict
        return BookingOutcome(
            accepted=False,
            reason=RejectionReason.CONFLICT,
            conflict_kind=conflict.kind,
            conflicting_start=conflict.start,
            conflicting_end=conflict.end,
            conflicting_appointment_id=conflict.appointment_id,
            message=conflict.message,
        )
    if isinstance(exc, errors.InvalidTransition):
        return BookingOutcome(
            accepted=False,
            reason=RejectionReason.INVALID_TRANSITION,
            field=exc.field,
            message=exc.message,
        )
    if isinstance(exc, errors.ValidationError):
        return BookingOutcome(
            accepted=False,
            reason=RejectionReason.VALIDATION,
            field=exc.field,
            message=exc.message,
        )
    if isinstance(exc, errors.NotFound):
        return BookingOutcome(
            accepted=False,
            appointment_id=exc.appointment_id,
            reason=RejectionReason.NOT_FOUND,
            message=str(exc),
        )
    return BookingOutcome(
        accepted=False,
        reason=RejectionReason.STORAGE_UNAVAILABLE,
        message=str(exc),
        retryable=True,
    )


class BookingService:
    """The write path for appointments.

    One instance must be shared by every request handler writing to the same
    store, since the locks live in-process.
    """

    def __init__(
        self,
        appointment_repo: AppointmentRepository,
        bus: EventBus,
        locks: KeyedLocks | None = None,
        lock_timeout: float = config.LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self.appointment_repo = appointment_repo
        self.bus = bus
        self.locks = locks or KeyedLocks()
        self.lock_timeout = lock_timeout
        self.checker = ConflictChecker(appointment_repo)

    # ------------------------------------------------------------------
    # Inbound interface
    # ------------------------------------------------------------------

    def propose_booking(self, request: BookingRequest) -> BookingOutcome:
        try:
            appointment = self._book(request)
        except errors.BookingError as exc:
            return _rejected(exc)
        return BookingOutcome(accepted=True, appointment_id=appointment.id)

    def propose_reschedule(
        self, appointment_id: str, request: BookingRequest
    ) -> BookingOutcome:
        try:
            appointment = self._reschedule(appointment_id, request)
        except errors.BookingError as exc:
            outcome = _rejected(exc)
            outcome.appointment_id = appointment_id
            return outcome
        return BookingOutcome(accepted=True, appointment_id=appointment.id)

    def change_status(self, appointment_id: str, new_status: str) -> StatusChangeOutcome:
        try:
            appointment = self._change_status(appointment_id, new_status)
        except errors.BookingError as exc:
            outcome = _rejected(exc)
            return StatusChangeOutcome(
                accepted=False,
                appointment_id=appointment_id,
                reason=outcome.reason,
                message=outcome.message,
            )
        return StatusChangeOutcome(
            accepted=True, appointment_id=appointment.id, status=appointment.status
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _book(self, request: BookingRequest) -> Appointment:
        candidate = build_candidate(request)
        with self.locks.hold(_lock_keys(candidate), self.lock_timeout):
            self._ensure_clear(candidate)
            stored = self._commit(candidate)

        logger.info(
            "Booked appointment %s for staff %s at %s, %s",
            stored.id,
            stored.staff_id,
            stored.location_id,
            stored.start_time.isoformat(),
        )
        self.bus.publish(
            AppointmentBooked(
                appointment_id=stored.id,
                client_name=stored.client_name,
                client_phone=stored.client_phone,
                client_email=stored.client_email,
            )
        )
        return stored

    def _reschedule(self, appointment_id: str, request: BookingRequest) -> Appointment:
        current = self._load(appointment_id)
        held = set(_lock_keys(current, build_candidate(request, base=current)))

        while True:
            with self.locks.hold(held, self.lock_timeout):
                # Re-read under the locks; the stored copy may have moved meanwhile
                current = self._load(appointment_id)
                candidate = build_candidate(request, base=current)
                needed = set(_lock_keys(current, candidate))
                if needed <= held:
                    if is_terminal(current.status):
                        raise errors.InvalidTransition(
                            current.status,
                            current.status,
                            message=f"A {current.status} appointment cannot be rescheduled.",
                        )
                    self._ensure_clear(candidate, exclude_id=appointment_id)
                    stored = self._commit(candidate)
                    break
            held |= needed

        logger.info("Rescheduled appointment %s to %s", stored.id, stored.start_time.isoformat())
        self.bus.publish(
            AppointmentRescheduled(
                appointment_id=stored.id,
                previous_start=current.start_time,
                previous_staff_id=current.staff_id,
                previous_location_id=current.location_id,
                previous_client_phone=current.client_phone,
                start_time=stored.start_time,
                staff_id=stored.staff_id,
                location_id=stored.location_id,
                client_name=stored.client_name,
                client_phone=stored.client_phone,
                client_email=stored.client_email,
            )
        )
        return stored

    def _change_status(self, appointment_id: str, new_status: str) -> Appointment:
        requested = parse_status(new_status)
        held = set(_lock_keys(self._load(appointment_id)))

        while True:
            with self.locks.hold(held, self.lock_timeout):
                current = self._load(appointment_id)
                needed = set(_lock_keys(current))
                if needed <= held:
                    validate_transition(current.status, requested)
                    if current.status == requested:
                        return current
                    stored = self._commit(current.model_copy(update={"status": requested}))
                    break
            held |= needed

        logger.info(
            "Appointment %s status changed from %s to %s",
            stored.id,
            current.status,
            stored.status,
        )
        self.bus.publish(
            AppointmentStatusChanged(
                appointment_id=stored.id,
                previous_status=current.status,
                status=stored.status,
            )
        )
        return stored

    def _ensure_clear(self, candidate: Appointment, exclude_id: str | None = None) -> None:
        conflict = self.checker.check_conflicts(candidate, exclude_id=exclude_id)
        if conflict is not None:
            raise errors.ConflictError(conflict)

    def _load(self, appointment_id: str) -> Appointment:
        try:
            appointment = self.appointment_repo.get(appointment_id)
        except errors.StorageError as exc:
            logger.exception("Could not read appointment %s", appointment_id)
            raise errors.StorageUnavailable(
                "Could not load the appointment. Please try again."
            ) from exc
        if appointment is None:
            raise errors.NotFound(appointment_id)
        return appointment

    def _commit(self, appointment: Appointment) -> Appointment:
        try:
            return self.appointment_repo.commit(appointment)
        except errors.StorageError as exc:
            logger.exception("Could not save appointment %s", appointment.id)
            raise errors.StorageUnavailable(
                "Could not save the appointment. Please try again."
            ) from exc
