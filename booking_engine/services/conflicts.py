"""Conflict detection for proposed appointments."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from booking_engine.domain.errors import StorageError, StorageUnavailable
from booking_engine.domain.lifecycle import INACTIVE_STATUSES
from booking_engine.domain.models import Appointment, Conflict, ConflictKind
from booking_engine.repos.memory import AppointmentRepository

logger = logging.getLogger(__name__)


def day_bounds(day: date | datetime) -> tuple[datetime, datetime]:
    """Return the [local midnight, next local midnight) window for *day*."""
    if isinstance(day, datetime):
        day = day.date()
    day_start = datetime.combine(day, time.min)
    return day_start, day_start + timedelta(days=1)


def find_overlaps(
    new_start: datetime,
    new_end: datetime,
    existing: list[Appointment],
) -> list[Appointment]:
    """Return existing appointments that overlap with the given time range.

    Overlap rule: conflict if new_start < existing.end_time AND new_end > existing.start_time.
    Exact boundary touches (end == start) are NOT considered conflicts.
    """
    return [a for a in existing if a.overlaps(new_start, new_end)]


def find_location_clashes(location_id: str, existing: list[Appointment]) -> list[Appointment]:
    """Return same-day appointments held at a location other than *location_id*.

    A staff member works at one location per day, so any of these blocks the
    booking whatever its time.
    """
    return [a for a in existing if a.location_id != location_id]


def _fmt(moment: datetime) -> str:
    return moment.strftime("%H:%M")


class ConflictChecker:
    """Decides whether a candidate appointment can be placed.

    The checker is stateless: every call re-reads the staff member's and the
    client's appointments for the candidate's calendar day.
    """

    def __init__(self, appointment_repo: AppointmentRepository) -> None:
        self.appointment_repo = appointment_repo

    def check_conflicts(
        self, candidate: Appointment, exclude_id: str | None = None
    ) -> Conflict | None:
        """Return the first violated invariant for *candidate*, or ``None``.

        Priority: location clash, then staff double-booking, then client
        double-booking. Raises ``StorageUnavailable`` if either read fails.
        """
        start, end = candidate.start_time, candidate.end_time
        day_start, day_end = day_bounds(start)

        staff_day = self._read(
            self.appointment_repo.query_by_staff_and_day,
            candidate.staff_id,
            day_start,
            day_end,
            exclude_id,
        )

        clashes = find_location_clashes(candidate.location_id, staff_day)
        if clashes:
            other = clashes[0]
            return self._conflict(
                ConflictKind.LOCATION,
                other,
                "This staff member is already booked at a different location on this day.",
            )

        overlaps = find_overlaps(start, end, staff_day)
        if overlaps:
            other = overlaps[0]
            return self._conflict(
                ConflictKind.STAFF_OVERLAP,
                other,
                f"This staff member is already booked from {_fmt(other.start_time)} "
                f"to {_fmt(other.end_time)} on this day.",
            )

        client_day = self._read(
            self.appointment_repo.query_by_client_phone_and_day,
            candidate.client_phone,
            day_start,
            day_end,
            exclude_id,
        )
        overlaps = find_overlaps(start, end, client_day)
        if overlaps:
            other = overlaps[0]
            return self._conflict(
                ConflictKind.CLIENT_OVERLAP,
                other,
                f"This client is already booked from {_fmt(other.start_time)} "
                f"to {_fmt(other.end_time)} on this day.",
            )

        return None

    def _read(self, query, key, day_start, day_end, exclude_id) -> list[Appointment]:
        try:
            found = query(key, day_start, day_end, INACTIVE_STATUSES)
        except (StorageError, TimeoutError) as exc:
            logger.exception("Could not read appointments for %s on %s", key, day_start.date())
            raise StorageUnavailable(
                "Could not verify availability. Please try again."
            ) from exc
        active = [
            a for a in found if a.id != exclude_id and a.status not in INACTIVE_STATUSES
        ]
        return sorted(active, key=lambda a: a.start_time)

    @staticmethod
    def _conflict(kind: ConflictKind, other: Appointment, message: str) -> Conflict:
        logger.info("Booking conflict (%s) with appointment %s", kind, other.id)
        return Conflict(
            kind=kind,
            appointment_id=other.id,
            start=other.start_time,
            end=other.end_time,
            location_id=other.location_id,
            message=message,
        )
