"""Read-only calendar queries: working hours and busy intervals per staff day.

Nothing here gates a booking; ``ConflictChecker`` is authoritative on the
write path. ``is_free`` applies the same rules so the two agree.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from booking_engine.domain.errors import StorageError, StorageUnavailable
from booking_engine.domain.lifecycle import INACTIVE_STATUSES
from booking_engine.domain.models import BusyInterval, WorkingDay, WorkingDayKind, to_local
from booking_engine.repos.memory import AppointmentRepository, ScheduleTemplateRepository
from booking_engine.services.conflicts import day_bounds, find_location_clashes, find_overlaps

logger = logging.getLogger(__name__)


class AvailabilityResolver:
    def __init__(
        self,
        appointment_repo: AppointmentRepository,
        template_repo: ScheduleTemplateRepository,
    ) -> None:
        self.appointment_repo = appointment_repo
        self.template_repo = template_repo

    def working_interval(self, staff_id: str, day: date) -> WorkingDay:
        """Working hours for *staff_id* on *day*.

        The template is fetched on every call so profile edits show up
        immediately. No template, or no entry for the weekday, is ``unset``.
        """
        template = self.template_repo.get_schedule_template(staff_id)
        if template is None:
            return WorkingDay(day=day, kind=WorkingDayKind.UNSET)
        return template.working_day(day)

    def free_busy_for_day(self, staff_id: str, day: date) -> list[BusyInterval]:
        """Non-cancelled appointment intervals for the day, sorted by start."""
        return [
            BusyInterval(
                appointment_id=a.id,
                start=a.start_time,
                end=a.end_time,
                location_id=a.location_id,
                status=a.status,
            )
            for a in self._staff_day(staff_id, day)
        ]

    def is_free(
        self,
        staff_id: str,
        start: datetime,
        end: datetime,
        location_id: str | None = None,
    ) -> bool:
        """Whether *staff_id* could take [start, end).

        With *location_id*, a booking elsewhere on the same day also makes
        the staff member unavailable, as it does for a real booking.
        """
        start, end = to_local(start), to_local(end)
        booked = self._staff_day(staff_id, start.date())
        if location_id is not None and find_location_clashes(location_id, booked):
            return False
        return not find_overlaps(start, end, booked)

    def _staff_day(self, staff_id: str, day: date):
        day_start, day_end = day_bounds(day)
        try:
            booked = self.appointment_repo.query_by_staff_and_day(
                staff_id, day_start, day_end, INACTIVE_STATUSES
            )
        except StorageError as exc:
            logger.exception("Could not load busy intervals for staff %s on %s", staff_id, day)
            raise StorageUnavailable("Could not load the calendar. Please try again.") from exc
        booked = [a for a in booked if a.status not in INACTIVE_STATUSES]
        return sorted(booked, key=lambda a: a.start_time)
