"""In-memory document-store adapters for appointments, schedules and clients.

Every read hands back a copy, so callers never hold a reference into the
store and stored state only changes through the write methods.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime

from booking_engine.domain.models import (
    Appointment,
    AppointmentStatus,
    ClientRecord,
    ScheduleTemplate,
    TimelineEntry,
)


class AppointmentRepository:
    """Dict-backed store for Appointment documents, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Appointment] = {}
        self._lock = threading.Lock()

    def commit(self, appointment: Appointment) -> Appointment:
        """Atomically insert or replace one appointment document.

        ``created_at`` is kept from the stored version on replace and
        ``updated_at`` is stamped here.
        """
        now = datetime.now()
        with self._lock:
            existing = self._store.get(appointment.id)
            created_at = existing.created_at if existing else appointment.created_at
            stored = appointment.model_copy(
                update={"created_at": created_at, "updated_at": now}, deep=True
            )
            self._store[stored.id] = stored
        return stored.model_copy(deep=True)

    def set_client_id(self, appointment_id: str, client_id: str) -> None:
        """Link a stored appointment to its client registry record."""
        with self._lock:
            stored = self._store.get(appointment_id)
            if stored is not None:
                self._store[appointment_id] = stored.model_copy(
                    update={"client_id": client_id, "updated_at": datetime.now()}
                )

    def get(self, appointment_id: str) -> Appointment | None:
        with self._lock:
            stored = self._store.get(appointment_id)
        return stored.model_copy(deep=True) if stored else None

    def list_all(self) -> list[Appointment]:
        with self._lock:
            return [a.model_copy(deep=True) for a in self._store.values()]

    def query_by_staff_and_day(
        self,
        staff_id: str,
        day_start: datetime,
        day_end: datetime,
        exclude_statuses: Iterable[AppointmentStatus] = (),
    ) -> list[Appointment]:
        return self._query(
            lambda a: a.staff_id == staff_id, day_start, day_end, exclude_statuses
        )

    def query_by_client_phone_and_day(
        self,
        phone: str,
        day_start: datetime,
        day_end: datetime,
        exclude_statuses: Iterable[AppointmentStatus] = (),
    ) -> list[Appointment]:
        return self._query(
            lambda a: a.client_phone == phone, day_start, day_end, exclude_statuses
        )

    def _query(self, match, day_start, day_end, exclude_statuses) -> list[Appointment]:
        excluded = set(exclude_statuses)
        with self._lock:
            return [
                a.model_copy(deep=True)
                for a in self._store.values()
                if match(a)
                and a.status not in excluded
                and day_start <= a.start_time < day_end
            ]


class ScheduleTemplateRepository:
    """Profile catalog view: one weekly ScheduleTemplate per staff member."""

    def __init__(self) -> None:
        self._store: dict[str, ScheduleTemplate] = {}

    def add(self, template: ScheduleTemplate) -> None:
        self._store[template.staff_id] = template

    def get_schedule_template(self, staff_id: str) -> ScheduleTemplate | None:
        return self._store.get(staff_id)


class ClientRepository:
    """Dict-backed client registry, keyed by id and looked up by phone."""

    def __init__(self) -> None:
        self._store: dict[str, ClientRecord] = {}
        self._lock = threading.Lock()

    def add(self, client: ClientRecord) -> None:
        with self._lock:
            self._store[client.id] = client.model_copy(deep=True)

    def get(self, client_id: str) -> ClientRecord | None:
        with self._lock:
            stored = self._store.get(client_id)
        return stored.model_copy(deep=True) if stored else None

    def get_by_phone(self, phone: str) -> ClientRecord | None:
        with self._lock:
            for client in self._store.values():
                if client.phone == phone:
                    return client.model_copy(deep=True)
        return None


class TimelineRepository:
    """List-backed store for per-appointment TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_appointment(self, appointment_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.appointment_id == appointment_id],
            key=lambda e: e.timestamp,
        )
