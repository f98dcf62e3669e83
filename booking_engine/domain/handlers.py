"""Domain event handlers — wired up at application startup."""

from __future__ import annotations

import logging

from booking_engine.domain.bus import EventBus
from booking_engine.domain.errors import StorageError
from booking_engine.domain.events import (
    AppointmentBooked,
    AppointmentRescheduled,
    AppointmentStatusChanged,
)
from booking_engine.domain.models import TimelineEntry, TimelineEntryType
from booking_engine.repos.memory import (
    AppointmentRepository,
    ClientRepository,
    TimelineRepository,
)
from booking_engine.services.clients import record_booking

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to the repositories."""

    def __init__(
        self,
        bus: EventBus,
        appointment_repo: AppointmentRepository,
        client_repo: ClientRepository,
        timeline_repo: TimelineRepository,
    ) -> None:
        self.bus = bus
        self.appointment_repo = appointment_repo
        self.client_repo = client_repo
        self.timeline_repo = timeline_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(AppointmentBooked, self.on_appointment_booked)
        self.bus.subscribe(AppointmentRescheduled, self.on_appointment_rescheduled)
        self.bus.subscribe(AppointmentStatusChanged, self.on_status_changed)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_appointment_booked(self, event: AppointmentBooked) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                appointment_id=event.appointment_id, type=TimelineEntryType.CREATED
            )
        )

        self._link_client(
            event.appointment_id, event.client_name, event.client_phone, event.client_email
        )

    def on_appointment_rescheduled(self, event: AppointmentRescheduled) -> None:
        if event.client_phone != event.previous_client_phone:
            # A new phone means a different registry record now owns the booking
            self._link_client(
                event.appointment_id, event.client_name, event.client_phone, event.client_email
            )

        self.timeline_repo.add(
            TimelineEntry(
                appointment_id=event.appointment_id,
                type=TimelineEntryType.RESCHEDULED,
                payload={
                    "from": event.previous_start.isoformat(),
                    "to": event.start_time.isoformat(),
                    "previous_staff_id": event.previous_staff_id,
                    "staff_id": event.staff_id,
                    "previous_location_id": event.previous_location_id,
                    "location_id": event.location_id,
                },
            )
        )

    def on_status_changed(self, event: AppointmentStatusChanged) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                appointment_id=event.appointment_id,
                type=TimelineEntryType.STATUS_CHANGED,
                payload={"from": event.previous_status, "to": event.status},
            )
        )

    def _link_client(
        self, appointment_id: str, name: str, phone: str, email: str | None
    ) -> None:
        # The appointment is already committed; a registry failure must not undo it
        try:
            client = record_booking(self.client_repo, name=name, phone=phone, email=email)
            self.appointment_repo.set_client_id(appointment_id, client.id)
        except StorageError:
            logger.exception("Could not update client record for appointment %s", appointment_id)
