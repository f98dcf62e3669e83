"""Domain events emitted after an appointment write is committed."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from booking_engine.domain.models import AppointmentStatus


class AppointmentBooked(BaseModel):
    """Fired when a new appointment has been accepted and stored."""

    appointment_id: str
    client_name: str
    client_phone: str
    client_email: str | None = None


class AppointmentRescheduled(BaseModel):
    """Fired when an existing appointment is moved or edited."""

    appointment_id: str
    previous_start: datetime
    previous_staff_id: str
    previous_location_id: str
    previous_client_phone: str
    start_time: datetime
    staff_id: str
    location_id: str
    client_name: str
    client_phone: str
    client_email: str | None = None


class AppointmentStatusChanged(BaseModel):
    appointment_id: str
    previous_status: AppointmentStatus
    status: AppointmentStatus
