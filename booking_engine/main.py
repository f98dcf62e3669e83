"""FastAPI application — entry point for the appointment booking engine."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from booking_engine import config
from booking_engine.domain.bus import EventBus
from booking_engine.domain.errors import StorageUnavailable
from booking_engine.domain.handlers import HandlerRegistry
from booking_engine.domain.models import (
    Appointment,
    BookingOutcome,
    BookingRequest,
    BusyInterval,
    ClientRecord,
    RejectionReason,
    StatusChangeOutcome,
    StatusChangeRequest,
    TimelineEntry,
    WorkingDay,
)
from booking_engine.repos.memory import (
    AppointmentRepository,
    ClientRepository,
    ScheduleTemplateRepository,
    TimelineRepository,
)
from booking_engine.services.availability import AvailabilityResolver
from booking_engine.services.booking import BookingService

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Appointment Booking Engine")

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
appointment_repo = AppointmentRepository()
schedule_repo = ScheduleTemplateRepository()
client_repo = ClientRepository()
timeline_repo = TimelineRepository()

handler_registry = HandlerRegistry(
    bus=event_bus,
    appointment_repo=appointment_repo,
    client_repo=client_repo,
    timeline_repo=timeline_repo,
)
booking_service = BookingService(appointment_repo=appointment_repo, bus=event_bus)
availability = AvailabilityResolver(
    appointment_repo=appointment_repo, template_repo=schedule_repo
)

_STATUS_CODES = {
    RejectionReason.CONFLICT: 409,
    RejectionReason.VALIDATION: 422,
    RejectionReason.INVALID_TRANSITION: 409,
    RejectionReason.NOT_FOUND: 404,
    RejectionReason.STORAGE_UNAVAILABLE: 503,
}


def _respond(outcome: BookingOutcome | StatusChangeOutcome, ok_status: int) -> JSONResponse:
    status_code = ok_status if outcome.accepted else _STATUS_CODES[outcome.reason]
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode="json"))


# ── Routes ────────────────────────────────────────────────────────────


@app.post("/appointments", response_model=BookingOutcome, status_code=201)
def propose_booking(payload: BookingRequest) -> JSONResponse:
    """Place a new appointment, or explain which booking rule it breaks."""
    return _respond(booking_service.propose_booking(payload), 201)


@app.put("/appointments/{appointment_id}", response_model=BookingOutcome)
def propose_reschedule(appointment_id: str, payload: BookingRequest) -> JSONResponse:
    """Move or edit an existing appointment; omitted fields are kept."""
    return _respond(booking_service.propose_reschedule(appointment_id, payload), 200)


@app.patch("/appointments/{appointment_id}/status", response_model=StatusChangeOutcome)
def change_status(appointment_id: str, payload: StatusChangeRequest) -> JSONResponse:
    return _respond(booking_service.change_status(appointment_id, payload.status), 200)


@app.get("/appointments/{appointment_id}", response_model=Appointment)
def get_appointment(appointment_id: str) -> Appointment:
    appointment = appointment_repo.get(appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


@app.get("/appointments/{appointment_id}/timeline", response_model=list[TimelineEntry])
def get_timeline(appointment_id: str) -> list[TimelineEntry]:
    if appointment_repo.get(appointment_id) is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return timeline_repo.list_for_appointment(appointment_id)


@app.get("/staff/{staff_id}/working-hours", response_model=WorkingDay)
def get_working_hours(staff_id: str, day: date) -> WorkingDay:
    """Working hours from the staff member's weekly template for *day*."""
    return availability.working_interval(staff_id, day)


@app.get("/staff/{staff_id}/busy", response_model=list[BusyInterval])
def get_busy_intervals(staff_id: str, day: date) -> list[BusyInterval]:
    """Booked intervals for display only; bookings are checked on write."""
    try:
        return availability.free_busy_for_day(staff_id, day)
    except StorageUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/clients/{phone}", response_model=ClientRecord)
def get_client(phone: str) -> ClientRecord:
    client = client_repo.get_by_phone(phone)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client
