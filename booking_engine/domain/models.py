"""Domain models for the appointment scheduling engine."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator


class AppointmentStatus(StrEnum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-Show"


class DayOfWeek(StrEnum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, day: date) -> DayOfWeek:
        return list(cls)[day.weekday()]


class WorkingDayKind(StrEnum):
    WORKING = "working"
    OFF = "off"
    UNSET = "unset"


class ConflictKind(StrEnum):
    LOCATION = "location"
    STAFF_OVERLAP = "staff_overlap"
    CLIENT_OVERLAP = "client_overlap"


class RejectionReason(StrEnum):
    CONFLICT = "conflict"
    VALIDATION = "validation"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class TimelineEntryType(StrEnum):
    CREATED = "created"
    RESCHEDULED = "rescheduled"
    STATUS_CHANGED = "status_changed"


def _now() -> datetime:
    return datetime.now()


def _new_id() -> str:
    return str(uuid.uuid4())


def to_local(value: datetime) -> datetime:
    """Drop tzinfo so every instant is compared as local wall-clock time."""
    if value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Appointment(BaseModel):
    id: str = Field(default_factory=_new_id)
    client_name: str
    client_phone: str
    client_email: str | None = None
    client_id: str | None = None
    location_id: str
    staff_id: str
    service_id: str
    start_time: datetime
    duration_minutes: int = Field(gt=0)
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    notes: str | None = None
    wash_service_added: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("start_time")
    @classmethod
    def _local_start(cls, value: datetime) -> datetime:
        return to_local(value)

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open test: touching intervals do not overlap."""
        return start < self.end_time and end > self.start_time


class DailyHours(BaseModel):
    is_off: bool = False
    start: time | None = None
    end: time | None = None

    @model_validator(mode="after")
    def _start_before_end(self) -> DailyHours:
        if self.is_off:
            return self
        if self.start is None or self.end is None:
            raise ValueError("start and end are required on a working day")
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self


class WorkingDay(BaseModel):
    """Working hours for one calendar date: an interval, a day off, or unset."""

    day: date
    kind: WorkingDayKind
    start: time | None = None
    end: time | None = None

    @property
    def is_working(self) -> bool:
        return self.kind == WorkingDayKind.WORKING


class ScheduleTemplate(BaseModel):
    """A staff member's recurring weekly availability."""

    staff_id: str
    days: dict[DayOfWeek, DailyHours] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def working_day(self, day: date) -> WorkingDay:
        hours = self.days.get(DayOfWeek.of(day))
        if hours is None:
            return WorkingDay(day=day, kind=WorkingDayKind.UNSET)
        if hours.is_off:
            return WorkingDay(day=day, kind=WorkingDayKind.OFF)
        return WorkingDay(
            day=day, kind=WorkingDayKind.WORKING, start=hours.start, end=hours.end
        )


class BusyInterval(BaseModel):
    appointment_id: str
    start: datetime
    end: datetime
    location_id: str
    status: AppointmentStatus


class Conflict(BaseModel):
    """The first violated booking invariant for a candidate appointment."""

    kind: ConflictKind
    appointment_id: str
    start: datetime
    end: datetime
    location_id: str
    message: str


class ClientRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    phone: str
    email: str | None = None
    notes: str | None = None
    first_seen: datetime = Field(default_factory=_now)
    last_seen: datetime = Field(default_factory=_now)
    total_bookings: int = 1
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    appointment_id: str
    timestamp: datetime = Field(default_factory=_now)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class BookingRequest(BaseModel):
    """A proposed appointment, as submitted by the booking form.

    Fields are deliberately loose so that malformed candidates reach the
    engine and come back as a typed ``validation`` rejection.
    """

    client_name: str | None = None
    client_phone: str | None = None
    client_email: str | None = None
    location_id: str | None = None
    staff_id: str | None = None
    service_id: str | None = None
    start_time: datetime | None = None
    duration_minutes: int | None = None
    notes: str | None = None
    wash_service_added: bool | None = None


class StatusChangeRequest(BaseModel):
    status: str


class BookingOutcome(BaseModel):
    accepted: bool
    appointment_id: str | None = None
    reason: RejectionReason | None = None
    conflict_kind: ConflictKind | None = None
    conflicting_start: datetime | None = None
    conflicting_end: datetime | None = None
    conflicting_appointment_id: str | None = None
    field: str | None = None
    message: str | None = None
    retryable: bool = False


class StatusChangeOutcome(BaseModel):
    accepted: bool
    appointment_id: str
    status: AppointmentStatus | None = None
    reason: RejectionReason | None = None
    message: str | None = None
