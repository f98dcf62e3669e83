"""End-to-end tests for the booking HTTP API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from booking_engine.domain.errors import StorageError
from booking_engine.domain.models import DailyHours, DayOfWeek, ScheduleTemplate
from booking_engine.main import (
    app,
    appointment_repo,
    client_repo,
    schedule_repo,
    timeline_repo,
)


@pytest.fixture(autouse=True)
def _clear_repos():
    """Reset in-memory repos before each test."""
    appointment_repo._store.clear()
    client_repo._store.clear()
    schedule_repo._store.clear()
    timeline_repo._entries.clear()
    yield
    appointment_repo._store.clear()
    client_repo._store.clear()
    schedule_repo._store.clear()
    timeline_repo._entries.clear()


@pytest.fixture()
def client():
    return TestClient(app)


def _payload(**overrides) -> dict:
    payload = {
        "client_name": "Palesa Nkosi",
        "client_phone": "0821234567",
        "location_id": "rosebank",
        "staff_id": "hairdresser-1",
        "service_id": "cornrows",
        "start_time": "2024-05-01T09:00:00",
        "duration_minutes": 60,
    }
    payload.update(overrides)
    return payload


def test_book_and_read_back(client):
    resp = client.post("/appointments", json=_payload())
    assert resp.status_code == 201
    body = resp.json()
    assert body["accepted"] is True

    resp = client.get(f"/appointments/{body['appointment_id']}")
    assert resp.status_code == 200
    appointment = resp.json()
    assert appointment["status"] == "Confirmed"
    assert appointment["start_time"] == "2024-05-01T09:00:00"
    assert appointment["duration_minutes"] == 60


def test_conflict_maps_to_409(client):
    client.post("/appointments", json=_payload())

    resp = client.post(
        "/appointments",
        json=_payload(client_phone="0831111111", start_time="2024-05-01T09:30:00"),
    )

    assert resp.status_code == 409
    body = resp.json()
    assert body["conflict_kind"] == "staff_overlap"
    assert body["conflicting_start"] == "2024-05-01T09:00:00"
    assert body["conflicting_end"] == "2024-05-01T10:00:00"


def test_validation_maps_to_422(client):
    resp = client.post("/appointments", json=_payload(duration_minutes=0))
    assert resp.status_code == 422
    assert resp.json()["reason"] == "validation"
    assert resp.json()["field"] == "duration_minutes"


def test_reschedule_and_timeline(client):
    booked = client.post("/appointments", json=_payload()).json()

    resp = client.put(
        f"/appointments/{booked['appointment_id']}",
        json={"start_time": "2024-05-01T11:00:00"},
    )
    assert resp.status_code == 200

    resp = client.get(f"/appointments/{booked['appointment_id']}/timeline")
    assert [e["type"] for e in resp.json()] == ["created", "rescheduled"]


def test_status_change(client):
    booked = client.post("/appointments", json=_payload()).json()
    url = f"/appointments/{booked['appointment_id']}/status"

    resp = client.patch(url, json={"status": "No-Show"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "No-Show"

    resp = client.patch(url, json={"status": "Confirmed"})
    assert resp.status_code == 409
    assert resp.json()["reason"] == "invalid_transition"

    resp = client.patch(url, json={"status": "Lost"})
    assert resp.status_code == 422


def test_unknown_appointment_returns_404(client):
    assert client.get("/appointments/does-not-exist").status_code == 404
    resp = client.patch("/appointments/does-not-exist/status", json={"status": "Cancelled"})
    assert resp.status_code == 404


def test_working_hours_and_busy_view(client):
    schedule_repo.add(
        ScheduleTemplate(
            staff_id="hairdresser-1",
            days={DayOfWeek.WEDNESDAY: DailyHours(start="08:00", end="16:30")},
        )
    )
    client.post("/appointments", json=_payload(start_time="2024-05-01T13:00:00"))
    client.post(
        "/appointments",
        json=_payload(client_phone="0831111111", start_time="2024-05-01T09:00:00"),
    )

    resp = client.get("/staff/hairdresser-1/working-hours", params={"day": "2024-05-01"})
    assert resp.json() == {
        "day": "2024-05-01",
        "kind": "working",
        "start": "08:00:00",
        "end": "16:30:00",
    }

    resp = client.get("/staff/hairdresser-1/working-hours", params={"day": "2024-05-02"})
    assert resp.json()["kind"] == "unset"

    resp = client.get("/staff/hairdresser-1/busy", params={"day": "2024-05-01"})
    assert [b["start"] for b in resp.json()] == [
        "2024-05-01T09:00:00",
        "2024-05-01T13:00:00",
    ]


def test_client_record_lookup(client):
    client.post("/appointments", json=_payload())

    resp = client.get("/clients/0821234567")
    assert resp.status_code == 200
    assert resp.json()["total_bookings"] == 1
    assert client.get("/clients/0000000000").status_code == 404


def test_rejections_keep_the_outcome_body(client, monkeypatch):
    def _down(*args, **kwargs):
        raise StorageError("store offline")

    monkeypatch.setattr(appointment_repo, "query_by_staff_and_day", _down)

    resp = client.post("/appointments", json=_payload())

    assert resp.status_code == 503
    body = resp.json()
    assert body["accepted"] is False
    assert body["reason"] == "storage_unavailable"
    assert body["retryable"] is True
