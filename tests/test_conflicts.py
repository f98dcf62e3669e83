"""Tests for the conflict-detection service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from booking_engine.domain.errors import StorageError, StorageUnavailable
from booking_engine.domain.models import Appointment, AppointmentStatus, ConflictKind
from booking_engine.repos.memory import AppointmentRepository
from booking_engine.services.conflicts import (
    ConflictChecker,
    day_bounds,
    find_location_clashes,
    find_overlaps,
)

_DAY = datetime(2024, 5, 1)


def _at(hour: int, minute: int = 0, day: datetime = _DAY) -> datetime:
    return day.replace(hour=hour, minute=minute)


def _make_appointment(**overrides) -> Appointment:
    defaults = dict(
        client_name="Thandi Mokoena",
        client_phone="0821234567",
        location_id="L1",
        staff_id="S",
        service_id="braids",
        start_time=_at(9),
        duration_minutes=60,
        status=AppointmentStatus.CONFIRMED,
    )
    defaults.update(overrides)
    return Appointment(**defaults)


@pytest.fixture()
def repo():
    return AppointmentRepository()


@pytest.fixture()
def checker(repo):
    return ConflictChecker(repo)


# ---------------------------------------------------------------------------
# Overlap math
# ---------------------------------------------------------------------------


def test_no_overlap():
    """Appointments that don't overlap should not be returned as conflicts."""
    existing = [_make_appointment(start_time=_at(8))]
    assert find_overlaps(_at(10), _at(11), existing) == []


def test_partial_overlap():
    """An appointment that partially overlaps should be returned as a conflict."""
    existing = [_make_appointment(start_time=_at(9), duration_minutes=90)]
    conflicts = find_overlaps(_at(10), _at(11), existing)
    assert len(conflicts) == 1
    assert conflicts[0].start_time == _at(9)


def test_exact_boundary_no_conflict():
    """When existing.end_time == new_start, there is no conflict (boundary touch)."""
    existing = [_make_appointment(start_time=_at(9))]
    assert find_overlaps(_at(10), _at(11), existing) == []
    assert find_overlaps(_at(8), _at(9), existing) == []


def test_containing_interval_overlaps():
    existing = [_make_appointment(start_time=_at(10), duration_minutes=15)]
    assert len(find_overlaps(_at(9), _at(12), existing)) == 1


def test_location_clashes_ignore_time():
    existing = [
        _make_appointment(location_id="L1", start_time=_at(9)),
        _make_appointment(location_id="L2", start_time=_at(17)),
    ]
    clashes = find_location_clashes("L1", existing)
    assert [a.location_id for a in clashes] == ["L2"]


def test_day_bounds_cover_local_midnight_to_midnight():
    start, end = day_bounds(_at(23, 59))
    assert start == datetime(2024, 5, 1, 0, 0)
    assert end == datetime(2024, 5, 2, 0, 0)


def test_aware_start_times_are_compared_as_local_wall_clock():
    appointment = _make_appointment(
        start_time=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    )
    assert appointment.start_time == _at(9)
    assert appointment.end_time == _at(10)


# ---------------------------------------------------------------------------
# Staff rules
# ---------------------------------------------------------------------------


def test_staff_overlap_reports_colliding_interval(repo, checker):
    repo.commit(_make_appointment())

    conflict = checker.check_conflicts(
        _make_appointment(client_phone="0830000000", start_time=_at(9, 30))
    )

    assert conflict is not None
    assert conflict.kind == ConflictKind.STAFF_OVERLAP
    assert conflict.start == _at(9)
    assert conflict.end == _at(10)
    assert "09:00 to 10:00" in conflict.message


def test_other_location_same_day_is_rejected_without_overlap(repo, checker):
    repo.commit(_make_appointment())

    conflict = checker.check_conflicts(
        _make_appointment(client_phone="0830000000", location_id="L2", start_time=_at(14))
    )

    assert conflict is not None
    assert conflict.kind == ConflictKind.LOCATION
    assert conflict.location_id == "L1"


def test_back_to_back_same_location_is_accepted(repo, checker):
    repo.commit(_make_appointment())

    candidate = _make_appointment(client_phone="0830000000", start_time=_at(10))
    assert checker.check_conflicts(candidate) is None


def test_other_location_on_another_day_is_accepted(repo, checker):
    repo.commit(_make_appointment())

    candidate = _make_appointment(
        location_id="L2", start_time=_at(9, day=_DAY + timedelta(days=1))
    )
    assert checker.check_conflicts(candidate) is None


def test_location_conflict_takes_priority_over_overlap(repo, checker):
    repo.commit(_make_appointment(location_id="L2", start_time=_at(15)))
    repo.commit(_make_appointment(location_id="L1", start_time=_at(9)))

    conflict = checker.check_conflicts(
        _make_appointment(client_phone="0830000000", start_time=_at(9, 30))
    )
    assert conflict.kind == ConflictKind.LOCATION


def test_other_staff_same_time_is_accepted(repo, checker):
    repo.commit(_make_appointment())

    candidate = _make_appointment(staff_id="S2", client_phone="0830000000")
    assert checker.check_conflicts(candidate) is None


# ---------------------------------------------------------------------------
# Client rules
# ---------------------------------------------------------------------------


def test_client_overlap_across_staff_and_location(repo, checker):
    repo.commit(_make_appointment(staff_id="S1", location_id="L1"))

    conflict = checker.check_conflicts(
        _make_appointment(
            staff_id="S2", location_id="L2", start_time=_at(9, 45), duration_minutes=30
        )
    )

    assert conflict is not None
    assert conflict.kind == ConflictKind.CLIENT_OVERLAP
    assert conflict.start == _at(9)
    assert conflict.end == _at(10)


def test_client_back_to_back_with_other_staff_is_accepted(repo, checker):
    repo.commit(_make_appointment(staff_id="S1"))

    candidate = _make_appointment(staff_id="S2", location_id="L2", start_time=_at(10))
    assert checker.check_conflicts(candidate) is None


# ---------------------------------------------------------------------------
# Exclusions
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "status",
    [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW],
)
def test_closed_appointments_free_their_slot(repo, checker, status):
    repo.commit(_make_appointment(status=status))

    assert checker.check_conflicts(_make_appointment()) is None
    assert checker.check_conflicts(_make_appointment(location_id="L2")) is None


def test_pending_appointments_still_hold_their_slot(repo, checker):
    repo.commit(_make_appointment(status=AppointmentStatus.PENDING))

    conflict = checker.check_conflicts(_make_appointment(client_phone="0830000000"))
    assert conflict.kind == ConflictKind.STAFF_OVERLAP


def test_edited_appointment_is_not_compared_with_itself(repo, checker):
    stored = repo.commit(_make_appointment())

    moved = stored.model_copy(update={"start_time": _at(9, 30)})
    assert checker.check_conflicts(moved, exclude_id=stored.id) is None
    assert checker.check_conflicts(moved).kind == ConflictKind.STAFF_OVERLAP


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class _BrokenRepository(AppointmentRepository):
    def __init__(self, fail_on: str) -> None:
        super().__init__()
        self.fail_on = fail_on

    def query_by_staff_and_day(self, *args, **kwargs):
        if self.fail_on == "staff":
            raise StorageError("staff query timed out")
        return super().query_by_staff_and_day(*args, **kwargs)

    def query_by_client_phone_and_day(self, *args, **kwargs):
        if self.fail_on == "client":
            raise StorageError("client query timed out")
        return super().query_by_client_phone_and_day(*args, **kwargs)


@pytest.mark.parametrize("fail_on", ["staff", "client"])
def test_failed_read_fails_closed(fail_on):
    checker = ConflictChecker(_BrokenRepository(fail_on))

    with pytest.raises(StorageUnavailable):
        checker.check_conflicts(_make_appointment())
