"""Service for keeping the client registry in step with bookings."""

from __future__ import annotations

from datetime import datetime

from booking_engine.domain.models import ClientRecord
from booking_engine.repos.memory import ClientRepository


def record_booking(
    client_repo: ClientRepository,
    name: str,
    phone: str,
    email: str | None = None,
    now: datetime | None = None,
) -> ClientRecord:
    """Create or refresh the client identified by *phone* after a booking.

    An existing record gets its name, ``last_seen`` and booking count
    updated; its email only changes when a non-empty one is supplied.
    """
    now = now or datetime.now()
    existing = client_repo.get_by_phone(phone)
    if existing is None:
        client = ClientRecord(
            name=name,
            phone=phone,
            email=email or None,
            first_seen=now,
            last_seen=now,
            total_bookings=1,
            created_at=now,
            updated_at=now,
        )
    else:
        client = existing.model_copy(
            update={
                "name": name,
                "email": email or existing.email,
                "last_seen": now,
                "total_bookings": existing.total_bookings + 1,
                "updated_at": now,
            }
        )
    client_repo.add(client)
    return client
