"""Per-key locks that serialize check-and-commit for one staff member or client."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

from booking_engine.domain.errors import StorageUnavailable


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """Locks created on demand and dropped once no request holds or waits on them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _Entry] = {}

    def _checkout(self, key: str) -> _Entry:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: float) -> Iterator[None]:
        """Hold every lock in *keys* for the duration of the block.

        Keys are acquired in sorted order so two requests sharing keys cannot
        deadlock. Raises ``StorageUnavailable`` if a lock is not obtained
        within *timeout* seconds.
        """
        acquired: list[tuple[str, _Entry]] = []
        try:
            for key in sorted(set(keys)):
                entry = self._checkout(key)
                if not entry.lock.acquire(timeout=timeout):
                    self._checkin(key, entry)
                    raise StorageUnavailable(
                        "Another booking for this calendar is in progress. Please try again."
                    )
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(key, entry)
