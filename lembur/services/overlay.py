"""
Short-lived local layer on top of the record store.

Holds the raw photo data URI of a just-submitted check-in/check-out so reads
can show it before the background upload has written the photo URL, and a
per-employee pointer to the record created by the latest check-in. Entries
expire after ``OPTIMISTIC_OVERLAY_TTL_SEC``.
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

from lembur.core.config import settings


class PendingPhotoOverlay:
    def __init__(self, ttl_sec: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._photos: dict[tuple[uuid.UUID, str], tuple[str, float]] = {}
        self._active: dict[uuid.UUID, tuple[uuid.UUID, float]] = {}

    def _expiry(self) -> float:
        return self._clock() + self.ttl_sec

    def _purge(self) -> None:
        now = self._clock()
        for key in [k for k, (_, exp) in self._photos.items() if exp <= now]:
            del self._photos[key]
        for key in [k for k, (_, exp) in self._active.items() if exp <= now]:
            del self._active[key]

    def hold_photo(self, record_id: uuid.UUID, slot: str, data_uri: str) -> None:
        self._purge()
        self._photos[(record_id, slot)] = (data_uri, self._expiry())

    def pending_photo(self, record_id: uuid.UUID, slot: str) -> str | None:
        entry = self._photos.get((record_id, slot))
        if entry is None:
            return None
        data_uri, expires_at = entry
        if expires_at <= self._clock():
            del self._photos[(record_id, slot)]
            return None
        return data_uri

    def release_photo(self, record_id: uuid.UUID, slot: str) -> None:
        self._photos.pop((record_id, slot), None)

    def set_active(self, employee_id: uuid.UUID, record_id: uuid.UUID) -> None:
        self._active[employee_id] = (record_id, self._expiry())

    def active_for(self, employee_id: uuid.UUID) -> uuid.UUID | None:
        entry = self._active.get(employee_id)
        if entry is None:
            return None
        record_id, expires_at = entry
        if expires_at <= self._clock():
            del self._active[employee_id]
            return None
        return record_id

    def clear_active(self, employee_id: uuid.UUID) -> None:
        self._active.pop(employee_id, None)

    def forget_record(self, record_id: uuid.UUID) -> None:
        for slot in ("checkIn", "checkOut"):
            self._photos.pop((record_id, slot), None)
        for employee_id in [e for e, (rid, _) in self._active.items() if rid == record_id]:
            del self._active[employee_id]


_overlay = PendingPhotoOverlay(settings.OPTIMISTIC_OVERLAY_TTL_SEC)


def get_overlay() -> PendingPhotoOverlay:
    return _overlay
