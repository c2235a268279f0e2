"""
In-process change feed for overtime records.

Admins subscribe to everything, employees to their own records. Each
subscriber gets a bounded queue; when it is full the event is dropped for
that subscriber only.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from lembur.core.config import settings

logger = logging.getLogger(__name__)

EVENT_CREATED = "created"
EVENT_UPDATED = "updated"
EVENT_DELETED = "deleted"


@dataclass(frozen=True)
class RecordEvent:
    kind: str
    record_id: uuid.UUID
    employee_id: uuid.UUID
    payload: dict = field(default_factory=dict)


@dataclass(eq=False)
class _Subscription:
    employee_id: uuid.UUID | None
    queue: asyncio.Queue

    def wants(self, event: RecordEvent) -> bool:
        return self.employee_id is None or self.employee_id == event.employee_id


class RecordFeed:
    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscriptions: set[_Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: RecordEvent) -> None:
        for sub in list(self._subscriptions):
            if not sub.wants(event):
                continue
            try:
                sub.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Feed subscriber lambat, event %s untuk %s dibuang",
                    event.kind, event.record_id,
                )

    @asynccontextmanager
    async def subscribe(
        self, employee_id: uuid.UUID | None = None
    ) -> AsyncIterator[asyncio.Queue]:
        """Yield a queue of RecordEvents; ``employee_id=None`` receives all events."""
        sub = _Subscription(employee_id=employee_id, queue=asyncio.Queue(self.queue_size))
        self._subscriptions.add(sub)
        try:
            yield sub.queue
        finally:
            self._subscriptions.discard(sub)


_feed = RecordFeed(settings.FEED_QUEUE_SIZE)


def get_feed() -> RecordFeed:
    return _feed
