"""
Administrative verification of completed overtime sessions.

``Pending`` is the initial state; an admin moves a checked-out record to
``Accepted`` or ``Rejected`` and may flip between the two later. Each
transition overwrites ``verification_notes``; a missing note clears it.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lembur.core.errors import ConflictError, InputValidationError, PermissionDeniedError
from lembur.core.middleware import SessionContext
from lembur.db.models import (
    STATUS_CHECKED_IN,
    VERIFICATION_ACCEPTED,
    VERIFICATION_REJECTED,
    OvertimeRecord,
)
from lembur.db.session import get_db
from lembur.services.feed import EVENT_DELETED, EVENT_UPDATED, RecordEvent, RecordFeed, get_feed
from lembur.services.overlay import PendingPhotoOverlay, get_overlay
from lembur.services.records import get_record, record_event

logger = logging.getLogger(__name__)

VERDICTS = frozenset({VERIFICATION_ACCEPTED, VERIFICATION_REJECTED})

MSG_ADMIN_ONLY = "Hanya admin yang dapat memverifikasi lembur."
MSG_BAD_VERDICT = "Status verifikasi harus Accepted atau Rejected."
MSG_STILL_CHECKED_IN = "Lembur belum selesai (belum check-out)."


class VerificationWorkflow:
    def __init__(
        self, db: AsyncSession, overlay: PendingPhotoOverlay, feed: RecordFeed
    ) -> None:
        self._db = db
        self._overlay = overlay
        self._feed = feed

    async def verify(
        self,
        ctx: SessionContext,
        record_id: uuid.UUID,
        verdict: str,
        notes: str | None = None,
    ) -> OvertimeRecord:
        if not ctx.is_admin:
            raise PermissionDeniedError(MSG_ADMIN_ONLY)
        if verdict not in VERDICTS:
            raise InputValidationError(MSG_BAD_VERDICT)

        record = await get_record(self._db, record_id)
        if record.status == STATUS_CHECKED_IN:
            raise ConflictError(MSG_STILL_CHECKED_IN)

        previous = record.verification_status
        record.verification_status = verdict
        record.verification_notes = notes or ""
        await self._db.commit()

        self._feed.publish(record_event(EVENT_UPDATED, record, self._overlay))
        logger.info(
            "Verifikasi %s: %s -> %s oleh %s", record.id, previous, verdict, ctx.user_id
        )
        return record

    async def accept(
        self, ctx: SessionContext, record_id: uuid.UUID, notes: str | None = None
    ) -> OvertimeRecord:
        return await self.verify(ctx, record_id, VERIFICATION_ACCEPTED, notes)

    async def reject(
        self, ctx: SessionContext, record_id: uuid.UUID, notes: str | None = None
    ) -> OvertimeRecord:
        return await self.verify(ctx, record_id, VERIFICATION_REJECTED, notes)

    async def delete(self, ctx: SessionContext, record_id: uuid.UUID) -> None:
        """Permanently remove a record. There is no undo."""
        if not ctx.is_admin:
            raise PermissionDeniedError(MSG_ADMIN_ONLY)

        record = await get_record(self._db, record_id)
        employee_id = record.employee_id
        await self._db.delete(record)
        await self._db.commit()

        self._overlay.forget_record(record_id)
        self._feed.publish(
            RecordEvent(
                kind=EVENT_DELETED,
                record_id=record_id,
                employee_id=employee_id,
                payload={"id": str(record_id)},
            )
        )
        logger.info("Data lembur %s dihapus oleh %s", record_id, ctx.user_id)


def get_verification(
    db: AsyncSession = Depends(get_db),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
    feed: RecordFeed = Depends(get_feed),
) -> VerificationWorkflow:
    return VerificationWorkflow(db, overlay, feed)
