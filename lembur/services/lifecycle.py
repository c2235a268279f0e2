"""
Overtime check-in / check-out lifecycle.

A check-in writes the record straight away with a null photo URL; the raw
photo is uploaded in the background and the URL filled in afterwards. Until
then reads fall back to the data URI held in the overlay. At most one
``Checked In`` record exists per employee: the controller checks first and
the partial unique index ``uq_overtime_one_active`` catches the race between
devices.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from fastapi import BackgroundTasks, Depends
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lembur.core.config import settings
from lembur.core.errors import (
    ConflictError,
    InputValidationError,
    PermissionDeniedError,
    PhotoRejectedError,
)
from lembur.core.middleware import SessionContext
from lembur.db.models import (
    STATUS_CHECKED_IN,
    STATUS_CHECKED_OUT,
    VERIFICATION_PENDING,
    OvertimeRecord,
)
from lembur.db.session import get_db
from lembur.schemas.overtime import GeoLocation, PhotoValidationFailure
from lembur.services.blob_store import (
    BlobStore,
    parse_data_uri,
    photo_key,
    to_data_uri,
)
from lembur.services.feed import EVENT_CREATED, EVENT_UPDATED, RecordFeed, get_feed
from lembur.services.overlay import PendingPhotoOverlay, get_overlay
from lembur.services.photo_classifier import (
    FAILURE_MESSAGE,
    PhotoClassifier,
    get_photo_classifier,
)
from lembur.services.photo_uploads import PHOTO_FIELDS, PhotoUploader, get_photo_uploader
from lembur.services.records import get_record, newest_active, record_event

logger = logging.getLogger(__name__)

MSG_INCOMPLETE = "Foto dan lokasi dibutuhkan untuk melanjutkan."
MSG_PURPOSE_REQUIRED = "Mohon isi keterangan lembur Anda."
MSG_BAD_PHOTO = "Format foto tidak valid."
MSG_ALREADY_ACTIVE = "Anda masih memiliki sesi lembur yang aktif."
MSG_ALREADY_CHECKED_OUT = "Sesi lembur ini sudah selesai."
MSG_NOT_OWNER = "Anda tidak berhak mengubah data lembur ini."
MSG_VALIDATION_FAILED = "Validasi foto gagal. Silakan ambil ulang foto."
MSG_NOT_A_PERSON = "Foto tidak terdeteksi sebagai orang. Silakan ambil ulang foto."
MSG_NO_PHOTO_YET = "Foto belum tersedia untuk divalidasi."

VALIDATION_FIELDS = {"checkIn": "check_in_validation", "checkOut": "check_out_validation"}


def _require_photo_and_location(photo_data_uri: str | None, location: GeoLocation | None) -> str:
    if not photo_data_uri or location is None:
        raise InputValidationError(MSG_INCOMPLETE)
    try:
        parse_data_uri(photo_data_uri)
    except ValueError:
        raise InputValidationError(MSG_BAD_PHOTO)
    return photo_data_uri


class AttendanceLifecycle:
    def __init__(
        self,
        db: AsyncSession,
        classifier: PhotoClassifier,
        uploader: PhotoUploader,
        overlay: PendingPhotoOverlay,
        feed: RecordFeed,
    ) -> None:
        self._db = db
        self._classifier = classifier
        self._uploader = uploader
        self._overlay = overlay
        self._feed = feed

    async def _gate(self, photo_data_uri: str) -> dict | None:
        """Hard gate on the classifier result; returns the result to store on the record."""
        if not settings.PHOTO_GATE_ENABLED:
            return None

        result = await self._classifier.classify(photo_data_uri)
        if isinstance(result, PhotoValidationFailure):
            raise PhotoRejectedError(MSG_VALIDATION_FAILED)
        if not result.is_person or result.confidence < settings.PHOTO_MIN_CONFIDENCE:
            logger.info(
                "Foto ditolak: isPerson=%s confidence=%.2f", result.is_person, result.confidence
            )
            raise PhotoRejectedError(MSG_NOT_A_PERSON)
        return result.model_dump(by_alias=True)

    async def active_record(self, ctx: SessionContext) -> OvertimeRecord | None:
        record_id = self._overlay.active_for(ctx.user_id)
        if record_id is not None:
            record = await self._db.get(OvertimeRecord, record_id)
            if record is not None and record.status == STATUS_CHECKED_IN:
                return record
            self._overlay.clear_active(ctx.user_id)
        return await newest_active(self._db, ctx.user_id)

    async def check_in(
        self,
        ctx: SessionContext,
        purpose: str | None,
        photo_data_uri: str | None,
        location: GeoLocation | None,
        background: BackgroundTasks,
    ) -> OvertimeRecord:
        photo = _require_photo_and_location(photo_data_uri, location)
        purpose = (purpose or "").strip()
        if not purpose:
            raise InputValidationError(MSG_PURPOSE_REQUIRED)

        if await self.active_record(ctx) is not None:
            raise ConflictError(MSG_ALREADY_ACTIVE)

        validation = await self._gate(photo)

        now = datetime.now(timezone.utc)
        record = OvertimeRecord(
            id=uuid.uuid4(),
            employee_id=ctx.user_id,
            employee_name=ctx.name,
            check_in_time=now,
            check_out_time=None,
            check_in_photo=None,
            check_out_photo=None,
            check_in_location=location.model_dump(),
            check_out_location=None,
            status=STATUS_CHECKED_IN,
            purpose=purpose,
            verification_status=VERIFICATION_PENDING,
            verification_notes="",
            check_in_validation=validation,
            created_at=now,
        )
        self._db.add(record)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Check-in ganda ditolak oleh database untuk pegawai %s", ctx.user_id)
            raise ConflictError(MSG_ALREADY_ACTIVE)

        self._overlay.hold_photo(record.id, "checkIn", photo)
        self._overlay.set_active(ctx.user_id, record.id)
        self._feed.publish(record_event(EVENT_CREATED, record, self._overlay))
        background.add_task(self._uploader.persist, record.id, "checkIn", photo)

        logger.info("Check-in %s oleh %s (%s)", record.id, ctx.name, ctx.user_id)
        return record

    async def check_out(
        self,
        ctx: SessionContext,
        record_id: uuid.UUID,
        photo_data_uri: str | None,
        location: GeoLocation | None,
        background: BackgroundTasks,
    ) -> OvertimeRecord:
        photo = _require_photo_and_location(photo_data_uri, location)

        record = await get_record(self._db, record_id)
        if record.employee_id != ctx.user_id:
            raise PermissionDeniedError(MSG_NOT_OWNER)
        if record.status != STATUS_CHECKED_IN:
            raise ConflictError(MSG_ALREADY_CHECKED_OUT)

        validation = await self._gate(photo)

        self._overlay.clear_active(ctx.user_id)
        now = datetime.now(timezone.utc)
        # Bersyarat pada status: field check-out hanya ditulis sekali
        result = await self._db.execute(
            update(OvertimeRecord)
            .where(
                OvertimeRecord.id == record.id,
                OvertimeRecord.status == STATUS_CHECKED_IN,
            )
            .values(
                status=STATUS_CHECKED_OUT,
                check_out_time=now,
                check_out_location=location.model_dump(),
                check_out_validation=validation,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._db.rollback()
            raise ConflictError(MSG_ALREADY_CHECKED_OUT)
        await self._db.commit()
        await self._db.refresh(record)

        self._overlay.hold_photo(record.id, "checkOut", photo)
        self._feed.publish(record_event(EVENT_UPDATED, record, self._overlay))
        background.add_task(self._uploader.persist, record.id, "checkOut", photo)

        logger.info("Check-out %s oleh %s (%s)", record.id, ctx.name, ctx.user_id)
        return record

    async def validate_photo(
        self, record_id: uuid.UUID, slot: str, blob_store: BlobStore
    ) -> OvertimeRecord:
        """Re-run the classifier on a stored photo and keep the result (advisory)."""
        record = await get_record(self._db, record_id)
        if not getattr(record, PHOTO_FIELDS[slot]):
            raise ConflictError(MSG_NO_PHOTO_YET)

        try:
            content = await blob_store.read(photo_key(record.id, slot))
        except OSError as exc:
            logger.warning("Foto %s/%s tidak dapat dibaca: %s", record.id, slot, exc)
            result = PhotoValidationFailure(error=FAILURE_MESSAGE)
        else:
            result = await self._classifier.classify(to_data_uri("image/jpeg", content))

        setattr(record, VALIDATION_FIELDS[slot], result.model_dump(by_alias=True))
        await self._db.commit()
        self._feed.publish(record_event(EVENT_UPDATED, record, self._overlay))
        return record


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    classifier: PhotoClassifier = Depends(get_photo_classifier),
    uploader: PhotoUploader = Depends(get_photo_uploader),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
    feed: RecordFeed = Depends(get_feed),
) -> AttendanceLifecycle:
    return AttendanceLifecycle(db, classifier, uploader, overlay, feed)
