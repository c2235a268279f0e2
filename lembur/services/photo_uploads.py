"""
Background persistence of check-in/check-out photos.

Runs after the HTTP response has been sent, with its own DB session. The
upload is retried with exponential backoff; once the attempts are used up,
or the URL cannot be written onto the record, the photo is parked in
``photo_upload_failures`` where an admin can see it and trigger a retry.
The record's photo field stays null until then.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lembur.core.config import settings
from lembur.core.errors import NotFoundError, UpstreamError
from lembur.db.models import OvertimeRecord, PhotoUploadFailure
from lembur.db.session import get_sessionmaker
from lembur.services.blob_store import BlobStore, get_blob_store, photo_key
from lembur.services.feed import EVENT_UPDATED, RecordFeed, get_feed
from lembur.services.overlay import PendingPhotoOverlay, get_overlay
from lembur.services.records import record_event

logger = logging.getLogger(__name__)

PHOTO_FIELDS = {"checkIn": "check_in_photo", "checkOut": "check_out_photo"}


class PhotoUploader:
    def __init__(
        self,
        blob_store: BlobStore,
        sessionmaker: async_sessionmaker[AsyncSession],
        overlay: PendingPhotoOverlay,
        feed: RecordFeed,
        max_attempts: int = 3,
        backoff_sec: float = 1.0,
    ) -> None:
        self._blob_store = blob_store
        self._sessionmaker = sessionmaker
        self._overlay = overlay
        self._feed = feed
        self.max_attempts = max(1, max_attempts)
        self.backoff_sec = backoff_sec

    async def _upload_with_retry(self, data_uri: str, key: str) -> tuple[str | None, str]:
        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._blob_store.upload(data_uri, key), ""
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Unggah foto %s gagal (percobaan %d/%d): %s",
                    key, attempt, self.max_attempts, last_error,
                )
            if attempt < self.max_attempts and self.backoff_sec > 0:
                await asyncio.sleep(self.backoff_sec * 2 ** (attempt - 1))
        return None, last_error

    async def persist(
        self,
        record_id: uuid.UUID,
        slot: str,
        data_uri: str,
        *,
        queue_on_failure: bool = True,
    ) -> str | None:
        """Upload the photo and write its URL onto the record. Returns the URL or None."""
        key = photo_key(record_id, slot)
        url, error = await self._upload_with_retry(data_uri, key)
        if url is None:
            logger.error("Foto %s tidak tersimpan setelah %d percobaan", key, self.max_attempts)
            if queue_on_failure:
                await self._queue_failure(record_id, slot, data_uri, error)
            return None

        if not await self._attach(record_id, slot, url):
            if queue_on_failure:
                await self._queue_failure(
                    record_id, slot, data_uri, f"URL foto tidak tersimpan: {url}"
                )
            return None
        return url

    async def _attach(self, record_id: uuid.UUID, slot: str, url: str) -> bool:
        """Write the URL onto the record. False when the database write failed."""
        try:
            async with self._sessionmaker() as session:
                record = await session.get(OvertimeRecord, record_id)
                if record is None:
                    logger.info("Data lembur %s sudah dihapus, URL foto %s diabaikan", record_id, url)
                    self._overlay.forget_record(record_id)
                    return True
                setattr(record, PHOTO_FIELDS[slot], url)
                await session.commit()
                self._overlay.release_photo(record_id, slot)
                self._feed.publish(record_event(EVENT_UPDATED, record, self._overlay))
        except SQLAlchemyError:
            logger.exception("Gagal menyimpan URL foto %s ke data lembur %s", slot, record_id)
            return False
        return True

    async def _queue_failure(
        self, record_id: uuid.UUID, slot: str, data_uri: str, error: str
    ) -> None:
        try:
            async with self._sessionmaker() as session:
                if await session.get(OvertimeRecord, record_id) is None:
                    return
                session.add(
                    PhotoUploadFailure(
                        record_id=record_id,
                        slot=slot,
                        photo_data_uri=data_uri,
                        error=error[:2000],
                        attempts=self.max_attempts,
                    )
                )
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Gagal mencatat kegagalan unggah foto %s/%s", record_id, slot)

    async def pending_failures(self, db: AsyncSession) -> list[PhotoUploadFailure]:
        result = await db.execute(
            select(PhotoUploadFailure)
            .where(PhotoUploadFailure.resolved_at.is_(None))
            .order_by(PhotoUploadFailure.created_at.desc())
        )
        return list(result.scalars().all())

    async def retry_failure(self, db: AsyncSession, failure_id: int) -> PhotoUploadFailure:
        failure = await db.get(PhotoUploadFailure, failure_id)
        if failure is None or failure.resolved_at is not None:
            raise NotFoundError("Antrean unggah foto tidak ditemukan.")

        url = await self.persist(
            failure.record_id, failure.slot, failure.photo_data_uri, queue_on_failure=False
        )
        failure.attempts += self.max_attempts
        if url is None:
            await db.commit()
            raise UpstreamError("Unggah ulang foto gagal. Silakan coba lagi nanti.")

        failure.resolved_at = datetime.now(timezone.utc)
        await db.commit()
        logger.info("Antrean unggah foto #%d selesai: %s", failure.id, url)
        return failure


def get_photo_uploader(
    blob_store: BlobStore = Depends(get_blob_store),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
    feed: RecordFeed = Depends(get_feed),
) -> PhotoUploader:
    return PhotoUploader(
        blob_store,
        sessionmaker,
        overlay,
        feed,
        max_attempts=settings.PHOTO_UPLOAD_MAX_ATTEMPTS,
        backoff_sec=settings.PHOTO_UPLOAD_BACKOFF_SEC,
    )
