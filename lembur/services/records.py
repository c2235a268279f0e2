"""Record lookups, filtering and response shaping shared by the services and routers."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Literal
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lembur.core.config import settings
from lembur.core.errors import NotFoundError
from lembur.db.models import STATUS_CHECKED_IN, OvertimeRecord
from lembur.schemas.overtime import OvertimeRecordResponse
from lembur.services.feed import RecordEvent
from lembur.services.overlay import PendingPhotoOverlay

Period = Literal["daily", "weekly", "monthly", "all"]

RECORD_NOT_FOUND = "Data lembur tidak ditemukan."


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_response(
    record: OvertimeRecord, overlay: PendingPhotoOverlay | None = None
) -> OvertimeRecordResponse:
    check_in_photo = record.check_in_photo
    check_out_photo = record.check_out_photo
    if overlay is not None:
        check_in_photo = check_in_photo or overlay.pending_photo(record.id, "checkIn")
        check_out_photo = check_out_photo or overlay.pending_photo(record.id, "checkOut")

    return OvertimeRecordResponse(
        id=record.id,
        employee_id=record.employee_id,
        employee_name=record.employee_name,
        check_in_time=as_utc(record.check_in_time),
        check_out_time=as_utc(record.check_out_time) if record.check_out_time else None,
        check_in_photo=check_in_photo,
        check_out_photo=check_out_photo,
        check_in_location=record.check_in_location,
        check_out_location=record.check_out_location,
        status=record.status,
        purpose=record.purpose,
        verification_status=record.verification_status,
        verification_notes=record.verification_notes or "",
        check_in_validation=record.check_in_validation,
        check_out_validation=record.check_out_validation,
        created_at=as_utc(record.created_at),
    )


def record_event(
    kind: str, record: OvertimeRecord, overlay: PendingPhotoOverlay | None = None
) -> RecordEvent:
    return RecordEvent(
        kind=kind,
        record_id=record.id,
        employee_id=record.employee_id,
        payload=to_response(record, overlay).model_dump(mode="json", by_alias=True),
    )


async def get_record(db: AsyncSession, record_id: uuid.UUID) -> OvertimeRecord:
    record = await db.get(OvertimeRecord, record_id)
    if record is None:
        raise NotFoundError(RECORD_NOT_FOUND)
    return record


async def newest_active(db: AsyncSession, employee_id: uuid.UUID) -> OvertimeRecord | None:
    result = await db.execute(
        select(OvertimeRecord)
        .where(
            OvertimeRecord.employee_id == employee_id,
            OvertimeRecord.status == STATUS_CHECKED_IN,
        )
        .order_by(OvertimeRecord.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def in_period(check_in_time: datetime, period: Period, today: date, tz: ZoneInfo) -> bool:
    if period == "all":
        return True
    day = as_utc(check_in_time).astimezone(tz).date()
    if period == "daily":
        return day == today
    if period == "weekly":
        week_start = today - timedelta(days=today.weekday())
        return week_start <= day < week_start + timedelta(days=7)
    return (day.year, day.month) == (today.year, today.month)


async def query_records(
    db: AsyncSession,
    *,
    employee_id: uuid.UUID | None = None,
    purpose: str | None = None,
    verification_status: str | None = None,
    period: Period = "all",
    now: datetime | None = None,
) -> list[OvertimeRecord]:
    """Records matching the filters, newest check-in first."""
    q = select(OvertimeRecord)
    if employee_id is not None:
        q = q.where(OvertimeRecord.employee_id == employee_id)
    if purpose:
        q = q.where(OvertimeRecord.purpose.icontains(purpose.strip(), autoescape=True))
    if verification_status:
        q = q.where(OvertimeRecord.verification_status == verification_status)
    q = q.order_by(OvertimeRecord.check_in_time.desc())

    result = await db.execute(q)
    records = list(result.scalars().all())

    if period != "all":
        tz = local_tz()
        today = (now or datetime.now(timezone.utc)).astimezone(tz).date()
        records = [r for r in records if in_period(r.check_in_time, period, today, tz)]
    return records
