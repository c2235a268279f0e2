import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lembur.core.errors import PermissionDeniedError
from lembur.core.middleware import SessionContext, get_session_context, require_admin_context
from lembur.db.session import get_db
from lembur.schemas.overtime import (
    CheckInRequest,
    CheckOutRequest,
    OvertimeRecordResponse,
    PhotoUploadFailureResponse,
    VerificationRequest,
)
from lembur.services.blob_store import BlobStore, get_blob_store
from lembur.services.feed import RecordFeed, get_feed
from lembur.services.lifecycle import AttendanceLifecycle, get_lifecycle
from lembur.services.overlay import PendingPhotoOverlay, get_overlay
from lembur.services.photo_uploads import PhotoUploader, get_photo_uploader
from lembur.services.records import (
    Period,
    get_record,
    local_tz,
    query_records,
    to_response,
)
from lembur.services.report_export import XLSX_MEDIA_TYPE, build_workbook, export_filename
from lembur.services.verification import VerificationWorkflow, get_verification

logger = logging.getLogger(__name__)

router = APIRouter()

_KEEPALIVE_SEC = 15.0

VerificationFilter = Literal["Pending", "Accepted", "Rejected"]


@router.post(
    "/check-in",
    response_model=OvertimeRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start an overtime session",
)
async def check_in(
    body: CheckInRequest,
    background: BackgroundTasks,
    ctx: SessionContext = Depends(get_session_context),
    lifecycle: AttendanceLifecycle = Depends(get_lifecycle),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
) -> OvertimeRecordResponse:
    record = await lifecycle.check_in(
        ctx, body.purpose, body.photo_data_uri, body.location, background
    )
    return to_response(record, overlay)


@router.get(
    "/active",
    response_model=OvertimeRecordResponse | None,
    summary="Current user's in-progress session, if any",
)
async def get_active(
    ctx: SessionContext = Depends(get_session_context),
    lifecycle: AttendanceLifecycle = Depends(get_lifecycle),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
) -> OvertimeRecordResponse | None:
    record = await lifecycle.active_record(ctx)
    return to_response(record, overlay) if record is not None else None


@router.get(
    "/",
    response_model=list[OvertimeRecordResponse],
    summary="List overtime records (own records for employees, all for admins)",
)
async def list_records(
    period: Period = Query(default="all"),
    employee_id: uuid.UUID | None = Query(default=None),
    purpose: str | None = Query(default=None, description="Case-insensitive substring"),
    verification_status: VerificationFilter | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
) -> list[OvertimeRecordResponse]:
    if not ctx.is_admin:
        employee_id = ctx.user_id
    records = await query_records(
        db,
        employee_id=employee_id,
        purpose=purpose,
        verification_status=verification_status,
        period=period,
    )
    return [to_response(r, overlay) for r in records]


@router.get("/export", summary="Export filtered records to Excel (admin only)")
async def export_records(
    period: Period = Query(default="all"),
    employee_id: uuid.UUID | None = Query(default=None),
    purpose: str | None = Query(default=None),
    verification_status: VerificationFilter | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    ctx: SessionContext = Depends(require_admin_context),
) -> Response:
    records = await query_records(
        db,
        employee_id=employee_id,
        purpose=purpose,
        verification_status=verification_status,
        period=period,
    )
    tz = local_tz()
    content = await asyncio.to_thread(build_workbook, records, tz)
    filename = export_filename(datetime.now(timezone.utc).astimezone(tz).date())
    logger.info("Ekspor laporan lembur: %d baris oleh %s", len(records), ctx.user_id)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/stream", summary="Server-Sent Events feed of record changes")
async def stream_records(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    feed: RecordFeed = Depends(get_feed),
) -> StreamingResponse:
    scope = None if ctx.is_admin else ctx.user_id

    async def events():
        async with feed.subscribe(scope) as queue:
            yield ": connected\n\n"
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=_KEEPALIVE_SEC)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: {event.kind}\ndata: {json.dumps(event.payload)}\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get(
    "/upload-failures",
    response_model=list[PhotoUploadFailureResponse],
    summary="Photo uploads that exhausted their retries (admin only)",
)
async def list_upload_failures(
    db: AsyncSession = Depends(get_db),
    uploader: PhotoUploader = Depends(get_photo_uploader),
    _ctx: SessionContext = Depends(require_admin_context),
) -> list[PhotoUploadFailureResponse]:
    failures = await uploader.pending_failures(db)
    return [
        PhotoUploadFailureResponse(
            id=f.id,
            record_id=f.record_id,
            slot=f.slot,
            error=f.error,
            attempts=f.attempts,
            created_at=f.created_at,
        )
        for f in failures
    ]


@router.post(
    "/upload-failures/{failure_id}/retry",
    response_model=OvertimeRecordResponse,
    summary="Retry a failed photo upload (admin only)",
)
async def retry_upload_failure(
    failure_id: int,
    db: AsyncSession = Depends(get_db),
    uploader: PhotoUploader = Depends(get_photo_uploader),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
    _ctx: SessionContext = Depends(require_admin_context),
) -> OvertimeRecordResponse:
    failure = await uploader.retry_failure(db, failure_id)
    record = await get_record(db, failure.record_id)
    await db.refresh(record)
    return to_response(record, overlay)


@router.get(
    "/{record_id}",
    response_model=OvertimeRecordResponse,
    summary="Get one overtime record",
)
async def get_one(
    record_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
) -> OvertimeRecordResponse:
    record = await get_record(db, record_id)
    if not ctx.is_admin and record.employee_id != ctx.user_id:
        raise PermissionDeniedError("Anda tidak berhak melihat data lembur ini.")
    return to_response(record, overlay)


@router.post(
    "/{record_id}/check-out",
    response_model=OvertimeRecordResponse,
    summary="Finish an overtime session",
)
async def check_out(
    record_id: uuid.UUID,
    body: CheckOutRequest,
    background: BackgroundTasks,
    ctx: SessionContext = Depends(get_session_context),
    lifecycle: AttendanceLifecycle = Depends(get_lifecycle),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
) -> OvertimeRecordResponse:
    record = await lifecycle.check_out(
        ctx, record_id, body.photo_data_uri, body.location, background
    )
    return to_response(record, overlay)


@router.post(
    "/{record_id}/verification",
    response_model=OvertimeRecordResponse,
    summary="Accept or reject a completed session (admin only)",
)
async def verify_record(
    record_id: uuid.UUID,
    body: VerificationRequest,
    ctx: SessionContext = Depends(require_admin_context),
    workflow: VerificationWorkflow = Depends(get_verification),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
) -> OvertimeRecordResponse:
    record = await workflow.verify(
        ctx, record_id, body.verification_status, body.verification_notes
    )
    return to_response(record, overlay)


@router.post(
    "/{record_id}/validate-photo",
    response_model=OvertimeRecordResponse,
    summary="Re-run the photo classifier on a stored photo (admin only)",
)
async def validate_photo(
    record_id: uuid.UUID,
    slot: Literal["checkIn", "checkOut"] = Query(default="checkIn"),
    _ctx: SessionContext = Depends(require_admin_context),
    lifecycle: AttendanceLifecycle = Depends(get_lifecycle),
    blob_store: BlobStore = Depends(get_blob_store),
    overlay: PendingPhotoOverlay = Depends(get_overlay),
) -> OvertimeRecordResponse:
    record = await lifecycle.validate_photo(record_id, slot, blob_store)
    return to_response(record, overlay)


@router.delete(
    "/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Permanently delete a record (admin only)",
)
async def delete_record(
    record_id: uuid.UUID,
    ctx: SessionContext = Depends(require_admin_context),
    workflow: VerificationWorkflow = Depends(get_verification),
) -> None:
    await workflow.delete(ctx, record_id)
