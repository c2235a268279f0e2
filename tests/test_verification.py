"""
Verification workflow and deletion tests.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from lembur.core.errors import InputValidationError, PermissionDeniedError
from lembur.core.middleware import SessionContext
from lembur.db.models import ROLE_ADMIN, ROLE_USER
from lembur.services.feed import EVENT_DELETED, RecordFeed
from lembur.services.overlay import PendingPhotoOverlay
from lembur.services.records import RECORD_NOT_FOUND
from lembur.services.verification import MSG_STILL_CHECKED_IN, VerificationWorkflow


async def _verify(client: AsyncClient, headers: dict, record_id: str, **body) -> dict:
    resp = await client.post(
        f"/api/overtime/{record_id}/verification", json=body, headers=headers
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestVerification:
    async def test_pending_until_admin_acts(self, checked_out_record: dict) -> None:
        assert checked_out_record["verificationStatus"] == "Pending"
        assert checked_out_record["verificationNotes"] == ""

    async def test_accept_then_flip_to_rejected(
        self, client: AsyncClient, admin_headers: dict, checked_out_record: dict
    ) -> None:
        """Re-verification overwrites the status, and a missing note clears the old one."""
        record_id = checked_out_record["id"]
        data = await _verify(
            client,
            admin_headers,
            record_id,
            verificationStatus="Accepted",
            verificationNotes="Good work",
        )
        assert data["verificationStatus"] == "Accepted"
        assert data["verificationNotes"] == "Good work"

        data = await _verify(client, admin_headers, record_id, verificationStatus="Rejected")
        assert data["verificationStatus"] == "Rejected"
        assert data["verificationNotes"] == ""

        data = await _verify(
            client,
            admin_headers,
            record_id,
            verificationStatus="Accepted",
            verificationNotes="Dicek ulang, sesuai SPT",
        )
        assert data["verificationStatus"] == "Accepted"
        assert data["verificationNotes"] == "Dicek ulang, sesuai SPT"

    async def test_cannot_verify_open_session(
        self,
        client: AsyncClient,
        admin_headers: dict,
        employee_headers: dict,
        check_in_payload: dict,
    ) -> None:
        resp = await client.post(
            "/api/overtime/check-in", json=check_in_payload, headers=employee_headers
        )
        record_id = resp.json()["id"]

        resp = await client.post(
            f"/api/overtime/{record_id}/verification",
            json={"verificationStatus": "Accepted"},
            headers=admin_headers,
        )
        assert resp.status_code == 409, resp.text
        assert resp.json()["detail"] == MSG_STILL_CHECKED_IN

    async def test_employee_cannot_verify(
        self, client: AsyncClient, employee_headers: dict, checked_out_record: dict
    ) -> None:
        resp = await client.post(
            f"/api/overtime/{checked_out_record['id']}/verification",
            json={"verificationStatus": "Accepted"},
            headers=employee_headers,
        )
        assert resp.status_code == 403, resp.text

    async def test_pending_is_not_a_verdict(
        self, client: AsyncClient, admin_headers: dict, checked_out_record: dict
    ) -> None:
        resp = await client.post(
            f"/api/overtime/{checked_out_record['id']}/verification",
            json={"verificationStatus": "Pending"},
            headers=admin_headers,
        )
        assert resp.status_code == 422, resp.text

    async def test_unknown_record(self, client: AsyncClient, admin_headers: dict) -> None:
        resp = await client.post(
            f"/api/overtime/{uuid.uuid4()}/verification",
            json={"verificationStatus": "Rejected"},
            headers=admin_headers,
        )
        assert resp.status_code == 404, resp.text
        assert resp.json()["detail"] == RECORD_NOT_FOUND

    async def test_filter_by_verification_status(
        self, client: AsyncClient, admin_headers: dict, checked_out_record: dict
    ) -> None:
        await _verify(
            client, admin_headers, checked_out_record["id"], verificationStatus="Rejected"
        )
        resp = await client.get(
            "/api/overtime/", params={"verification_status": "Rejected"}, headers=admin_headers
        )
        assert [r["id"] for r in resp.json()] == [checked_out_record["id"]]


class TestWorkflowDirect:
    """The workflow enforces its own rules, independent of the HTTP layer."""

    async def test_non_admin_context_refused(
        self, db: AsyncSession, employee_user: dict, checked_out_record: dict
    ) -> None:
        workflow = VerificationWorkflow(db, PendingPhotoOverlay(60), RecordFeed())
        ctx = SessionContext(user_id=employee_user["id"], name="Budi Santoso", role=ROLE_USER)
        with pytest.raises(PermissionDeniedError):
            await workflow.accept(ctx, uuid.UUID(checked_out_record["id"]))

    async def test_invalid_verdict_refused(
        self, db: AsyncSession, admin_user: dict, checked_out_record: dict
    ) -> None:
        workflow = VerificationWorkflow(db, PendingPhotoOverlay(60), RecordFeed())
        ctx = SessionContext(user_id=admin_user["id"], name="Admin Kantor", role=ROLE_ADMIN)
        with pytest.raises(InputValidationError):
            await workflow.verify(ctx, uuid.UUID(checked_out_record["id"]), "Pending")

    async def test_reject_helper(
        self, db: AsyncSession, admin_user: dict, checked_out_record: dict
    ) -> None:
        workflow = VerificationWorkflow(db, PendingPhotoOverlay(60), RecordFeed())
        ctx = SessionContext(user_id=admin_user["id"], name="Admin Kantor", role=ROLE_ADMIN)
        record = await workflow.reject(
            ctx, uuid.UUID(checked_out_record["id"]), "Tidak ada SPT"
        )
        assert record.verification_status == "Rejected"
        assert record.verification_notes == "Tidak ada SPT"


class TestDelete:
    async def test_delete_is_permanent(
        self,
        client: AsyncClient,
        admin_headers: dict,
        employee_headers: dict,
        checked_out_record: dict,
        feed: RecordFeed,
    ) -> None:
        record_id = checked_out_record["id"]
        async with feed.subscribe() as events:
            resp = await client.delete(f"/api/overtime/{record_id}", headers=admin_headers)
            assert resp.status_code == 204, resp.text
            event = events.get_nowait()
        assert event.kind == EVENT_DELETED
        assert event.payload == {"id": record_id}

        resp = await client.get(f"/api/overtime/{record_id}", headers=admin_headers)
        assert resp.status_code == 404, resp.text

        resp = await client.get("/api/overtime/", headers=employee_headers)
        assert resp.json() == []

        resp = await client.delete(f"/api/overtime/{record_id}", headers=admin_headers)
        assert resp.status_code == 404, resp.text

    async def test_employee_cannot_delete(
        self, client: AsyncClient, employee_headers: dict, checked_out_record: dict
    ) -> None:
        resp = await client.delete(
            f"/api/overtime/{checked_out_record['id']}", headers=employee_headers
        )
        assert resp.status_code == 403, resp.text

    async def test_delete_open_session_frees_employee(
        self,
        client: AsyncClient,
        admin_headers: dict,
        employee_headers: dict,
        check_in_payload: dict,
    ) -> None:
        resp = await client.post(
            "/api/overtime/check-in", json=check_in_payload, headers=employee_headers
        )
        record_id = resp.json()["id"]

        resp = await client.delete(f"/api/overtime/{record_id}", headers=admin_headers)
        assert resp.status_code == 204, resp.text

        resp = await client.get("/api/overtime/active", headers=employee_headers)
        assert resp.json() is None
        resp = await client.post(
            "/api/overtime/check-in", json=check_in_payload, headers=employee_headers
        )
        assert resp.status_code == 201, resp.text
