"""
Excel export ("Laporan Lembur") tests.
"""

from __future__ import annotations

import io
import uuid
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import openpyxl
from httpx import AsyncClient

from lembur.db.models import OvertimeRecord
from lembur.services.report_export import (
    EXPORT_COLUMNS,
    SHEET_NAME,
    XLSX_MEDIA_TYPE,
    build_workbook,
    export_filename,
    export_rows,
    format_date_id,
)

WIB = ZoneInfo("Asia/Jakarta")


def _record(**overrides) -> OvertimeRecord:
    values = dict(
        id=uuid.uuid4(),
        employee_id=uuid.uuid4(),
        employee_name="Budi Santoso",
        check_in_time=datetime(2026, 8, 7, 11, 5, 0, tzinfo=timezone.utc),
        check_out_time=datetime(2026, 8, 7, 14, 30, 15, tzinfo=timezone.utc),
        status="Checked Out",
        purpose="Menyusun laporan keuangan",
        verification_status="Accepted",
        verification_notes="Good work",
        created_at=datetime(2026, 8, 7, 11, 5, 0, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return OvertimeRecord(**values)


class TestExportRows:
    def test_indonesian_date_format(self) -> None:
        assert format_date_id(date(2026, 8, 7)) == "7 Agt 2026"
        assert format_date_id(date(2026, 5, 21)) == "21 Mei 2026"
        assert format_date_id(date(2026, 12, 1)) == "1 Des 2026"

    def test_times_are_local(self) -> None:
        rows = export_rows([_record()], WIB)
        assert rows == [
            {
                "Nama Pegawai": "Budi Santoso",
                "Tanggal": "7 Agt 2026",
                "Waktu Check-In": "18:05:00",
                "Waktu Check-Out": "21:30:15",
                "Keterangan Lembur": "Menyusun laporan keuangan",
                "Status Verifikasi": "Accepted",
                "Catatan Verifikasi": "Good work",
            }
        ]

    def test_open_session_has_blank_check_out(self) -> None:
        record = _record(
            status="Checked In",
            check_out_time=None,
            verification_status="Pending",
            verification_notes="",
        )
        row = export_rows([record], WIB)[0]
        assert row["Waktu Check-Out"] == ""
        assert row["Catatan Verifikasi"] == ""

    def test_local_date_crosses_midnight(self) -> None:
        """18:30 UTC is already the next day in Medan."""
        record = _record(check_in_time=datetime(2026, 8, 7, 18, 30, tzinfo=timezone.utc))
        assert export_rows([record], WIB)[0]["Tanggal"] == "8 Agt 2026"

    def test_workbook_layout(self) -> None:
        content = build_workbook([_record(), _record(employee_name="Siti Aminah")], WIB)
        wb = openpyxl.load_workbook(io.BytesIO(content))
        ws = wb[SHEET_NAME]
        rows = list(ws.iter_rows(values_only=True))
        assert list(rows[0]) == EXPORT_COLUMNS
        assert [r[0] for r in rows[1:]] == ["Budi Santoso", "Siti Aminah"]

    def test_empty_workbook_keeps_header(self) -> None:
        wb = openpyxl.load_workbook(io.BytesIO(build_workbook([], WIB)))
        rows = list(wb[SHEET_NAME].iter_rows(values_only=True))
        assert rows == [tuple(EXPORT_COLUMNS)]

    def test_filename(self) -> None:
        assert export_filename(date(2026, 10, 17)) == "Laporan Lembur - 2026-10-17.xlsx"


class TestExportEndpoint:
    async def test_admin_export(
        self,
        client: AsyncClient,
        admin_headers: dict,
        checked_out_record: dict,
    ) -> None:
        resp = await client.get("/api/overtime/export", headers=admin_headers)
        assert resp.status_code == 200, resp.text
        assert resp.headers["content-type"] == XLSX_MEDIA_TYPE
        assert 'filename="Laporan Lembur - ' in resp.headers["content-disposition"]

        wb = openpyxl.load_workbook(io.BytesIO(resp.content))
        rows = list(wb[SHEET_NAME].iter_rows(values_only=True))
        assert len(rows) == 2
        name, _, _, _, purpose, verification, notes = rows[1]
        assert name == "Budi Santoso"
        assert purpose == checked_out_record["purpose"]
        assert verification == "Pending"
        assert notes in (None, "")

    async def test_export_respects_filters(
        self,
        client: AsyncClient,
        admin_headers: dict,
        checked_out_record: dict,
    ) -> None:
        resp = await client.get(
            "/api/overtime/export",
            params={"verification_status": "Rejected"},
            headers=admin_headers,
        )
        assert resp.status_code == 200, resp.text
        wb = openpyxl.load_workbook(io.BytesIO(resp.content))
        assert len(list(wb[SHEET_NAME].iter_rows(values_only=True))) == 1
