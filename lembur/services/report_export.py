"""
Excel export of overtime records ("Laporan Lembur").

Pure data transform: records in, xlsx bytes out.
"""

from __future__ import annotations

import io
from datetime import date
from zoneinfo import ZoneInfo

import pandas as pd

from lembur.db.models import OvertimeRecord
from lembur.services.records import as_utc

SHEET_NAME = "Laporan Lembur"

EXPORT_COLUMNS: list[str] = [
    "Nama Pegawai",
    "Tanggal",
    "Waktu Check-In",
    "Waktu Check-Out",
    "Keterangan Lembur",
    "Status Verifikasi",
    "Catatan Verifikasi",
]

_MONTHS_ID = ["Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agt", "Sep", "Okt", "Nov", "Des"]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def format_date_id(d: date) -> str:
    """``d MMM yyyy`` with Indonesian month abbreviations, e.g. ``7 Agt 2026``."""
    return f"{d.day} {_MONTHS_ID[d.month - 1]} {d.year}"


def export_rows(records: list[OvertimeRecord], tz: ZoneInfo) -> list[dict[str, str]]:
    rows = []
    for record in records:
        check_in = as_utc(record.check_in_time).astimezone(tz) if record.check_in_time else None
        check_out = as_utc(record.check_out_time).astimezone(tz) if record.check_out_time else None
        rows.append(
            {
                "Nama Pegawai": record.employee_name,
                "Tanggal": format_date_id(check_in.date()) if check_in else "",
                "Waktu Check-In": check_in.strftime("%H:%M:%S") if check_in else "",
                "Waktu Check-Out": check_out.strftime("%H:%M:%S") if check_out else "",
                "Keterangan Lembur": record.purpose or "",
                "Status Verifikasi": record.verification_status,
                "Catatan Verifikasi": record.verification_notes or "",
            }
        )
    return rows


def build_workbook(records: list[OvertimeRecord], tz: ZoneInfo) -> bytes:
    df = pd.DataFrame(export_rows(records, tz), columns=EXPORT_COLUMNS)
    buffer = io.BytesIO()
    df.to_excel(buffer, sheet_name=SHEET_NAME, index=False, engine="openpyxl")
    return buffer.getvalue()


def export_filename(today: date) -> str:
    return f"Laporan Lembur - {today:%Y-%m-%d}.xlsx"
