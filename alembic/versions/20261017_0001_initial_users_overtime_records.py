"""initial: users, overtime_records, photo_upload_failures

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("nip", sa.String(50), nullable=False),
        sa.Column("pangkat", sa.String(100), nullable=True),
        sa.Column("jabatan", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("Admin", "User", name="user_role"),
            nullable=False,
            server_default="User",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # --- overtime_records ---
    op.create_table(
        "overtime_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("employee_name", sa.String(255), nullable=False),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_photo", sa.String(1024), nullable=True),
        sa.Column("check_out_photo", sa.String(1024), nullable=True),
        sa.Column("check_in_location", _JSON, nullable=True),
        sa.Column("check_out_location", _JSON, nullable=True),
        sa.Column(
            "status",
            sa.Enum("Checked In", "Checked Out", name="overtime_status"),
            nullable=False,
        ),
        sa.Column("purpose", sa.Text(), nullable=False),
        sa.Column(
            "verification_status",
            sa.Enum("Pending", "Accepted", "Rejected", name="verification_status"),
            nullable=False,
            server_default="Pending",
        ),
        sa.Column("verification_notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("check_in_validation", _JSON, nullable=True),
        sa.Column("check_out_validation", _JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_overtime_one_active",
        "overtime_records",
        ["employee_id"],
        unique=True,
        postgresql_where=sa.text("status = 'Checked In'"),
        sqlite_where=sa.text("status = 'Checked In'"),
    )
    op.create_index(
        "ix_overtime_employee_created",
        "overtime_records",
        ["employee_id", "created_at"],
    )
    op.create_index("ix_overtime_check_in_time", "overtime_records", ["check_in_time"])

    # --- photo_upload_failures ---
    op.create_table(
        "photo_upload_failures",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column(
            "slot",
            sa.Enum("checkIn", "checkOut", name="photo_slot"),
            nullable=False,
        ),
        sa.Column("photo_data_uri", sa.Text(), nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["record_id"], ["overtime_records.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_photo_upload_failures_record_id", "photo_upload_failures", ["record_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_photo_upload_failures_record_id", table_name="photo_upload_failures")
    op.drop_table("photo_upload_failures")
    op.drop_index("ix_overtime_check_in_time", table_name="overtime_records")
    op.drop_index("ix_overtime_employee_created", table_name="overtime_records")
    op.drop_index("uq_overtime_one_active", table_name="overtime_records")
    op.drop_table("overtime_records")
    op.drop_table("users")
    if op.get_bind().dialect.name == "postgresql":
        for enum_name in ("photo_slot", "verification_status", "overtime_status", "user_role"):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
