import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

STATUS_CHECKED_IN = "Checked In"
STATUS_CHECKED_OUT = "Checked Out"

VERIFICATION_PENDING = "Pending"
VERIFICATION_ACCEPTED = "Accepted"
VERIFICATION_REJECTED = "Rejected"

ROLE_ADMIN = "Admin"
ROLE_USER = "User"

_JSON = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    nip: Mapped[str] = mapped_column(String(50), nullable=False)
    pangkat: Mapped[str | None] = mapped_column(String(100), nullable=True)
    jabatan: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        Enum(ROLE_ADMIN, ROLE_USER, name="user_role"),
        nullable=False,
        default=ROLE_USER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    overtime_records: Mapped[list["OvertimeRecord"]] = relationship(
        "OvertimeRecord", back_populates="employee", lazy="raise", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


class OvertimeRecord(Base):
    __tablename__ = "overtime_records"

    __table_args__ = (
        # Satu sesi aktif per pegawai, juga saat check-in bersamaan dari dua perangkat
        Index(
            "uq_overtime_one_active",
            "employee_id",
            unique=True,
            postgresql_where=text("status = 'Checked In'"),
            sqlite_where=text("status = 'Checked In'"),
        ),
        Index("ix_overtime_employee_created", "employee_id", "created_at"),
        Index("ix_overtime_check_in_time", "check_in_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    check_in_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_in_photo: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    check_out_photo: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    check_in_location: Mapped[dict | None] = mapped_column(_JSON, nullable=True)
    check_out_location: Mapped[dict | None] = mapped_column(_JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        Enum(STATUS_CHECKED_IN, STATUS_CHECKED_OUT, name="overtime_status"),
        nullable=False,
        default=STATUS_CHECKED_IN,
    )
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    verification_status: Mapped[str] = mapped_column(
        Enum(
            VERIFICATION_PENDING,
            VERIFICATION_ACCEPTED,
            VERIFICATION_REJECTED,
            name="verification_status",
        ),
        nullable=False,
        default=VERIFICATION_PENDING,
    )
    verification_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    check_in_validation: Mapped[dict | None] = mapped_column(_JSON, nullable=True)
    check_out_validation: Mapped[dict | None] = mapped_column(_JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    employee: Mapped["User"] = relationship("User", back_populates="overtime_records")

    def __repr__(self) -> str:
        return (
            f"<OvertimeRecord id={self.id} employee_id={self.employee_id} "
            f"status={self.status} verification={self.verification_status}>"
        )


class PhotoUploadFailure(Base):
    __tablename__ = "photo_upload_failures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("overtime_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    slot: Mapped[str] = mapped_column(
        Enum("checkIn", "checkOut", name="photo_slot"), nullable=False
    )
    photo_data_uri: Mapped[str] = mapped_column(Text, nullable=False)
    error: Mapped[str] = mapped_column(Text, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PhotoUploadFailure id={self.id} record_id={self.record_id} "
            f"slot={self.slot} attempts={self.attempts}>"
        )
