from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoLocation(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class PhotoValidation(CamelModel):
    is_person: bool
    confidence: float = Field(..., ge=0, le=1)


class PhotoValidationFailure(CamelModel):
    error: str


class CheckInRequest(CamelModel):
    # Opsional di skema: kelengkapan dicek di service agar pesannya spesifik
    purpose: str | None = None
    photo_data_uri: str | None = None
    location: GeoLocation | None = None


class CheckOutRequest(CamelModel):
    photo_data_uri: str | None = None
    location: GeoLocation | None = None


class VerificationRequest(CamelModel):
    verification_status: Literal["Accepted", "Rejected"]
    verification_notes: str | None = None


class OvertimeRecordResponse(CamelModel):
    id: UUID
    employee_id: UUID
    employee_name: str
    check_in_time: datetime
    check_out_time: datetime | None
    check_in_photo: str | None
    check_out_photo: str | None
    check_in_location: GeoLocation | None
    check_out_location: GeoLocation | None
    status: Literal["Checked In", "Checked Out"]
    purpose: str
    verification_status: Literal["Pending", "Accepted", "Rejected"]
    verification_notes: str
    check_in_validation: PhotoValidation | PhotoValidationFailure | None = None
    check_out_validation: PhotoValidation | PhotoValidationFailure | None = None
    created_at: datetime


class PhotoUploadFailureResponse(CamelModel):
    id: int
    record_id: UUID
    slot: Literal["checkIn", "checkOut"]
    error: str
    attempts: int
    created_at: datetime
