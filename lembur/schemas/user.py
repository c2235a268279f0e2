from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import computed_field

from lembur.schemas.overtime import CamelModel


class UserSelfUpdate(CamelModel):
    name: str | None = None
    nip: str | None = None
    pangkat: str | None = None
    jabatan: str | None = None


class UserUpdate(UserSelfUpdate):
    email: str | None = None
    role: Literal["Admin", "User"] | None = None
    is_active: bool | None = None


class UserResponse(CamelModel):
    id: UUID
    email: str
    name: str
    nip: str
    pangkat: str | None
    jabatan: str
    role: Literal["Admin", "User"]
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def uid(self) -> UUID:
        return self.id


class UserPage(CamelModel):
    total: int
    page: int
    per_page: int
    pages: int
    items: list[UserResponse]
