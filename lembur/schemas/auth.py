from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    # Kelengkapan nama/NIP/jabatan dicek di handler (pesan spesifik)
    name: str = ""
    nip: str = ""
    pangkat: str | None = None
    jabatan: str = ""


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
