import logging
import uuid

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from jose import JWTError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lembur.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from lembur.db.models import ROLE_ADMIN, ROLE_USER, User
from lembur.db.session import get_db
from lembur.schemas.auth import LoginRequest, RegisterRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_REFRESH_TOKEN_COOKIE = "refresh_token"

MSG_INVALID_CREDENTIALS = "Email atau password yang Anda masukkan salah. Mohon periksa kembali."
MSG_EMAIL_TAKEN = "Email ini sudah terdaftar. Silakan gunakan email lain atau masuk."
MSG_INCOMPLETE = "Mohon isi semua bidang yang wajib diisi."


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def role_for_jabatan(jabatan: str) -> str:
    return ROLE_ADMIN if jabatan.strip().upper() == "ADMIN" else ROLE_USER


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=_REFRESH_TOKEN_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=False,
        max_age=86400,
    )


def _issue_tokens(user: User, response: Response) -> TokenResponse:
    data = {"sub": str(user.id)}
    _set_refresh_cookie(response, create_refresh_token(data))
    return TokenResponse(access_token=create_access_token(data))


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new employee account and log in",
)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    if not body.name.strip() or not body.nip.strip() or not body.jabatan.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=MSG_INCOMPLETE,
        )

    email = _normalize_email(body.email)
    existing = await db.execute(select(User).where(func.lower(User.email) == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=MSG_EMAIL_TAKEN)

    user = User(
        email=email,
        password_hash=hash_password(body.password),
        name=body.name.strip(),
        nip=body.nip.strip(),
        pangkat=(body.pangkat or "").strip() or None,
        jabatan=body.jabatan.strip(),
        role=role_for_jabatan(body.jabatan),
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=MSG_EMAIL_TAKEN)
    await db.refresh(user)

    logger.info("Pengguna baru terdaftar: %s (%s)", user.email, user.role)
    return _issue_tokens(user, response)


@router.post("/login", response_model=TokenResponse, summary="Log in with email and password")
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    result = await db.execute(
        select(User).where(func.lower(User.email) == _normalize_email(body.email))
    )
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=MSG_INVALID_CREDENTIALS,
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Akun pengguna dinonaktifkan",
        )

    return _issue_tokens(user, response)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token using HttpOnly cookie",
)
async def refresh_tokens(
    response: Response,
    db: AsyncSession = Depends(get_db),
    refresh_token: str | None = Cookie(default=None, alias=_REFRESH_TOKEN_COOKIE),
) -> TokenResponse:
    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Refresh token invalid or expired",
    )
    if not refresh_token:
        raise invalid

    try:
        payload = decode_token(refresh_token)
    except JWTError:
        raise invalid

    if payload.get("type") != "refresh":
        raise invalid

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise invalid

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise invalid

    return _issue_tokens(user, response)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Logout")
async def logout(response: Response) -> None:
    response.delete_cookie(_REFRESH_TOKEN_COOKIE)
