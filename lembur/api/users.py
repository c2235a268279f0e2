import logging
import math
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lembur.core.middleware import get_current_user, require_role
from lembur.db.models import ROLE_ADMIN, User
from lembur.db.session import get_db
from lembur.schemas.user import UserPage, UserResponse, UserSelfUpdate, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


def _apply_profile(user: User, body: UserSelfUpdate) -> None:
    if body.name is not None and body.name.strip():
        user.name = body.name.strip()
    if body.nip is not None and body.nip.strip():
        user.nip = body.nip.strip()
    if body.pangkat is not None:
        user.pangkat = body.pangkat.strip() or None
    if body.jabatan is not None and body.jabatan.strip():
        user.jabatan = body.jabatan.strip()


async def _get_user_or_404(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pengguna tidak ditemukan",
        )
    return user


@router.get(
    "/",
    response_model=UserPage,
    summary="List users with pagination and optional name search (admin only)",
)
async def list_users(
    search: str | None = Query(default=None, description="Filter by name, NIP or email"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(ROLE_ADMIN)),
) -> UserPage:
    q = select(User)
    if search:
        q = q.where(
            User.name.icontains(search, autoescape=True)
            | User.nip.icontains(search, autoescape=True)
            | User.email.icontains(search, autoescape=True)
        )
    q = q.order_by(User.name)

    result = await db.execute(q)
    all_users = result.scalars().all()
    total = len(all_users)
    offset = (page - 1) * per_page
    page_users = all_users[offset : offset + per_page]

    return UserPage(
        total=total,
        page=page,
        per_page=per_page,
        pages=math.ceil(total / per_page) if total > 0 else 1,
        items=[_to_response(u) for u in page_users],
    )


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current authenticated user profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    return _to_response(current_user)


@router.patch(
    "/me",
    response_model=UserResponse,
    summary="Update own name, NIP, pangkat or jabatan",
)
async def update_me(
    body: UserSelfUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    user = await _get_user_or_404(db, current_user.id)
    _apply_profile(user, body)
    await db.commit()
    await db.refresh(user)
    return _to_response(user)


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update a user's profile, role or active status (admin only)",
)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(ROLE_ADMIN)),
) -> UserResponse:
    user = await _get_user_or_404(db, user_id)
    _apply_profile(user, body)

    if body.email is not None and body.email.strip():
        email = body.email.strip().lower()
        taken = await db.execute(
            select(User.id).where(func.lower(User.email) == email, User.id != user.id)
        )
        if taken.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email ini sudah terdaftar. Silakan gunakan email lain atau masuk.",
            )
        user.email = email

    if body.role is not None:
        if user_id == _current_user.id and body.role != ROLE_ADMIN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Anda tidak dapat mencabut peran admin Anda sendiri",
            )
        user.role = body.role

    if body.is_active is not None:
        if user_id == _current_user.id and not body.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Anda tidak dapat menonaktifkan akun Anda sendiri",
            )
        user.is_active = body.is_active

    await db.commit()
    await db.refresh(user)
    return _to_response(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a user (admin only)",
)
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role(ROLE_ADMIN)),
) -> None:
    if user_id == _current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Anda tidak dapat menghapus akun Anda sendiri",
        )
    user = await _get_user_or_404(db, user_id)
    await db.delete(user)
    await db.commit()
    logger.info("Pengguna %s dihapus oleh %s", user_id, _current_user.id)
