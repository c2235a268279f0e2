"""
Seed script: creates a default admin user only.

Usage (inside container):
    python -m lembur.db.seed
"""

import asyncio
import os

from sqlalchemy import select

from lembur.core.security import hash_password
from lembur.db.models import ROLE_ADMIN, User
from lembur.db.session import AsyncSessionLocal

ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@lembur.local")
ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "admin123")


async def create_admin(session) -> User:
    result = await session.execute(select(User).where(User.email == ADMIN_EMAIL))
    admin = result.scalar_one_or_none()
    if admin:
        if admin.role != ROLE_ADMIN or not admin.is_active:
            admin.role = ROLE_ADMIN
            admin.is_active = True
            await session.flush()
            print("Admin user already exists, restored Admin role.")
        else:
            print("Admin user already exists, skipping.")
        return admin

    admin = User(
        email=ADMIN_EMAIL,
        password_hash=hash_password(ADMIN_PASSWORD),
        name="Administrator Sistem",
        nip="-",
        jabatan="ADMIN",
        role=ROLE_ADMIN,
        is_active=True,
    )
    session.add(admin)
    await session.flush()
    print(f"Created admin user: id={admin.id} email={admin.email}")
    return admin


async def main():
    async with AsyncSessionLocal() as session:
        async with session.begin():
            await create_admin(session)
            print("Seed complete. Admin user only.")


if __name__ == "__main__":
    asyncio.run(main())
