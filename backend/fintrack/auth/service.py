from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.auth.models import User
from fintrack.auth.schemas import TokenResponse, UserCreate
from fintrack.auth.utils import create_access_token, hash_password, verify_password
from fintrack.config import Settings
from fintrack.core.exceptions import ConflictError, ValidationError


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none() is not None:
        raise ConflictError(f"A user with email {user_data.email} already exists.")

    user = User(
        email=user_data.email,
        hashed_password=hash_password(user_data.password),
        full_name=user_data.full_name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def authenticate_user(
    db: AsyncSession,
    email: str,
    password: str,
    settings: Settings,
) -> TokenResponse:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.hashed_password):
        raise ValidationError("Invalid email or password.")

    if not user.is_active:
        raise ValidationError("Account is deactivated.")

    return TokenResponse(access_token=create_access_token(user.id, settings))
