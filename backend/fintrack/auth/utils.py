from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from fintrack.config import Settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_access_token(user_id: uuid.UUID, settings: Settings) -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(
        minutes=settings.access_token_expire_minutes
    )
    return jwt.encode(
        {"sub": str(user_id), "exp": expires_at},
        settings.secret_key,
        algorithm=settings.algorithm,
    )


def decode_token(token: str, settings: Settings) -> uuid.UUID | None:
    """Return the user id carried by a valid token, or None.

    python-jose rejects expired tokens during decode.
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return uuid.UUID(claims["sub"])
    except (JWTError, ValueError, KeyError):
        return None
