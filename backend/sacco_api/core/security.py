from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

import bcrypt
from jose import JWTError, jwt

from sacco_api.core.config import settings

MIN_PASSWORD_LENGTH = 8


class InvalidTokenError(Exception):
    pass


def hash_password(plain: str) -> str:
    if not plain or len(plain) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    # A malformed stored hash counts as a mismatch.
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    role: str | None
    expires_at: dt.datetime


def create_access_token(*, user_id: int, role: str | None = None) -> str:
    """Signed session token. `role` is informational for clients; the server re-reads it from the user row."""
    now = dt.datetime.now(dt.timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + dt.timedelta(minutes=settings.jwt_expires_minutes)).timestamp()),
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> SessionClaims:
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        user_id = int(data["sub"])
    except (JWTError, KeyError, ValueError) as exc:
        raise InvalidTokenError(str(exc)) from exc
    return SessionClaims(
        user_id=user_id,
        role=data.get("role"),
        expires_at=dt.datetime.fromtimestamp(int(data["exp"]), tz=dt.timezone.utc),
    )
