from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from sacco_api.core.config import settings
from sacco_api.core.errors import ForbiddenError
from sacco_api.core.security import InvalidTokenError, decode_access_token
from sacco_api.db.session import get_db
from sacco_api.models.enums import UserRole
from sacco_api.models.user import User


def _token_from_request(request: Request) -> str | None:
    token = request.cookies.get(settings.jwt_cookie_name)
    if token:
        return token
    header = request.headers.get("Authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        claims = decode_access_token(token)
    except InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    user = db.query(User).filter(User.id == claims.user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def require_auth(user: User = Depends(get_current_user)) -> User:
    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    """Dependency factory: the caller must hold one of `roles`."""
    allowed = frozenset(roles)

    def _dep(user: User = Depends(require_auth)) -> User:
        if user.role not in allowed:
            raise ForbiddenError("You do not have permission to perform this action")
        return user

    return _dep


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
