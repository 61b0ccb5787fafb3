from __future__ import annotations

from typing import Iterable

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from sacco_api.core.security import hash_password, verify_password
from sacco_api.models.enums import UserRole
from sacco_api.models.user import User


def authenticate_user(db: Session, username: str, password: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return user


def create_user(
    db: Session,
    *,
    username: str,
    password: str,
    role: UserRole = UserRole.CLERK,
    full_name: str | None = None,
    email: str | None = None,
) -> User:
    exists = db.query(User).filter(User.username == username).first()
    if exists:
        return exists
    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        full_name=full_name,
        email=email,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def list_users_with_roles(db: Session, roles: Iterable[UserRole]) -> list[User]:
    roles = list(roles)
    if not roles:
        return []
    return db.query(User).filter(User.role.in_(roles), User.is_active.is_(True)).order_by(User.id).all()
