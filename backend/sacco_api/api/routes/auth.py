from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from sacco_api.api.deps import client_ip, require_auth
from sacco_api.core.config import settings
from sacco_api.core.security import create_access_token
from sacco_api.db.session import get_db
from sacco_api.models.user import User
from sacco_api.schemas.auth import LoginOut, LoginRequest, UserOut
from sacco_api.schemas.common import MessageOut
from sacco_api.services.activity_log import log_activity
from sacco_api.services.users import authenticate_user

router = APIRouter()


@router.post("/login", response_model=LoginOut)
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user = authenticate_user(db, payload.username, payload.password)
    token = create_access_token(user_id=user.id, role=user.role.value)
    # SameSite=None so the cookie is sent on cross-origin requests from the frontend host.
    samesite = "none" if settings.environment == "production" else "lax"
    response.set_cookie(
        settings.jwt_cookie_name,
        token,
        httponly=True,
        secure=settings.environment == "production",
        samesite=samesite,
        max_age=settings.jwt_expires_minutes * 60,
        path="/",
    )
    log_activity(db, action="login", entity_type="user", entity_id=user.id, user_id=user.id, ip_address=client_ip(request))
    return LoginOut(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        email=user.email,
        role=user.role,
        access_token=token,
    )


@router.post("/logout", response_model=MessageOut)
def logout(response: Response):
    response.delete_cookie(settings.jwt_cookie_name, path="/")
    return MessageOut(message="Logged out")


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(require_auth)):
    return UserOut.model_validate(user)
