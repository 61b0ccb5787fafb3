from __future__ import annotations

from pydantic import Field

from sacco_api.models.enums import UserRole
from sacco_api.schemas.common import ApiModel


class LoginRequest(ApiModel):
    username: str = Field(min_length=2, max_length=50)
    password: str = Field(min_length=8, max_length=200)


class UserOut(ApiModel):
    id: int
    username: str
    full_name: str | None = None
    email: str | None = None
    role: UserRole


class LoginOut(UserOut):
    # Same JWT as the session cookie, for clients that send Authorization: Bearer.
    access_token: str
    token_type: str = "bearer"
