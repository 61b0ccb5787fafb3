from __future__ import annotations

from pydantic import Field

from sacco_api.schemas.common import ApiModel, Timestamped


class DepartmentCreate(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    code: str = Field(min_length=1, max_length=20)
    description: str | None = None


class DepartmentOut(Timestamped):
    id: int
    name: str
    code: str
    description: str | None


class DepartmentEnvelope(ApiModel):
    status: str = "success"
    message: str
    data: DepartmentOut


class DepartmentListEnvelope(ApiModel):
    status: str = "success"
    data: list[DepartmentOut]
