from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python; readable straight from ORM rows."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class Timestamped(ApiModel):
    created_at: datetime


class MessageOut(ApiModel):
    status: str = "success"
    message: str
