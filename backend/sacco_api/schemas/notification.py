from __future__ import annotations

from sacco_api.models.enums import NotificationType
from sacco_api.schemas.common import ApiModel, Timestamped


class NotificationOut(Timestamped):
    id: int
    type: NotificationType
    title: str
    message: str
    resource_type: str | None
    resource_id: int | None
    details: dict | None
    is_read: bool


class NotificationListEnvelope(ApiModel):
    status: str = "success"
    data: list[NotificationOut]
