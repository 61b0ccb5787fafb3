from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sacco_api.api.deps import require_auth
from sacco_api.core.errors import NotFoundError
from sacco_api.db.session import get_db
from sacco_api.models.notification import Notification
from sacco_api.models.user import User
from sacco_api.schemas.common import MessageOut
from sacco_api.schemas.notification import NotificationListEnvelope, NotificationOut
from sacco_api.services.notifications import list_for_user

router = APIRouter()


@router.get("/", response_model=NotificationListEnvelope)
def list_notifications(db: Session = Depends(get_db), user: User = Depends(require_auth)):
    return NotificationListEnvelope(data=[NotificationOut.model_validate(n) for n in list_for_user(db, user.id)])


@router.post("/{notification_id}/read", response_model=MessageOut)
def mark_read(notification_id: int, db: Session = Depends(get_db), user: User = Depends(require_auth)):
    n = db.query(Notification).filter(Notification.id == notification_id, Notification.user_id == user.id).first()
    if not n:
        raise NotFoundError("Notification not found")
    n.is_read = True
    db.commit()
    return MessageOut(message="Notification marked as read")
