"""Activity logging for operational visibility."""

from __future__ import annotations

from sqlalchemy.orm import Session

from sacco_api.models.activity_log import ActivityLog


def log_activity(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    user_id: int | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
    commit: bool = True,
) -> ActivityLog:
    """
    Append an audit entry.

    Pass commit=False to write the entry as part of the caller's open transaction
    (it then lands or rolls back together with the change it describes).
    """
    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details,
        ip_address=ip_address,
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    else:
        db.flush()
    return entry
