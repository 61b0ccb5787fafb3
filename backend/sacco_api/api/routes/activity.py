"""Activity log API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sacco_api.api.deps import require_roles
from sacco_api.db.session import get_db
from sacco_api.models.activity_log import ActivityLog
from sacco_api.models.enums import UserRole
from sacco_api.models.user import User

router = APIRouter()

ACTION_LABELS = {
    "expense_create": "Expense request created",
    "expense_add_item": "Expense item added",
    "expense_submit": "Expense request submitted",
    "expense_approve_accountant": "Approved by accountant",
    "expense_approve_manager": "Approved by manager",
    "expense_process": "Processed by cashier",
    "expense_complete": "Expense request completed",
    "expense_reject": "Expense request rejected",
    "receipt_upload": "Receipt uploaded",
    "budget_category_create": "Budget category created",
    "budget_category_update": "Budget category updated",
    "budget_category_allocate": "Budget category allocated",
    "budget_create": "Budget created",
    "budget_allocation_create": "Budget allocation created",
    "department_create": "Department created",
    "login": "Login",
}


@router.get("/latest")
def get_activity_latest(
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    _=Depends(require_roles(UserRole.ADMIN)),
):
    items = (
        db.query(ActivityLog)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )
    users_by_id = {}
    if items:
        user_ids = {a.user_id for a in items if a.user_id}
        if user_ids:
            users = db.query(User).filter(User.id.in_(user_ids)).all()
            users_by_id = {u.id: u.username for u in users}
    return [
        {
            "id": a.id,
            "createdAt": a.created_at.isoformat() if a.created_at else None,
            "action": a.action,
            "actionLabel": ACTION_LABELS.get(a.action, a.action),
            "entityType": a.entity_type,
            "entityId": a.entity_id,
            "details": a.details,
            "username": users_by_id.get(a.user_id) if a.user_id else None,
        }
        for a in items
    ]
