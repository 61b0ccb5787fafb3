from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from sacco_api.core.config import settings
from sacco_api.models.enums import ExpenseAction, NotificationType, UserRole
from sacco_api.models.notification import Notification
from sacco_api.models.user import User
from sacco_api.services.email import send_email
from sacco_api.services.events import ExpenseStatusChanged
from sacco_api.services.users import list_users_with_roles

logger = logging.getLogger(__name__)

# action -> (title, message template)
MESSAGES: dict[ExpenseAction, tuple[str, str]] = {
    ExpenseAction.CREATE: ("New Expense Request", "Expense request {n} has been created as a draft."),
    ExpenseAction.SUBMIT: ("Expense Request Submitted", "Expense request {n} has been submitted for approval."),
    ExpenseAction.APPROVE_ACCOUNTANT: (
        "Expense Approved by Accountant",
        "Expense request {n} has been approved by an accountant and awaits manager approval.",
    ),
    ExpenseAction.APPROVE_MANAGER: (
        "Expense Approved by Manager",
        "Expense request {n} has been approved by a manager and is ready for processing.",
    ),
    ExpenseAction.PROCESS: ("Expense Processed", "Your expense request {n} has been processed by the cashier."),
    ExpenseAction.COMPLETE: ("Expense Completed", "Your expense request {n} has been marked as completed."),
    ExpenseAction.REJECT: ("Expense Request Rejected", "Expense request {n} has been rejected."),
}

# action -> (roles of the next stage, notify requester)
AUDIENCES: dict[ExpenseAction, tuple[frozenset[UserRole], bool]] = {
    ExpenseAction.CREATE: (frozenset(), True),
    ExpenseAction.SUBMIT: (frozenset({UserRole.ACCOUNTANT, UserRole.ADMIN}), False),
    ExpenseAction.APPROVE_ACCOUNTANT: (frozenset({UserRole.MANAGER, UserRole.ADMIN}), False),
    ExpenseAction.APPROVE_MANAGER: (frozenset({UserRole.CASHIER, UserRole.ADMIN}), False),
    ExpenseAction.PROCESS: (frozenset(), True),
    ExpenseAction.COMPLETE: (frozenset(), True),
    ExpenseAction.REJECT: (frozenset(), True),
}


def resolve_recipients(db: Session, event: ExpenseStatusChanged) -> list[User]:
    roles, include_requester = AUDIENCES.get(event.action, (frozenset(), False))
    recipients: dict[int, User] = {}
    if roles:
        for u in list_users_with_roles(db, roles):
            recipients[u.id] = u
    if include_requester:
        requester = db.query(User).filter(User.id == event.requester_id).first()
        if requester:
            recipients[requester.id] = requester
    return list(recipients.values())


def dispatch_expense_notifications(db: Session, event: ExpenseStatusChanged) -> list[Notification]:
    if event.action not in MESSAGES:
        return []
    title, template = MESSAGES[event.action]
    message = template.format(n=event.request_number)

    created: list[Notification] = []
    for user in resolve_recipients(db, event):
        n = Notification(
            user_id=user.id,
            type=NotificationType.EXPENSE,
            title=title,
            message=message,
            resource_type="ExpenseRequest",
            resource_id=event.expense_id,
            created_by_user_id=event.actor_id,
            details={
                "expenseId": event.expense_id,
                "requestNumber": event.request_number,
                "status": event.to_status.value,
            },
        )
        db.add(n)
        created.append(n)
    db.commit()

    logger.info("expense %s: %d notification(s) for %s", event.request_number, len(created), event.action.value)

    if settings.notification_email_enabled:
        emails = [u.email for u in resolve_recipients(db, event) if u.email]
        send_email(subject=title, body=message, recipients=emails)
    return created


def list_for_user(db: Session, user_id: int, *, limit: int = 200) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )
