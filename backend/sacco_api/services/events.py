"""
Domain events emitted by the expense workflow.

Before-commit subscribers run inside the workflow transaction (their errors roll the
transition back). After-commit subscribers are side effects: failures are logged and
swallowed so a committed transition is never reported as failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.orm import Session

from sacco_api.models.enums import ExpenseAction, ExpenseStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpenseStatusChanged:
    expense_id: int
    request_number: str
    requester_id: int
    actor_id: int
    action: ExpenseAction
    from_status: ExpenseStatus | None  # None on creation
    to_status: ExpenseStatus
    details: dict | None = None
    ip_address: str | None = None


Handler = Callable[[Session, ExpenseStatusChanged], None]


@dataclass
class EventBus:
    before_commit: list[Handler] = field(default_factory=list)
    after_commit: list[Handler] = field(default_factory=list)

    def subscribe_before_commit(self, handler: Handler) -> Handler:
        self.before_commit.append(handler)
        return handler

    def subscribe_after_commit(self, handler: Handler) -> Handler:
        self.after_commit.append(handler)
        return handler

    def emit_before_commit(self, db: Session, event: ExpenseStatusChanged) -> None:
        for handler in self.before_commit:
            handler(db, event)

    def emit_after_commit(self, db: Session, event: ExpenseStatusChanged) -> None:
        for handler in self.after_commit:
            try:
                handler(db, event)
            except Exception:
                logger.exception(
                    "after-commit handler %s failed for expense %s (%s)",
                    getattr(handler, "__name__", handler),
                    event.request_number,
                    event.action.value,
                )
                db.rollback()


event_bus = EventBus()


@event_bus.subscribe_before_commit
def _record_activity(db: Session, event: ExpenseStatusChanged) -> None:
    from sacco_api.services.activity_log import log_activity

    details = {
        "requestNumber": event.request_number,
        "fromStatus": event.from_status.value if event.from_status else None,
        "toStatus": event.to_status.value,
    }
    if event.details:
        details.update(event.details)
    log_activity(
        db,
        action=f"expense_{event.action.value}",
        entity_type="expense_request",
        entity_id=event.expense_id,
        user_id=event.actor_id,
        details=details,
        ip_address=event.ip_address,
        commit=False,
    )


@event_bus.subscribe_after_commit
def _dispatch_notifications(db: Session, event: ExpenseStatusChanged) -> None:
    from sacco_api.services import notifications

    notifications.dispatch_expense_notifications(db, event)
