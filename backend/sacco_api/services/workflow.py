"""
Expense lifecycle state machine.

TRANSITIONS is the whole permission matrix: one row per (action, source status)
naming the target status, the roles allowed to act from that status, and whether
the requester may act on their own request. execute_transition is the single
executor every workflow operation goes through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session, selectinload

from sacco_api.core.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from sacco_api.models.enums import ExpenseAction, ExpenseStatus, UserRole
from sacco_api.models.expense import ExpenseItem, ExpenseRequest
from sacco_api.models.user import User
from sacco_api.services.events import ExpenseStatusChanged, event_bus

logger = logging.getLogger(__name__)

S = ExpenseStatus
A = ExpenseAction
R = UserRole


@dataclass(frozen=True)
class TransitionRule:
    action: ExpenseAction
    source: ExpenseStatus
    target: ExpenseStatus
    roles: frozenset[UserRole]
    requester_allowed: bool = False


TRANSITIONS: tuple[TransitionRule, ...] = (
    TransitionRule(A.ADD_ITEM, S.DRAFT, S.DRAFT, frozenset({R.ADMIN}), requester_allowed=True),
    TransitionRule(A.SUBMIT, S.DRAFT, S.SUBMITTED, frozenset({R.ADMIN}), requester_allowed=True),
    TransitionRule(A.APPROVE_ACCOUNTANT, S.SUBMITTED, S.ACCOUNTANT_APPROVED, frozenset({R.ACCOUNTANT, R.ADMIN})),
    TransitionRule(A.APPROVE_MANAGER, S.ACCOUNTANT_APPROVED, S.MANAGER_APPROVED, frozenset({R.MANAGER, R.ADMIN})),
    TransitionRule(A.PROCESS, S.MANAGER_APPROVED, S.PROCESSED, frozenset({R.CASHIER, R.ADMIN})),
    TransitionRule(A.COMPLETE, S.PROCESSED, S.COMPLETED, frozenset({R.ADMIN}), requester_allowed=True),
    TransitionRule(A.REJECT, S.SUBMITTED, S.REJECTED, frozenset({R.ACCOUNTANT, R.ADMIN})),
    TransitionRule(A.REJECT, S.ACCOUNTANT_APPROVED, S.REJECTED, frozenset({R.MANAGER, R.ADMIN})),
    TransitionRule(A.REJECT, S.MANAGER_APPROVED, S.REJECTED, frozenset({R.CASHIER, R.ADMIN})),
)

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.REJECTED})


def rules_for(action: ExpenseAction) -> list[TransitionRule]:
    return [r for r in TRANSITIONS if r.action == action]


def find_rule(action: ExpenseAction, status: ExpenseStatus) -> TransitionRule | None:
    for rule in TRANSITIONS:
        if rule.action == action and rule.source == status:
            return rule
    return None


def _actor_matches(rule: TransitionRule, *, role: UserRole, is_requester: bool) -> bool:
    return role in rule.roles or (rule.requester_allowed and is_requester)


def resolve_transition(
    action: ExpenseAction, *, status: ExpenseStatus, role: UserRole, is_requester: bool
) -> TransitionRule:
    """
    Return the rule that lets this actor perform `action` from `status`.

    Raises ForbiddenError when the actor may not perform the action from the current
    status (or from any status), InvalidTransitionError when the actor could perform
    it but the request is not in a predecessor status.
    """
    candidates = rules_for(action)
    if not candidates:
        raise ValueError(f"{action.value} is not a workflow transition")

    rule = find_rule(action, status)
    if rule is not None:
        if not _actor_matches(rule, role=role, is_requester=is_requester):
            raise ForbiddenError(f"You do not have permission to {action.value.replace('_', ' ')} this expense request")
        return rule

    if not any(_actor_matches(r, role=role, is_requester=is_requester) for r in candidates):
        raise ForbiddenError(f"You do not have permission to {action.value.replace('_', ' ')} this expense request")
    raise InvalidTransitionError(
        action=action.value.replace("_", " "),
        current=status.value,
        expected=[r.source.value for r in candidates],
    )


def is_allowed(action: ExpenseAction, *, status: ExpenseStatus, role: UserRole, is_requester: bool) -> bool:
    rule = find_rule(action, status)
    return rule is not None and _actor_matches(rule, role=role, is_requester=is_requester)


def load_expense(db: Session, expense_id: int, *, with_items: bool = False) -> ExpenseRequest:
    q = db.query(ExpenseRequest).filter(ExpenseRequest.id == expense_id)
    if with_items:
        q = q.options(selectinload(ExpenseRequest.items).selectinload(ExpenseItem.category))
    expense = q.first()
    if not expense:
        raise NotFoundError("Expense request not found")
    return expense


@dataclass
class TransitionResult:
    expense: ExpenseRequest
    rule: TransitionRule
    extra: dict | None = None


# apply(expense, rule) runs the state-specific business rules and sets stage audit fields.
# It may return extra data for the response (e.g. budget warnings).
ApplyFn = Callable[[ExpenseRequest, TransitionRule], "dict | None"]


def execute_transition(
    db: Session,
    *,
    expense_id: int,
    action: ExpenseAction,
    actor: User,
    apply: ApplyFn | None = None,
    with_items: bool = False,
    details: dict | None = None,
    ip_address: str | None = None,
) -> TransitionResult:
    """
    Load -> authorize -> apply business rules -> set status -> audit -> commit -> notify.

    Everything up to the commit happens in one transaction and is rolled back on any
    error. Subscribers that run after commit (notifications) cannot fail the transition.
    """
    try:
        expense = load_expense(db, expense_id, with_items=with_items)
        rule = resolve_transition(
            action,
            status=expense.status,
            role=actor.role,
            is_requester=expense.requester_id == actor.id,
        )
        extra = apply(expense, rule) if apply is not None else None

        from_status = expense.status
        expense.status = rule.target

        event = ExpenseStatusChanged(
            expense_id=expense.id,
            request_number=expense.request_number,
            requester_id=expense.requester_id,
            actor_id=actor.id,
            action=action,
            from_status=from_status,
            to_status=rule.target,
            details=details,
            ip_address=ip_address,
        )
        event_bus.emit_before_commit(db, event)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "expense %s %s: %s -> %s by user=%s",
        event.request_number,
        action.value,
        from_status.value,
        rule.target.value,
        actor.id,
    )
    event_bus.emit_after_commit(db, event)
    db.refresh(expense)
    return TransitionResult(expense=expense, rule=rule, extra=extra)
