"""
Expense request workflow operations.

Every status change goes through workflow.execute_transition; this module only
supplies the state-specific business rules and stage audit fields.
"""

from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from sacco_api.core.config import settings
from sacco_api.core.errors import BudgetExceededError, ForbiddenError, NotFoundError, ValidationFailedError
from sacco_api.models.budget import BudgetAllocation, BudgetCategory
from sacco_api.models.department import Department
from sacco_api.models.enums import (
    PRIVILEGED_EXPENSE_ROLES,
    BudgetCategoryStatus,
    ExpenseAction,
    ExpenseItemStatus,
    ExpenseStatus,
)
from sacco_api.models.expense import ExpenseItem, ExpenseRequest
from sacco_api.models.user import User
from sacco_api.services.budget_check import BudgetExceedance, find_budget_exceedances, item_estimated_amount, q_money
from sacco_api.services.budget_ledger import commit_budget_usage
from sacco_api.services.events import ExpenseStatusChanged, event_bus
from sacco_api.services.request_numbers import insert_with_request_number
from sacco_api.services.workflow import TransitionResult, execute_transition, load_expense

logger = logging.getLogger(__name__)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _full_options():
    return (
        selectinload(ExpenseRequest.items).selectinload(ExpenseItem.category),
        selectinload(ExpenseRequest.receipts),
        selectinload(ExpenseRequest.department),
    )


def _exceeded_payload(expense: ExpenseRequest, exceedances: list[BudgetExceedance]) -> dict:
    return {
        "expenseId": expense.id,
        "requestNumber": expense.request_number,
        "exceededItems": [e.to_dict() for e in exceedances],
    }


def _active_categories(db: Session, category_ids: set[int]) -> dict[int, BudgetCategory]:
    if not category_ids:
        return {}
    rows = db.query(BudgetCategory).filter(BudgetCategory.id.in_(category_ids)).all()
    found = {c.id: c for c in rows}
    missing = category_ids - found.keys()
    if missing:
        raise NotFoundError(f"Budget category not found: {sorted(missing)}")
    inactive = [c.code for c in rows if c.status != BudgetCategoryStatus.ACTIVE]
    if inactive:
        raise ValidationFailedError(f"Budget category is inactive: {', '.join(sorted(inactive))}")
    return found


def _check_item_allocations(db: Session, payloads) -> None:  # noqa: ANN001
    """An item may only name an existing allocation for its own category."""
    wanted = {p.budget_allocation_id for p in payloads if p.budget_allocation_id is not None}
    if not wanted:
        return
    rows = db.query(BudgetAllocation).filter(BudgetAllocation.id.in_(sorted(wanted))).all()
    found = {a.id: a for a in rows}
    missing = wanted - found.keys()
    if missing:
        raise NotFoundError(f"Budget allocation not found: {sorted(missing)}")
    for payload in payloads:
        allocation = found.get(payload.budget_allocation_id)
        if allocation is not None and allocation.category_id != payload.category_id:
            raise ValidationFailedError(
                f"Budget allocation {allocation.id} does not belong to budget category {payload.category_id}"
            )


def _build_item(payload) -> ExpenseItem:  # noqa: ANN001
    return ExpenseItem(
        category_id=payload.category_id,
        budget_allocation_id=payload.budget_allocation_id,
        description=payload.description,
        quantity=payload.quantity or 1,
        unit_price=q_money(Decimal(str(payload.unit_price))),
        estimated_amount=item_estimated_amount(unit_price=payload.unit_price, quantity=payload.quantity),
        actual_amount=q_money(Decimal(str(payload.actual_amount or 0))),
        status=ExpenseItemStatus.PENDING,
        notes=payload.notes,
    )


def _items_total(expense: ExpenseRequest) -> Decimal:
    return q_money(sum((Decimal(str(i.estimated_amount)) for i in expense.items), Decimal("0.00")))


# --- reads -----------------------------------------------------------------


def can_view(user: User, expense: ExpenseRequest) -> bool:
    return expense.requester_id == user.id or user.role in PRIVILEGED_EXPENSE_ROLES


def list_expenses(
    db: Session,
    *,
    user: User,
    status: ExpenseStatus | None = None,
    department_id: int | None = None,
) -> list[ExpenseRequest]:
    q = db.query(ExpenseRequest).options(*_full_options())
    if status is not None:
        q = q.filter(ExpenseRequest.status == status)
    if department_id is not None:
        q = q.filter(ExpenseRequest.department_id == department_id)
    if user.role not in PRIVILEGED_EXPENSE_ROLES:
        q = q.filter(ExpenseRequest.requester_id == user.id)
    return q.order_by(ExpenseRequest.created_at.desc(), ExpenseRequest.id.desc()).all()


def get_expense(db: Session, *, expense_id: int, user: User) -> ExpenseRequest:
    expense = db.query(ExpenseRequest).options(*_full_options()).filter(ExpenseRequest.id == expense_id).first()
    if not expense:
        raise NotFoundError("Expense request not found")
    if not can_view(user, expense):
        raise ForbiddenError("You do not have permission to view this expense request")
    return expense


def list_pending_completion(db: Session, *, user: User) -> list[ExpenseRequest]:
    return (
        db.query(ExpenseRequest)
        .options(*_full_options())
        .filter(ExpenseRequest.requester_id == user.id, ExpenseRequest.status == ExpenseStatus.PROCESSED)
        .order_by(ExpenseRequest.updated_at.desc(), ExpenseRequest.id.desc())
        .all()
    )


def count_by_status(db: Session, *, user: User) -> dict[str, int]:
    counts = {s.value: 0 for s in ExpenseStatus}
    rows = (
        db.query(ExpenseRequest.status, func.count(ExpenseRequest.id))
        .filter(ExpenseRequest.requester_id == user.id)
        .group_by(ExpenseRequest.status)
        .all()
    )
    for status, n in rows:
        counts[ExpenseStatus(status).value] = int(n)
    counts["total"] = sum(counts.values())
    return counts


# --- creation --------------------------------------------------------------


def create_expense_request(db: Session, *, payload, user: User, ip_address: str | None = None) -> ExpenseRequest:  # noqa: ANN001
    """
    Create a DRAFT request (and its items) in one transaction.

    With items, total_estimated_amount is their sum; without, the provisional
    payload.total_amount (or 0) is kept until the first item is added.
    """
    try:
        if not db.query(Department).filter(Department.id == payload.department_id).first():
            raise NotFoundError("Department not found")
        _active_categories(db, {i.category_id for i in payload.items})
        _check_item_allocations(db, payload.items)

        expense = ExpenseRequest(
            title=payload.title,
            description=payload.description,
            purpose=payload.purpose,
            requester_id=user.id,
            department_id=payload.department_id,
            total_estimated_amount=q_money(Decimal(str(payload.total_amount or 0))),
            total_actual_amount=Decimal("0.00"),
            status=ExpenseStatus.DRAFT,
            requires_receipt=payload.requires_receipt,
            fiscal_year=payload.fiscal_year or dt.date.today().year,
        )
        insert_with_request_number(db, expense)

        for item_payload in payload.items:
            expense.items.append(_build_item(item_payload))
        if payload.items:
            expense.total_estimated_amount = _items_total(expense)

        event = ExpenseStatusChanged(
            expense_id=expense.id,
            request_number=expense.request_number,
            requester_id=user.id,
            actor_id=user.id,
            action=ExpenseAction.CREATE,
            from_status=None,
            to_status=ExpenseStatus.DRAFT,
            details={"items": len(payload.items)},
            ip_address=ip_address,
        )
        event_bus.emit_before_commit(db, event)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("expense %s created by user=%s", expense.request_number, user.id)
    event_bus.emit_after_commit(db, event)
    return get_expense(db, expense_id=expense.id, user=user)


# --- transitions -----------------------------------------------------------


def add_expense_item(
    db: Session, *, expense_id: int, payload, user: User, ip_address: str | None = None  # noqa: ANN001
) -> tuple[ExpenseItem, ExpenseRequest]:
    created: list[ExpenseItem] = []

    def apply(expense: ExpenseRequest, rule) -> None:  # noqa: ANN001
        _active_categories(db, {payload.category_id})
        _check_item_allocations(db, [payload])
        item = _build_item(payload)
        expense.items.append(item)
        expense.total_estimated_amount = _items_total(expense)
        db.flush()
        created.append(item)

    result = execute_transition(
        db,
        expense_id=expense_id,
        action=ExpenseAction.ADD_ITEM,
        actor=user,
        apply=apply,
        with_items=True,
        details={"categoryId": payload.category_id},
        ip_address=ip_address,
    )
    item = created[0]
    db.refresh(item)
    return item, result.expense


def submit_expense(db: Session, *, expense_id: int, user: User, ip_address: str | None = None) -> TransitionResult:
    def apply(expense: ExpenseRequest, rule) -> None:  # noqa: ANN001
        if not expense.items:
            raise ValidationFailedError("Expense request must have at least one item")

    return execute_transition(
        db,
        expense_id=expense_id,
        action=ExpenseAction.SUBMIT,
        actor=user,
        apply=apply,
        with_items=True,
        ip_address=ip_address,
    )


def _approval_budget_check(expense: ExpenseRequest, *, stage: str) -> list[dict] | None:
    exceedances = find_budget_exceedances(expense.items, stage=stage)
    if not exceedances:
        return None
    if settings.approval_budget_enforcement == "block":
        raise BudgetExceededError(data=_exceeded_payload(expense, exceedances))
    logger.warning(
        "expense %s exceeds budget at %s (advisory): %s",
        expense.request_number,
        stage,
        [e.category_id for e in exceedances],
    )
    return [e.to_dict() for e in exceedances]


def _link_allocations(db: Session, expense: ExpenseRequest, allocation_ids: list[int]) -> None:
    """Point each item at the allocation (among allocation_ids) for its category, if any."""
    ids = list(dict.fromkeys(allocation_ids))
    if not ids:
        return
    allocations = db.query(BudgetAllocation).filter(BudgetAllocation.id.in_(ids)).all()
    missing = set(ids) - {a.id for a in allocations}
    if missing:
        raise NotFoundError(f"Budget allocation not found: {sorted(missing)}")

    by_category: dict[int, BudgetAllocation] = {}
    for a in sorted(allocations, key=lambda a: ids.index(a.id)):
        by_category.setdefault(a.category_id, a)

    for item in expense.items:
        allocation = by_category.get(item.category_id)
        if allocation is None:
            logger.info(
                "expense %s item %s: none of allocations %s covers category %s",
                expense.request_number,
                item.id,
                ids,
                item.category_id,
            )
            continue
        item.budget_allocation_id = allocation.id


def approve_by_accountant(
    db: Session,
    *,
    expense_id: int,
    user: User,
    notes: str | None = None,
    budget_allocation_ids: list[int] | None = None,
    ip_address: str | None = None,
) -> TransitionResult:
    def apply(expense: ExpenseRequest, rule) -> dict:  # noqa: ANN001
        warnings = _approval_budget_check(expense, stage="accountant approval")
        _link_allocations(db, expense, budget_allocation_ids or [])
        expense.accountant_approval_user_id = user.id
        expense.accountant_approval_date = _now()
        expense.accountant_notes = notes
        return {"budget_warnings": warnings}

    return execute_transition(
        db,
        expense_id=expense_id,
        action=ExpenseAction.APPROVE_ACCOUNTANT,
        actor=user,
        apply=apply,
        with_items=True,
        details={"budgetAllocationIds": list(budget_allocation_ids or [])},
        ip_address=ip_address,
    )


def approve_by_manager(
    db: Session, *, expense_id: int, user: User, notes: str | None = None, ip_address: str | None = None
) -> TransitionResult:
    def apply(expense: ExpenseRequest, rule) -> dict:  # noqa: ANN001
        warnings = _approval_budget_check(expense, stage="manager approval")
        expense.manager_approval_user_id = user.id
        expense.manager_approval_date = _now()
        expense.manager_notes = notes
        return {"budget_warnings": warnings}

    return execute_transition(
        db,
        expense_id=expense_id,
        action=ExpenseAction.APPROVE_MANAGER,
        actor=user,
        apply=apply,
        with_items=True,
        ip_address=ip_address,
    )


def _lock_categories(db: Session, expense: ExpenseRequest) -> None:
    """Re-read (and on Postgres row-lock) the categories the items draw from."""
    category_ids = {i.category_id for i in expense.items}
    if not category_ids:
        return
    (
        db.query(BudgetCategory)
        .filter(BudgetCategory.id.in_(category_ids))
        .order_by(BudgetCategory.id)
        .with_for_update()
        .populate_existing()
        .all()
    )


def process_by_cashier(
    db: Session,
    *,
    expense_id: int,
    user: User,
    transaction_details: str | None,
    notes: str | None = None,
    override_budget_limit: bool = False,
    ip_address: str | None = None,
) -> TransitionResult:
    """
    MANAGER_APPROVED -> PROCESSED, committing item amounts to their budgets.

    Without override_budget_limit any category exceedance aborts with BudgetExceededError
    and nothing is written. Status, budget increments and the audit entry share one transaction.
    """
    details: dict = {"overrideBudgetLimit": bool(override_budget_limit)}

    def apply(expense: ExpenseRequest, rule) -> dict | None:  # noqa: ANN001
        if not (transaction_details or "").strip():
            raise ValidationFailedError("Transaction details are required")

        _lock_categories(db, expense)
        exceedances = find_budget_exceedances(expense.items, stage="processing")
        if exceedances and not override_budget_limit:
            logger.warning(
                "expense %s blocked at processing, budget exceeded: %s",
                expense.request_number,
                [e.to_dict() for e in exceedances],
            )
            raise BudgetExceededError(data=_exceeded_payload(expense, exceedances))
        if exceedances:
            logger.warning(
                "expense %s processed over budget with override by user=%s: %s",
                expense.request_number,
                user.id,
                [e.category_id for e in exceedances],
            )

        expense.processed_by_user_id = user.id
        expense.processed_date = _now()
        expense.transaction_details = transaction_details
        expense.cashier_notes = notes

        applied = commit_budget_usage(db, expense)
        expense.total_actual_amount = applied
        for item in expense.items:
            item.status = ExpenseItemStatus.APPROVED
        details["appliedAmount"] = str(applied)
        if exceedances:
            return {"budget_warnings": [e.to_dict() for e in exceedances]}
        return None

    return execute_transition(
        db,
        expense_id=expense_id,
        action=ExpenseAction.PROCESS,
        actor=user,
        apply=apply,
        with_items=True,
        details=details,
        ip_address=ip_address,
    )


def mark_completed(db: Session, *, expense_id: int, user: User, ip_address: str | None = None) -> TransitionResult:
    def apply(expense: ExpenseRequest, rule) -> None:  # noqa: ANN001
        if expense.requires_receipt and not expense.receipts:
            raise ValidationFailedError("This expense request requires receipt upload before completion")
        others_pending = (
            db.query(func.count(ExpenseRequest.id))
            .filter(
                ExpenseRequest.requester_id == expense.requester_id,
                ExpenseRequest.status == ExpenseStatus.PROCESSED,
                ExpenseRequest.id != expense.id,
            )
            .scalar()
        )
        if others_pending > settings.max_pending_completion:
            raise ValidationFailedError(
                f"You cannot have more than {settings.max_pending_completion} expense requests pending completion"
            )
        expense.completed_date = _now()

    return execute_transition(
        db,
        expense_id=expense_id,
        action=ExpenseAction.COMPLETE,
        actor=user,
        apply=apply,
        ip_address=ip_address,
    )


def reject_expense(
    db: Session, *, expense_id: int, user: User, rejection_reason: str | None, ip_address: str | None = None
) -> TransitionResult:
    def apply(expense: ExpenseRequest, rule) -> None:  # noqa: ANN001
        if not (rejection_reason or "").strip():
            raise ValidationFailedError("Rejection reason is required")
        expense.rejected_by_user_id = user.id
        expense.rejected_date = _now()
        expense.rejection_reason = rejection_reason
        for item in expense.items:
            item.status = ExpenseItemStatus.REJECTED

    return execute_transition(
        db,
        expense_id=expense_id,
        action=ExpenseAction.REJECT,
        actor=user,
        apply=apply,
        with_items=True,
        ip_address=ip_address,
    )


def reload(db: Session, expense_id: int) -> ExpenseRequest:
    """Fresh copy with items, receipts and department for responses."""
    db.expire_all()
    expense = db.query(ExpenseRequest).options(*_full_options()).filter(ExpenseRequest.id == expense_id).first()
    if not expense:
        raise NotFoundError("Expense request not found")
    return expense


__all__ = [
    "add_expense_item",
    "approve_by_accountant",
    "approve_by_manager",
    "can_view",
    "count_by_status",
    "create_expense_request",
    "get_expense",
    "list_expenses",
    "list_pending_completion",
    "load_expense",
    "mark_completed",
    "process_by_cashier",
    "reject_expense",
    "reload",
    "submit_expense",
]
