"""Service-level tests for the expense lifecycle and budget commit."""

import datetime as dt
import re
from decimal import Decimal
from types import SimpleNamespace

import pytest

from sacco_api.core.config import settings
from sacco_api.core.errors import (
    BudgetExceededError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from sacco_api.models.activity_log import ActivityLog
from sacco_api.models.budget import Budget, BudgetAllocation
from sacco_api.models.enums import ExpenseItemStatus, ExpenseStatus, UserRole
from sacco_api.models.expense import ExpenseRequest, Receipt
from sacco_api.models.notification import Notification
from sacco_api.schemas.expense import ExpenseCreate, ExpenseItemCreate
from sacco_api.services import expenses as svc
from sacco_api.services import notifications


def _actions(db, expense_id):
    rows = (
        db.query(ActivityLog)
        .filter(ActivityLog.entity_type == "expense_request", ActivityLog.entity_id == expense_id)
        .order_by(ActivityLog.id)
        .all()
    )
    return [r.action for r in rows]


def _used(db, category):
    db.expire_all()
    return Decimal(str(category.used_amount))


# --- creation and items ----------------------------------------------------


def test_create_sums_item_estimates(db, staff, make_category, make_expense):
    cat = make_category("1000.00")
    expense = make_expense(staff[UserRole.CLERK], [(cat, "10.00", 3), (cat, "5.00")])

    assert expense.status == ExpenseStatus.DRAFT
    assert re.fullmatch(r"EXP-\d{4}-\d{5}", expense.request_number)
    assert expense.total_estimated_amount == Decimal("35.00")
    assert [i.estimated_amount for i in expense.items] == [Decimal("30.00"), Decimal("5.00")]
    assert [i.quantity for i in expense.items] == [3, 1]
    assert expense.fiscal_year == dt.date.today().year
    assert _actions(db, expense.id) == ["expense_create"]


def test_create_without_items_keeps_provisional_total(db, staff, make_expense):
    expense = make_expense(staff[UserRole.CLERK], total_amount="500")
    assert expense.items == []
    assert expense.total_estimated_amount == Decimal("500.00")


def test_create_rejects_unknown_category(db, staff, make_expense):
    ghost = SimpleNamespace(id=9999, name="Ghost")
    with pytest.raises(NotFoundError):
        make_expense(staff[UserRole.CLERK], [(ghost, "10.00")])


def test_adding_items_recomputes_total(db, staff, make_category, make_expense):
    cat = make_category("1000.00")
    clerk = staff[UserRole.CLERK]
    expense = make_expense(clerk, total_amount="999")

    for price, qty in (("10.00", 2), ("7.25", None), ("100.00", 1)):
        item, refreshed = svc.add_expense_item(
            db,
            expense_id=expense.id,
            payload=ExpenseItemCreate(category_id=cat.id, description="line", unit_price=Decimal(price), quantity=qty),
            user=clerk,
        )
        assert item.id is not None

    db.refresh(refreshed)
    assert refreshed.total_estimated_amount == Decimal("127.25")
    assert len(refreshed.items) == 3
    assert refreshed.status == ExpenseStatus.DRAFT


def test_items_only_added_by_requester_while_draft(db, staff, make_user, make_category, make_expense, advance):
    cat = make_category("1000.00")
    clerk = staff[UserRole.CLERK]
    expense = make_expense(clerk, [(cat, "10.00")])
    payload = ExpenseItemCreate(category_id=cat.id, description="extra", unit_price=Decimal("1"))

    with pytest.raises(ForbiddenError):
        svc.add_expense_item(db, expense_id=expense.id, payload=payload, user=make_user(UserRole.CLERK))

    advance(expense, ExpenseStatus.SUBMITTED)
    with pytest.raises(InvalidTransitionError):
        svc.add_expense_item(db, expense_id=expense.id, payload=payload, user=clerk)


def test_submit_requires_items(db, staff, make_expense):
    expense = make_expense(staff[UserRole.CLERK])
    with pytest.raises(ValidationFailedError) as exc:
        svc.submit_expense(db, expense_id=expense.id, user=staff[UserRole.CLERK])
    assert exc.value.message == "Expense request must have at least one item"
    db.refresh(expense)
    assert expense.status == ExpenseStatus.DRAFT


# --- processing: budget commit ----------------------------------------------


def test_processing_commits_to_budget(db, staff, make_category, make_expense, advance):
    cat = make_category("100.00", "90.00")
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.PROCESSED)

    assert _used(db, cat) == Decimal("95.00")
    assert expense.total_actual_amount == Decimal("5.00")
    assert expense.processed_by_user_id == staff[UserRole.CASHIER].id
    assert expense.transaction_details == "MPESA REF QX12"
    assert {i.status for i in expense.items} == {ExpenseItemStatus.APPROVED}
    assert _actions(db, expense.id)[-1] == "expense_process"


def test_processing_over_budget_is_blocked_and_writes_nothing(db, staff, make_category, make_expense, advance):
    cat = make_category("100.00", "90.00")
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "20.00")]), ExpenseStatus.MANAGER_APPROVED)
    before = _actions(db, expense.id)

    with pytest.raises(BudgetExceededError) as exc:
        svc.process_by_cashier(
            db, expense_id=expense.id, user=staff[UserRole.CASHIER], transaction_details="MPESA REF QX12"
        )

    payload = exc.value.to_payload()
    assert payload["status"] == "budget_exceeded"
    assert payload["data"]["requestNumber"] == expense.request_number
    [item] = payload["data"]["exceededItems"]
    assert item["categoryId"] == cat.id
    assert item["deficit"] == "10.00"

    assert _used(db, cat) == Decimal("90.00")
    assert expense.status == ExpenseStatus.MANAGER_APPROVED
    assert expense.processed_by_user_id is None
    assert _actions(db, expense.id) == before


def test_processing_with_override_exceeds_budget(db, staff, make_category, make_expense, advance):
    cat = make_category("100.00", "90.00")
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "20.00")]), ExpenseStatus.MANAGER_APPROVED)

    result = svc.process_by_cashier(
        db,
        expense_id=expense.id,
        user=staff[UserRole.CASHIER],
        transaction_details="MPESA REF QX12",
        override_budget_limit=True,
    )

    assert result.expense.status == ExpenseStatus.PROCESSED
    assert result.extra["budget_warnings"][0]["deficit"] == "10.00"
    assert _used(db, cat) == Decimal("110.00")
    entry = db.query(ActivityLog).filter(ActivityLog.action == "expense_process").one()
    assert entry.details["overrideBudgetLimit"] is True
    assert entry.details["appliedAmount"] == "20.00"


def test_processing_requires_transaction_details(db, staff, make_category, make_expense, advance):
    cat = make_category("100.00")
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.MANAGER_APPROVED)

    with pytest.raises(ValidationFailedError) as exc:
        svc.process_by_cashier(db, expense_id=expense.id, user=staff[UserRole.CASHIER], transaction_details="  ")
    assert exc.value.message == "Transaction details are required"
    assert _used(db, cat) == Decimal("0.00")
    assert expense.status == ExpenseStatus.MANAGER_APPROVED


def test_processing_uses_actual_amount_when_set(db, staff, make_category, make_expense, advance):
    cat = make_category("100.00")
    expense = make_expense(staff[UserRole.CLERK], [(cat, "40.00")])
    expense.items[0].actual_amount = Decimal("32.50")
    db.commit()

    expense = advance(expense, ExpenseStatus.PROCESSED)
    assert _used(db, cat) == Decimal("32.50")
    assert expense.total_actual_amount == Decimal("32.50")


def test_allocations_linked_at_approval_are_charged(db, staff, department, make_category, make_expense, advance):
    travel = make_category("1000.00")
    supplies = make_category("1000.00")
    budget = Budget(
        fiscal_year=2026,
        department_id=department.id,
        start_date=dt.date(2026, 1, 1),
        end_date=dt.date(2026, 12, 31),
        total_amount=Decimal("5000.00"),
        created_by_user_id=staff[UserRole.ADMIN].id,
    )
    db.add(budget)
    db.flush()
    allocation = BudgetAllocation(
        budget_id=budget.id,
        department_id=department.id,
        category_id=travel.id,
        amount=Decimal("800.00"),
        fiscal_year=2026,
    )
    db.add(allocation)
    db.commit()

    expense = make_expense(staff[UserRole.CLERK], [(travel, "120.00"), (supplies, "30.00")])
    advance(expense, ExpenseStatus.SUBMITTED)
    svc.approve_by_accountant(
        db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT], budget_allocation_ids=[allocation.id]
    )
    db.refresh(expense)
    by_category = {i.category_id: i for i in expense.items}
    assert by_category[travel.id].budget_allocation_id == allocation.id
    assert by_category[supplies.id].budget_allocation_id is None

    advance(expense, ExpenseStatus.PROCESSED)
    db.expire_all()
    assert allocation.used_amount == Decimal("120.00")
    assert travel.used_amount == Decimal("120.00")
    assert supplies.used_amount == Decimal("30.00")


def test_unknown_allocation_aborts_approval(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.SUBMITTED)
    with pytest.raises(NotFoundError):
        svc.approve_by_accountant(db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT], budget_allocation_ids=[42])
    db.refresh(expense)
    assert expense.status == ExpenseStatus.SUBMITTED
    assert expense.accountant_approval_user_id is None


def _allocation(db, department, category, admin, amount="800.00"):
    budget = Budget(
        fiscal_year=2026,
        department_id=department.id,
        start_date=dt.date(2026, 1, 1),
        end_date=dt.date(2026, 12, 31),
        total_amount=Decimal("5000.00"),
        created_by_user_id=admin.id,
    )
    db.add(budget)
    db.flush()
    allocation = BudgetAllocation(
        budget_id=budget.id,
        department_id=department.id,
        category_id=category.id,
        amount=Decimal(amount),
        fiscal_year=2026,
    )
    db.add(allocation)
    db.commit()
    return allocation


def _create_with_allocation(db, clerk, department, category, allocation_id):
    payload = ExpenseCreate(
        title="Field visit",
        department_id=department.id,
        items=[
            ExpenseItemCreate(
                category_id=category.id,
                description="Matatu fare",
                unit_price=Decimal("120.00"),
                budget_allocation_id=allocation_id,
            )
        ],
    )
    return svc.create_expense_request(db, payload=payload, user=clerk)


def test_item_allocation_must_match_its_category(db, staff, department, make_category):
    travel = make_category("1000.00")
    supplies = make_category("1000.00")
    supplies_allocation = _allocation(db, department, supplies, staff[UserRole.ADMIN])

    with pytest.raises(ValidationFailedError):
        _create_with_allocation(db, staff[UserRole.CLERK], department, travel, supplies_allocation.id)
    with pytest.raises(NotFoundError):
        _create_with_allocation(db, staff[UserRole.CLERK], department, travel, 9999)

    assert db.query(ExpenseRequest).count() == 0


def test_added_item_allocation_must_match_its_category(db, staff, department, make_category, make_expense):
    travel = make_category("1000.00")
    supplies = make_category("1000.00")
    supplies_allocation = _allocation(db, department, supplies, staff[UserRole.ADMIN])
    clerk = staff[UserRole.CLERK]
    expense = make_expense(clerk, [(travel, "10.00")])

    for allocation_id, error in ((supplies_allocation.id, ValidationFailedError), (9999, NotFoundError)):
        payload = ExpenseItemCreate(
            category_id=travel.id, description="fuel", unit_price=Decimal("50"), budget_allocation_id=allocation_id
        )
        with pytest.raises(error):
            svc.add_expense_item(db, expense_id=expense.id, payload=payload, user=clerk)

    db.refresh(expense)
    assert len(expense.items) == 1
    assert expense.total_estimated_amount == Decimal("10.00")


def test_allocation_named_at_creation_is_charged(db, staff, department, make_category, advance):
    travel = make_category("1000.00")
    supplies = make_category("1000.00")
    travel_allocation = _allocation(db, department, travel, staff[UserRole.ADMIN])
    supplies_allocation = _allocation(db, department, supplies, staff[UserRole.ADMIN])

    expense = _create_with_allocation(db, staff[UserRole.CLERK], department, travel, travel_allocation.id)
    advance(expense, ExpenseStatus.PROCESSED)

    db.expire_all()
    assert travel.used_amount == Decimal("120.00")
    assert travel_allocation.used_amount == Decimal("120.00")
    assert supplies.used_amount == Decimal("0.00")
    assert supplies_allocation.used_amount == Decimal("0.00")


# --- approvals: advisory vs blocking budget check ---------------------------


def test_approval_over_budget_warns_by_default(db, staff, make_category, make_expense, advance):
    cat = make_category("100.00", "90.00")
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "20.00")]), ExpenseStatus.SUBMITTED)

    result = svc.approve_by_accountant(db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT], notes="ok")

    assert result.expense.status == ExpenseStatus.ACCOUNTANT_APPROVED
    assert result.expense.accountant_notes == "ok"
    [warning] = result.extra["budget_warnings"]
    assert warning["categoryId"] == cat.id
    assert _used(db, cat) == Decimal("90.00")


def test_approval_over_budget_blocks_when_configured(db, staff, make_category, make_expense, advance, monkeypatch):
    monkeypatch.setattr(settings, "approval_budget_enforcement", "block")
    cat = make_category("100.00", "90.00")
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "20.00")]), ExpenseStatus.SUBMITTED)

    with pytest.raises(BudgetExceededError):
        svc.approve_by_accountant(db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT])
    db.refresh(expense)
    assert expense.status == ExpenseStatus.SUBMITTED


def test_approval_within_budget_has_no_warnings(db, staff, make_category, make_expense, advance):
    cat = make_category("100.00")
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "20.00")]), ExpenseStatus.SUBMITTED)
    result = svc.approve_by_accountant(db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT])
    assert result.extra == {"budget_warnings": None}


# --- rejection ---------------------------------------------------------------


def test_reject_sets_audit_fields_and_item_statuses(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.ACCOUNTANT_APPROVED)

    result = svc.reject_expense(
        db, expense_id=expense.id, user=staff[UserRole.MANAGER], rejection_reason="Duplicate of EXP-2601-10001"
    )

    assert result.expense.status == ExpenseStatus.REJECTED
    assert result.expense.rejected_by_user_id == staff[UserRole.MANAGER].id
    assert result.expense.rejected_date is not None
    assert {i.status for i in result.expense.items} == {ExpenseItemStatus.REJECTED}


def test_reject_requires_reason(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.SUBMITTED)
    with pytest.raises(ValidationFailedError) as exc:
        svc.reject_expense(db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT], rejection_reason="")
    assert exc.value.message == "Rejection reason is required"
    db.refresh(expense)
    assert expense.status == ExpenseStatus.SUBMITTED


def test_rejecting_a_rejected_request_changes_nothing(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.SUBMITTED)
    svc.reject_expense(db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT], rejection_reason="No budget")
    db.refresh(expense)
    rejected_at = expense.rejected_date
    log_count = len(_actions(db, expense.id))

    with pytest.raises(InvalidTransitionError):
        svc.reject_expense(db, expense_id=expense.id, user=staff[UserRole.ADMIN], rejection_reason="Again")

    db.refresh(expense)
    assert expense.status == ExpenseStatus.REJECTED
    assert expense.rejection_reason == "No budget"
    assert expense.rejected_by_user_id == staff[UserRole.ACCOUNTANT].id
    assert expense.rejected_date == rejected_at
    assert len(_actions(db, expense.id)) == log_count


def test_rejecting_a_completed_request_fails(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(
        make_expense(staff[UserRole.CLERK], [(cat, "5.00")], requires_receipt=False), ExpenseStatus.PROCESSED
    )
    svc.mark_completed(db, expense_id=expense.id, user=staff[UserRole.CLERK])

    with pytest.raises(InvalidTransitionError):
        svc.reject_expense(db, expense_id=expense.id, user=staff[UserRole.ADMIN], rejection_reason="Too late")
    db.refresh(expense)
    assert expense.status == ExpenseStatus.COMPLETED
    assert expense.rejected_by_user_id is None


# --- completion ----------------------------------------------------------------


def test_completion_requires_receipt(db, staff, make_category, make_expense, advance):
    cat = make_category()
    clerk = staff[UserRole.CLERK]
    expense = advance(make_expense(clerk, [(cat, "5.00")]), ExpenseStatus.PROCESSED)

    with pytest.raises(ValidationFailedError) as exc:
        svc.mark_completed(db, expense_id=expense.id, user=clerk)
    assert exc.value.message == "This expense request requires receipt upload before completion"

    db.add(
        Receipt(
            expense_id=expense.id,
            file_name="receipt.pdf",
            file_path="/tmp/receipt.pdf",
            file_type="application/pdf",
            file_size=1024,
            uploaded_by_user_id=clerk.id,
        )
    )
    db.commit()

    result = svc.mark_completed(db, expense_id=expense.id, user=clerk)
    assert result.expense.status == ExpenseStatus.COMPLETED
    assert result.expense.completed_date is not None


def test_completion_without_receipt_requirement(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(
        make_expense(staff[UserRole.CLERK], [(cat, "5.00")], requires_receipt=False), ExpenseStatus.PROCESSED
    )
    result = svc.mark_completed(db, expense_id=expense.id, user=staff[UserRole.ADMIN])
    assert result.expense.status == ExpenseStatus.COMPLETED


def test_only_requester_or_admin_completes(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(
        make_expense(staff[UserRole.CLERK], [(cat, "5.00")], requires_receipt=False), ExpenseStatus.PROCESSED
    )
    with pytest.raises(ForbiddenError):
        svc.mark_completed(db, expense_id=expense.id, user=staff[UserRole.CASHIER])


def _processed_batch(clerk, cat, make_expense, advance, n):
    return [
        advance(make_expense(clerk, [(cat, "5.00")], requires_receipt=False), ExpenseStatus.PROCESSED)
        for _ in range(n)
    ]


def test_completion_allowed_up_to_the_pending_limit(db, staff, make_category, make_expense, advance):
    cat = make_category("10000.00")
    clerk = staff[UserRole.CLERK]
    processed = _processed_batch(clerk, cat, make_expense, advance, 3)

    # two other PROCESSED requests is still within the default limit
    result = svc.mark_completed(db, expense_id=processed[0].id, user=clerk)
    assert result.expense.status == ExpenseStatus.COMPLETED


def test_completion_blocked_above_the_pending_limit(db, staff, make_category, make_expense, advance, monkeypatch):
    monkeypatch.setattr(settings, "max_pending_completion", 1)
    cat = make_category("10000.00")
    clerk = staff[UserRole.CLERK]
    processed = _processed_batch(clerk, cat, make_expense, advance, 3)

    with pytest.raises(ValidationFailedError) as exc:
        svc.mark_completed(db, expense_id=processed[0].id, user=clerk)
    assert "more than 1" in exc.value.message

    db.refresh(processed[0])
    assert processed[0].status == ExpenseStatus.PROCESSED
    assert processed[0].completed_date is None


# --- reads ---------------------------------------------------------------------


def test_non_privileged_users_only_see_their_own(db, staff, make_user, make_category, make_expense):
    cat = make_category()
    mine = make_expense(staff[UserRole.CLERK], [(cat, "5.00")])
    other = make_user(UserRole.LOAN_OFFICER)
    theirs = make_expense(other, [(cat, "5.00")])

    assert [e.id for e in svc.list_expenses(db, user=other)] == [theirs.id]
    assert {e.id for e in svc.list_expenses(db, user=staff[UserRole.ACCOUNTANT])} == {mine.id, theirs.id}
    with pytest.raises(ForbiddenError):
        svc.get_expense(db, expense_id=mine.id, user=other)
    assert svc.get_expense(db, expense_id=mine.id, user=staff[UserRole.MANAGER]).id == mine.id


def test_list_filters_by_status(db, staff, make_category, make_expense, advance):
    cat = make_category()
    draft = make_expense(staff[UserRole.CLERK], [(cat, "5.00")])
    submitted = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.SUBMITTED)

    rows = svc.list_expenses(db, user=staff[UserRole.ADMIN], status=ExpenseStatus.SUBMITTED)
    assert [e.id for e in rows] == [submitted.id]
    assert draft.id not in [e.id for e in rows]


def test_counts_and_pending_completion(db, staff, make_category, make_expense, advance):
    cat = make_category()
    clerk = staff[UserRole.CLERK]
    make_expense(clerk, [(cat, "5.00")])
    processed = advance(make_expense(clerk, [(cat, "5.00")]), ExpenseStatus.PROCESSED)

    counts = svc.count_by_status(db, user=clerk)
    assert counts["DRAFT"] == 1
    assert counts["PROCESSED"] == 1
    assert counts["REJECTED"] == 0
    assert counts["total"] == 2
    assert [e.id for e in svc.list_pending_completion(db, user=clerk)] == [processed.id]


# --- events ----------------------------------------------------------------------


def test_submit_notifies_accountants_and_admins(db, staff, make_category, make_expense, advance):
    cat = make_category()
    expense = advance(make_expense(staff[UserRole.CLERK], [(cat, "5.00")]), ExpenseStatus.SUBMITTED)

    rows = (
        db.query(Notification)
        .filter(Notification.resource_id == expense.id, Notification.title == "Expense Request Submitted")
        .all()
    )
    assert {n.user_id for n in rows} == {staff[UserRole.ACCOUNTANT].id, staff[UserRole.ADMIN].id}
    assert rows[0].details["status"] == "SUBMITTED"


def test_notification_failure_does_not_undo_transition(db, staff, make_category, make_expense, monkeypatch):
    cat = make_category()
    clerk = staff[UserRole.CLERK]
    expense = make_expense(clerk, [(cat, "5.00")])

    def boom(db, event):
        raise RuntimeError("mail relay down")

    monkeypatch.setattr(notifications, "dispatch_expense_notifications", boom)
    result = svc.submit_expense(db, expense_id=expense.id, user=clerk)

    assert result.expense.status == ExpenseStatus.SUBMITTED
    db.expire_all()
    assert expense.status == ExpenseStatus.SUBMITTED
    assert _actions(db, expense.id) == ["expense_create", "expense_submit"]
