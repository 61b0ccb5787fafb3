"""Budget usage commit for processed expenses."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from sacco_api.models.budget import BudgetAllocation, BudgetCategory
from sacco_api.models.expense import ExpenseRequest
from sacco_api.services.budget_check import amount_to_apply, q_money

logger = logging.getLogger(__name__)


def _increment_category(db: Session, *, category_id: int, amount: Decimal) -> None:
    db.execute(
        update(BudgetCategory)
        .where(BudgetCategory.id == category_id)
        .values(used_amount=BudgetCategory.used_amount + amount)
        .execution_options(synchronize_session=False)
    )


def _increment_allocation(db: Session, *, allocation_id: int, amount: Decimal) -> None:
    db.execute(
        update(BudgetAllocation)
        .where(BudgetAllocation.id == allocation_id)
        .values(used_amount=BudgetAllocation.used_amount + amount)
        .execution_options(synchronize_session=False)
    )


def commit_budget_usage(db: Session, expense: ExpenseRequest) -> Decimal:
    """
    Add every item's amount to its category (and linked allocation) used_amount.

    Increments are single UPDATE ... SET used_amount = used_amount + :amount statements,
    so concurrent processings that share a category both land. Nothing is committed here;
    the caller owns the transaction. Returns the total applied.
    """
    total = Decimal("0.00")
    touched_categories: set[int] = set()
    touched_allocations: set[int] = set()

    for item in expense.items:
        amount = amount_to_apply(actual_amount=item.actual_amount, estimated_amount=item.estimated_amount)
        total = q_money(total + amount)

        _increment_category(db, category_id=item.category_id, amount=amount)
        touched_categories.add(item.category_id)

        if item.budget_allocation_id is not None:
            _increment_allocation(db, allocation_id=item.budget_allocation_id, amount=amount)
            touched_allocations.add(item.budget_allocation_id)
        else:
            logger.info(
                "expense %s item %s: no budget allocation linked for category %s, category updated only",
                expense.request_number,
                item.id,
                item.category_id,
            )

    # In-session copies are stale after the SQL increments.
    for item in expense.items:
        if item.category is not None:
            db.expire(item.category)
        if item.budget_allocation is not None:
            db.expire(item.budget_allocation)

    logger.info(
        "expense %s committed %s to categories=%s allocations=%s",
        expense.request_number,
        total,
        sorted(touched_categories),
        sorted(touched_allocations),
    )
    return total
