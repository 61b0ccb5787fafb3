from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sacco_api.models.expense import ExpenseItem

logger = logging.getLogger(__name__)


def q_money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _dec(x) -> Decimal:  # noqa: ANN001
    return Decimal(str(x if x is not None else 0))


def item_estimated_amount(*, unit_price: Decimal, quantity: int | None = None) -> Decimal:
    """quantity x unit_price, or unit_price alone when quantity is absent."""
    if quantity:
        return q_money(_dec(unit_price) * Decimal(quantity))
    return q_money(_dec(unit_price))


def amount_to_apply(*, actual_amount: Decimal | None, estimated_amount: Decimal) -> Decimal:
    """The amount a line consumes from its category: actual when set (> 0), otherwise the estimate."""
    actual = _dec(actual_amount)
    if actual > 0:
        return q_money(actual)
    return q_money(_dec(estimated_amount))


@dataclass(frozen=True)
class BudgetExceedance:
    category_id: int
    category_name: str
    allocated: Decimal
    currently_used: Decimal
    requested: Decimal

    @property
    def deficit(self) -> Decimal:
        return q_money(self.currently_used + self.requested - self.allocated)

    def to_dict(self) -> dict:
        return {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "allocated": str(self.allocated),
            "currentlyUsed": str(self.currently_used),
            "requested": str(self.requested),
            "deficit": str(self.deficit),
        }


def requested_by_category(items: Iterable[ExpenseItem]) -> dict[int, Decimal]:
    """Sum of amount_to_apply per category_id, in first-seen order."""
    totals: dict[int, Decimal] = {}
    for item in items:
        amount = amount_to_apply(actual_amount=item.actual_amount, estimated_amount=item.estimated_amount)
        totals[item.category_id] = q_money(totals.get(item.category_id, Decimal("0.00")) + amount)
    return totals


def find_budget_exceedances(items: Iterable[ExpenseItem], *, stage: str) -> list[BudgetExceedance]:
    """
    Compare used + requested against allocated for every category the items touch.

    Items sharing a category are summed first, so a request cannot pass the check
    one line at a time. Categories are read from item.category as loaded.
    """
    items = list(items)
    categories = {item.category_id: item.category for item in items if item.category is not None}
    out: list[BudgetExceedance] = []
    for category_id, requested in requested_by_category(items).items():
        category = categories.get(category_id)
        if category is None:
            continue
        allocated = q_money(_dec(category.allocated_amount))
        used = q_money(_dec(category.used_amount))
        would_exceed = used + requested > allocated
        logger.debug(
            "budget check (%s) category=%s allocated=%s used=%s requested=%s exceed=%s",
            stage,
            category.code,
            allocated,
            used,
            requested,
            would_exceed,
        )
        if would_exceed:
            out.append(
                BudgetExceedance(
                    category_id=category_id,
                    category_name=category.name,
                    allocated=allocated,
                    currently_used=used,
                    requested=requested,
                )
            )
    return out
