from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import Field

from sacco_api.models.enums import ExpenseItemStatus, ExpenseStatus
from sacco_api.schemas.common import ApiModel, Timestamped


class ExpenseItemCreate(ApiModel):
    category_id: int
    description: str = Field(min_length=1)
    quantity: int | None = Field(default=None, ge=1)  # absent -> 1, estimate = unit_price
    unit_price: Decimal = Field(gt=0)
    actual_amount: Decimal = Field(default=Decimal("0"), ge=0)  # > 0 overrides the estimate
    budget_allocation_id: int | None = None
    notes: str | None = None


class ExpenseCreate(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    purpose: str | None = None
    total_amount: Decimal | None = Field(default=None, ge=0)  # provisional, replaced by item sum
    department_id: int
    requires_receipt: bool = True
    fiscal_year: int | None = Field(default=None, ge=2000, le=2100)
    items: list[ExpenseItemCreate] = Field(default_factory=list)


# Required-ness of the fields below is enforced by the workflow (400 with envelope), not by the schema.
class AccountantApproval(ApiModel):
    notes: str | None = None
    budget_allocation_ids: list[int] = Field(default_factory=list)


class ManagerApproval(ApiModel):
    notes: str | None = None


class ProcessRequest(ApiModel):
    transaction_details: str | None = None
    notes: str | None = None
    override_budget_limit: bool = False


class RejectRequest(ApiModel):
    rejection_reason: str | None = None


class CategoryRef(ApiModel):
    id: int
    name: str
    code: str


class DepartmentRef(ApiModel):
    id: int
    name: str
    code: str


class ExpenseItemOut(ApiModel):
    id: int
    expense_id: int
    category_id: int
    budget_allocation_id: int | None
    description: str
    quantity: int
    unit_price: Decimal
    estimated_amount: Decimal
    actual_amount: Decimal
    status: ExpenseItemStatus
    notes: str | None
    category: CategoryRef | None = None


class ReceiptOut(ApiModel):
    id: int
    expense_id: int
    file_name: str
    file_type: str
    file_size: int
    description: str | None
    amount: Decimal | None
    vendor: str | None
    uploaded_by_user_id: int | None
    uploaded_at: dt.datetime | None


class ExpenseOut(Timestamped):
    id: int
    request_number: str
    title: str
    description: str | None
    purpose: str | None
    requester_id: int
    department_id: int
    total_estimated_amount: Decimal
    total_actual_amount: Decimal
    status: ExpenseStatus
    requires_receipt: bool
    fiscal_year: int

    accountant_approval_user_id: int | None
    accountant_approval_date: dt.datetime | None
    accountant_notes: str | None
    manager_approval_user_id: int | None
    manager_approval_date: dt.datetime | None
    manager_notes: str | None
    processed_by_user_id: int | None
    processed_date: dt.datetime | None
    transaction_details: str | None
    cashier_notes: str | None
    completed_date: dt.datetime | None
    rejected_by_user_id: int | None
    rejected_date: dt.datetime | None
    rejection_reason: str | None

    department: DepartmentRef | None = None
    items: list[ExpenseItemOut] = Field(default_factory=list)
    receipts: list[ReceiptOut] = Field(default_factory=list)


class BudgetWarningOut(ApiModel):
    category_id: int
    category_name: str
    allocated: Decimal
    currently_used: Decimal
    requested: Decimal
    deficit: Decimal


class ExpenseEnvelope(ApiModel):
    status: str = "success"
    message: str
    data: ExpenseOut
    budget_warnings: list[BudgetWarningOut] | None = None


class ExpenseListEnvelope(ApiModel):
    status: str = "success"
    data: list[ExpenseOut]


class ExpenseItemEnvelope(ApiModel):
    status: str = "success"
    message: str
    data: ExpenseItemOut
    total_estimated_amount: Decimal


class ReceiptEnvelope(ApiModel):
    status: str = "success"
    message: str
    data: ReceiptOut


class ExpenseCountsOut(ApiModel):
    status: str = "success"
    data: dict[str, int]
