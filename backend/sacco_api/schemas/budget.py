from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import Field, field_validator

from sacco_api.models.enums import BudgetCategoryStatus, BudgetCategoryType, BudgetStatus
from sacco_api.schemas.common import ApiModel, Timestamped
from sacco_api.schemas.department import DepartmentOut


class BudgetCategoryCreate(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    code: str = Field(min_length=1, max_length=32)
    description: str | None = None
    type: BudgetCategoryType = BudgetCategoryType.EXPENSE
    allocated_amount: Decimal = Field(default=Decimal("0"), ge=0)


class BudgetCategoryUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    code: str | None = Field(default=None, min_length=1, max_length=32)
    description: str | None = None
    type: BudgetCategoryType | None = None
    status: BudgetCategoryStatus | None = None

    # Omit a field to leave it unchanged; only description may be cleared.
    @field_validator("name", "code", "type", "status", mode="before")
    @classmethod
    def _not_null(cls, v):  # noqa: ANN001
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class CategoryAllocate(ApiModel):
    # New allocated_amount, not an increment.
    allocated_amount: Decimal = Field(ge=0)


class BudgetCategoryOut(Timestamped):
    id: int
    name: str
    code: str
    description: str | None
    type: BudgetCategoryType
    allocated_amount: Decimal
    used_amount: Decimal
    status: BudgetCategoryStatus
    available_amount: Decimal


class BudgetCategoryEnvelope(ApiModel):
    status: str = "success"
    message: str | None = None
    data: BudgetCategoryOut


class BudgetCategorySummary(ApiModel):
    total_allocated: Decimal
    total_used: Decimal
    total_available: Decimal


class BudgetCategoryListEnvelope(ApiModel):
    status: str = "success"
    data: list[BudgetCategoryOut]
    summary: BudgetCategorySummary


class BudgetCreate(ApiModel):
    fiscal_year: int = Field(ge=2000, le=2100)
    department_id: int
    start_date: dt.date
    end_date: dt.date
    total_amount: Decimal = Field(ge=0)
    status: BudgetStatus = BudgetStatus.DRAFT
    description: str | None = None


class BudgetOut(Timestamped):
    id: int
    fiscal_year: int
    department_id: int
    start_date: dt.date
    end_date: dt.date
    total_amount: Decimal
    status: BudgetStatus
    description: str | None
    created_by_user_id: int
    department: DepartmentOut | None = None


class BudgetEnvelope(ApiModel):
    status: str = "success"
    message: str
    data: BudgetOut


class BudgetListEnvelope(ApiModel):
    status: str = "success"
    data: list[BudgetOut]


class BudgetAllocationCreate(ApiModel):
    budget_id: int
    department_id: int
    category_id: int
    amount: Decimal = Field(gt=0)
    fiscal_year: int | None = Field(default=None, ge=2000, le=2100)


class BudgetAllocationOut(Timestamped):
    id: int
    budget_id: int
    department_id: int
    category_id: int
    amount: Decimal
    used_amount: Decimal
    fiscal_year: int


class BudgetAllocationEnvelope(ApiModel):
    status: str = "success"
    message: str
    data: BudgetAllocationOut


class BudgetAllocationListEnvelope(ApiModel):
    status: str = "success"
    data: list[BudgetAllocationOut]
