"""Budget categories, department budgets, allocations and departments."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from sacco_api.core.errors import NotFoundError, ValidationFailedError
from sacco_api.models.budget import Budget, BudgetAllocation, BudgetCategory
from sacco_api.models.department import Department
from sacco_api.models.enums import BudgetCategoryStatus, BudgetCategoryType, BudgetStatus
from sacco_api.models.user import User
from sacco_api.schemas.budget import (
    BudgetAllocationCreate,
    BudgetCategoryCreate,
    BudgetCategoryUpdate,
    BudgetCreate,
)
from sacco_api.schemas.department import DepartmentCreate
from sacco_api.services.activity_log import log_activity
from sacco_api.services.budget_check import q_money

logger = logging.getLogger(__name__)


# --- categories ------------------------------------------------------------


def list_categories(
    db: Session,
    *,
    type: BudgetCategoryType | None = None,  # noqa: A002
    status: BudgetCategoryStatus | None = None,
    search: str | None = None,
) -> list[BudgetCategory]:
    q = db.query(BudgetCategory)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(BudgetCategory.name.ilike(like) | BudgetCategory.code.ilike(like))
    if type is not None:
        q = q.filter(BudgetCategory.type == type)
    if status is not None:
        q = q.filter(BudgetCategory.status == status)
    return q.order_by(BudgetCategory.name.asc(), BudgetCategory.id.asc()).all()


def summarize_categories(categories: list[BudgetCategory]) -> dict[str, Decimal]:
    allocated = q_money(sum((Decimal(str(c.allocated_amount)) for c in categories), Decimal("0")))
    used = q_money(sum((Decimal(str(c.used_amount)) for c in categories), Decimal("0")))
    return {"total_allocated": allocated, "total_used": used, "total_available": q_money(allocated - used)}


def get_category(db: Session, category_id: int) -> BudgetCategory:
    category = db.query(BudgetCategory).filter(BudgetCategory.id == category_id).first()
    if not category:
        raise NotFoundError("Budget category not found")
    return category


def create_category(db: Session, *, payload: BudgetCategoryCreate, user: User) -> BudgetCategory:
    code = payload.code.strip().upper()
    if db.query(BudgetCategory).filter(BudgetCategory.code == code).first():
        raise ValidationFailedError(f"Budget category code {code} already exists")
    category = BudgetCategory(
        name=payload.name.strip(),
        code=code,
        description=payload.description,
        type=payload.type,
        allocated_amount=q_money(payload.allocated_amount),
        used_amount=Decimal("0.00"),
        status=BudgetCategoryStatus.ACTIVE,
    )
    db.add(category)
    db.flush()
    log_activity(
        db,
        action="budget_category_create",
        entity_type="budget_category",
        entity_id=category.id,
        user_id=user.id,
        details={"code": code, "allocatedAmount": str(category.allocated_amount)},
        commit=False,
    )
    db.commit()
    db.refresh(category)
    return category


def update_category(db: Session, *, category_id: int, payload: BudgetCategoryUpdate, user: User) -> BudgetCategory:
    category = get_category(db, category_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("code"):
        code = changes["code"].strip().upper()
        clash = (
            db.query(BudgetCategory).filter(BudgetCategory.code == code, BudgetCategory.id != category.id).first()
        )
        if clash:
            raise ValidationFailedError(f"Budget category code {code} already exists")
        changes["code"] = code
    for key, value in changes.items():
        setattr(category, key, value)
    log_activity(
        db,
        action="budget_category_update",
        entity_type="budget_category",
        entity_id=category.id,
        user_id=user.id,
        details={k: (v.value if hasattr(v, "value") else v) for k, v in changes.items()},
        commit=False,
    )
    db.commit()
    db.refresh(category)
    return category


def allocate_category(db: Session, *, category_id: int, allocated_amount: Decimal, user: User) -> BudgetCategory:
    """Set a category's allocated_amount. It may not drop below what is already used."""
    category = get_category(db, category_id)
    new_amount = q_money(allocated_amount)
    if new_amount < Decimal(str(category.used_amount)):
        raise ValidationFailedError(
            f"Allocated amount cannot be less than the amount already used ({category.used_amount})"
        )
    previous = category.allocated_amount
    category.allocated_amount = new_amount
    log_activity(
        db,
        action="budget_category_allocate",
        entity_type="budget_category",
        entity_id=category.id,
        user_id=user.id,
        details={"from": str(previous), "to": str(new_amount)},
        commit=False,
    )
    db.commit()
    db.refresh(category)
    logger.info("budget category %s allocated %s -> %s by user=%s", category.code, previous, new_amount, user.id)
    return category


# --- budgets ---------------------------------------------------------------


def _require_department(db: Session, department_id: int) -> Department:
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise NotFoundError("Department not found")
    return department


def create_budget(db: Session, *, payload: BudgetCreate, user: User) -> Budget:
    if payload.end_date <= payload.start_date:
        raise ValidationFailedError("End date must be after start date")
    _require_department(db, payload.department_id)
    existing = (
        db.query(Budget)
        .filter(
            Budget.department_id == payload.department_id,
            Budget.fiscal_year == payload.fiscal_year,
            Budget.status != BudgetStatus.CLOSED,
        )
        .first()
    )
    if existing:
        raise ValidationFailedError(
            f"An open budget already exists for this department and fiscal year {payload.fiscal_year}"
        )

    budget = Budget(
        fiscal_year=payload.fiscal_year,
        department_id=payload.department_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        total_amount=q_money(payload.total_amount),
        status=payload.status,
        description=payload.description,
        created_by_user_id=user.id,
    )
    db.add(budget)
    db.flush()
    log_activity(
        db,
        action="budget_create",
        entity_type="budget",
        entity_id=budget.id,
        user_id=user.id,
        details={"fiscalYear": budget.fiscal_year, "departmentId": budget.department_id},
        commit=False,
    )
    db.commit()
    return get_budget(db, budget.id)


def get_budget(db: Session, budget_id: int) -> Budget:
    budget = db.query(Budget).options(selectinload(Budget.department)).filter(Budget.id == budget_id).first()
    if not budget:
        raise NotFoundError("Budget not found")
    return budget


def list_budgets(
    db: Session, *, fiscal_year: int | None = None, department_id: int | None = None
) -> list[Budget]:
    q = db.query(Budget).options(selectinload(Budget.department))
    if fiscal_year is not None:
        q = q.filter(Budget.fiscal_year == fiscal_year)
    if department_id is not None:
        q = q.filter(Budget.department_id == department_id)
    return q.order_by(Budget.fiscal_year.desc(), Budget.id.desc()).all()


# --- allocations -----------------------------------------------------------


def create_allocation(db: Session, *, payload: BudgetAllocationCreate, user: User) -> BudgetAllocation:
    budget = get_budget(db, payload.budget_id)
    _require_department(db, payload.department_id)
    get_category(db, payload.category_id)
    if budget.status == BudgetStatus.CLOSED:
        raise ValidationFailedError("Cannot allocate from a closed budget")

    allocated = (
        db.query(func.coalesce(func.sum(BudgetAllocation.amount), 0))
        .filter(BudgetAllocation.budget_id == budget.id)
        .scalar()
    )
    remaining = q_money(Decimal(str(budget.total_amount)) - Decimal(str(allocated)))
    if q_money(payload.amount) > remaining:
        raise ValidationFailedError(f"Allocation exceeds the remaining budget amount ({remaining})")

    allocation = BudgetAllocation(
        budget_id=budget.id,
        department_id=payload.department_id,
        category_id=payload.category_id,
        amount=q_money(payload.amount),
        used_amount=Decimal("0.00"),
        fiscal_year=payload.fiscal_year or budget.fiscal_year,
    )
    db.add(allocation)
    db.flush()
    log_activity(
        db,
        action="budget_allocation_create",
        entity_type="budget_allocation",
        entity_id=allocation.id,
        user_id=user.id,
        details={"budgetId": budget.id, "categoryId": payload.category_id, "amount": str(allocation.amount)},
        commit=False,
    )
    db.commit()
    db.refresh(allocation)
    return allocation


def list_allocations(
    db: Session,
    *,
    budget_id: int | None = None,
    department_id: int | None = None,
    category_id: int | None = None,
    fiscal_year: int | None = None,
) -> list[BudgetAllocation]:
    q = db.query(BudgetAllocation)
    if budget_id is not None:
        q = q.filter(BudgetAllocation.budget_id == budget_id)
    if department_id is not None:
        q = q.filter(BudgetAllocation.department_id == department_id)
    if category_id is not None:
        q = q.filter(BudgetAllocation.category_id == category_id)
    if fiscal_year is not None:
        q = q.filter(BudgetAllocation.fiscal_year == fiscal_year)
    return q.order_by(BudgetAllocation.id.asc()).all()


# --- departments -----------------------------------------------------------


def list_departments(db: Session) -> list[Department]:
    return db.query(Department).order_by(Department.name.asc()).all()


def create_department(db: Session, *, payload: DepartmentCreate, user: User) -> Department:
    code = payload.code.strip().upper()
    if db.query(Department).filter(Department.code == code).first():
        raise ValidationFailedError(f"Department code {code} already exists")
    department = Department(name=payload.name.strip(), code=code, description=payload.description)
    db.add(department)
    db.flush()
    log_activity(
        db,
        action="department_create",
        entity_type="department",
        entity_id=department.id,
        user_id=user.id,
        details={"code": code},
        commit=False,
    )
    db.commit()
    db.refresh(department)
    return department
