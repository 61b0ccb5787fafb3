from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sacco_api.api.deps import require_auth, require_roles
from sacco_api.db.session import get_db
from sacco_api.models.enums import UserRole
from sacco_api.models.user import User
from sacco_api.schemas.budget import (
    BudgetAllocationCreate,
    BudgetAllocationEnvelope,
    BudgetAllocationListEnvelope,
    BudgetAllocationOut,
)
from sacco_api.services import budgets as budget_service

router = APIRouter()


@router.post("/", response_model=BudgetAllocationEnvelope, status_code=status.HTTP_201_CREATED)
def create_allocation(
    payload: BudgetAllocationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
):
    allocation = budget_service.create_allocation(db, payload=payload, user=user)
    return BudgetAllocationEnvelope(message="Budget allocation created", data=BudgetAllocationOut.model_validate(allocation))


@router.get("/", response_model=BudgetAllocationListEnvelope)
def list_allocations(
    budget_id: int | None = Query(None, alias="budgetId"),
    department_id: int | None = Query(None, alias="departmentId"),
    category_id: int | None = Query(None, alias="categoryId"),
    fiscal_year: int | None = Query(None, alias="fiscalYear"),
    db: Session = Depends(get_db),
    _=Depends(require_auth),
):
    rows = budget_service.list_allocations(
        db,
        budget_id=budget_id,
        department_id=department_id,
        category_id=category_id,
        fiscal_year=fiscal_year,
    )
    return BudgetAllocationListEnvelope(data=[BudgetAllocationOut.model_validate(a) for a in rows])
