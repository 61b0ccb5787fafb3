from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sacco_api.api.deps import require_roles
from sacco_api.db.session import get_db
from sacco_api.models.enums import UserRole
from sacco_api.models.user import User
from sacco_api.schemas.budget import BudgetCreate, BudgetEnvelope, BudgetListEnvelope, BudgetOut
from sacco_api.services import budgets as budget_service

router = APIRouter()


@router.post("/", response_model=BudgetEnvelope, status_code=status.HTTP_201_CREATED)
def create_budget(
    payload: BudgetCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.ADMIN)),
):
    budget = budget_service.create_budget(db, payload=payload, user=user)
    return BudgetEnvelope(message="Budget created", data=BudgetOut.model_validate(budget))


@router.get("/", response_model=BudgetListEnvelope)
def list_budgets(
    fiscal_year: int | None = Query(None, alias="fiscalYear"),
    department_id: int | None = Query(None, alias="departmentId"),
    db: Session = Depends(get_db),
    _=Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
):
    rows = budget_service.list_budgets(db, fiscal_year=fiscal_year, department_id=department_id)
    return BudgetListEnvelope(data=[BudgetOut.model_validate(b) for b in rows])
