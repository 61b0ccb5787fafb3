from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sacco_api.api.deps import require_auth, require_roles
from sacco_api.db.session import get_db
from sacco_api.models.enums import BudgetCategoryStatus, BudgetCategoryType, UserRole
from sacco_api.models.user import User
from sacco_api.schemas.budget import (
    BudgetCategoryCreate,
    BudgetCategoryEnvelope,
    BudgetCategoryListEnvelope,
    BudgetCategoryOut,
    BudgetCategorySummary,
    BudgetCategoryUpdate,
    CategoryAllocate,
)
from sacco_api.services import budgets as budget_service

router = APIRouter()

_editors = require_roles(UserRole.ADMIN, UserRole.MANAGER)


@router.get("/", response_model=BudgetCategoryListEnvelope)
def list_categories(
    type: BudgetCategoryType | None = None,  # noqa: A002
    status: BudgetCategoryStatus | None = None,
    search: str | None = None,
    db: Session = Depends(get_db),
    _=Depends(require_auth),
):
    rows = budget_service.list_categories(db, type=type, status=status, search=search)
    return BudgetCategoryListEnvelope(
        data=[BudgetCategoryOut.model_validate(c) for c in rows],
        summary=BudgetCategorySummary(**budget_service.summarize_categories(rows)),
    )


@router.post("/", response_model=BudgetCategoryEnvelope, status_code=status.HTTP_201_CREATED)
def create_category(payload: BudgetCategoryCreate, db: Session = Depends(get_db), user: User = Depends(_editors)):
    category = budget_service.create_category(db, payload=payload, user=user)
    return BudgetCategoryEnvelope(message="Budget category created", data=BudgetCategoryOut.model_validate(category))


@router.get("/{category_id}", response_model=BudgetCategoryEnvelope)
def get_category(category_id: int, db: Session = Depends(get_db), _=Depends(require_auth)):
    category = budget_service.get_category(db, category_id)
    return BudgetCategoryEnvelope(data=BudgetCategoryOut.model_validate(category))


@router.patch("/{category_id}", response_model=BudgetCategoryEnvelope)
def update_category(
    category_id: int,
    payload: BudgetCategoryUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(_editors),
):
    category = budget_service.update_category(db, category_id=category_id, payload=payload, user=user)
    return BudgetCategoryEnvelope(message="Budget category updated", data=BudgetCategoryOut.model_validate(category))


@router.post("/{category_id}/allocate", response_model=BudgetCategoryEnvelope)
def allocate(
    category_id: int,
    payload: CategoryAllocate,
    db: Session = Depends(get_db),
    user: User = Depends(_editors),
):
    category = budget_service.allocate_category(
        db, category_id=category_id, allocated_amount=payload.allocated_amount, user=user
    )
    return BudgetCategoryEnvelope(message="Budget allocated", data=BudgetCategoryOut.model_validate(category))
