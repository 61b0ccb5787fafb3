from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sacco_api.api.deps import require_auth, require_roles
from sacco_api.db.session import get_db
from sacco_api.models.enums import UserRole
from sacco_api.models.user import User
from sacco_api.schemas.department import DepartmentCreate, DepartmentEnvelope, DepartmentListEnvelope, DepartmentOut
from sacco_api.services import budgets as budget_service

router = APIRouter()


@router.get("/", response_model=DepartmentListEnvelope)
def list_departments(db: Session = Depends(get_db), _=Depends(require_auth)):
    return DepartmentListEnvelope(data=[DepartmentOut.model_validate(d) for d in budget_service.list_departments(db)])


@router.post("/", response_model=DepartmentEnvelope, status_code=status.HTTP_201_CREATED)
def create_department(
    payload: DepartmentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.ADMIN)),
):
    department = budget_service.create_department(db, payload=payload, user=user)
    return DepartmentEnvelope(message="Department created", data=DepartmentOut.model_validate(department))
