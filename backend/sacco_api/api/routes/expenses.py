from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.orm import Session

from sacco_api.api.deps import client_ip, require_auth
from sacco_api.db.session import get_db
from sacco_api.models.enums import ExpenseStatus
from sacco_api.models.user import User
from sacco_api.schemas.expense import (
    AccountantApproval,
    ExpenseCountsOut,
    ExpenseCreate,
    ExpenseEnvelope,
    ExpenseItemCreate,
    ExpenseItemEnvelope,
    ExpenseItemOut,
    ExpenseListEnvelope,
    ExpenseOut,
    ManagerApproval,
    ProcessRequest,
    ReceiptEnvelope,
    ReceiptOut,
    RejectRequest,
)
from sacco_api.services import expenses as expense_service
from sacco_api.services import receipts as receipt_service
from sacco_api.services.workflow import TransitionResult

router = APIRouter()


def _envelope(db: Session, result: TransitionResult, message: str) -> ExpenseEnvelope:
    expense = expense_service.reload(db, result.expense.id)
    warnings = (result.extra or {}).get("budget_warnings")
    return ExpenseEnvelope(message=message, data=ExpenseOut.model_validate(expense), budget_warnings=warnings)


@router.get("/", response_model=ExpenseListEnvelope)
def list_expenses(
    status_filter: ExpenseStatus | None = Query(None, alias="status"),
    department_id: int | None = Query(None, alias="departmentId"),
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    rows = expense_service.list_expenses(db, user=user, status=status_filter, department_id=department_id)
    return ExpenseListEnvelope(data=[ExpenseOut.model_validate(e) for e in rows])


@router.post("/", response_model=ExpenseEnvelope, status_code=status.HTTP_201_CREATED)
def create_expense(
    payload: ExpenseCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    expense = expense_service.create_expense_request(db, payload=payload, user=user, ip_address=client_ip(request))
    return ExpenseEnvelope(message="Expense request created", data=ExpenseOut.model_validate(expense))


@router.get("/user/pending-completion", response_model=ExpenseListEnvelope)
def pending_completion(db: Session = Depends(get_db), user: User = Depends(require_auth)):
    rows = expense_service.list_pending_completion(db, user=user)
    return ExpenseListEnvelope(data=[ExpenseOut.model_validate(e) for e in rows])


@router.get("/user/count", response_model=ExpenseCountsOut)
def count_mine(db: Session = Depends(get_db), user: User = Depends(require_auth)):
    return ExpenseCountsOut(data=expense_service.count_by_status(db, user=user))


@router.get("/{expense_id}", response_model=ExpenseEnvelope)
def get_expense(expense_id: int, db: Session = Depends(get_db), user: User = Depends(require_auth)):
    expense = expense_service.get_expense(db, expense_id=expense_id, user=user)
    return ExpenseEnvelope(message="Expense request retrieved", data=ExpenseOut.model_validate(expense))


@router.post("/{expense_id}/items", response_model=ExpenseItemEnvelope, status_code=status.HTTP_201_CREATED)
def add_item(
    expense_id: int,
    payload: ExpenseItemCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    item, expense = expense_service.add_expense_item(
        db, expense_id=expense_id, payload=payload, user=user, ip_address=client_ip(request)
    )
    return ExpenseItemEnvelope(
        message="Item added to expense request",
        data=ExpenseItemOut.model_validate(item),
        total_estimated_amount=expense.total_estimated_amount,
    )


@router.post("/{expense_id}/submit", response_model=ExpenseEnvelope)
def submit(expense_id: int, request: Request, db: Session = Depends(get_db), user: User = Depends(require_auth)):
    result = expense_service.submit_expense(db, expense_id=expense_id, user=user, ip_address=client_ip(request))
    return _envelope(db, result, "Expense request submitted for approval")


@router.post("/{expense_id}/approve/accountant", response_model=ExpenseEnvelope)
def approve_accountant(
    expense_id: int,
    request: Request,
    payload: AccountantApproval | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    payload = payload or AccountantApproval()
    result = expense_service.approve_by_accountant(
        db,
        expense_id=expense_id,
        user=user,
        notes=payload.notes,
        budget_allocation_ids=payload.budget_allocation_ids,
        ip_address=client_ip(request),
    )
    return _envelope(db, result, "Expense request approved by accountant")


@router.post("/{expense_id}/approve/manager", response_model=ExpenseEnvelope)
def approve_manager(
    expense_id: int,
    request: Request,
    payload: ManagerApproval | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    payload = payload or ManagerApproval()
    result = expense_service.approve_by_manager(
        db, expense_id=expense_id, user=user, notes=payload.notes, ip_address=client_ip(request)
    )
    return _envelope(db, result, "Expense request approved by manager")


@router.post("/{expense_id}/process", response_model=ExpenseEnvelope)
def process(
    expense_id: int,
    payload: ProcessRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    result = expense_service.process_by_cashier(
        db,
        expense_id=expense_id,
        user=user,
        transaction_details=payload.transaction_details,
        notes=payload.notes,
        override_budget_limit=payload.override_budget_limit,
        ip_address=client_ip(request),
    )
    return _envelope(db, result, "Expense request processed")


@router.post("/{expense_id}/complete", response_model=ExpenseEnvelope)
def complete(expense_id: int, request: Request, db: Session = Depends(get_db), user: User = Depends(require_auth)):
    result = expense_service.mark_completed(db, expense_id=expense_id, user=user, ip_address=client_ip(request))
    return _envelope(db, result, "Expense request marked as completed")


@router.post("/{expense_id}/reject", response_model=ExpenseEnvelope)
def reject(
    expense_id: int,
    payload: RejectRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    result = expense_service.reject_expense(
        db,
        expense_id=expense_id,
        user=user,
        rejection_reason=payload.rejection_reason,
        ip_address=client_ip(request),
    )
    return _envelope(db, result, "Expense request rejected")


@router.post("/{expense_id}/receipts", response_model=ReceiptEnvelope, status_code=status.HTTP_201_CREATED)
def upload_receipt(
    expense_id: int,
    request: Request,
    file: UploadFile = File(...),
    description: str | None = Form(None),
    amount: Decimal | None = Form(None),
    vendor: str | None = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
):
    receipt = receipt_service.upload_receipt(
        db,
        expense_id=expense_id,
        upload=file,
        user=user,
        description=description,
        amount=amount,
        vendor=vendor,
        ip_address=client_ip(request),
    )
    return ReceiptEnvelope(message="Receipt uploaded", data=ReceiptOut.model_validate(receipt))


@router.get("/{expense_id}/receipts", response_model=list[ReceiptOut])
def list_receipts(expense_id: int, db: Session = Depends(get_db), user: User = Depends(require_auth)):
    return [ReceiptOut.model_validate(r) for r in receipt_service.list_receipts(db, expense_id=expense_id, user=user)]
