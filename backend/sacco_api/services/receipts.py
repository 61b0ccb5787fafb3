"""Receipt attachments for processed expense requests."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from pathlib import Path

from fastapi import UploadFile
from sqlalchemy.orm import Session

from sacco_api.core.config import settings
from sacco_api.core.errors import ForbiddenError, ValidationFailedError
from sacco_api.models.enums import ExpenseStatus, UserRole
from sacco_api.models.expense import Receipt
from sacco_api.models.user import User
from sacco_api.services.activity_log import log_activity
from sacco_api.services.expenses import get_expense
from sacco_api.services.workflow import load_expense

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp", "application/pdf"})


def _safe_name(name: str | None) -> str:
    base = Path(name or "receipt").name
    cleaned = "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in base)
    return cleaned or "receipt"


def upload_receipt(
    db: Session,
    *,
    expense_id: int,
    upload: UploadFile,
    user: User,
    description: str | None = None,
    amount: Decimal | None = None,
    vendor: str | None = None,
    ip_address: str | None = None,
) -> Receipt:
    """
    Attach a receipt file to a PROCESSED request.

    Only the requester (or an admin) may upload. The file lands under
    settings.receipts_dir/<expense_id>/ before the row is written.
    """
    expense = load_expense(db, expense_id)
    if expense.requester_id != user.id and user.role != UserRole.ADMIN:
        raise ForbiddenError("Only the requester can upload receipts for this expense request")
    if expense.status != ExpenseStatus.PROCESSED:
        raise ValidationFailedError("Receipts can only be uploaded for processed expense requests")

    content_type = upload.content_type or "application/octet-stream"
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationFailedError(f"Unsupported receipt file type: {content_type}")

    content = upload.file.read(settings.receipt_max_bytes + 1)
    if not content:
        raise ValidationFailedError("Receipt file is empty")
    if len(content) > settings.receipt_max_bytes:
        raise ValidationFailedError(f"Receipt file exceeds the {settings.receipt_max_bytes} byte limit")

    file_name = _safe_name(upload.filename)
    target_dir = Path(settings.receipts_dir) / str(expense.id)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{uuid.uuid4().hex}_{file_name}"
    target.write_bytes(content)

    receipt = Receipt(
        expense_id=expense.id,
        file_name=file_name,
        file_path=str(target),
        file_type=content_type,
        file_size=len(content),
        description=description,
        amount=amount,
        vendor=vendor,
        uploaded_by_user_id=user.id,
    )
    try:
        db.add(receipt)
        db.flush()
        log_activity(
            db,
            action="receipt_upload",
            entity_type="expense_request",
            entity_id=expense.id,
            user_id=user.id,
            details={"receiptId": receipt.id, "fileName": file_name, "fileSize": len(content)},
            ip_address=ip_address,
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        target.unlink(missing_ok=True)
        raise

    db.refresh(receipt)
    logger.info("receipt %s uploaded for expense %s by user=%s", receipt.id, expense.request_number, user.id)
    return receipt


def list_receipts(db: Session, *, expense_id: int, user: User) -> list[Receipt]:
    return list(get_expense(db, expense_id=expense_id, user=user).receipts)
