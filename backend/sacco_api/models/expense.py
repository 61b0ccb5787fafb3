from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sacco_api.db.session import Base
from sacco_api.models.enums import ExpenseItemStatus, ExpenseStatus


def _current_year() -> int:
    return dt.date.today().year


class ExpenseRequest(Base):
    __tablename__ = "expense_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)  # EXP-YYMM-NNNNN

    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)

    requester_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), index=True)

    total_estimated_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0.00"))
    total_actual_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0.00"))

    status: Mapped[ExpenseStatus] = mapped_column(Enum(ExpenseStatus), default=ExpenseStatus.DRAFT, index=True)
    requires_receipt: Mapped[bool] = mapped_column(Boolean, default=True)
    fiscal_year: Mapped[int] = mapped_column(Integer, default=_current_year, index=True)

    # Stage audit fields
    accountant_approval_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    accountant_approval_date: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accountant_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    manager_approval_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    manager_approval_date: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    manager_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    processed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    processed_date: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    cashier_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    completed_date: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    rejected_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    rejected_date: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    requester = relationship("User", foreign_keys=[requester_id])
    department = relationship("Department")
    items = relationship(
        "ExpenseItem", back_populates="expense", cascade="all, delete-orphan", order_by="ExpenseItem.id"
    )
    receipts = relationship("Receipt", back_populates="expense", cascade="all, delete-orphan", order_by="Receipt.id")


class ExpenseItem(Base):
    __tablename__ = "expense_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expense_id: Mapped[int] = mapped_column(ForeignKey("expense_requests.id", ondelete="CASCADE"), index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("budget_categories.id"), index=True)
    # Linked at accountant approval; budget usage is mirrored onto this allocation when processed.
    budget_allocation_id: Mapped[int | None] = mapped_column(
        ForeignKey("budget_allocations.id", ondelete="SET NULL"), nullable=True, index=True
    )

    description: Mapped[str] = mapped_column(Text)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    estimated_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    actual_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0.00"))

    status: Mapped[ExpenseItemStatus] = mapped_column(Enum(ExpenseItemStatus), default=ExpenseItemStatus.PENDING)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    expense = relationship("ExpenseRequest", back_populates="items")
    category = relationship("BudgetCategory")
    budget_allocation = relationship("BudgetAllocation")


class Receipt(Base):
    __tablename__ = "receipts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expense_id: Mapped[int] = mapped_column(ForeignKey("expense_requests.id", ondelete="CASCADE"), index=True)

    file_name: Mapped[str] = mapped_column(String(255))
    file_path: Mapped[str] = mapped_column(String(500))
    file_type: Mapped[str] = mapped_column(String(120))
    file_size: Mapped[int] = mapped_column(Integer)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(200), nullable=True)

    uploaded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    uploaded_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    expense = relationship("ExpenseRequest", back_populates="receipts")
