from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sacco_api.db.session import Base
from sacco_api.models.enums import BudgetCategoryStatus, BudgetCategoryType, BudgetStatus


class BudgetCategory(Base):
    """
    Per-category budget line.

    used_amount only grows when a cashier processes an expense; it is incremented
    in SQL (used_amount = used_amount + :amount), never written back from Python.
    """

    __tablename__ = "budget_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[BudgetCategoryType] = mapped_column(Enum(BudgetCategoryType), default=BudgetCategoryType.EXPENSE)

    allocated_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0.00"))
    used_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0.00"))

    status: Mapped[BudgetCategoryStatus] = mapped_column(
        Enum(BudgetCategoryStatus), default=BudgetCategoryStatus.ACTIVE, index=True
    )

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    @property
    def available_amount(self) -> Decimal:
        return Decimal(str(self.allocated_amount or 0)) - Decimal(str(self.used_amount or 0))


class Budget(Base):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fiscal_year: Mapped[int] = mapped_column(Integer, index=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id", ondelete="CASCADE"), index=True)

    start_date: Mapped[dt.date] = mapped_column(Date)
    end_date: Mapped[dt.date] = mapped_column(Date)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    status: Mapped[BudgetStatus] = mapped_column(Enum(BudgetStatus), default=BudgetStatus.DRAFT, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    department = relationship("Department")
    allocations = relationship("BudgetAllocation", back_populates="budget", cascade="all, delete-orphan")


class BudgetAllocation(Base):
    """Department/category share of a budget for one fiscal year."""

    __tablename__ = "budget_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"), index=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id", ondelete="CASCADE"), index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("budget_categories.id", ondelete="CASCADE"), index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2))
    used_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0.00"))
    fiscal_year: Mapped[int] = mapped_column(Integer, index=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    budget = relationship("Budget", back_populates="allocations")
    department = relationship("Department")
    category = relationship("BudgetCategory")
