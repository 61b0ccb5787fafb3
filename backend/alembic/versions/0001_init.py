"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = [
    (
        "userrole",
        "ADMIN",
        "MANAGER",
        "ACCOUNTANT",
        "CASHIER",
        "CLERK",
        "LOAN_OFFICER",
        "IT",
        "LOAN_BOARD",
        "BOARD_DIRECTOR",
        "MARKETING_OFFICER",
    ),
    (
        "expensestatus",
        "DRAFT",
        "SUBMITTED",
        "ACCOUNTANT_APPROVED",
        "MANAGER_APPROVED",
        "PROCESSED",
        "COMPLETED",
        "REJECTED",
    ),
    ("expenseitemstatus", "PENDING", "APPROVED", "REJECTED"),
    # SQLAlchemy stores enum member names.
    ("budgetcategorytype", "INCOME", "EXPENSE", "CAPITAL"),
    ("budgetcategorystatus", "ACTIVE", "INACTIVE"),
    ("budgetstatus", "DRAFT", "ACTIVE", "CLOSED"),
    ("notificationtype", "EXPENSE", "LEAVE", "SYSTEM", "OTHER"),
]


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(name=name, create_type=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    # ENUMs: create only if not exists (safe for re-run after partial deploy)
    for name, *values in ENUMS:
        vals = ", ".join(f"'{v}'" for v in values)
        op.execute(
            f"DO $$ BEGIN CREATE TYPE {name} AS ENUM ({vals}); "
            "EXCEPTION WHEN duplicate_object THEN NULL; END $$"
        )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("userrole"), nullable=False, server_default="CLERK"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_departments_code", "departments", ["code"], unique=True)

    op.create_table(
        "budget_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", _enum("budgetcategorytype"), nullable=False, server_default="EXPENSE"),
        sa.Column("allocated_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("used_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("status", _enum("budgetcategorystatus"), nullable=False, server_default="ACTIVE"),
        _created_at(),
    )
    op.create_index("ix_budget_categories_code", "budget_categories", ["code"], unique=True)
    op.create_index("ix_budget_categories_status", "budget_categories", ["status"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("status", _enum("budgetstatus"), nullable=False, server_default="DRAFT"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
    )
    op.create_index("ix_budgets_fiscal_year", "budgets", ["fiscal_year"])
    op.create_index("ix_budgets_department_id", "budgets", ["department_id"])
    op.create_index("ix_budgets_status", "budgets", ["status"])
    op.create_index("ix_budgets_created_by_user_id", "budgets", ["created_by_user_id"])

    op.create_table(
        "budget_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("budget_id", sa.Integer(), sa.ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("budget_categories.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("used_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_budget_allocations_budget_id", "budget_allocations", ["budget_id"])
    op.create_index("ix_budget_allocations_department_id", "budget_allocations", ["department_id"])
    op.create_index("ix_budget_allocations_category_id", "budget_allocations", ["category_id"])
    op.create_index("ix_budget_allocations_fiscal_year", "budget_allocations", ["fiscal_year"])

    op.create_table(
        "expense_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_number", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("requester_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=False),
        sa.Column("total_estimated_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total_actual_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("status", _enum("expensestatus"), nullable=False, server_default="DRAFT"),
        sa.Column("requires_receipt", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("accountant_approval_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("accountant_approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accountant_notes", sa.Text(), nullable=True),
        sa.Column("manager_approval_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("manager_approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manager_notes", sa.Text(), nullable=True),
        sa.Column("processed_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("processed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transaction_details", sa.Text(), nullable=True),
        sa.Column("cashier_notes", sa.Text(), nullable=True),
        sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("rejected_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_expense_requests_request_number", "expense_requests", ["request_number"], unique=True)
    op.create_index("ix_expense_requests_requester_id", "expense_requests", ["requester_id"])
    op.create_index("ix_expense_requests_department_id", "expense_requests", ["department_id"])
    op.create_index("ix_expense_requests_status", "expense_requests", ["status"])
    op.create_index("ix_expense_requests_fiscal_year", "expense_requests", ["fiscal_year"])
    op.create_index("ix_expense_requests_created_at", "expense_requests", ["created_at"])

    op.create_table(
        "expense_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "expense_id", sa.Integer(), sa.ForeignKey("expense_requests.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("budget_categories.id"), nullable=False),
        sa.Column(
            "budget_allocation_id",
            sa.Integer(),
            sa.ForeignKey("budget_allocations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("estimated_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("actual_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("status", _enum("expenseitemstatus"), nullable=False, server_default="PENDING"),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_expense_items_expense_id", "expense_items", ["expense_id"])
    op.create_index("ix_expense_items_category_id", "expense_items", ["category_id"])
    op.create_index("ix_expense_items_budget_allocation_id", "expense_items", ["budget_allocation_id"])

    op.create_table(
        "receipts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "expense_id", sa.Integer(), sa.ForeignKey("expense_requests.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("file_type", sa.String(length=120), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("vendor", sa.String(length=200), nullable=True),
        sa.Column("uploaded_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_receipts_expense_id", "receipts", ["expense_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", _enum("notificationtype"), nullable=False, server_default="SYSTEM"),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("resource_type", sa.String(length=64), nullable=True),
        sa.Column("resource_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_type", "notifications", ["type"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
    )
    op.create_index("ix_activity_log_created_at", "activity_log", ["created_at"])
    op.create_index("ix_activity_log_user_id", "activity_log", ["user_id"])
    op.create_index("ix_activity_log_action", "activity_log", ["action"])
    op.create_index("ix_activity_log_entity_type", "activity_log", ["entity_type"])
    op.create_index("ix_activity_log_entity_id", "activity_log", ["entity_id"])


def downgrade() -> None:
    for table in (
        "activity_log",
        "notifications",
        "receipts",
        "expense_items",
        "expense_requests",
        "budget_allocations",
        "budgets",
        "budget_categories",
        "departments",
        "users",
    ):
        op.drop_table(table)
    for name, *_ in reversed(ENUMS):
        op.execute(f"DROP TYPE IF EXISTS {name}")
