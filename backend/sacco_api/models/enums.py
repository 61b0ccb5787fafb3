from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    ACCOUNTANT = "ACCOUNTANT"
    CASHIER = "CASHIER"
    CLERK = "CLERK"
    LOAN_OFFICER = "LOAN_OFFICER"
    IT = "IT"
    LOAN_BOARD = "LOAN_BOARD"
    BOARD_DIRECTOR = "BOARD_DIRECTOR"
    MARKETING_OFFICER = "MARKETING_OFFICER"


# Roles that see every expense request, not only their own.
PRIVILEGED_EXPENSE_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.ACCOUNTANT, UserRole.CASHIER})


class ExpenseStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ACCOUNTANT_APPROVED = "ACCOUNTANT_APPROVED"
    MANAGER_APPROVED = "MANAGER_APPROVED"
    PROCESSED = "PROCESSED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class ExpenseAction(str, enum.Enum):
    CREATE = "create"
    ADD_ITEM = "add_item"
    SUBMIT = "submit"
    APPROVE_ACCOUNTANT = "approve_accountant"
    APPROVE_MANAGER = "approve_manager"
    PROCESS = "process"
    COMPLETE = "complete"
    REJECT = "reject"


class ExpenseItemStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class BudgetCategoryType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    CAPITAL = "capital"


class BudgetCategoryStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class BudgetStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class NotificationType(str, enum.Enum):
    EXPENSE = "EXPENSE"
    LEAVE = "LEAVE"
    SYSTEM = "SYSTEM"
    OTHER = "OTHER"
