from sacco_api.models.activity_log import ActivityLog
from sacco_api.models.budget import Budget, BudgetAllocation, BudgetCategory
from sacco_api.models.department import Department
from sacco_api.models.expense import ExpenseItem, ExpenseRequest, Receipt
from sacco_api.models.notification import Notification
from sacco_api.models.user import User

__all__ = [
    "ActivityLog",
    "Budget",
    "BudgetAllocation",
    "BudgetCategory",
    "Department",
    "ExpenseItem",
    "ExpenseRequest",
    "Notification",
    "Receipt",
    "User",
]
