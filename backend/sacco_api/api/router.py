from fastapi import APIRouter

from sacco_api.api.routes import (
    activity,
    auth,
    budget_allocations,
    budget_categories,
    budgets,
    departments,
    expenses,
    notifications,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(budget_categories.router, prefix="/budget-categories", tags=["budget-categories"])
api_router.include_router(budgets.router, prefix="/budgets", tags=["budgets"])
api_router.include_router(budget_allocations.router, prefix="/budget-allocations", tags=["budget-allocations"])
api_router.include_router(departments.router, prefix="/departments", tags=["departments"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(activity.router, prefix="/activity", tags=["activity"])
