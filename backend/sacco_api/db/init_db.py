from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from sacco_api.core.security import hash_password
from sacco_api.models.budget import BudgetCategory
from sacco_api.models.department import Department
from sacco_api.models.enums import BudgetCategoryType, UserRole
from sacco_api.models.user import User
from sacco_api.services.users import create_user

logger = logging.getLogger(__name__)

DEV_USERS = (
    ("admin", "admin1234", UserRole.ADMIN, "System Administrator"),
    ("accountant", "accountant123", UserRole.ACCOUNTANT, "Default Accountant"),
    ("manager", "manager123", UserRole.MANAGER, "Default Manager"),
    ("cashier", "cashier123", UserRole.CASHIER, "Default Cashier"),
    ("clerk", "clerk1234", UserRole.CLERK, "Default Clerk"),
)

DEV_DEPARTMENTS = (
    ("Administration", "ADM"),
    ("Finance", "FIN"),
    ("Loans", "LNS"),
    ("Marketing", "MKT"),
    ("IT", "ICT"),
)

DEV_CATEGORIES = (
    ("Office Supplies", "OFF-SUP", Decimal("50000.00")),
    ("Travel", "TRAVEL", Decimal("120000.00")),
    ("Utilities", "UTIL", Decimal("80000.00")),
    ("Maintenance", "MAINT", Decimal("60000.00")),
)


def upsert_user(db: Session, *, username: str, password: str, role: UserRole, full_name: str | None = None) -> None:
    """
    Seed helper:
    - If user exists, update password + role (so local dev can reset credentials without wiping DB).
    - If user does not exist, create it.
    """
    user = db.query(User).filter(User.username == username).first()
    if user:
        user.password_hash = hash_password(password)
        user.role = role
        user.is_active = True
        db.commit()
        return
    create_user(db, username=username, password=password, role=role, full_name=full_name)


def seed_reference_data(db: Session) -> None:
    for name, code in DEV_DEPARTMENTS:
        if not db.query(Department).filter(Department.code == code).first():
            db.add(Department(name=name, code=code))
    for name, code, allocated in DEV_CATEGORIES:
        if not db.query(BudgetCategory).filter(BudgetCategory.code == code).first():
            db.add(
                BudgetCategory(
                    name=name,
                    code=code,
                    type=BudgetCategoryType.EXPENSE,
                    allocated_amount=allocated,
                    used_amount=Decimal("0.00"),
                )
            )
    db.commit()


def ensure_seeded(db: Session) -> None:
    if db.query(User).first():
        return
    for username, password, role, full_name in DEV_USERS:
        upsert_user(db, username=username, password=password, role=role, full_name=full_name)
    seed_reference_data(db)
    logger.info("seeded %d users, departments and budget categories", len(DEV_USERS))


if __name__ == "__main__":
    from sacco_api.db.session import SessionLocal

    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    try:
        ensure_seeded(db)
    finally:
        db.close()
