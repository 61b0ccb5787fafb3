"""Pytest fixtures for SACCO back-office tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from decimal import Decimal  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

# Ensure all models are loaded for create_all
import sacco_api.models  # noqa: F401, E402
from sacco_api.core.config import settings  # noqa: E402
from sacco_api.core.security import create_access_token, hash_password  # noqa: E402
from sacco_api.db.session import Base, get_db  # noqa: E402
from sacco_api.models.budget import BudgetCategory  # noqa: E402
from sacco_api.models.department import Department  # noqa: E402
from sacco_api.models.enums import UserRole  # noqa: E402
from sacco_api.models.user import User  # noqa: E402

PASSWORD = "password123"
_PASSWORD_HASH = hash_password(PASSWORD)
_seq = count(1)


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite shared by every session (and TestClient thread) of one test."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory):
    """Create an in-memory SQLite DB with all tables for tests."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "receipts_dir", str(tmp_path / "receipts"))
    monkeypatch.setattr(settings, "approval_budget_enforcement", "warn")
    monkeypatch.setattr(settings, "max_pending_completion", 2)
    monkeypatch.setattr(settings, "notification_email_enabled", False)


@pytest.fixture(scope="function")
def client(session_factory):
    from sacco_api.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(role: UserRole = UserRole.CLERK, username: str | None = None, email: str | None = None) -> User:
        n = next(_seq)
        user = User(
            username=username or f"{role.value.lower()}{n}",
            full_name=f"{role.value.title()} {n}",
            email=email,
            password_hash=_PASSWORD_HASH,
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def department(db) -> Department:
    dep = Department(name="Finance", code="FIN")
    db.add(dep)
    db.commit()
    db.refresh(dep)
    return dep


@pytest.fixture
def make_category(db):
    def _make(allocated: str = "100.00", used: str = "0.00", code: str | None = None) -> BudgetCategory:
        n = next(_seq)
        category = BudgetCategory(
            name=f"Category {n}",
            code=code or f"CAT-{n}",
            allocated_amount=Decimal(allocated),
            used_amount=Decimal(used),
        )
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make


@pytest.fixture
def staff(make_user) -> dict[UserRole, User]:
    return {
        role: make_user(role)
        for role in (UserRole.ADMIN, UserRole.ACCOUNTANT, UserRole.MANAGER, UserRole.CASHIER, UserRole.CLERK)
    }


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id=user.id, role=user.role.value)}"}


@pytest.fixture
def auth():
    return auth_headers


@pytest.fixture
def make_expense(db, department):
    """Create a DRAFT request through the service; lines are (category, unit_price[, quantity])."""
    from sacco_api.schemas.expense import ExpenseCreate, ExpenseItemCreate
    from sacco_api.services.expenses import create_expense_request

    def _make(requester: User, lines=(), *, requires_receipt: bool = True, total_amount: str | None = None):
        items = []
        for line in lines:
            category, unit_price, *rest = line
            items.append(
                ExpenseItemCreate(
                    category_id=category.id,
                    description=f"{category.name} purchase",
                    unit_price=Decimal(unit_price),
                    quantity=rest[0] if rest else None,
                )
            )
        payload = ExpenseCreate(
            title="Branch supplies",
            department_id=department.id,
            requires_receipt=requires_receipt,
            total_amount=Decimal(total_amount) if total_amount is not None else None,
            items=items,
        )
        return create_expense_request(db, payload=payload, user=requester)

    return _make


@pytest.fixture
def advance(db, staff):
    """Walk a request forward to `target` using the staff fixture's users."""
    from sacco_api.models.enums import ExpenseStatus
    from sacco_api.services import expenses as svc

    def _advance(expense, target: ExpenseStatus):
        steps = [
            (ExpenseStatus.DRAFT, lambda: svc.submit_expense(db, expense_id=expense.id, user=expense.requester)),
            (
                ExpenseStatus.SUBMITTED,
                lambda: svc.approve_by_accountant(db, expense_id=expense.id, user=staff[UserRole.ACCOUNTANT]),
            ),
            (
                ExpenseStatus.ACCOUNTANT_APPROVED,
                lambda: svc.approve_by_manager(db, expense_id=expense.id, user=staff[UserRole.MANAGER]),
            ),
            (
                ExpenseStatus.MANAGER_APPROVED,
                lambda: svc.process_by_cashier(
                    db, expense_id=expense.id, user=staff[UserRole.CASHIER], transaction_details="MPESA REF QX12"
                ),
            ),
        ]
        for source, step in steps:
            if expense.status == target:
                break
            if expense.status != source:
                continue
            step()
            db.refresh(expense)
        assert expense.status == target
        return expense

    return _advance
