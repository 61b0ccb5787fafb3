import datetime as dt
import random
import re
from decimal import Decimal

import pytest

from sacco_api.models.enums import UserRole
from sacco_api.models.expense import ExpenseRequest
from sacco_api.services.request_numbers import (
    RequestNumberCollision,
    generate_request_number,
    insert_with_request_number,
)


def _draft(requester, department) -> ExpenseRequest:
    return ExpenseRequest(
        title="Stationery",
        requester_id=requester.id,
        department_id=department.id,
        total_estimated_amount=Decimal("0"),
    )


def test_number_format():
    number = generate_request_number(dt.date(2026, 3, 9), rng=random.Random(7))
    assert re.fullmatch(r"EXP-2603-\d{5}", number)
    assert 10000 <= int(number[-5:]) <= 99999


def test_collision_retries_with_a_fresh_number(db, make_user, department):
    clerk = make_user(UserRole.CLERK)
    existing = _draft(clerk, department)
    existing.request_number = "EXP-2610-11111"
    db.add(existing)
    db.commit()

    numbers = iter(["EXP-2610-11111", "EXP-2610-22222"])
    expense = insert_with_request_number(db, _draft(clerk, department), number_factory=lambda: next(numbers))
    db.commit()

    assert expense.request_number == "EXP-2610-22222"
    assert db.query(ExpenseRequest).count() == 2


def test_gives_up_after_configured_attempts(db, make_user, department):
    clerk = make_user(UserRole.CLERK)
    existing = _draft(clerk, department)
    existing.request_number = "EXP-2610-11111"
    db.add(existing)
    db.commit()

    calls = []

    def always_taken():
        calls.append(1)
        return "EXP-2610-11111"

    with pytest.raises(RequestNumberCollision):
        insert_with_request_number(db, _draft(clerk, department), number_factory=always_taken)
    db.rollback()

    assert len(calls) == 3
    assert db.query(ExpenseRequest).count() == 1
