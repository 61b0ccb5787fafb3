from __future__ import annotations

import datetime as dt
import logging
import random

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from sacco_api.core.config import settings
from sacco_api.models.expense import ExpenseRequest

logger = logging.getLogger(__name__)


class RequestNumberCollision(RuntimeError):
    pass


def generate_request_number(today: dt.date | None = None, *, rng: random.Random | None = None) -> str:
    """EXP-<yy><mm>-<5 random digits>, e.g. EXP-2610-48213."""
    today = today or dt.date.today()
    suffix = (rng or random).randint(10000, 99999)
    return f"EXP-{today:%y%m}-{suffix}"


def insert_with_request_number(
    db: Session,
    expense: ExpenseRequest,
    *,
    number_factory=generate_request_number,  # noqa: ANN001
) -> ExpenseRequest:
    """
    Flush `expense` with a fresh request number, retrying on a unique-constraint collision.

    Each attempt runs in a SAVEPOINT so a collision does not poison the outer transaction.
    After settings.request_number_attempts collisions the last RequestNumberCollision is raised.
    """
    for attempt in Retrying(
        stop=stop_after_attempt(settings.request_number_attempts),
        retry=retry_if_exception_type(RequestNumberCollision),
        reraise=True,
    ):
        with attempt:
            expense.request_number = number_factory()
            try:
                with db.begin_nested():
                    db.add(expense)
                    db.flush()
            except IntegrityError as e:
                logger.warning(
                    "request number %s collided (attempt %d)",
                    expense.request_number,
                    attempt.retry_state.attempt_number,
                )
                raise RequestNumberCollision(expense.request_number) from e
    return expense
