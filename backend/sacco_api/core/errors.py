"""Business-rule errors raised by services and rendered as a status/message envelope."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class ApiError(HTTPException):
    status_label = "error"

    def __init__(self, status_code: int, message: str, *, data: Any = None) -> None:
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.data = data

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status_label, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class NotFoundError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, message)


class ForbiddenError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(status.HTTP_403_FORBIDDEN, message)


class ValidationFailedError(ApiError):
    def __init__(self, message: str, *, data: Any = None) -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, message, data=data)


class InvalidTransitionError(ApiError):
    def __init__(self, *, action: str, current: str, expected: list[str]) -> None:
        expected_text = " or ".join(expected)
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            f"Cannot {action} an expense request in status {current}; expected {expected_text}",
            data={"currentStatus": current, "expectedStatus": expected},
        )
        self.current = current
        self.expected = expected


class BudgetExceededError(ApiError):
    status_label = "budget_exceeded"

    def __init__(self, *, data: dict[str, Any]) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "This expense would exceed the budget for one or more categories",
            data=data,
        )
