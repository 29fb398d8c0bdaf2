"""Unit tests for the structured error hierarchy."""

from __future__ import annotations

import uuid

import pytest

from app.core.exceptions import (
    AccountInactiveError,
    CounselorBusyError,
    DatabaseConnectionError,
    ForbiddenError,
    InvalidStateError,
    MentalSpaceError,
    RateLimitExceededError,
    RequestValidationFailedError,
    SessionAlreadyOpenError,
    SessionClosedError,
    SessionNotFoundError,
    TokenExpiredError,
)


@pytest.mark.parametrize(
    ("error", "code", "status_code"),
    [
        (TokenExpiredError(), "TOKEN_EXPIRED", 401),
        (AccountInactiveError(), "ACCOUNT_INACTIVE", 401),
        (ForbiddenError(), "FORBIDDEN", 403),
        (SessionNotFoundError(), "SESSION_NOT_FOUND", 404),
        (SessionClosedError(), "SESSION_CLOSED", 400),
        (CounselorBusyError(), "COUNSELOR_BUSY", 400),
        (RequestValidationFailedError(), "VALIDATION_ERROR", 400),
        (RateLimitExceededError(), "RATE_LIMIT_EXCEEDED", 429),
        (DatabaseConnectionError(), "DATABASE_ERROR", 503),
    ],
)
def test_codes_and_statuses(
    error: MentalSpaceError, code: str, status_code: int
) -> None:
    assert error.code == code
    assert error.status_code == status_code
    assert error.to_dict()["error"]["code"] == code


def test_state_errors_share_a_base() -> None:
    assert isinstance(SessionClosedError(), InvalidStateError)
    assert isinstance(SessionAlreadyOpenError(), InvalidStateError)


def test_already_open_carries_existing_session_id() -> None:
    session_id = uuid.uuid4()
    body = SessionAlreadyOpenError(session_id=session_id).to_dict()

    assert body["error"]["details"] == {"session_id": str(session_id)}


def test_details_omitted_when_empty() -> None:
    assert "details" not in ForbiddenError().to_dict()["error"]
