"""Custom exception classes for structured error handling.

Every error raised by the API layer or the chat services derives from
MentalSpaceError and is rendered as {"error": {"code", "message"}} by the
handler registered in app/main.py. The code identifies the error kind; the
HTTP status tells the caller whether retrying makes sense.
"""

from typing import Any


class MentalSpaceError(Exception):
    """Base exception for all MentalSpace errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}


# ---------------------------------------------------------------------------
# Unauthenticated (401): caller must re-authenticate
# ---------------------------------------------------------------------------

class UnauthenticatedError(MentalSpaceError):
    def __init__(self, message: str = "Missing or invalid token") -> None:
        super().__init__(code="UNAUTHENTICATED", message=message, status_code=401)


class TokenExpiredError(MentalSpaceError):
    def __init__(self, message: str = "Token expired") -> None:
        super().__init__(code="TOKEN_EXPIRED", message=message, status_code=401)


class AccountInactiveError(MentalSpaceError):
    def __init__(self, message: str = "Account is deactivated") -> None:
        super().__init__(code="ACCOUNT_INACTIVE", message=message, status_code=401)


class InvalidCredentialsError(MentalSpaceError):
    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(code="INVALID_CREDENTIALS", message=message, status_code=401)


# ---------------------------------------------------------------------------
# Forbidden (403) / NotFound (404): no retry
# ---------------------------------------------------------------------------

class ForbiddenError(MentalSpaceError):
    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(code="FORBIDDEN", message=message, status_code=403)


class SessionNotFoundError(MentalSpaceError):
    def __init__(self, message: str = "Session not found") -> None:
        super().__init__(code="SESSION_NOT_FOUND", message=message, status_code=404)


class MessageNotFoundError(MentalSpaceError):
    def __init__(self, message: str = "Message not found") -> None:
        super().__init__(code="MESSAGE_NOT_FOUND", message=message, status_code=404)


# ---------------------------------------------------------------------------
# InvalidState (400): caller must change the request
# ---------------------------------------------------------------------------

class InvalidStateError(MentalSpaceError):
    """Base class for state machine violations."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, status_code=400, details=details)


class SessionAlreadyOpenError(InvalidStateError):
    def __init__(
        self,
        session_id: Any = None,
        message: str = "You already have an active chat session",
    ) -> None:
        details = {"session_id": str(session_id)} if session_id is not None else None
        super().__init__(code="SESSION_ALREADY_OPEN", message=message, details=details)


class SessionInactiveError(InvalidStateError):
    def __init__(self, message: str = "Cannot send messages in inactive session") -> None:
        super().__init__(code="SESSION_INACTIVE", message=message)


class SessionClosedError(InvalidStateError):
    def __init__(self, message: str = "Session already closed") -> None:
        super().__init__(code="SESSION_CLOSED", message=message)


class SessionNotClosedError(InvalidStateError):
    def __init__(self, message: str = "Can only rate closed sessions") -> None:
        super().__init__(code="SESSION_NOT_CLOSED", message=message)


class SessionAlreadyRatedError(InvalidStateError):
    def __init__(self, message: str = "Session has already been rated") -> None:
        super().__init__(code="SESSION_ALREADY_RATED", message=message)


class CounselorBusyError(InvalidStateError):
    def __init__(self, message: str = "Counselor is in an active session") -> None:
        super().__init__(code="COUNSELOR_BUSY", message=message)


# ---------------------------------------------------------------------------
# ValidationError (400): caller must fix the payload
# ---------------------------------------------------------------------------

class RequestValidationFailedError(MentalSpaceError):
    def __init__(
        self,
        message: str = "Validation Error",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR", message=message, status_code=400, details=details
        )


class EmailTakenError(MentalSpaceError):
    def __init__(self, message: str = "User already exists with this email") -> None:
        super().__init__(code="EMAIL_TAKEN", message=message, status_code=400)


class RateLimitExceededError(MentalSpaceError):
    def __init__(
        self, message: str = "Too many requests, please try again later."
    ) -> None:
        super().__init__(code="RATE_LIMIT_EXCEEDED", message=message, status_code=429)


# ---------------------------------------------------------------------------
# Internal (5xx): safe to retry with backoff
# ---------------------------------------------------------------------------

class DatabaseConnectionError(MentalSpaceError):
    def __init__(self, message: str = "Database connection failed") -> None:
        super().__init__(code="DATABASE_ERROR", message=message, status_code=503)


class RedisConnectionError(MentalSpaceError):
    def __init__(self, message: str = "Redis connection failed") -> None:
        super().__init__(code="REDIS_ERROR", message=message, status_code=503)


class InternalError(MentalSpaceError):
    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(code="INTERNAL_ERROR", message=message, status_code=500)
