"""
Domain errors raised by the core services.

Services never raise ``HTTPException``; the HTTP boundary in ``app.main``
maps each class below to its status code and response envelope.
"""
from enum import Enum
from typing import List, Optional


class DenyReason(str, Enum):
    """Why the access control evaluator refused an action."""
    NOT_ASSIGNED = "NotAssigned"
    NOT_SHARED = "NotShared"
    NOT_OWNER = "NotOwner"
    INSUFFICIENT_ROLE = "InsufficientRole"


class TokenErrorKind(str, Enum):
    INVALID_TOKEN = "InvalidToken"
    EXPIRED_TOKEN = "ExpiredToken"
    IDENTITY_NOT_FOUND = "IdentityNotFound"
    INVALID_OR_EXPIRED = "InvalidOrExpiredToken"


class AppError(Exception):
    """Base class for expected, recoverable errors."""
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class DuplicateError(AppError):
    status_code = 400
    default_message = "Duplicate field value entered"

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Invalid credentials"


class AccountLockedError(AppError):
    status_code = 423
    default_message = (
        "Account is temporarily locked due to multiple failed login attempts. "
        "Please try again later."
    )


class AccountDeactivatedError(AppError):
    status_code = 401
    default_message = "Account is deactivated. Please contact support."


class TokenError(AppError):
    status_code = 401

    _messages = {
        TokenErrorKind.INVALID_TOKEN: "Not authorized to access this route",
        TokenErrorKind.EXPIRED_TOKEN: "Token expired",
        TokenErrorKind.IDENTITY_NOT_FOUND: "No user found with this token",
        TokenErrorKind.INVALID_OR_EXPIRED: "Invalid or expired token",
    }

    def __init__(self, kind: TokenErrorKind, message: Optional[str] = None):
        super().__init__(message or self._messages[kind])
        self.kind = kind
        # One-time secrets are submitted as input, not as credentials
        if kind == TokenErrorKind.INVALID_OR_EXPIRED:
            self.status_code = 400


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Not authorized to access this resource"

    def __init__(self, reason: DenyReason = DenyReason.INSUFFICIENT_ROLE,
                 message: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class RateLimitError(AppError):
    status_code = 429
    default_message = "Too many requests, please try again later."
