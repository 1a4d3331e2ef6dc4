"""Auth exceptions.

Every internal failure is one member of ``AuthErrorCode``; handlers map a
code to its HTTP status through ``STATUS_BY_CODE`` instead of inspecting
messages. OAuth protocol failures use ``OAuthError`` and keep the
``error``/``error_description`` wire shape.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class AuthErrorCode(str, Enum):
    MISSING_FIELDS = "ERR_MISSING_FIELDS"
    MISSING_REFRESH_TOKEN = "ERR_MISSING_REFRESH_TOKEN"
    VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    WEAK_PASSWORD = "ERR_WEAK_PASSWORD"
    USER_EXISTS = "ERR_USER_EXISTS"
    INVALID_CREDENTIALS = "ERR_INVALID_CREDENTIALS"
    ACCOUNT_LOCKED = "ERR_ACCOUNT_LOCKED"
    INVALID_REFRESH_TOKEN = "ERR_INVALID_REFRESH_TOKEN"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    INSUFFICIENT_PERMISSIONS = "ERR_INSUFFICIENT_PERMISSIONS"
    TOKEN_NOT_FOUND = "ERR_TOKEN_NOT_FOUND"
    NOT_FOUND = "ERR_NOT_FOUND"
    LOGOUT_FAILED = "ERR_LOGOUT_FAILED"
    INTERNAL_ERROR = "ERR_INTERNAL_ERROR"


STATUS_BY_CODE: dict[AuthErrorCode, int] = {
    AuthErrorCode.MISSING_FIELDS: 400,
    AuthErrorCode.MISSING_REFRESH_TOKEN: 400,
    AuthErrorCode.VALIDATION_FAILED: 400,
    AuthErrorCode.WEAK_PASSWORD: 400,
    AuthErrorCode.USER_EXISTS: 409,
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.ACCOUNT_LOCKED: 423,
    AuthErrorCode.INVALID_REFRESH_TOKEN: 401,
    AuthErrorCode.UNAUTHORIZED: 401,
    AuthErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    AuthErrorCode.TOKEN_NOT_FOUND: 404,
    AuthErrorCode.NOT_FOUND: 404,
    AuthErrorCode.LOGOUT_FAILED: 500,
    AuthErrorCode.INTERNAL_ERROR: 500,
}


class AuthException(Exception):
    """Base auth exception carrying an error code and optional extra body fields."""

    code: AuthErrorCode = AuthErrorCode.INTERNAL_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, data: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.data = data or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE[self.code]


class MissingFields(AuthException):
    code = AuthErrorCode.MISSING_FIELDS
    default_message = "Email and password are required"


class MissingRefreshToken(AuthException):
    code = AuthErrorCode.MISSING_REFRESH_TOKEN
    default_message = "Refresh token is required"


class WeakPassword(AuthException):
    code = AuthErrorCode.WEAK_PASSWORD
    default_message = (
        "Password must contain at least one uppercase letter, lowercase letter, "
        "number, and special character"
    )


class UserExists(AuthException):
    code = AuthErrorCode.USER_EXISTS
    default_message = "User already exists with this email"


class InvalidCredentials(AuthException):
    code = AuthErrorCode.INVALID_CREDENTIALS
    default_message = "Invalid email or password"


class AccountLocked(AuthException):
    code = AuthErrorCode.ACCOUNT_LOCKED
    default_message = "Account is temporarily locked due to too many failed login attempts"


class InvalidRefreshToken(AuthException):
    code = AuthErrorCode.INVALID_REFRESH_TOKEN
    default_message = "Invalid or expired refresh token"


class Unauthorized(AuthException):
    code = AuthErrorCode.UNAUTHORIZED
    default_message = "Invalid or expired token"


class InsufficientPermissions(AuthException):
    code = AuthErrorCode.INSUFFICIENT_PERMISSIONS
    default_message = "Insufficient permissions"


class TokenNotFound(AuthException):
    code = AuthErrorCode.TOKEN_NOT_FOUND
    default_message = "Token not found"


class LogoutFailed(AuthException):
    code = AuthErrorCode.LOGOUT_FAILED
    default_message = "Logout failed"


class OAuthError(Exception):
    """OAuth2 protocol error rendered as ``{error, error_description}``."""

    def __init__(self, error: str, description: str | None = None, status_code: int = 400):
        super().__init__(description or error)
        self.error = error
        self.description = description
        self.status_code = status_code

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class CounterStoreUnavailable(Exception):
    """The shared rate-limit counter store could not be reached."""
