# app/core/exceptions.py
from __future__ import annotations

"""
Password Reset — Application Exceptions
=======================================
A thin layer on top of FastAPI/Starlette's `HTTPException` that carries a
stable string `code` and renders the `{"error": ..., "code": ...}` body the
clients of the reset flow expect (see `app.core.exception_handlers`).

Usage
-----
    raise OtpIncorrectError(remaining_attempts=3)

    # Or a one-off typed error
    raise AppException(status_code=400, message="Bad thing", code="BAD_THING")
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "InvalidInputError",
    "RateLimitedError",
    "OtpNotFoundError",
    "OtpExpiredError",
    "MaxAttemptsExceededError",
    "OtpIncorrectError",
    "TokenInvalidError",
    "TokenExpiredError",
    "PasswordTooShortError",
    "PasswordTooWeakError",
    "UserNotFoundError",
    "RateLimiterUnavailable",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with a machine-readable code.

    Attributes
    -----------
    status_code : int
        HTTP status code (400/404/429...).
    message : str
        Human-readable error message (serialized as `error`, mirrored in `detail`).
    code : str
        Stable error code clients switch on, e.g. ``OTP_EXPIRED``.
    extra : dict | None
        Additional non-sensitive fields merged into the body.
    """

    default_status: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request"
    default_code: str = "BAD_REQUEST"

    def __init__(
        self,
        *,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
        code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        status_code = status_code or self.default_status
        message = message or self.default_message
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message: str = message
        self.code: str = code or self.default_code
        self.extra: Dict[str, Any] = extra or {}

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        extra_sanitized = dict(self.extra)
        for k in ("token", "reset_token", "otp", "password", "new_password"):
            extra_sanitized.pop(k, None)
        body.update(extra_sanitized)
        return body


# ──────────────────────────────────────────────────────────────
# 📝 Input
# ──────────────────────────────────────────────────────────────
class InvalidInputError(AppException):
    default_message = "Invalid input"
    default_code = "INVALID_INPUT"

    def __init__(self, message: str = "Invalid input") -> None:
        super().__init__(message=message)


class PasswordTooShortError(AppException):
    default_code = "PASSWORD_TOO_SHORT"

    def __init__(self, min_length: int = 8) -> None:
        super().__init__(message=f"Password must be at least {min_length} characters long")


class PasswordTooWeakError(AppException):
    default_message = (
        "Password must contain at least one uppercase letter, one lowercase letter, and one number"
    )
    default_code = "PASSWORD_TOO_WEAK"


# ──────────────────────────────────────────────────────────────
# 🚦 Throttling
# ──────────────────────────────────────────────────────────────
class RateLimitedError(AppException):
    default_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many attempts. Please try again later."
    default_code = "RATE_LIMIT_EXCEEDED"


class RateLimiterUnavailable(RuntimeError):
    """The rate-limit store could not be consulted. Never bypassed; surfaces as 500."""


# ──────────────────────────────────────────────────────────────
# 🔢 OTP verification
# ──────────────────────────────────────────────────────────────
class OtpNotFoundError(AppException):
    default_message = "Invalid or expired OTP"
    default_code = "OTP_NOT_FOUND"


class OtpExpiredError(AppException):
    default_message = "OTP has expired. Please request a new one."
    default_code = "OTP_EXPIRED"


class MaxAttemptsExceededError(AppException):
    default_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Maximum verification attempts exceeded. Please request a new OTP."
    default_code = "MAX_ATTEMPTS_EXCEEDED"


class OtpIncorrectError(AppException):
    default_message = "Incorrect OTP"
    default_code = "OTP_INCORRECT"

    def __init__(self, remaining_attempts: int) -> None:
        super().__init__(extra={"remaining_attempts": remaining_attempts})
        self.remaining_attempts = remaining_attempts


# ──────────────────────────────────────────────────────────────
# 🔑 Reset token redemption
# ──────────────────────────────────────────────────────────────
class TokenInvalidError(AppException):
    default_message = "Invalid or expired reset token"
    default_code = "TOKEN_INVALID"


class TokenExpiredError(AppException):
    default_message = "Reset token has expired. Please start the password reset process again."
    default_code = "TOKEN_EXPIRED"


class UserNotFoundError(AppException):
    default_status = status.HTTP_404_NOT_FOUND
    default_message = "User not found"
    default_code = "USER_NOT_FOUND"
