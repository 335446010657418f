from __future__ import annotations

"""
Password reset coordinator — the three-step OTP flow
====================================================

1. **request_otp**: email a 6-digit code (always answers with the same body).
2. **verify_otp**: trade a correct code for a short-lived reset token.
3. **redeem_reset_token**: trade the token for a new password.

Security properties
-------------------
- **Enumeration resistance**: request_otp collapses "sent", "rate limited"
  and "no such user" into one canonical response
  (`enumeration_safe_response`), and the absent-user branch is padded with a
  short delay.
- **Attempt budgets**: per-email sliding windows (Redis) plus a per-OTP
  attempt counter that is bumped atomically.
- **Exactly-once**: OTPs and reset tokens are claimed with a conditional
  update *before* anything is minted or written, so two racing requests can
  never both succeed.
- **Best-effort email**: notifier failures are logged, never surfaced. With
  `BackgroundTasks` the send runs after the response, so a known email
  answers no slower than an unknown one.

The coordinator owns no state; it only calls ledger operations.
"""

import asyncio
import enum
import logging
import re
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import BackgroundTasks

from app.core.clock import Clock, utcnow
from app.core.config import Settings
from app.core.exceptions import (
    InvalidInputError,
    MaxAttemptsExceededError,
    OtpExpiredError,
    OtpIncorrectError,
    OtpNotFoundError,
    PasswordTooShortError,
    PasswordTooWeakError,
    RateLimitedError,
    TokenExpiredError,
    TokenInvalidError,
    UserNotFoundError,
)
from app.core.security import fingerprint, is_strong_password
from app.services.notifier import Notifier
from app.services.otp_ledger import OtpLedger
from app.services.rate_limiter import RateLimiter, RateLimitPolicy
from app.services.reset_token_ledger import ResetTokenLedger
from app.services.user_directory import UserDirectory
from app.utils.email_utils import render_password_changed, render_password_reset_otp

logger = logging.getLogger(__name__)

# Shape check only; deliverability is the mail server's problem.
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_OTP_RE = re.compile(r"[0-9]{6}")

GENERIC_REQUEST_MESSAGE = "If the email exists, an OTP has been sent"


# ─────────────────────────────────────────────────────────────
# 🕶️ Enumeration policy
# ─────────────────────────────────────────────────────────────
class RequestOtpOutcome(str, enum.Enum):
    SENT = "sent"
    RATE_LIMITED = "rate_limited"
    USER_ABSENT = "user_absent"


def enumeration_safe_response(outcome: RequestOtpOutcome) -> Dict[str, Any]:
    """Every request_otp outcome maps to the same public body."""
    return {"success": True, "message": GENERIC_REQUEST_MESSAGE}


# ─────────────────────────────────────────────────────────────
# 🔧 Input helpers
# ─────────────────────────────────────────────────────────────
def normalize_email(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def _iso_utc(dt) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ─────────────────────────────────────────────────────────────
# 🔁 Coordinator
# ─────────────────────────────────────────────────────────────
class ResetCoordinator:
    def __init__(
        self,
        *,
        settings: Settings,
        rate_limiter: RateLimiter,
        otp_ledger: OtpLedger,
        token_ledger: ResetTokenLedger,
        directory: UserDirectory,
        notifier: Notifier,
        clock: Clock = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.otp_ledger = otp_ledger
        self.token_ledger = token_ledger
        self.directory = directory
        self.notifier = notifier
        self._clock = clock
        self._sleep = sleep

        self.purpose = settings.OTP_PURPOSE
        self.otp_ttl = timedelta(minutes=settings.OTP_TTL_MINUTES)
        self.token_ttl = timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES)
        self.request_policy = RateLimitPolicy.request_otp(settings)
        self.verify_policy = RateLimitPolicy.verify_otp(settings)

    # ── Step 1 ────────────────────────────────────────────────
    async def request_otp(self, email: Any, *, background_tasks: Optional[BackgroundTasks] = None) -> Dict[str, Any]:
        """Issue and email a fresh OTP when the account exists; the answer never says."""
        email_norm = normalize_email(email)
        if not email_norm:
            raise InvalidInputError("Email is required")
        if not _EMAIL_RE.match(email_norm):
            raise InvalidInputError("Invalid email format")

        outcome = await self._issue_otp(email_norm, background_tasks)
        logger.info("request_otp outcome=%s email=%s", outcome.value, fingerprint(email_norm)[:12])
        return enumeration_safe_response(outcome)

    async def _issue_otp(self, email: str, background_tasks: Optional[BackgroundTasks]) -> RequestOtpOutcome:
        if not await self.rate_limiter.allow_policy(email, self.request_policy):
            return RequestOtpOutcome.RATE_LIMITED

        user = await self.directory.lookup_by_email(email)
        if user is None:
            # Pad the cheap branch so it is not obviously faster than a real issue.
            await self._sleep(self.settings.ABSENT_USER_DELAY_MS / 1000)
            return RequestOtpOutcome.USER_ABSENT

        code = self.otp_ledger.generate_code()
        await self.otp_ledger.rotate(
            email,
            self.purpose,
            code,
            ttl=self.otp_ttl,
            max_attempts=self.settings.OTP_MAX_ATTEMPTS,
        )
        subject, html = render_password_reset_otp(
            code,
            product_name=self.settings.PRODUCT_NAME,
            expires_minutes=self.settings.OTP_TTL_MINUTES,
        )
        await self._dispatch(background_tasks, email, subject, html)
        return RequestOtpOutcome.SENT

    # ── Step 2 ────────────────────────────────────────────────
    async def verify_otp(self, email: Any, otp: Any) -> Dict[str, Any]:
        """Check the code against the active OTP and mint a reset token on success."""
        email_norm = normalize_email(email)
        if not email_norm or not isinstance(otp, str) or not otp:
            raise InvalidInputError("Email and OTP are required")
        if not _OTP_RE.fullmatch(otp):
            raise InvalidInputError("Invalid OTP format")

        if not await self.rate_limiter.allow_policy(email_norm, self.verify_policy):
            raise RateLimitedError()

        record = await self.otp_ledger.fetch_active(email_norm, self.purpose)
        if record is None:
            raise OtpNotFoundError()

        if record.is_expired(self._clock()):
            await self.otp_ledger.delete_expired(record)
            raise OtpExpiredError()

        if record.attempts_exhausted:
            await self.otp_ledger.discard(record)
            raise MaxAttemptsExceededError()

        if not await self.otp_ledger.verify_code(record, otp):
            remaining = await self.otp_ledger.record_failed_attempt(record)
            logger.info("Incorrect OTP (email=%s, remaining=%d)", fingerprint(email_norm)[:12], remaining)
            if remaining <= 0:
                raise MaxAttemptsExceededError()
            raise OtpIncorrectError(remaining_attempts=remaining)

        if not await self.otp_ledger.consume(record):
            # A concurrent verification claimed this code first.
            raise OtpNotFoundError()

        token = await self.token_ledger.issue(email_norm, ttl=self.token_ttl)
        return {
            "success": True,
            "reset_token": token.token,
            "expires_at": _iso_utc(token.expires_at_utc),
            "message": "OTP verified successfully",
        }

    # ── Step 3 ────────────────────────────────────────────────
    async def redeem_reset_token(
        self,
        reset_token: Any,
        new_password: Any,
        *,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> Dict[str, Any]:
        """Spend a reset token to set a new password and confirm the email."""
        if not isinstance(reset_token, str) or not reset_token or not isinstance(new_password, str) or not new_password:
            raise InvalidInputError("Reset token and new password are required")

        min_len = self.settings.PASSWORD_MIN_LENGTH
        if len(new_password) < min_len:
            raise PasswordTooShortError(min_len)
        if not is_strong_password(new_password):
            raise PasswordTooWeakError()

        record = await self.token_ledger.fetch_active(reset_token)
        if record is None:
            raise TokenInvalidError()

        if record.is_expired(self._clock()):
            await self.token_ledger.delete_expired(record)
            raise TokenExpiredError()

        user = await self.directory.lookup_by_email(record.email)
        if user is None:
            raise UserNotFoundError()

        if not await self.token_ledger.consume(record):
            raise TokenInvalidError()

        await self.directory.update_password(user.id, new_password, confirm_email=True)
        removed = await self.token_ledger.invalidate_siblings(record.email, record.id)
        await self.token_ledger.discard(record)
        logger.info(
            "Password reset completed (email=%s, sibling_tokens_removed=%d)",
            fingerprint(record.email)[:12], removed,
        )

        if self.settings.SEND_PASSWORD_CHANGED_EMAIL:
            subject, html = render_password_changed(
                record.email,
                product_name=self.settings.PRODUCT_NAME,
                changed_at=self._clock(),
            )
            await self._dispatch(background_tasks, record.email, subject, html)

        return {
            "success": True,
            "message": "Password has been reset successfully",
            "email_verified": True,
        }

    # ── Internals ─────────────────────────────────────────────
    async def _dispatch(self, background_tasks: Optional[BackgroundTasks], to: str, subject: str, html: str) -> None:
        """Queue the email behind the response when a request is in flight, else send now."""
        if background_tasks is not None:
            background_tasks.add_task(self._notify, to, subject, html)
            return
        await self._notify(to, subject, html)

    async def _notify(self, to: str, subject: str, html: str) -> Optional[bool]:
        """Best-effort send; the flow's outcome never depends on it."""
        try:
            delivered = await self.notifier.send(to, subject, html)
        except Exception:
            logger.exception("Notifier failed (subject=%s) [non-fatal]", subject)
            return None
        if not delivered:
            logger.warning("Notifier did not deliver (subject=%s) [non-fatal]", subject)
        return delivered


__all__ = [
    "GENERIC_REQUEST_MESSAGE",
    "RequestOtpOutcome",
    "enumeration_safe_response",
    "normalize_email",
    "ResetCoordinator",
]
