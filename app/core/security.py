# app/core/security.py
from __future__ import annotations

"""
Password Reset — Security Helpers
=================================
- bcrypt (Passlib) for account passwords and for OTP digests
- CSPRNG code / token generation
- Password strength policy shared by the redeem step

bcrypt is CPU-bound; the async wrappers push it onto Starlette's threadpool
so one slow hash never stalls the event loop.
"""

import hashlib
import logging
import re
import secrets

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from app.core.config import settings

logger = logging.getLogger("security")

# ───────────────────────────────────────────────
# 🔐 Hashing contexts
# ───────────────────────────────────────────────
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.PASSWORD_BCRYPT_ROUNDS)


def build_otp_context(rounds: int) -> CryptContext:
    """OTP digests are short-lived, so they get their own (cheaper) cost factor."""
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


otp_context = build_otp_context(settings.OTP_BCRYPT_ROUNDS)


# ───────────────────────────────────────────────
# 🔑 Password hashing
# ───────────────────────────────────────────────
def get_password_hash(password: str) -> str:
    """Return a salted hash using Passlib's bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time verify of a plaintext password against a stored hash."""
    return pwd_context.verify(plain_password, hashed_password)


async def hash_password_async(password: str) -> str:
    return await run_in_threadpool(get_password_hash, password)


# ───────────────────────────────────────────────
# 🔢 OTP digests
# ───────────────────────────────────────────────
async def hash_otp(code: str, context: CryptContext = otp_context) -> str:
    return await run_in_threadpool(context.hash, code)


async def verify_otp(code: str, otp_hash: str, context: CryptContext = otp_context) -> bool:
    """bcrypt's own verify; a malformed stored hash counts as a mismatch."""
    try:
        return await run_in_threadpool(context.verify, code, otp_hash)
    except ValueError:
        logger.warning("Stored OTP digest is not a valid bcrypt hash")
        return False


# ───────────────────────────────────────────────
# 🎲 Random material
# ───────────────────────────────────────────────
def generate_otp_code() -> str:
    """Uniform 6-digit code in [100000, 999999]; `randbelow` rejection-samples."""
    return str(secrets.randbelow(900_000) + 100_000)


def generate_reset_token() -> str:
    """256 bits of URL-safe randomness."""
    return secrets.token_urlsafe(32)


def fingerprint(value: str) -> str:
    """Short, non-reversible identifier for logs and rate-limit keys."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# ───────────────────────────────────────────────
# 🧱 Password policy
# ───────────────────────────────────────────────
_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")


def is_strong_password(password: str) -> bool:
    """At least one uppercase letter, one lowercase letter and one digit."""
    return bool(_UPPER.search(password) and _LOWER.search(password) and _DIGIT.search(password))


__all__ = [
    "pwd_context",
    "otp_context",
    "build_otp_context",
    "get_password_hash",
    "verify_password",
    "hash_password_async",
    "hash_otp",
    "verify_otp",
    "generate_otp_code",
    "generate_reset_token",
    "fingerprint",
    "is_strong_password",
]
