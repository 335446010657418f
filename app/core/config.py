# app/core/config.py
from __future__ import annotations

"""
# Password Reset Service — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; every knob overridable from env / `.env`.
- Bounded security parameters (OTP TTL, attempt budgets, rate windows).
- Optional SMTP so imports never crash in dev (emails are logged instead).

## Usage
    from app.core.config import settings
"""

import logging
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Security:
        - OTP and reset-token lifetimes are short and bounded.
        - Rate-limit budgets are per normalized email and per action.

    Notes:
        - `DATABASE_URI` wins over the `POSTGRES_*` parts when set
          (tests point it at SQLite).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "Password Reset Service"
    PRODUCT_NAME: str = "Calotracker"
    VERSION: str = "1.0.0"
    API_PREFIX: str = ""
    ENV: Literal["development", "staging", "production"] = "development"
    ENABLE_DOCS: bool = True

    # ── OTP / reset token lifecycle ───────────────────────────
    OTP_PURPOSE: str = "password_reset"
    OTP_TTL_MINUTES: int = Field(5, ge=1, le=60)
    OTP_MAX_ATTEMPTS: int = Field(5, ge=1, le=20)
    OTP_BCRYPT_ROUNDS: int = Field(10, ge=4, le=15)
    PASSWORD_BCRYPT_ROUNDS: int = Field(12, ge=4, le=15)
    RESET_TOKEN_TTL_MINUTES: int = Field(10, ge=1, le=120)
    PASSWORD_MIN_LENGTH: int = Field(8, ge=6, le=128)
    ABSENT_USER_DELAY_MS: int = Field(100, ge=0, le=5000)

    # ── Rate limiting (sliding window, Redis) ─────────────────
    REQUEST_OTP_MAX_ATTEMPTS: int = Field(3, ge=1, le=100)
    REQUEST_OTP_WINDOW_MINUTES: int = Field(15, ge=1, le=24 * 60)
    VERIFY_OTP_MAX_ATTEMPTS: int = Field(10, ge=1, le=100)
    VERIFY_OTP_WINDOW_MINUTES: int = Field(15, ge=1, le=24 * 60)

    # ── Redis ─────────────────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "pwreset"
    REDIS_MAX_RETRIES: int = Field(5, ge=1, le=20)

    # ── Database (PostgreSQL) ─────────────────────────────────
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = SecretStr("postgres")
    POSTGRES_DB: str = "password_reset"
    DATABASE_URI: Optional[str] = None
    DB_POOL_SIZE: int = Field(10, ge=1, le=100)
    DB_MAX_OVERFLOW: int = Field(20, ge=0, le=200)
    DB_POOL_TIMEOUT: int = Field(30, ge=1, le=300)
    DB_POOL_RECYCLE: int = Field(1800, ge=60, le=24 * 60 * 60)
    DB_ECHO: bool = False

    # ── CORS ─────────────────────────────────────────────────
    CORS_ALLOW_ORIGINS: str = "*"  # CSV; "*" allows any origin

    # ── Email (optional; logged instead of sent when SMTP_HOST unset) ────────
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[SecretStr] = None
    EMAIL_FROM: str = "no-reply@calotracker.app"
    EMAIL_FROM_NAME: str = "Calotracker"
    EMAIL_SEND_TIMEOUT_SECONDS: float = Field(10.0, gt=0, le=120)
    SEND_PASSWORD_CHANGED_EMAIL: bool = True

    # ── Logging ───────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"
    LOG_FILE: str = "app.log"
    LOG_ROTATION: str = "10 MB"
    APP_DEBUG: bool = False

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("API_PREFIX", mode="before")
    @classmethod
    def _normalize_prefix(cls, v: str | None) -> str:
        s = (v or "").strip().rstrip("/")
        if s and not s.startswith("/"):
            s = "/" + s
        return s

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_level(cls, v: str | None) -> str:
        return (v or "INFO").upper()

    # ── Derived / convenience properties ─────────────────────
    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """Async SQLAlchemy DSN."""
        if self.DATABASE_URI:
            return self.DATABASE_URI
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS allowlist from the `CORS_ALLOW_ORIGINS` CSV (never empty)."""
        return _split_csv(self.CORS_ALLOW_ORIGINS) or ["*"]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST)


# Singleton instance
settings = Settings()
