# app/utils/email_utils.py

from __future__ import annotations

"""
Email rendering & transport helpers
===================================

- Jinja2 rendering of the transactional HTML templates shipped in
  `app/templates/email` (autoescaped).
- A lazily built FastAPI-Mail client from the SMTP settings.

Public API
----------
- render_password_reset_otp(code, *, product_name, expires_minutes) -> (subject, html)
- render_password_changed(email, *, product_name, changed_at) -> (subject, html)
- build_connection_config(settings) -> ConnectionConfig
- html_message(to_email, subject, html) -> MessageSchema
"""

import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from fastapi_mail import ConnectionConfig, MessageSchema, MessageType
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import Settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


# ──────────────────────────────────────────────────────────────────────────────
# 🧰 Jinja environment
# ──────────────────────────────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def _jinja() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html", "xml")),
    )


def render_template(template_name: str, **context) -> str:
    """Render an HTML template; a missing or broken template raises."""
    return _jinja().get_template(template_name).render(**context)


def render_password_reset_otp(code: str, *, product_name: str, expires_minutes: int) -> Tuple[str, str]:
    subject = f"Your {product_name} password reset code"
    html = render_template(
        "password_reset_otp.html",
        code=code,
        product_name=product_name,
        expires_minutes=expires_minutes,
    )
    return subject, html


def render_password_changed(email: str, *, product_name: str, changed_at: datetime) -> Tuple[str, str]:
    subject = f"Your {product_name} password was changed"
    html = render_template(
        "password_changed.html",
        email=email,
        product_name=product_name,
        changed_at=changed_at.strftime("%Y-%m-%d %H:%M:%S"),
    )
    return subject, html


# ──────────────────────────────────────────────────────────────────────────────
# 📮 FastAPI-Mail configuration
# ──────────────────────────────────────────────────────────────────────────────

def build_connection_config(cfg: Settings) -> ConnectionConfig:
    """SMTPS (implicit TLS) on port 465, STARTTLS otherwise."""
    use_ssl = cfg.SMTP_PORT == 465
    password = cfg.SMTP_PASSWORD.get_secret_value() if cfg.SMTP_PASSWORD else ""
    return ConnectionConfig(
        MAIL_USERNAME=cfg.SMTP_USERNAME or "",
        MAIL_PASSWORD=password,
        MAIL_FROM=cfg.EMAIL_FROM,
        MAIL_FROM_NAME=cfg.EMAIL_FROM_NAME,
        MAIL_PORT=cfg.SMTP_PORT,
        MAIL_SERVER=cfg.SMTP_HOST or "localhost",
        MAIL_STARTTLS=not use_ssl,
        MAIL_SSL_TLS=use_ssl,
        USE_CREDENTIALS=bool(cfg.SMTP_USERNAME and password),
        SUPPRESS_SEND=0,
    )


def html_message(to_email: str, subject: str, html: str) -> MessageSchema:
    return MessageSchema(
        subject=subject,
        recipients=[to_email],
        body=html,
        subtype=MessageType.html,
    )


__all__ = [
    "TEMPLATE_DIR",
    "render_template",
    "render_password_reset_otp",
    "render_password_changed",
    "build_connection_config",
    "html_message",
]
