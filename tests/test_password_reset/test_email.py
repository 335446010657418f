# tests/test_password_reset/test_email.py

from datetime import datetime, timezone

import pytest

from app.core.config import Settings
from app.services.notifier import EmailNotifier
from app.utils.email_utils import (
    build_connection_config,
    html_message,
    render_password_changed,
    render_password_reset_otp,
)


def test_otp_email_contains_code_and_expiry():
    subject, html = render_password_reset_otp("482913", product_name="Calotracker", expires_minutes=5)

    assert subject == "Your Calotracker password reset code"
    assert '<div class="otp-code">482913</div>' in html
    assert "5 minutes" in html


def test_templates_are_autoescaped():
    _, html = render_password_changed(
        "<script>@example.com",
        product_name="Calo<b>tracker",
        changed_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    )
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "2026-03-01 12:00:00" in html


def test_connection_config_from_settings():
    cfg = Settings(SMTP_HOST="smtp.example.com", SMTP_PORT=465, SMTP_USERNAME="mailer", SMTP_PASSWORD="s3cret")

    conn = build_connection_config(cfg)

    assert conn.MAIL_SERVER == "smtp.example.com"
    assert conn.MAIL_SSL_TLS is True
    assert conn.MAIL_STARTTLS is False
    assert conn.USE_CREDENTIALS is True


def test_html_message_shape():
    message = html_message("a@example.com", "Hi", "<p>x</p>")
    assert [r.email for r in message.recipients] == ["a@example.com"]
    assert message.subject == "Hi"


@pytest.mark.anyio
async def test_notifier_dry_run_without_smtp():
    notifier = EmailNotifier(Settings(SMTP_HOST=None))
    assert await notifier.send("a@example.com", "Subject", "<p>body</p>") is False
