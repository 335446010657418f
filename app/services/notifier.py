from __future__ import annotations

"""
Outbound notifications.

`Notifier.send` returns True when the message was handed to the transport
and False otherwise. It may also raise; callers in the reset flow treat both
as best-effort and never fail the request because of email.
"""

import asyncio
import logging
from typing import Optional, Protocol

from fastapi_mail import FastMail

from app.core.config import Settings
from app.utils.email_utils import build_connection_config, html_message

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, to: str, subject: str, html: str) -> bool: ...


class EmailNotifier:
    """FastAPI-Mail SMTP transport; logs instead of sending when SMTP is unset."""

    def __init__(self, cfg: Settings) -> None:
        self._cfg = cfg
        self._client: Optional[FastMail] = None

    def _fastmail(self) -> FastMail:
        if self._client is None:
            self._client = FastMail(build_connection_config(self._cfg))
        return self._client

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self._cfg.smtp_configured:
            logger.info("📨 [DRY-RUN] Email to=%s subject=%s [HTML body omitted]", to, subject)
            return False

        message = html_message(to, subject, html)
        try:
            await asyncio.wait_for(
                self._fastmail().send_message(message),
                timeout=self._cfg.EMAIL_SEND_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error("❌ Email send timed out after %.1fs (subject=%s)", self._cfg.EMAIL_SEND_TIMEOUT_SECONDS, subject)
            return False
        logger.info("📨 Email sent (subject=%s)", subject)
        return True


__all__ = ["Notifier", "EmailNotifier"]
