# app/utils/token_cleanup.py
from __future__ import annotations

"""
Password reset — storage hygiene sweep
--------------------------------------
- Purges expired or already-spent OTPs and reset tokens
- Replica-safe via a Redis distributed lock
- Expiry is still enforced lazily at read time; this only reclaims rows

Run ad hoc (cron / k8s CronJob):
    python -m app.utils.token_cleanup
"""

import asyncio
import logging
import os
from dataclasses import dataclass

from app.core.redis_client import RedisClient
from app.services.otp_ledger import OtpLedger
from app.services.reset_token_ledger import ResetTokenLedger

logger = logging.getLogger("token-cleanup")

_LOCK_KEY_SUFFIX = "maintenance:token-cleanup:lock"
LOCK_TTL_SECONDS = int(os.getenv("TOKEN_CLEANUP_LOCK_TTL_SECONDS", "300"))


@dataclass(frozen=True)
class CleanupReport:
    otps: int
    reset_tokens: int

    @property
    def total(self) -> int:
        return self.otps + self.reset_tokens


async def purge_password_reset_records(
    otp_ledger: OtpLedger,
    token_ledger: ResetTokenLedger,
    redis: RedisClient,
    *,
    key_prefix: str = "pwreset",
) -> CleanupReport:
    """
    Remove expired/used rows from both ledgers.

    Only one worker runs at a time; a concurrent caller gets `TimeoutError`
    from the lock and should simply skip this round.
    """
    async with redis.lock(f"{key_prefix}:{_LOCK_KEY_SUFFIX}", timeout=LOCK_TTL_SECONDS, blocking_timeout=2):
        report = CleanupReport(
            otps=await otp_ledger.purge_expired(),
            reset_tokens=await token_ledger.purge_expired(),
        )

    if report.total:
        logger.info("Token cleanup: purged=%s (otps=%s, reset_tokens=%s)", report.total, report.otps, report.reset_tokens)
    else:
        logger.debug("Token cleanup: nothing to purge")
    return report


async def _main() -> None:
    from app.core.config import settings
    from app.core.logger import setup_logging
    from app.core.redis_client import redis_wrapper
    from app.db.session import dispose_engine, get_session_factory

    setup_logging(settings)
    sessions = get_session_factory()
    await redis_wrapper.connect()
    try:
        await purge_password_reset_records(
            OtpLedger(sessions),
            ResetTokenLedger(sessions),
            redis_wrapper,
            key_prefix=settings.REDIS_KEY_PREFIX,
        )
    finally:
        await redis_wrapper.close()
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(_main())
