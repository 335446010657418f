from __future__ import annotations

"""
Sliding-window rate limiter (Redis ZSET + Lua).

`allow()` answers "may this identifier perform this action now?" and, when
the answer is yes, records the attempt in the same atomic step. Blocked
attempts are not recorded. Any Redis failure raises `RateLimiterUnavailable`;
the limiter is never silently bypassed.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from app.core.clock import Clock, utcnow
from app.core.config import Settings
from app.core.redis_client import RedisClient
from app.core.security import fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    action: str
    max_attempts: int
    window: timedelta

    @classmethod
    def request_otp(cls, cfg: Settings) -> "RateLimitPolicy":
        return cls("request_otp", cfg.REQUEST_OTP_MAX_ATTEMPTS, timedelta(minutes=cfg.REQUEST_OTP_WINDOW_MINUTES))

    @classmethod
    def verify_otp(cls, cfg: Settings) -> "RateLimitPolicy":
        return cls("verify_otp", cfg.VERIFY_OTP_MAX_ATTEMPTS, timedelta(minutes=cfg.VERIFY_OTP_WINDOW_MINUTES))


class RateLimiter:
    def __init__(self, redis: RedisClient, *, key_prefix: str = "pwreset", clock: Clock = utcnow) -> None:
        self._redis = redis
        self._prefix = key_prefix
        self._clock = clock

    def key_for(self, identifier: str, action: str) -> str:
        # Identifiers are emails; keep them out of Redis in clear text.
        return f"{self._prefix}:rl:{action}:{fingerprint(identifier)}"

    async def allow(self, identifier: str, action: str, max_attempts: int, window: timedelta) -> bool:
        key = self.key_for(identifier, action)
        now_ms = int(self._clock().timestamp() * 1000)
        count, allowed = await self._redis.rate_limit_sliding_window(
            key,
            max_ops=max_attempts,
            window_seconds=int(window.total_seconds()),
            now_ms=now_ms,
        )
        if not allowed:
            logger.warning("Rate limit hit (action=%s, key=%s, count=%d)", action, key, count)
        return allowed

    async def allow_policy(self, identifier: str, policy: RateLimitPolicy) -> bool:
        return await self.allow(identifier, policy.action, policy.max_attempts, policy.window)


__all__ = ["RateLimitPolicy", "RateLimiter"]
