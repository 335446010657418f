# app/core/redis_client.py
from __future__ import annotations

"""
Password Reset — Redis Client (Async)
=====================================
Central, **single source of truth** for Redis access in the service.

What this provides
------------------
• Resilient connection manager with retries & backoff
• Pooled async client with health checks
• Sliding-window **rate limiting** (atomic Lua, check-before-record)
• Async **distributed lock** used by the cleanup sweep

Public API (imported as `redis_wrapper`)
----------------------------------------
- await redis_wrapper.connect() / await redis_wrapper.close() / await redis_wrapper.is_connected()
- redis_wrapper.client
- await redis_wrapper.rate_limit_sliding_window(key, max_ops=..., window_seconds=...)
- async with redis_wrapper.lock(name, timeout=10, blocking_timeout=3): ...

Design notes
------------
• **Fail-closed** for rate limiting: any Redis problem raises
  `RateLimiterUnavailable` and the request ends in a 500. Attackers must
  not be able to lift the limit by degrading Redis.
• **Strict** on locks: raise `TimeoutError` if not acquired within `blocking_timeout`.
"""

import asyncio
import logging
import os
import random
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, Optional, Protocol, Tuple
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.exceptions import NoScriptError, RedisError

from app.core.config import settings
from app.core.exceptions import RateLimiterUnavailable

logger = logging.getLogger("redis")

# ─────────────────────────────────────────────────────────────────────────────
# Tunables (env-aware sensible defaults)
# ─────────────────────────────────────────────────────────────────────────────
BASE_DELAY = float(os.getenv("REDIS_CONNECT_BASE_DELAY", "0.3"))  # seconds
HEALTH_CHECK_INTERVAL = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))  # seconds
SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "3"))
SOCKET_CONNECT_TIMEOUT = float(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "3"))
POOL_MAX_CONNECTIONS = int(os.getenv("REDIS_POOL_MAX_CONNECTIONS", "64"))
CLIENT_NAME = os.getenv("REDIS_CLIENT_NAME", "password-reset-api")


# ─────────────────────────────────────────────────────────────────────────────
# Minimal protocol the real client and test mocks satisfy (typing only)
# ─────────────────────────────────────────────────────────────────────────────
class _RedisProto(Protocol):
    async def ping(self) -> Any: ...
    async def script_load(self, script: str) -> Any: ...
    async def evalsha(self, sha: str, numkeys: int, *keys_and_args: Any) -> Any: ...
    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any: ...
    async def set(self, name: str, value: Any, *, ex: Optional[int] = None, nx: Optional[bool] = None) -> Any: ...
    async def get(self, name: str) -> Any: ...
    async def delete(self, *names: Any) -> Any: ...
    async def close(self) -> Any: ...


# ─────────────────────────────────────────────────────────────────────────────
# Lua: atomic sliding-window check-then-record (ZSET)
# ─────────────────────────────────────────────────────────────────────────────
# Blocked attempts are NOT recorded, so a throttled client cannot extend its
# own lockout by hammering the endpoint.
RATE_LIMIT_LUA = """
-- KEYS[1]  = zset key
-- ARGV[1]  = now_ms
-- ARGV[2]  = window_ms
-- ARGV[3]  = max_ops
-- ARGV[4]  = unique member suffix
redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', tonumber(ARGV[1]) - tonumber(ARGV[2]))
local count = redis.call('ZCARD', KEYS[1])
if count >= tonumber(ARGV[3]) then
  return {0, count}
end
redis.call('ZADD', KEYS[1], ARGV[1], ARGV[1] .. '-' .. ARGV[4])
redis.call('PEXPIRE', KEYS[1], ARGV[2])
return {1, count + 1}
"""

# Owner-only release for the SET NX lock
UNLOCK_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
end
return 0
"""


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────
class RedisClient:
    """
    Redis connection manager (asyncio).

    Features
    --------
    • Resilient connect with exponential backoff + jitter
    • Pooled connections, health checks
    • Atomic sliding-window rate limit helper (Lua)
    • Async distributed lock helper
    """

    def __init__(self, redis_url: str, *, max_retries: int = 5):
        self.redis_url = redis_url
        self.max_retries = max_retries
        self._client: Optional[_RedisProto] = None
        self._rate_limit_sha: Optional[str] = None

    @classmethod
    def from_client(cls, client: _RedisProto) -> "RedisClient":
        """Wrap an already-built client (tests, scripts)."""
        inst = cls("redis://injected")
        inst._client = client
        return inst

    # ── lifecycle ────────────────────────────────────────────────────────────
    async def connect(self) -> None:
        """
        Establish a connection with retries; pre-load the RL Lua script.

        Steps
        -----
        - **[Step 1]** Reuse a healthy client when possible.
        - **[Step 2]** Attempt connection with backoff and jitter.
        - **[Step 3]** Load Lua script (best-effort; `eval` is used otherwise).
        """
        # ── [Step 1] Reuse an existing healthy client ───────────────────────
        if self._client is not None:
            try:
                await self._client.ping()
                logger.debug("Redis already connected.")
                return
            except RedisError:
                self._client = None  # stale client → reconnect

        last_err: Optional[Exception] = None

        # ── [Step 2] Retry with backoff ─────────────────────────────────────
        for attempt in range(1, self.max_retries + 1):
            try:
                self._client = self._build_client()
                await self._client.ping()

                # ── [Step 3] Best-effort script preload ────────────────────
                try:
                    self._rate_limit_sha = await self._client.script_load(RATE_LIMIT_LUA)
                except RedisError:
                    self._rate_limit_sha = None

                logger.info("✅ Connected to Redis")
                return
            except (RedisError, OSError) as e:
                last_err = e
                delay = self._backoff(attempt)
                logger.warning(
                    "Redis connect attempt %s/%s failed: %r (retrying in %.2fs)",
                    attempt, self.max_retries, e, delay,
                )
                await asyncio.sleep(delay)

        logger.error("❌ Redis connection failed after %s retries.", self.max_retries)
        raise RuntimeError("Redis connection failed") from last_err

    async def close(self) -> None:
        """Gracefully close connection & pool."""
        if self._client is None:
            return
        try:
            await self._client.close()
            logger.info("🛑 Redis connection closed.")
        except RedisError as e:
            logger.warning("Error closing Redis connection: %s", e)
        finally:
            self._client = None
            self._rate_limit_sha = None

    async def is_connected(self) -> bool:
        """Return True if `PING` succeeds (healthy connection)."""
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    @property
    def client(self) -> _RedisProto:
        """Low-level client; ensure `connect()` was called at startup."""
        if self._client is None:
            raise RuntimeError("Redis client not initialized. Call connect() first.")
        return self._client

    # ── rate limiting ───────────────────────────────────────────────────────
    async def rate_limit_sliding_window(
        self,
        key: str,
        *,
        max_ops: int,
        window_seconds: int,
        now_ms: Optional[int] = None,
    ) -> Tuple[int, bool]:
        """
        Sliding-window rate limit using a ZSET and an atomic Lua script.

        Step-by-step
        -----------
        1) Remove entries older than the current window.
        2) Count what is left; if the budget is spent, stop (nothing recorded).
        3) Otherwise add a unique member for this hit and PEXPIRE the key.

        Returns
        -------
        tuple[int, bool] : (count_in_window, allowed)

        Raises
        ------
        RateLimiterUnavailable
            Redis is not connected or the script could not run.
        """
        if self._client is None:
            raise RateLimiterUnavailable("Redis not connected")

        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        window_ms = int(window_seconds * 1000)
        args = (now_ms, window_ms, int(max_ops), secrets.token_hex(8))

        try:
            if self._rate_limit_sha:
                try:
                    res = await self._client.evalsha(self._rate_limit_sha, 1, key, *args)
                except NoScriptError:
                    res = await self._client.eval(RATE_LIMIT_LUA, 1, key, *args)
            else:
                res = await self._client.eval(RATE_LIMIT_LUA, 1, key, *args)
            allowed, count = int(res[0]), int(res[1])
        except (RedisError, OSError, TypeError, ValueError, IndexError) as e:
            logger.error("rate_limit_sliding_window failed for %s: %r (fail-closed)", key, e)
            raise RateLimiterUnavailable("Rate limiter unavailable") from e

        return count, bool(allowed)

    # ── lock ────────────────────────────────────────────────────────────────
    @asynccontextmanager
    async def lock(
        self,
        name: str,
        *,
        timeout: int = 10,
        blocking_timeout: float = 3,
        sleep: float = 0.2,
    ):
        """
        Process-safe mutex backed by `SET NX EX` with owner-only release.

        Raises
        ------
        RuntimeError
            Redis is not connected.
        TimeoutError
            The lock was not acquired within `blocking_timeout`.
        """
        if self._client is None:
            raise RuntimeError("Redis not connected")
        rc = self._client

        token = secrets.token_hex(16)
        deadline = time.monotonic() + max(0.0, float(blocking_timeout))
        acquired = False
        while True:
            acquired = bool(await rc.set(name, token, ex=int(timeout), nx=True))
            if acquired or time.monotonic() >= deadline:
                break
            await asyncio.sleep(sleep)

        if not acquired:
            raise TimeoutError(f"Failed to acquire lock: {name}")

        try:
            yield
        finally:
            try:
                await rc.eval(UNLOCK_LUA, 1, name, token)
            except RedisError:
                logger.warning("Redis lock release failed for %s (expires in %ss).", name, timeout)

    # ── internals ───────────────────────────────────────────────────────────
    def _build_client(self) -> _RedisProto:
        """Instantiate a Redis client with sane pool options from URL."""
        url = self.redis_url.strip()
        client_kwargs: dict[str, Any] = dict(
            decode_responses=True,
            health_check_interval=HEALTH_CHECK_INTERVAL,
            socket_keepalive=True,
            socket_timeout=SOCKET_TIMEOUT,
            socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
            retry_on_timeout=True,
            max_connections=POOL_MAX_CONNECTIONS,
            client_name=CLIENT_NAME,
        )
        if urlparse(url).scheme == "rediss":
            if os.getenv("REDIS_SSL_CERT_REQS", "required").lower() == "none":  # dev only
                client_kwargs["ssl_cert_reqs"] = None
        return redis.Redis.from_url(url, **client_kwargs)

    @staticmethod
    def _backoff(attempt: int) -> float:
        # Exponential backoff with jitter (cap at 3s)
        return min(3.0, BASE_DELAY * (2 ** (attempt - 1))) + random.uniform(0, 0.25)


# ─────────────────────────────────────────────────────────────────────────────
# Process-wide instance
# ─────────────────────────────────────────────────────────────────────────────
redis_wrapper = RedisClient(settings.REDIS_URL, max_retries=settings.REDIS_MAX_RETRIES)
