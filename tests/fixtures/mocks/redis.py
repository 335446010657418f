from __future__ import annotations

"""
MockRedisClient (async) — test-grade, wrapper-compatible
========================================================
Covers the subset of Redis the reset service touches through
`app.core.redis_client.RedisClient`:

KV        : get/set (ex, nx)/delete/exists
ZSET      : zadd/zcard/zrange/zremrangebyscore/pexpire (for inspection)
Health    : ping/close/flushall
Lua       : script_load/evalsha/eval supporting exactly the two scripts the
            app ships (sliding-window rate limit, owner-only unlock)
Faults    : set `fail_with` to an exception instance to make every call raise

Design notes
------------
- Deterministic, minimal behavior for tests; not a byte-for-byte Redis emulation.
- Rate-limit time comes from the script arguments (`now_ms`), so a frozen
  clock in the app drives window expiry here too.
"""

import hashlib
from typing import Any, Dict, List, Optional

from redis.exceptions import NoScriptError

from app.core.redis_client import RATE_LIMIT_LUA, UNLOCK_LUA


class MockRedisClient:
    def __init__(self) -> None:
        self.store: Dict[str, Any] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self._sha_to_script: Dict[str, str] = {}
        self.fail_with: Optional[BaseException] = None
        self.eval_calls: int = 0

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    # ── health ───────────────────────────────────────────────
    async def ping(self) -> bool:
        self._check()
        return True

    async def close(self) -> None:
        return None

    async def flushall(self) -> None:
        self.store.clear()
        self.zsets.clear()

    # ── KV ───────────────────────────────────────────────────
    async def get(self, key: str) -> Any:
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value: Any, *, ex: Optional[int] = None, px: Optional[int] = None, nx: bool = False) -> Optional[bool]:
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for k in keys:
            removed += int(self.store.pop(k, None) is not None)
            removed += int(self.zsets.pop(k, None) is not None)
        return removed

    async def exists(self, *keys: str) -> int:
        return sum(1 for k in keys if k in self.store or k in self.zsets)

    # ── ZSET ─────────────────────────────────────────────────
    async def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        zs = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zs)
        zs.update(mapping)
        return added

    async def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))

    async def zrange(self, key: str, start: int, end: int) -> List[str]:
        members = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        names = [m for m, _ in members]
        return names[start:] if end == -1 else names[start:end + 1]

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        zs = self.zsets.get(key, {})
        doomed = [m for m, s in zs.items() if min_score <= s <= max_score]
        for m in doomed:
            del zs[m]
        return len(doomed)

    async def pexpire(self, key: str, ms: int) -> bool:
        return key in self.zsets or key in self.store

    # ── Lua ──────────────────────────────────────────────────
    async def script_load(self, script: str) -> str:
        self._check()
        sha = hashlib.sha1(script.encode("utf-8")).hexdigest()
        self._sha_to_script[sha] = script
        return sha

    async def evalsha(self, sha: str, numkeys: int, *keys_and_args: Any) -> Any:
        self._check()
        script = self._sha_to_script.get(sha)
        if script is None:
            raise NoScriptError("NOSCRIPT No matching script.")
        return await self.eval(script, numkeys, *keys_and_args)

    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any:
        self._check()
        self.eval_calls += 1
        keys = list(keys_and_args[:numkeys])
        args = list(keys_and_args[numkeys:])

        if script == RATE_LIMIT_LUA:
            key = keys[0]
            now_ms, window_ms, max_ops, suffix = int(args[0]), int(args[1]), int(args[2]), str(args[3])
            await self.zremrangebyscore(key, float("-inf"), now_ms - window_ms)
            count = await self.zcard(key)
            if count >= max_ops:
                return [0, count]
            await self.zadd(key, {f"{now_ms}-{suffix}": now_ms})
            return [1, count + 1]

        if script == UNLOCK_LUA:
            key, token = keys[0], args[0]
            if self.store.get(key) == token:
                del self.store[key]
                return 1
            return 0

        raise NotImplementedError("MockRedisClient.eval: unsupported script")
