"""
Redis-based distributed lock.

Used by the beaming worker so that exactly one process runs the
expanding-radius search for a given job, even when several API
instances receive the same "start search" call.

Implementation uses SET NX EX for acquire and Lua scripts for the
owner-checked release and TTL extension.  A search can outlive the
initial TTL (45 s per wave), so the holder calls :meth:`extend` once per
wave.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE_LUA = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_EXTEND_LUA = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    @classmethod
    def for_job(
        cls, client: aioredis.Redis, job_id: int, ttl_seconds: int = 120
    ) -> "DistributedLock":
        return cls(client, f"beaming:{job_id}", ttl_seconds=ttl_seconds)

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def extend(self) -> bool:
        """Reset the TTL if we still own the lock."""
        return bool(
            await self.redis.eval(_EXTEND_LUA, 1, self.key, self.token, self.ttl)
        )

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE_LUA, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        acquired = await self.acquire()
        if not acquired:
            raise RuntimeError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()
