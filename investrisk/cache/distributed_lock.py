"""Distributed locking using Valkey (SET NX EX plus token-checked release)."""

from __future__ import annotations

import asyncio
import time
import uuid

from investrisk.core.logging import get_logger

from .client import get_valkey_client


logger = get_logger("cache.lock")

LOCK_PREFIX = "investrisk:lock"

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    """
    Expiring lock keyed by name.

    Only the holder's token can release it, so a lock that expired and was
    re-acquired elsewhere is never deleted by the original holder.
    """

    def __init__(
        self,
        name: str,
        timeout: int = 30,
        blocking: bool = True,
        blocking_timeout: float | None = None,
    ):
        self.name = name
        self.key = f"{LOCK_PREFIX}:{name}"
        self.timeout = timeout
        self.blocking = blocking
        self.blocking_timeout = blocking_timeout
        self.token = str(uuid.uuid4())
        self._acquired = False

    async def acquire(self) -> bool:
        """Acquire the lock. Returns True if acquired."""
        client = await get_valkey_client()
        start_time = time.monotonic()

        while True:
            acquired = await client.set(self.key, self.token, ex=self.timeout, nx=True)
            if acquired:
                self._acquired = True
                logger.debug(f"Lock acquired: {self.name}")
                return True

            if not self.blocking:
                return False

            if self.blocking_timeout is not None:
                if time.monotonic() - start_time >= self.blocking_timeout:
                    logger.debug(f"Lock acquisition timeout: {self.name}")
                    return False

            await asyncio.sleep(0.1)

    async def release(self) -> bool:
        """Release the lock if we still hold it."""
        if not self._acquired:
            return False

        client = await get_valkey_client()
        self._acquired = False
        result = await client.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        if result:
            logger.debug(f"Lock released: {self.name}")
            return True
        logger.warning(f"Lock release failed (token mismatch): {self.name}")
        return False

    async def __aenter__(self) -> DistributedLock:
        if not await self.acquire():
            raise RuntimeError(f"Failed to acquire lock: {self.name}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()
