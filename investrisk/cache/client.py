"""
Valkey connections.

Jobs use an asyncio client. Celery runs every task in its own event loop and
an asyncio connection cannot cross loops, so async clients are kept per
running loop. The search suggestion cache runs in the API threadpool and
shares one synchronous client.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache

import redis
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from investrisk.core.config import settings
from investrisk.core.logging import get_logger


logger = get_logger("cache.client")

# Raised by the client when Valkey is down, unreachable or misbehaving
VALKEY_ERRORS = (RedisError, OSError)

_async_clients: dict[int, aioredis.Redis] = {}


def _connection_options() -> dict:
    return {
        "decode_responses": True,
        "socket_timeout": settings.valkey_socket_timeout,
        "socket_connect_timeout": settings.valkey_socket_timeout,
    }


def _loop_key() -> int:
    try:
        return id(asyncio.get_running_loop())
    except RuntimeError:
        return 0


async def get_valkey_client() -> aioredis.Redis:
    """Async client bound to the running event loop."""
    key = _loop_key()
    client = _async_clients.get(key)
    if client is None:
        pool = aioredis.ConnectionPool.from_url(
            settings.valkey_url,
            max_connections=settings.valkey_max_connections,
            retry_on_timeout=True,
            health_check_interval=30,
            **_connection_options(),
        )
        client = _async_clients[key] = aioredis.Redis(connection_pool=pool)
        logger.info("Valkey client created", extra={"loop_id": key})
    return client


@lru_cache(maxsize=1)
def get_sync_valkey_client() -> redis.Redis:
    """Blocking client for code running outside the event loop."""
    return redis.Redis.from_url(settings.valkey_url, **_connection_options())


async def close_valkey_client() -> None:
    client = _async_clients.pop(_loop_key(), None)
    if client is not None:
        await client.aclose()
        logger.info("Valkey client closed")


async def valkey_healthcheck() -> bool:
    try:
        client = await get_valkey_client()
        return bool(await asyncio.wait_for(client.ping(), timeout=settings.valkey_socket_timeout))
    except (*VALKEY_ERRORS, asyncio.TimeoutError) as e:
        logger.warning(f"Valkey healthcheck failed: {e}")
        return False
