"""Valkey (Redis-compatible) cache module."""

from .cache import Cache, cache_key
from .client import (
    VALKEY_ERRORS,
    close_valkey_client,
    get_sync_valkey_client,
    get_valkey_client,
    valkey_healthcheck,
)
from .distributed_lock import DistributedLock


__all__ = [
    "Cache",
    "cache_key",
    "VALKEY_ERRORS",
    "get_valkey_client",
    "get_sync_valkey_client",
    "close_valkey_client",
    "valkey_healthcheck",
    "DistributedLock",
]
