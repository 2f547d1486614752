"""
Typed persisted state for the search layer.

Values live as JSON strings in a key-value store. Reads validate against a
pydantic type and fall back to a default factory when the key is missing or
the stored payload does not validate, so corrupted state is discarded
instead of surfacing as an error.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Optional, Protocol, TypeVar

import redis
from pydantic import TypeAdapter, ValidationError

from investrisk.cache.client import VALKEY_ERRORS, get_sync_valkey_client
from investrisk.core.logging import get_logger


logger = get_logger("search.state")

T = TypeVar("T")


class KeyValueStore(Protocol):
    """Minimal string store (localStorage semantics) with optional key expiry."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store, used per session and in tests.

    ``ttl`` is accepted for interface parity and ignored: keys live as long
    as the store.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class ValkeyStore:
    """
    Valkey-backed store shared across API workers.

    Storage errors degrade to "missing" on read and are dropped on write.
    """

    def __init__(self, client: Optional[redis.Redis] = None, namespace: str = "investrisk:state"):
        self._client = client or get_sync_valkey_client()
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            return self._client.get(self._key(key))
        except VALKEY_ERRORS as e:
            logger.warning(f"State read failed for {key}: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            if ttl:
                self._client.set(self._key(key), value, ex=ttl)
            else:
                self._client.set(self._key(key), value)
        except VALKEY_ERRORS as e:
            logger.warning(f"State write failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except VALKEY_ERRORS as e:
            logger.warning(f"State delete failed for {key}: {e}")


class PersistedState(Generic[T]):
    """A single typed value stored under one key, optionally expiring."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        type_: Any,
        default: Callable[[], T],
        ttl: Optional[int] = None,
    ):
        self.store = store
        self.key = key
        self.ttl = ttl
        self._adapter: TypeAdapter[T] = TypeAdapter(type_)
        self._default = default

    def load(self) -> T:
        raw = self.store.get(self.key)
        if raw is None:
            return self._default()
        try:
            return self._adapter.validate_json(raw)
        except ValidationError:
            logger.debug(f"Discarding malformed state under {self.key}")
            return self._default()

    def save(self, value: T) -> None:
        payload = self._adapter.dump_json(value, by_alias=True).decode()
        if self.ttl:
            self.store.set(self.key, payload, ttl=self.ttl)
        else:
            self.store.set(self.key, payload)

    def reset(self) -> T:
        value = self._default()
        self.save(value)
        return value
