"""
Shared AI gateway client with a circuit breaker.

One ``AsyncOpenAI`` client per process, recreated after ``client_ttl``. After
``circuit_breaker_threshold`` consecutive failed completions the breaker
opens: ``get_client`` returns None and scorers go straight to their
heuristic fallback until ``circuit_breaker_timeout`` seconds have passed,
then a single probe request is let through.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

import httpx
from openai import AsyncOpenAI

from investrisk.core.logging import get_logger

from .config import AiSettings, get_settings


logger = get_logger("ai.client")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CircuitBreaker:
    """Consecutive-failure counter that opens at a threshold."""

    def __init__(self, threshold: int, reset_after: float, clock: Callable[[], datetime] = _utcnow):
        self.threshold = threshold
        self.reset_after = reset_after
        self.failures = 0
        self.opened_at: datetime | None = None
        self._clock = clock

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def allows_request(self) -> bool:
        if self.opened_at is None:
            return True
        return (self._clock() - self.opened_at).total_seconds() >= self.reset_after

    def success(self) -> None:
        self.failures = 0
        self.opened_at = None

    def failure(self) -> None:
        self.failures += 1
        if self.failures >= self.threshold:
            if self.opened_at is None:
                logger.warning(f"AI circuit opened after {self.failures} failures")
            self.opened_at = self._clock()


class AiClientManager:
    """Owns the process-wide AI client and its circuit breaker."""

    def __init__(self, settings: AiSettings | None = None):
        self._settings = settings or get_settings()
        self._breaker = CircuitBreaker(
            self._settings.circuit_breaker_threshold, self._settings.circuit_breaker_timeout
        )
        self._client: AsyncOpenAI | None = None
        self._http: httpx.AsyncClient | None = None
        self._created_at: datetime | None = None
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> AiSettings:
        return self._settings

    async def get_client(self) -> AsyncOpenAI | None:
        """The shared client, or None without an API key or while the circuit is open."""
        if not self._breaker.allows_request():
            logger.debug("AI circuit open, skipping request")
            return None
        if not self._settings.api_key:
            logger.warning("AI_API_KEY not configured")
            return None

        async with self._lock:
            fresh = self._created_at is not None and _utcnow() - self._created_at <= self._settings.client_ttl
            if self._client is None or not fresh:
                await self._reset()
                self._http = httpx.AsyncClient(
                    limits=httpx.Limits(max_connections=self._settings.max_connections),
                    timeout=httpx.Timeout(self._settings.request_timeout, connect=10.0),
                )
                # Retries are done by the caller through tenacity
                self._client = AsyncOpenAI(
                    api_key=self._settings.api_key,
                    base_url=self._settings.base_url,
                    http_client=self._http,
                    max_retries=0,
                )
                self._created_at = _utcnow()
            return self._client

    async def _reset(self) -> None:
        if self._http is not None:
            await self._http.aclose()
        self._http = None
        self._client = None
        self._created_at = None

    def record_success(self) -> None:
        self._breaker.success()

    def record_failure(self) -> None:
        self._breaker.failure()

    def is_circuit_open(self) -> bool:
        return self._breaker.is_open

    async def close(self) -> None:
        async with self._lock:
            await self._reset()


_manager: AiClientManager | None = None


def get_client_manager() -> AiClientManager:
    global _manager
    if _manager is None:
        _manager = AiClientManager()
    return _manager


async def close_client_manager() -> None:
    global _manager
    if _manager is not None:
        await _manager.close()
        _manager = None
