"""
Adaptive debounce for search-as-you-type.

The delay follows observed API latency: with fewer than five samples the
configured initial delay is used; otherwise P75 of the recent latencies plus
50 ms, floored at ``min_delay`` and capped at ``min(max_delay, 300)``.
"""

from __future__ import annotations

import asyncio
import math
from typing import Annotated, Any, Callable, Generic, Optional, TypeVar

from pydantic import Field

from .state import KeyValueStore, MemoryStore, PersistedState


LATENCY_KEY = "investia_apiLatencyHistory"
MAX_HISTORY_SIZE = 20
MIN_SAMPLES = 5
MAX_VALID_LATENCY_MS = 30_000
ABSOLUTE_MAX_DELAY_MS = 300
LATENCY_HEADROOM_MS = 50

LatencyHistory = list[Annotated[int, Field(ge=0, le=MAX_VALID_LATENCY_MS)]]

T = TypeVar("T")


def percentile(samples: list[int], fraction: float) -> Optional[int]:
    """Value at sorted index ``floor(n * fraction)``; None below five samples."""
    if len(samples) < MIN_SAMPLES:
        return None
    ordered = sorted(samples)
    return ordered[math.floor(len(ordered) * fraction)]


class AdaptiveDebouncer(Generic[T]):
    """
    Trailing-edge debounce whose delay adapts to recorded latency.

    ``push`` cancels any pending timer and schedules a new one with the
    current delay; only the value present when the timer fires becomes
    ``value``. Must be used from a running event loop.
    """

    def __init__(
        self,
        initial_value: T,
        *,
        min_delay: int = 150,
        max_delay: int = 300,
        initial_delay: int = 250,
        store: Optional[KeyValueStore] = None,
        on_change: Optional[Callable[[T], Any]] = None,
    ):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.initial_delay = initial_delay
        self.value: T = initial_value
        self.on_change = on_change
        self._handle: Optional[asyncio.TimerHandle] = None
        self._history: PersistedState[list[int]] = PersistedState(
            store or MemoryStore(), LATENCY_KEY, LatencyHistory, list
        )

    @property
    def history(self) -> list[int]:
        return self._history.load()

    @property
    def p75(self) -> Optional[int]:
        return percentile(self.history, 0.75)

    @property
    def p90(self) -> Optional[int]:
        # Observability only; never feeds the delay.
        return percentile(self.history, 0.9)

    @property
    def current_delay(self) -> int:
        p75 = self.p75
        if p75 is None:
            return self.initial_delay
        if p75 < self.min_delay:
            return self.min_delay
        return min(p75 + LATENCY_HEADROOM_MS, min(self.max_delay, ABSOLUTE_MAX_DELAY_MS))

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def record_latency(self, ms: float) -> None:
        """Store a latency sample; out-of-range samples are ignored."""
        if not (0 <= ms <= MAX_VALID_LATENCY_MS):
            return
        history = self.history
        history.append(math.floor(ms + 0.5))
        self._history.save(history[-MAX_HISTORY_SIZE:])

    def push(self, value: T) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.current_delay / 1000, self._emit, value)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _emit(self, value: T) -> None:
        self._handle = None
        self.value = value
        if self.on_change is not None:
            self.on_change(value)
