"""
Paginated asset search session.

Drives one search dialog: a server query on every filter change (page 0),
infinite-scroll continuation, client-side refinement over the pages loaded so
far, latency feedback into the adaptive debouncer and suggestion-cache
updates from first-page results.
"""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import date
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from investrisk.core.exceptions import AppException
from investrisk.core.logging import get_logger
from investrisk.schemas.search import SearchFilters

from .cards import InvestmentCard
from .debounce import AdaptiveDebouncer
from .filters import FilterPreferences, apply_filters, available_options
from .query import SearchPage, search_assets
from .suggestions import SearchCache


logger = get_logger("search.session")

SCROLL_THRESHOLD_PX = 200

SEARCH_FAILED_MESSAGE = "Erro ao buscar investimentos"
NO_RESULTS_MESSAGE = "Nenhum ativo encontrado com os filtros selecionados"

PageFetcher = Callable[[SearchFilters, int], Awaitable[SearchPage]]


def is_near_bottom(scroll_top: float, scroll_height: float, client_height: float) -> bool:
    return scroll_top + client_height >= scroll_height - SCROLL_THRESHOLD_PX


class AssetSearchSession:
    """
    State of one search dialog.

    Every fresh search bumps a generation counter; a response that arrives
    after a newer search started is dropped instead of overwriting results.
    """

    def __init__(
        self,
        fetch_page: PageFetcher = search_assets,
        *,
        cache: Optional[SearchCache] = None,
        debouncer: Optional[AdaptiveDebouncer[str]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self._fetch_page = fetch_page
        self.cache = cache or SearchCache()
        self.debouncer = debouncer or AdaptiveDebouncer(
            "", min_delay=150, max_delay=300, initial_delay=250
        )
        self.debouncer.on_change = self._apply_text
        self._clock = clock

        self.filters = SearchFilters()
        self.preferences = FilterPreferences()
        self.results: list[InvestmentCard] = []
        self.page = 0
        self.total_count = 0
        self.has_more = True
        self.is_loading = False
        self.is_loading_more = False
        self.notice: Optional[str] = None
        self._generation = 0

    @property
    def in_flight(self) -> bool:
        return self.is_loading or self.is_loading_more

    async def open(self, filters: SearchFilters) -> bool:
        """Reset to page 0 and run a fresh server query for ``filters``."""
        self.filters = filters
        self.page = 0
        self.results = []
        self.total_count = 0
        self.has_more = True
        self.debouncer.cancel()
        self.preferences = replace(self.preferences, text="")
        return await self.search(load_more=False)

    async def on_scroll(
        self, scroll_top: float, scroll_height: float, client_height: float
    ) -> bool:
        """Load the next page when near the bottom and nothing is in flight."""
        if not is_near_bottom(scroll_top, scroll_height, client_height):
            return False
        if not self.has_more or self.in_flight:
            return False
        return await self.search(load_more=True)

    async def search(self, load_more: bool = False) -> bool:
        if load_more:
            self.is_loading_more = True
        else:
            self._generation += 1
            self.is_loading = True

        generation = self._generation
        try:
            return await self._run_search(generation, load_more)
        finally:
            # A newer search owns the flags once the generation moved on
            if generation == self._generation:
                self._clear_flags()

    async def _run_search(self, generation: int, load_more: bool) -> bool:
        filters = self.filters
        current_page = self.page + 1 if load_more else 0

        try:
            started = self._clock()
            result = await self._fetch_page(filters, current_page)
            self.debouncer.record_latency((self._clock() - started) * 1000)
        except (SQLAlchemyError, AppException) as e:
            logger.error(f"Asset search failed: {e}")
            if generation == self._generation:
                self.notice = SEARCH_FAILED_MESSAGE
            return False

        if generation != self._generation:
            logger.debug(f"Discarding stale search response (page {current_page})")
            return False

        if load_more:
            self.results = [*self.results, *result.cards]
        else:
            self.results = list(result.cards)
            self.total_count = result.total_count
            if filters.search_query and result.cards:
                self.cache.update_cache(
                    filters.search_query,
                    [
                        {"code": c.code, "emissor": c.emissor, "asset_type": c.asset_type}
                        for c in result.cards
                    ],
                )
        self.page = current_page
        self.has_more = result.has_more
        self.notice = NO_RESULTS_MESSAGE if not load_more and not result.cards else None
        return True

    def _clear_flags(self) -> None:
        self.is_loading = False
        self.is_loading_more = False

    def refine(self, text: str) -> None:
        """Debounced client-side text refinement; never re-queries the server."""
        self.debouncer.push(text)

    def _apply_text(self, text: str) -> None:
        self.preferences = replace(self.preferences, text=text)

    def set_preferences(self, preferences: FilterPreferences) -> None:
        self.preferences = replace(preferences, text=self.preferences.text)

    def visible(self, today: Optional[date] = None) -> list[InvestmentCard]:
        return apply_filters(self.results, self.preferences, today)

    def options(self, today: Optional[date] = None) -> dict[str, dict[str, bool]]:
        return available_options(self.results, self.preferences, today)
