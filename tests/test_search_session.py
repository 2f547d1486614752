"""Tests for the paginated search session."""

from __future__ import annotations

import asyncio
import itertools
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from investrisk.schemas.search import SearchFilters
from investrisk.search.cards import InvestmentCard, risk_color
from investrisk.search.debounce import AdaptiveDebouncer
from investrisk.search.filters import FilterPreferences
from investrisk.search.query import PAGE_SIZE, SearchPage
from investrisk.search.session import (
    NO_RESULTS_MESSAGE,
    SEARCH_FAILED_MESSAGE,
    AssetSearchSession,
    is_near_bottom,
)
from investrisk.search.state import MemoryStore
from investrisk.search.suggestions import SearchCache


def _card(code: str, score: int = 5, emissor: str = "Emissor") -> InvestmentCard:
    return InvestmentCard(
        id=code,
        type="Debênture",
        code=code,
        emissor=emissor,
        data_vencimento=None,
        maturity_date_raw=None,
        rentabilidade="",
        rentabilidade_tooltip=None,
        is_market_rate=False,
        liquidez="No vencimento",
        risk_score=score,
        risk_category="Baixo",
        risk_color=risk_color(score),
        asset_id=code,
        asset_type="debenture",
    )


def _page(page: int, count: int, total: int, prefix: str = "A") -> SearchPage:
    cards = [_card(f"{prefix}{page}-{i}") for i in range(count)]
    return SearchPage(cards=cards, page=page, total_count=total)


def _session(fetch, **kwargs) -> AssetSearchSession:
    ticks = itertools.count(step=0.12)
    return AssetSearchSession(
        fetch,
        cache=kwargs.pop("cache", SearchCache(MemoryStore())),
        debouncer=kwargs.pop(
            "debouncer", AdaptiveDebouncer("", store=MemoryStore(), initial_delay=10)
        ),
        clock=lambda: next(ticks),
    )


class TestScrollThreshold:
    def test_near_bottom(self):
        assert is_near_bottom(800, 1200, 250)
        assert not is_near_bottom(500, 1200, 250)


class TestSearch:
    @pytest.mark.asyncio
    async def test_open_loads_first_page(self):
        fetch = AsyncMock(return_value=_page(0, PAGE_SIZE, 250))
        session = _session(fetch)
        filters = SearchFilters(asset_type="debenture")

        assert await session.open(filters)

        fetch.assert_awaited_once_with(filters, 0)
        assert len(session.results) == PAGE_SIZE
        assert session.total_count == 250
        assert session.has_more
        assert session.notice is None
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_latency_is_recorded(self):
        session = _session(AsyncMock(return_value=_page(0, 1, 1)))
        await session.open(SearchFilters())
        assert session.debouncer.history == [120]

    @pytest.mark.asyncio
    async def test_scroll_appends_next_page(self):
        fetch = AsyncMock(side_effect=[_page(0, PAGE_SIZE, 150), _page(1, 50, 150)])
        session = _session(fetch)
        await session.open(SearchFilters())

        assert await session.on_scroll(900, 1000, 200)

        assert fetch.await_args.args[1] == 1
        assert len(session.results) == 150
        assert session.page == 1
        assert not session.has_more
        # nothing left to load
        assert not await session.on_scroll(900, 1000, 200)
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_scroll_far_from_bottom_does_nothing(self):
        fetch = AsyncMock(return_value=_page(0, PAGE_SIZE, 500))
        session = _session(fetch)
        await session.open(SearchFilters())

        assert not await session.on_scroll(0, 5000, 200)
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_first_page_sets_notice(self):
        session = _session(AsyncMock(return_value=_page(0, 0, 0)))
        await session.open(SearchFilters(risk_filter="high"))
        assert session.results == []
        assert session.notice == NO_RESULTS_MESSAGE

    @pytest.mark.asyncio
    async def test_failure_sets_notice_and_clears_loading(self):
        fetch = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        session = _session(fetch)

        assert not await session.open(SearchFilters())
        assert session.notice == SEARCH_FAILED_MESSAGE
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates_and_clears_loading(self):
        fetch = AsyncMock(side_effect=[_page(0, PAGE_SIZE, 300), KeyError("risk_score")])
        session = _session(fetch)
        await session.open(SearchFilters())

        with pytest.raises(KeyError):
            await session.on_scroll(900, 1000, 200)

        assert not session.in_flight
        assert session.page == 0
        # the next scroll is not blocked by a stuck flag
        fetch.side_effect = None
        fetch.return_value = _page(1, 10, 300)
        assert await session.on_scroll(900, 1000, 200)

    @pytest.mark.asyncio
    async def test_text_query_updates_suggestion_cache(self):
        cache = SearchCache(MemoryStore())
        page = SearchPage(cards=[_card("CRI999", emissor="Securitizadora X")], page=0, total_count=1)
        session = _session(AsyncMock(return_value=page), cache=cache)

        await session.open(SearchFilters(search_query="securit"))

        assert [a.ticker for a in cache.get_instant_suggestions("securit")] == ["CRI999"]

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self):
        release_first = asyncio.Event()

        async def fetch(filters, page):
            if filters.search_query == "slow":
                await release_first.wait()
                return _page(0, 3, 3, prefix="SLOW")
            return _page(0, 2, 2, prefix="FAST")

        session = _session(fetch)
        session.filters = SearchFilters(search_query="slow")
        slow = asyncio.create_task(session.search())
        await asyncio.sleep(0)

        assert await session.open(SearchFilters(search_query="fast"))
        release_first.set()

        assert await slow is False
        assert [c.code for c in session.results] == ["FAST0-0", "FAST0-1"]
        assert session.total_count == 2


class TestRefinement:
    @pytest.mark.asyncio
    async def test_refine_is_debounced_and_local(self):
        fetch = AsyncMock(
            return_value=SearchPage(
                cards=[_card("PETR4", emissor="Petrobras"), _card("VALE3", emissor="Vale")],
                page=0,
                total_count=2,
            )
        )
        session = _session(fetch)
        await session.open(SearchFilters())

        session.refine("va")
        session.refine("vale")
        assert len(session.visible()) == 2

        await asyncio.sleep(0.1)

        assert [c.code for c in session.visible()] == ["VALE3"]
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_preferences_keep_refinement_text(self):
        fetch = AsyncMock(
            return_value=SearchPage(
                cards=[_card("ALFA", score=3), _card("BRAVO", score=18), _card("CHARLIE", score=12)],
                page=0,
                total_count=3,
            )
        )
        session = _session(fetch)
        await session.open(SearchFilters())
        session.preferences = FilterPreferences(text="rav")

        session.set_preferences(FilterPreferences(risk_filter="high", sort_by="risk_desc"))

        assert session.preferences.text == "rav"
        assert [c.code for c in session.visible()] == ["BRAVO"]
        assert session.options()["risk"] == {"low": False, "medium": False, "high": True}

    @pytest.mark.asyncio
    async def test_open_resets_refinement(self):
        session = _session(AsyncMock(return_value=_page(0, 1, 1)))
        session.preferences = FilterPreferences(text="old", risk_filter="low")

        await session.open(SearchFilters())

        assert session.preferences.text == ""
        assert session.preferences.risk_filter == "low"
