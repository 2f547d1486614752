"""Tests for the Brapi client and the variable-income risk job."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from investrisk.core.exceptions import (
    ExternalServiceError,
    InsufficientDataError,
    PriceHistoryNotFoundError,
)
from investrisk.database.orm import BrapiMarketData
from investrisk.jobs import brapi_risk
from investrisk.jobs.brapi_risk import BrapiRiskJob, MarketContext, load_market_context
from investrisk.jobs.chunking import ChunkOutcome
from investrisk.repositories.brapi_orm import summarize_score_groups
from investrisk.schemas.jobs import JobInvocation
from investrisk.services.brapi import fetch_historical_prices


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBrapiClient:
    @pytest.mark.asyncio
    async def test_parses_history(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/quote/PETR4")
            assert request.url.params["range"] == "1y"
            return httpx.Response(
                200,
                json={
                    "results": [
                        {
                            "historicalDataPrice": [
                                {"date": 1704153600, "close": 30.0, "adjustedClose": 29.5},
                                {"date": None, "close": 31.0},
                                {"date": 1704240000, "close": 31.0},
                            ]
                        }
                    ]
                },
            )

        async with _client(handler) as client:
            prices = await fetch_historical_prices("PETR4", client=client)

        assert [p.reference_close for p in prices] == [29.5, 31.0]

    @pytest.mark.asyncio
    async def test_404_is_permanent(self):
        async with _client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(PriceHistoryNotFoundError):
                await fetch_historical_prices("XXXX3", client=client)

    @pytest.mark.asyncio
    async def test_empty_history_is_permanent(self):
        async with _client(lambda request: httpx.Response(200, json={"results": [{}]})) as client:
            with pytest.raises(PriceHistoryNotFoundError):
                await fetch_historical_prices("XXXX3", client=client)

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        async with _client(lambda request: httpx.Response(502)) as client:
            with pytest.raises(ExternalServiceError) as exc_info:
                await fetch_historical_prices("PETR4", client=client)
        assert not isinstance(exc_info.value, PriceHistoryNotFoundError)


class TestMarketContext:
    @pytest.mark.asyncio
    async def test_benchmark_failure_leaves_beta_unknown(self):
        with (
            patch.object(brapi_risk, "fetch_historical_prices", AsyncMock(side_effect=ExternalServiceError())),
            patch.object(brapi_risk.brapi_repo, "get_latest_selic", AsyncMock(return_value=None)),
        ):
            context = await load_market_context()

        assert context.market_returns == []
        assert context.risk_free_rate == 0.1175

    @pytest.mark.asyncio
    async def test_stored_selic_wins(self, rising_prices):
        with (
            patch.object(brapi_risk, "fetch_historical_prices", AsyncMock(return_value=rising_prices)),
            patch.object(brapi_risk.brapi_repo, "get_latest_selic", AsyncMock(return_value=0.105)),
        ):
            context = await load_market_context()

        assert len(context.market_returns) == 60
        assert context.risk_free_rate == 0.105


class TestBrapiRiskJob:
    def test_selection_modes(self):
        job = BrapiRiskJob()
        assert job.explicit_selection(JobInvocation(ticker=" PETR4 ")) == ["PETR4"]
        assert job.explicit_selection(JobInvocation(asset_ids=["VALE3"])) == ["VALE3"]
        assert job.explicit_selection(JobInvocation()) is None
        assert job.execution_type(JobInvocation(process_all=True)) == "batch"
        assert job.execution_type(JobInvocation(ticker="PETR4")) == "manual"

    @pytest.mark.asyncio
    async def test_requires_explicit_request(self):
        job = BrapiRiskJob()
        assert await job.resolve_cursor(JobInvocation()) is None

    @pytest.mark.asyncio
    async def test_process_asset_scores_and_persists(self, rising_prices):
        row = BrapiMarketData(ticker="HGLG11", asset_type="fii", long_name="CSHG Logística", beta=None)
        save_risk = AsyncMock()
        save_history = AsyncMock(return_value=61)
        outcome = ChunkOutcome()

        with (
            patch.object(brapi_risk, "fetch_historical_prices", AsyncMock(return_value=rising_prices)),
            patch.object(brapi_risk.brapi_repo, "get_market_data", AsyncMock(return_value=row)),
            patch.object(brapi_risk.brapi_repo, "save_risk", save_risk),
            patch.object(brapi_risk.brapi_repo, "save_price_history", save_history),
        ):
            await BrapiRiskJob().process_asset("HGLG11", MarketContext([], 0.1), outcome)

        ticker, indicators, result = save_risk.await_args.args
        assert ticker == "HGLG11"
        assert indicators.beta is None
        assert result.strategy == "market_data"
        assert 1 <= result.score <= 20
        assert outcome.processed == 1
        assert outcome.by_type == {"fii": 1}
        save_history.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stored_beta_wins(self, rising_prices):
        row = BrapiMarketData(ticker="PETR4", asset_type="stock", beta=1.4)
        save_risk = AsyncMock()

        with (
            patch.object(brapi_risk, "fetch_historical_prices", AsyncMock(return_value=rising_prices)),
            patch.object(brapi_risk.brapi_repo, "get_market_data", AsyncMock(return_value=row)),
            patch.object(brapi_risk.brapi_repo, "save_risk", save_risk),
            patch.object(brapi_risk.brapi_repo, "save_price_history", AsyncMock()),
        ):
            await BrapiRiskJob().process_asset("PETR4", MarketContext([], 0.1), ChunkOutcome())

        assert save_risk.await_args.args[1].beta == 1.4

    @pytest.mark.asyncio
    async def test_short_history_is_insufficient(self, price_factory):
        with patch.object(
            brapi_risk, "fetch_historical_prices", AsyncMock(return_value=price_factory([10.0] * 10))
        ):
            with pytest.raises(InsufficientDataError):
                await BrapiRiskJob().process_asset("NEW3", MarketContext([], 0.1), ChunkOutcome())

    @pytest.mark.asyncio
    async def test_permanent_failure_marks_ticker(self):
        mark = AsyncMock()
        with patch.object(brapi_risk.brapi_repo, "mark_unavailable", mark):
            await BrapiRiskJob().on_permanent_failure("XXXX3", PriceHistoryNotFoundError())
        mark.assert_awaited_once_with("XXXX3")


class TestScoreStats:
    def test_summarize_groups(self):
        stats = summarize_score_groups(
            [("stock", "Moderado", 3, 30), ("fii", "Baixo", 1, 4), ("stock", "Alto", 1, 16)]
        )
        assert stats == {
            "total_assets": 5,
            "by_type": {"stock": 4, "fii": 1},
            "by_risk_category": {"Moderado": 3, "Baixo": 1, "Alto": 1},
            "avg_risk_score": 10.0,
        }

    def test_empty_table(self):
        assert summarize_score_groups([])["avg_risk_score"] == 0
