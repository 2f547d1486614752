"""Variable-income risk job (stocks, FIIs, ETFs, BDRs priced by Brapi)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from investrisk.anomaly.policies import BRAPI_RISK_POLICY
from investrisk.core.config import settings
from investrisk.core.exceptions import AppException, InsufficientDataError, PermanentAssetError
from investrisk.core.logging import get_logger
from investrisk.repositories import brapi_orm as brapi_repo
from investrisk.risk.scoring import AssetProfile, MarketDataScorer, RiskScorer
from investrisk.risk.statistics import compute_indicators, compute_returns
from investrisk.schemas.jobs import JobInvocation
from investrisk.services.brapi import fetch_historical_prices

from .chunking import ChunkedRiskJob, ChunkOutcome
from .registry import register_job


logger = get_logger("jobs.brapi_risk")

DEFAULT_ASSET_TYPE = "stock"


@dataclass(frozen=True)
class MarketContext:
    """Inputs shared by every ticker of a chunk."""

    market_returns: list[float]
    risk_free_rate: float


async def load_market_context() -> MarketContext:
    """Benchmark returns and the risk-free rate, fetched once per chunk.

    A benchmark failure leaves beta unknown for the chunk instead of
    aborting it.
    """
    market_returns: list[float] = []
    try:
        benchmark = await fetch_historical_prices(settings.brapi_benchmark_ticker)
        market_returns = compute_returns(benchmark)
    except AppException as e:
        logger.warning(f"Benchmark unavailable, beta will be unknown: {e.message}")

    selic = await brapi_repo.get_latest_selic()
    risk_free_rate = selic or settings.default_selic_rate
    logger.info(f"Using Selic rate: {risk_free_rate * 100:.2f}%")
    return MarketContext(market_returns=market_returns, risk_free_rate=risk_free_rate)


@register_job("calculate-brapi-risk")
class BrapiRiskJob(ChunkedRiskJob):
    name = "calculate-brapi-risk"
    policy = BRAPI_RISK_POLICY

    def __init__(self, scorer: RiskScorer | None = None, **kwargs):
        super().__init__(**kwargs)
        self.scorer = scorer or MarketDataScorer()

    @property
    def fetch_delay_ms(self) -> int:
        return settings.brapi_fetch_delay_ms

    def execution_type(self, request: JobInvocation) -> str:
        return "batch" if request.process_all else "manual"

    def explicit_selection(self, request: JobInvocation) -> list[str] | None:
        if request.ticker:
            return [request.ticker.strip()]
        return super().explicit_selection(request)

    async def select_pending(self, request: JobInvocation) -> list[str]:
        stale_before = datetime.now(UTC) - timedelta(days=settings.risk_staleness_days)
        return await brapi_repo.list_pending_tickers(stale_before, request.prioritize_liquid)

    async def prepare_chunk(self, request: JobInvocation) -> MarketContext:
        return await load_market_context()

    async def process_asset(self, ticker: str, context: MarketContext, outcome: ChunkOutcome) -> None:
        prices = await fetch_historical_prices(ticker)
        indicators, returns = compute_indicators(
            prices, context.risk_free_rate, context.market_returns
        )
        if len(returns) < settings.min_return_observations:
            raise InsufficientDataError(
                message=f"Insufficient data: only {len(returns)} days",
                details={"ticker": ticker},
            )

        row = await brapi_repo.get_market_data(ticker)
        asset_type = (row.asset_type if row is not None else None) or DEFAULT_ASSET_TYPE
        # A beta already stored on the row wins over the estimate
        if row is not None and row.beta:
            indicators = replace(indicators, beta=row.beta)

        profile = AssetProfile(
            asset_type=asset_type,
            issuer=(row.long_name or row.short_name or ticker) if row is not None else ticker,
        )
        result = await self.scorer.score(indicators, profile)

        await brapi_repo.save_risk(ticker, indicators, result)
        await brapi_repo.save_price_history(ticker, prices[-settings.cached_price_days:])
        outcome.record_score(asset_type, result)

        logger.info(
            f"{ticker}: Vol={indicators.volatility_1y * 100:.1f}%, VaR={indicators.var_95:.1f}%, "
            f"Score={result.score} ({result.category})"
        )

    async def on_permanent_failure(self, ticker: str, error: PermanentAssetError) -> None:
        await brapi_repo.mark_unavailable(ticker)
