"""Brapi market-data repository using SQLAlchemy ORM.

Usage:
    from investrisk.repositories import brapi_orm as brapi_repo

    tickers = await brapi_repo.list_pending_tickers(stale_before, prioritize_liquid=True)
    await brapi_repo.save_risk("PETR4", indicators, result)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert

from investrisk.core.logging import get_logger
from investrisk.database.connection import get_session
from investrisk.database.orm import BrapiHistoricalPrice, BrapiMarketData, EconomicIndicator
from investrisk.risk.categories import UNAVAILABLE_CATEGORY, UNAVAILABLE_SCORE
from investrisk.risk.scoring import ScoreResult
from investrisk.risk.statistics import PriceObservation, RiskIndicatorSet


logger = get_logger("repositories.brapi_orm")


async def list_pending_tickers(stale_before: datetime, prioritize_liquid: bool = True) -> list[str]:
    """Tickers that need a risk calculation.

    Pending means never calculated, calculated before ``stale_before``, or
    without a usable score (null or 0). Unavailable assets (-1) are only
    retried once their timestamp goes stale.
    """
    query = select(BrapiMarketData.ticker).where(
        or_(
            BrapiMarketData.last_risk_calculation.is_(None),
            BrapiMarketData.last_risk_calculation < stale_before,
            BrapiMarketData.risk_score.is_(None),
            BrapiMarketData.risk_score == 0,
        )
    )
    if prioritize_liquid:
        query = query.order_by(
            func.coalesce(BrapiMarketData.average_daily_volume, 0).desc(),
            BrapiMarketData.id.asc(),
        )
    else:
        query = query.order_by(BrapiMarketData.id.asc())

    async with get_session() as session:
        result = await session.execute(query)
        return list(result.scalars().all())


async def get_market_data(ticker: str) -> BrapiMarketData | None:
    async with get_session() as session:
        result = await session.execute(
            select(BrapiMarketData).where(BrapiMarketData.ticker == ticker)
        )
        return result.scalar_one_or_none()


async def save_risk(ticker: str, indicators: RiskIndicatorSet, result: ScoreResult) -> None:
    """Overwrite the embedded indicators and score on the market-data row."""
    async with get_session() as session:
        await session.execute(
            update(BrapiMarketData)
            .where(BrapiMarketData.ticker == ticker)
            .values(
                volatility_1y=indicators.volatility_1y,
                beta=indicators.beta,
                var_95=indicators.var_95,
                sharpe_ratio=indicators.sharpe_ratio,
                max_drawdown=indicators.max_drawdown,
                risk_score=result.score,
                risk_category=result.category,
                last_risk_calculation=datetime.now(UTC),
            )
        )
        await session.commit()


async def mark_unavailable(ticker: str) -> None:
    """Stamp the sentinel score so the ticker leaves the pending set until stale."""
    async with get_session() as session:
        await session.execute(
            update(BrapiMarketData)
            .where(BrapiMarketData.ticker == ticker)
            .values(
                risk_score=UNAVAILABLE_SCORE,
                risk_category=UNAVAILABLE_CATEGORY,
                last_risk_calculation=datetime.now(UTC),
            )
        )
        await session.commit()
    logger.info(f"Marked {ticker} as unavailable (no usable history)")


async def save_price_history(ticker: str, prices: Sequence[PriceObservation]) -> int:
    """Upsert daily observations keyed by (ticker, price_date). Returns rows written."""
    if not prices:
        return 0

    rows = [
        {
            "ticker": ticker,
            "price_date": p.date,
            "open_price": p.open,
            "high_price": p.high,
            "low_price": p.low,
            "close_price": p.close,
            "adjusted_close": p.adjusted_close,
            "volume": p.volume,
        }
        for p in prices
    ]
    stmt = insert(BrapiHistoricalPrice).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["ticker", "price_date"],
        set_={
            "open_price": stmt.excluded.open_price,
            "high_price": stmt.excluded.high_price,
            "low_price": stmt.excluded.low_price,
            "close_price": stmt.excluded.close_price,
            "adjusted_close": stmt.excluded.adjusted_close,
            "volume": stmt.excluded.volume,
        },
    )

    async with get_session() as session:
        await session.execute(stmt)
        await session.commit()
    logger.debug(f"Cached {len(rows)} price records for {ticker}")
    return len(rows)


async def get_latest_selic() -> float | None:
    """Latest Selic rate (annual, as a fraction) or None if never loaded."""
    async with get_session() as session:
        result = await session.execute(
            select(EconomicIndicator.value)
            .where(EconomicIndicator.indicator_type == "selic")
            .order_by(EconomicIndicator.reference_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


async def get_score_stats() -> dict[str, Any]:
    """Current distribution of scored tickers (sentinel rows excluded)."""
    async with get_session() as session:
        result = await session.execute(
            select(
                BrapiMarketData.asset_type,
                BrapiMarketData.risk_category,
                func.count(BrapiMarketData.id),
                func.sum(BrapiMarketData.risk_score),
            )
            .where(BrapiMarketData.risk_score > 0)
            .group_by(BrapiMarketData.asset_type, BrapiMarketData.risk_category)
        )
        return summarize_score_groups(result.all())


def summarize_score_groups(groups: Sequence[Sequence[Any]]) -> dict[str, Any]:
    """Fold ``(asset_type, category, count, score_sum)`` groups into table stats."""
    by_type: dict[str, int] = {}
    by_category: dict[str, int] = {}
    total = 0
    score_sum = 0.0
    for asset_type, category, count, group_sum in groups:
        by_type[asset_type] = by_type.get(asset_type, 0) + count
        by_category[category] = by_category.get(category, 0) + count
        total += count
        score_sum += float(group_sum or 0)
    return {
        "total_assets": total,
        "by_type": by_type,
        "by_risk_category": by_category,
        "avg_risk_score": round(score_sum / total, 2) if total else 0,
    }
