"""
Return and risk statistics over daily price history.

All functions are pure and operate on plain sequences; numpy does the
arithmetic. Conventions:

- returns are simple daily returns, never log returns
- volatility is the population standard deviation annualized by sqrt(252)
- VaR95 and max drawdown are positive percentage magnitudes
- beta is ``None`` when it cannot be estimated; callers decide the default
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

import numpy as np


TRADING_DAYS_PER_YEAR = 252


@dataclass(frozen=True)
class PriceObservation:
    """One trading day for one ticker."""

    date: date
    open: float | None
    high: float | None
    low: float | None
    close: float | None
    adjusted_close: float | None
    volume: int | None

    @property
    def reference_close(self) -> float | None:
        """Adjusted close when present, otherwise the raw close."""
        return self.adjusted_close or self.close

    @classmethod
    def from_provider(cls, payload: dict[str, Any]) -> PriceObservation:
        """Build from a provider ``historicalDataPrice`` item (epoch-seconds date)."""
        return cls(
            date=datetime.fromtimestamp(int(payload["date"]), tz=timezone.utc).date(),
            open=payload.get("open"),
            high=payload.get("high"),
            low=payload.get("low"),
            close=payload.get("close"),
            adjusted_close=payload.get("adjustedClose"),
            volume=payload.get("volume"),
        )


@dataclass(frozen=True)
class RiskIndicatorSet:
    """Per-asset risk indicators computed from one price history."""

    volatility_1y: float
    var_95: float
    sharpe_ratio: float
    max_drawdown: float
    beta: float | None

    def to_dict(self) -> dict[str, float | None]:
        return {
            "volatility_1y": self.volatility_1y,
            "var_95": self.var_95,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "beta": self.beta,
        }


def _usable_close(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def compute_returns(prices: Sequence[PriceObservation]) -> list[float]:
    """
    Simple daily returns from consecutive reference closes.

    A pair is dropped (not zero-filled) unless both closes are finite and
    positive, so gaps and bad ticks never shrink or poison volatility.
    """
    returns: list[float] = []
    for previous, current in zip(prices, prices[1:]):
        prev_close = previous.reference_close
        curr_close = current.reference_close
        if _usable_close(prev_close) and _usable_close(curr_close):
            returns.append((curr_close - prev_close) / prev_close)
    return returns


def volatility(returns: Sequence[float]) -> float:
    """Annualized population standard deviation; 0.0 for an empty series."""
    if len(returns) == 0:
        return 0.0
    return float(np.std(np.asarray(returns, dtype=float)) * math.sqrt(TRADING_DAYS_PER_YEAR))


def value_at_risk_95(returns: Sequence[float]) -> float:
    """
    Historical 95% Value-at-Risk as a positive loss percentage.

    Takes the return at sorted index ``floor(n * 0.05)``; 0.0 for empty input.
    """
    if len(returns) == 0:
        return 0.0
    ordered = np.sort(np.asarray(returns, dtype=float))
    index = math.floor(len(ordered) * 0.05)
    return float(-ordered[index] * 100)


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float) -> float:
    """
    Annualized excess return over volatility.

    Parameters
    ----------
    returns : Sequence[float]
        Simple daily returns.
    risk_free_rate : float
        Annual risk-free rate as a fraction (0.1175 for 11.75%).

    Returns
    -------
    float
        0.0 when volatility is zero.
    """
    vol = volatility(returns)
    if vol == 0:
        return 0.0
    annual_return = float(np.mean(np.asarray(returns, dtype=float))) * TRADING_DAYS_PER_YEAR
    return (annual_return - risk_free_rate) / vol


def max_drawdown(prices: Sequence[PriceObservation]) -> float:
    """Largest peak-to-trough decline of the reference close, as a percentage."""
    worst = 0.0
    peak = -math.inf
    for observation in prices:
        value = observation.reference_close
        if value is None:
            continue
        if value > peak:
            peak = value
        if peak > 0:
            drawdown = (peak - value) / peak
            if drawdown > worst:
                worst = drawdown
    return worst * 100


def beta(asset_returns: Sequence[float], market_returns: Sequence[float]) -> float | None:
    """
    Covariance of asset with market over market variance.

    Both series must already be aligned to the same length. Returns ``None``
    when lengths differ, either series is empty, or market variance is zero.
    """
    if len(asset_returns) != len(market_returns) or len(asset_returns) == 0:
        return None

    asset = np.asarray(asset_returns, dtype=float)
    market = np.asarray(market_returns, dtype=float)
    market_diff = market - market.mean()

    market_variance = float(np.sum(market_diff * market_diff))
    if market_variance == 0:
        return None
    covariance = float(np.sum((asset - asset.mean()) * market_diff))
    return covariance / market_variance


def aligned_beta(asset_returns: Sequence[float], market_returns: Sequence[float]) -> float | None:
    """Beta over the most recent observations common to both series."""
    if not asset_returns or not market_returns:
        return None
    length = min(len(asset_returns), len(market_returns))
    return beta(list(asset_returns)[-length:], list(market_returns)[-length:])


def compute_indicators(
    prices: Sequence[PriceObservation],
    risk_free_rate: float,
    market_returns: Sequence[float] | None = None,
) -> tuple[RiskIndicatorSet, list[float]]:
    """Full indicator set for one price history, plus the returns it used."""
    returns = compute_returns(prices)
    indicators = RiskIndicatorSet(
        volatility_1y=volatility(returns),
        var_95=value_at_risk_95(returns),
        sharpe_ratio=sharpe_ratio(returns, risk_free_rate),
        max_drawdown=max_drawdown(prices),
        beta=aligned_beta(returns, market_returns or []),
    )
    return indicators, returns
