"""Risk indicators for a single user-held investment.

Indicators start from a baseline per investment category. Variable-income
investments whose name carries a B3 ticker are adjusted by the ticker's
latest daily change. A random market variation of up to 10% either way is
applied last, and every calculation is appended to the history table.
"""

from __future__ import annotations

import random
import re
from collections.abc import Callable
from dataclasses import dataclass

from investrisk.core.exceptions import NotFoundError
from investrisk.core.logging import get_logger
from investrisk.repositories import investments_orm as investments_repo
from investrisk.schemas.jobs import RiskIndicatorsResponse
from investrisk.services.brapi import fetch_quote


logger = get_logger("jobs.risk_indicators")

TICKER_PATTERN = re.compile(r"[A-Z]{4}\d{1,2}")

DEFAULT_CATEGORY = "Renda Fixa"
VARIABLE_INCOME = "Renda Variável"


@dataclass(frozen=True)
class CategoryBaseline:
    sharpe: float
    beta: float
    var95: float
    std_dev: float

    def adjusted(self, volatility: float) -> CategoryBaseline:
        """Baseline scaled by an observed daily volatility (fraction)."""
        return CategoryBaseline(
            sharpe=self.sharpe * (1 + volatility * 0.5),
            beta=self.beta * (1 + volatility),
            var95=self.var95 * (1 + volatility * 2),
            std_dev=self.std_dev * (1 + volatility * 1.5),
        )

    def varied(self, factor: float) -> CategoryBaseline:
        return CategoryBaseline(
            sharpe=round(self.sharpe * factor, 4),
            beta=round(self.beta * factor, 4),
            var95=round(self.var95 * factor, 4),
            std_dev=round(self.std_dev * factor, 4),
        )


CATEGORY_BASELINES: dict[str, CategoryBaseline] = {
    "Renda Fixa": CategoryBaseline(sharpe=1.5, beta=0.3, var95=2.0, std_dev=1.5),
    "Fundos": CategoryBaseline(sharpe=1.0, beta=0.7, var95=5.0, std_dev=4.0),
    "Renda Variável": CategoryBaseline(sharpe=0.8, beta=1.2, var95=10.0, std_dev=8.0),
    "Alternativos": CategoryBaseline(sharpe=0.5, beta=1.5, var95=15.0, std_dev=12.0),
}


def find_ticker(investment_name: str) -> str | None:
    match = TICKER_PATTERN.search(investment_name or "")
    return match.group(0) if match else None


def market_variation(rng: Callable[[], float]) -> float:
    """Factor in [0.9, 1.1)."""
    return 0.9 + rng() * 0.2


async def calculate_risk_indicators(
    investment_id: str,
    rng: Callable[[], float] = random.random,
) -> RiskIndicatorsResponse:
    """
    Compute and store a new indicator set for one investment.

    Raises:
        NotFoundError: the investment does not exist
    """
    found = await investments_repo.get_investment_with_category(investment_id)
    if found is None:
        raise NotFoundError(message="Investment not found", details={"investment_id": investment_id})
    investment, category = found

    category_type = category.type if category is not None else DEFAULT_CATEGORY
    baseline = CATEGORY_BASELINES.get(category_type, CATEGORY_BASELINES[DEFAULT_CATEGORY])
    indicators = baseline
    data_source = "estimated"

    if category_type == VARIABLE_INCOME:
        ticker = find_ticker(investment.investment_name)
        if ticker:
            quote = await fetch_quote(ticker)
            change = quote.get("regularMarketChangePercent") if quote else None
            if change is not None:
                indicators = baseline.adjusted(abs(float(change)) / 100)
                data_source = "brapi.dev"
                logger.info(f"Adjusted indicators for {ticker} from live quote")

    indicators = indicators.varied(market_variation(rng))
    await investments_repo.insert_risk_indicators(
        investment_id,
        sharpe_ratio=indicators.sharpe,
        beta=indicators.beta,
        var_95=indicators.var95,
        std_deviation=indicators.std_dev,
        data_source=data_source,
    )

    return RiskIndicatorsResponse(
        success=True,
        indicators={
            "sharpe_ratio": indicators.sharpe,
            "beta": indicators.beta,
            "var_95": indicators.var95,
            "std_deviation": indicators.std_dev,
        },
        data_source=data_source,
    )
