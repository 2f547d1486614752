"""User investment repository (risk indicator history)."""

from __future__ import annotations

from sqlalchemy import select

from investrisk.database.connection import get_session
from investrisk.database.orm import InvestmentCategory, InvestmentRiskIndicators, UserInvestment


async def get_investment_with_category(
    investment_id: str,
) -> tuple[UserInvestment, InvestmentCategory | None] | None:
    """Investment and its category, or None when the investment does not exist."""
    async with get_session() as session:
        result = await session.execute(
            select(UserInvestment, InvestmentCategory)
            .outerjoin(InvestmentCategory, InvestmentCategory.id == UserInvestment.category_id)
            .where(UserInvestment.id == investment_id)
        )
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]


async def insert_risk_indicators(
    investment_id: str,
    *,
    sharpe_ratio: float,
    beta: float,
    var_95: float,
    std_deviation: float,
    data_source: str,
) -> InvestmentRiskIndicators:
    """Append an indicator calculation; earlier ones are kept as history."""
    async with get_session() as session:
        record = InvestmentRiskIndicators(
            user_investment_id=investment_id,
            sharpe_ratio=sharpe_ratio,
            beta=beta,
            var_95=var_95,
            std_deviation=std_deviation,
            data_source=data_source,
        )
        session.add(record)
        await session.commit()
        return record
