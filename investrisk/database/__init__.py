"""Database module: SQLAlchemy async engine, sessions and ORM models."""

from .connection import (
    close_sqlalchemy_engine,
    db_healthcheck,
    get_async_database_url,
    get_engine,
    get_session,
    init_sqlalchemy_engine,
)
from .orm import (
    AnbimaAssetRiskScore,
    AnbimaCriCra,
    AnbimaDebenture,
    AnbimaFidc,
    AnbimaTituloPublico,
    AnomalyAlert,
    Base,
    BrapiHistoricalPrice,
    BrapiMarketData,
    CvmOfertaPublica,
    EconomicIndicator,
    ExecutionStat,
    InvestmentCategory,
    InvestmentRiskIndicators,
    InvestmentSearchView,
    UserInvestment,
)


__all__ = [
    "init_sqlalchemy_engine",
    "close_sqlalchemy_engine",
    "get_session",
    "get_engine",
    "get_async_database_url",
    "db_healthcheck",
    "Base",
    "ExecutionStat",
    "AnomalyAlert",
    "AnbimaAssetRiskScore",
    "AnbimaCriCra",
    "AnbimaDebenture",
    "AnbimaFidc",
    "AnbimaTituloPublico",
    "CvmOfertaPublica",
    "BrapiMarketData",
    "BrapiHistoricalPrice",
    "EconomicIndicator",
    "InvestmentCategory",
    "UserInvestment",
    "InvestmentRiskIndicators",
    "InvestmentSearchView",
]
