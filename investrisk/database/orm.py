"""SQLAlchemy ORM models for InvestRisk.

Tables are grouped by the pipeline stage that owns them: execution log and
alerts, fixed-income sources (ANBIMA, CVM), variable-income market data
(Brapi), user-held investments, and the denormalized search view.

Usage:
    from investrisk.database.orm import ExecutionStat
    from investrisk.database.connection import get_session

    async with get_session() as session:
        record = await session.get(ExecutionStat, execution_id)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints and indexes (deterministic names for migrations)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def _uuid() -> str:
    return str(uuid.uuid4())


def _float(precision: int = 12, scale: int = 4) -> Numeric:
    return Numeric(precision, scale, asdecimal=False)


# =============================================================================
# EXECUTION LOG & ANOMALY ALERTS
# =============================================================================


class ExecutionStat(Base):
    """One row per batch-job invocation."""
    __tablename__ = "sync_execution_stats"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    function_name: Mapped[str] = mapped_column(String(100), nullable=False)
    execution_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    triggered_by: Mapped[str | None] = mapped_column(String(50))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    total_assets_processed: Mapped[int | None] = mapped_column(Integer, default=0)
    total_assets_skipped: Mapped[int | None] = mapped_column(Integer, default=0)
    total_errors: Mapped[int | None] = mapped_column(Integer, default=0)
    distribution_by_type: Mapped[dict | None] = mapped_column(JSONB)
    distribution_by_risk_category: Mapped[dict | None] = mapped_column(JSONB)
    avg_risk_score: Mapped[float | None] = mapped_column(_float(6, 2))
    min_risk_score: Mapped[int | None] = mapped_column(Integer)
    max_risk_score: Mapped[int | None] = mapped_column(Integer)
    error_details: Mapped[list | None] = mapped_column(JSONB)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_sync_execution_stats_function", "function_name", "started_at"),
        Index("idx_sync_execution_stats_status", "status"),
    )


class AnomalyAlert(Base):
    """Alert raised by comparing an execution with its predecessor."""
    __tablename__ = "sync_anomaly_alerts"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    execution_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("sync_execution_stats.id", ondelete="CASCADE"), nullable=False
    )
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    metric_name: Mapped[str | None] = mapped_column(String(100))
    expected_value: Mapped[float | None] = mapped_column(_float(14, 4))
    actual_value: Mapped[float | None] = mapped_column(_float(14, 4))
    deviation_percent: Mapped[float | None] = mapped_column(_float(10, 2))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False)
    acknowledged_by: Mapped[str | None] = mapped_column(String(255))
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_sync_anomaly_alerts_execution", "execution_id"),
        Index(
            "idx_sync_anomaly_alerts_pending",
            "is_acknowledged",
            postgresql_where=text("is_acknowledged = FALSE"),
        ),
    )


# =============================================================================
# FIXED INCOME (ANBIMA, CVM)
# =============================================================================


class AnbimaAssetRiskScore(Base):
    """Current risk score per fixed-income asset (ANBIMA and CVM sourced)."""
    __tablename__ = "anbima_asset_risk_scores"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    asset_type: Mapped[str] = mapped_column(String(30), nullable=False)
    asset_id: Mapped[str] = mapped_column(String(64), nullable=False)
    asset_code: Mapped[str] = mapped_column(String(100), nullable=False)
    emissor: Mapped[str | None] = mapped_column(String(255))
    data_vencimento: Mapped[date | None] = mapped_column(Date)
    rentabilidade: Mapped[str | None] = mapped_column(String(255))
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_category: Mapped[str] = mapped_column(String(30), nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("asset_type", "asset_id", name="uq_anbima_asset_risk_scores_asset"),
        Index("idx_anbima_asset_risk_scores_type", "asset_type"),
    )


class AnbimaCriCra(Base):
    """ANBIMA secondary-market quotes for CRI/CRA."""
    __tablename__ = "anbima_cri_cra"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    codigo_ativo: Mapped[str] = mapped_column(String(50), nullable=False)
    emissor: Mapped[str] = mapped_column(String(255), nullable=False)
    data_referencia: Mapped[date] = mapped_column(Date, nullable=False)
    data_vencimento: Mapped[date] = mapped_column(Date, nullable=False)
    tipo_contrato: Mapped[str] = mapped_column(String(10), nullable=False)
    tipo_remuneracao: Mapped[str | None] = mapped_column(String(50))
    taxa_indicativa: Mapped[float | None] = mapped_column(_float())
    desvio_padrao: Mapped[float | None] = mapped_column(_float())
    duration: Mapped[float | None] = mapped_column(_float())


class AnbimaDebenture(Base):
    """ANBIMA secondary-market quotes for debentures."""
    __tablename__ = "anbima_debentures"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    codigo_ativo: Mapped[str] = mapped_column(String(50), nullable=False)
    emissor: Mapped[str] = mapped_column(String(255), nullable=False)
    data_referencia: Mapped[date] = mapped_column(Date, nullable=False)
    data_vencimento: Mapped[date] = mapped_column(Date, nullable=False)
    percentual_taxa: Mapped[str | None] = mapped_column(String(100))
    taxa_indicativa: Mapped[float | None] = mapped_column(_float())
    desvio_padrao: Mapped[float | None] = mapped_column(_float())
    duration: Mapped[float | None] = mapped_column(_float())


class AnbimaFidc(Base):
    """ANBIMA secondary-market quotes for FIDC quotas."""
    __tablename__ = "anbima_fidc"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    codigo_b3: Mapped[str] = mapped_column(String(50), nullable=False)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    emissor: Mapped[str] = mapped_column(String(255), nullable=False)
    data_referencia: Mapped[date] = mapped_column(Date, nullable=False)
    data_vencimento: Mapped[date] = mapped_column(Date, nullable=False)
    tipo_remuneracao: Mapped[str | None] = mapped_column(String(50))
    taxa_indicativa: Mapped[float | None] = mapped_column(_float())
    desvio_padrao: Mapped[float | None] = mapped_column(_float())
    duration: Mapped[float | None] = mapped_column(_float())


class AnbimaTituloPublico(Base):
    """ANBIMA reference rates for federal government bonds."""
    __tablename__ = "anbima_titulos_publicos"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    codigo_isin: Mapped[str] = mapped_column(String(20), nullable=False)
    codigo_selic: Mapped[str] = mapped_column(String(20), nullable=False)
    tipo_titulo: Mapped[str] = mapped_column(String(20), nullable=False)
    data_referencia: Mapped[date] = mapped_column(Date, nullable=False)
    data_vencimento: Mapped[date] = mapped_column(Date, nullable=False)
    taxa_indicativa: Mapped[float | None] = mapped_column(_float())
    desvio_padrao: Mapped[float | None] = mapped_column(_float())


class CvmOfertaPublica(Base):
    """Public offering registered with CVM."""
    __tablename__ = "cvm_ofertas_publicas"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    tipo_ativo: Mapped[str] = mapped_column(String(255), nullable=False)
    cnpj_emissor: Mapped[str] = mapped_column(String(20), nullable=False)
    nome_emissor: Mapped[str] = mapped_column(String(255), nullable=False)
    serie: Mapped[str | None] = mapped_column(String(50))
    data_emissao: Mapped[date | None] = mapped_column(Date)
    data_vencimento: Mapped[date | None] = mapped_column(Date)
    juros: Mapped[str | None] = mapped_column(String(255))
    atualizacao_monetaria: Mapped[str | None] = mapped_column(String(255))
    valor_total_emissao: Mapped[float | None] = mapped_column(_float(18, 2))
    is_active: Mapped[bool | None] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("idx_cvm_ofertas_publicas_active", "is_active", postgresql_where=text("is_active = TRUE")),
    )


# =============================================================================
# VARIABLE INCOME (BRAPI)
# =============================================================================


class BrapiMarketData(Base):
    """Latest quote snapshot and risk indicators per listed ticker."""
    __tablename__ = "brapi_market_data"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    ticker: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    asset_type: Mapped[str] = mapped_column(String(20), nullable=False, default="stock")
    short_name: Mapped[str | None] = mapped_column(String(255))
    long_name: Mapped[str | None] = mapped_column(String(255))
    sector: Mapped[str | None] = mapped_column(String(100))
    regular_market_price: Mapped[float | None] = mapped_column(_float())
    regular_market_change_percent: Mapped[float | None] = mapped_column(_float())
    average_daily_volume: Mapped[int | None] = mapped_column(BigInteger)
    volatility_1y: Mapped[float | None] = mapped_column(_float(12, 6))
    beta: Mapped[float | None] = mapped_column(_float(12, 6))
    var_95: Mapped[float | None] = mapped_column(_float(12, 6))
    sharpe_ratio: Mapped[float | None] = mapped_column(_float(12, 6))
    max_drawdown: Mapped[float | None] = mapped_column(_float(12, 6))
    risk_score: Mapped[int | None] = mapped_column(Integer)
    risk_category: Mapped[str | None] = mapped_column(String(30))
    last_risk_calculation: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_brapi_market_data_last_risk", "last_risk_calculation"),
    )


class BrapiHistoricalPrice(Base):
    """Daily OHLCV observation cached from the price provider."""
    __tablename__ = "brapi_historical_prices"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    ticker: Mapped[str] = mapped_column(String(20), nullable=False)
    price_date: Mapped[date] = mapped_column(Date, nullable=False)
    open_price: Mapped[float | None] = mapped_column(_float())
    high_price: Mapped[float | None] = mapped_column(_float())
    low_price: Mapped[float | None] = mapped_column(_float())
    close_price: Mapped[float | None] = mapped_column(_float())
    adjusted_close: Mapped[float | None] = mapped_column(_float())
    volume: Mapped[int | None] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("ticker", "price_date", name="uq_brapi_historical_prices_ticker_date"),
    )


class EconomicIndicator(Base):
    """Macro indicators (Selic, IPCA, CDI) by reference date."""
    __tablename__ = "economic_indicators"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    indicator_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_date: Mapped[date] = mapped_column(Date, nullable=False)
    value: Mapped[float] = mapped_column(_float(12, 6), nullable=False)

    __table_args__ = (
        Index("idx_economic_indicators_type_date", "indicator_type", "reference_date"),
    )


# =============================================================================
# USER INVESTMENTS
# =============================================================================


class InvestmentCategory(Base):
    """Investment category with a coarse asset-class type."""
    __tablename__ = "investment_categories"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Renda Fixa, Fundos, Renda Variável, Alternativos
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    risk_level: Mapped[str] = mapped_column(String(30), nullable=False)


class UserInvestment(Base):
    """Investment held by a user."""
    __tablename__ = "user_investments"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)
    category_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("investment_categories.id")
    )
    investment_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float | None] = mapped_column(_float(18, 2))


class InvestmentRiskIndicators(Base):
    """Risk indicators per user investment; every calculation is kept."""
    __tablename__ = "investment_risk_indicators"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_investment_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("user_investments.id", ondelete="CASCADE"), nullable=False
    )
    sharpe_ratio: Mapped[float | None] = mapped_column(_float(12, 4))
    beta: Mapped[float | None] = mapped_column(_float(12, 4))
    var_95: Mapped[float | None] = mapped_column(_float(12, 4))
    std_deviation: Mapped[float | None] = mapped_column(_float(12, 4))
    data_source: Mapped[str | None] = mapped_column(String(50))
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# =============================================================================
# SEARCH
# =============================================================================


class InvestmentSearchView(Base):
    """Materialized view unifying every searchable asset (read-only)."""
    __tablename__ = "mv_investment_search"
    __table_args__ = {"info": {"is_view": True}}

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    source: Mapped[str | None] = mapped_column(String(30))
    source_id: Mapped[str | None] = mapped_column(String(64))
    asset_type: Mapped[str | None] = mapped_column(String(30))
    asset_code: Mapped[str | None] = mapped_column(String(100))
    display_name: Mapped[str | None] = mapped_column(String(255))
    issuer: Mapped[str | None] = mapped_column(String(255))
    sector: Mapped[str | None] = mapped_column(String(100))
    maturity_date: Mapped[date | None] = mapped_column(Date)
    risk_score: Mapped[int | None] = mapped_column(Integer)
    risk_category: Mapped[str | None] = mapped_column(String(30))
    yield_profile: Mapped[str | None] = mapped_column(String(30))
    contract_indexer: Mapped[str | None] = mapped_column(String(30))
    contract_rate_type: Mapped[str | None] = mapped_column(String(30))
    contract_spread_percent: Mapped[float | None] = mapped_column(_float())
    market_rate_indicative_percent: Mapped[float | None] = mapped_column(_float())
    dividend_yield: Mapped[float | None] = mapped_column(_float())
    profitability: Mapped[str | None] = mapped_column(String(255))
    liquidity: Mapped[str | None] = mapped_column(String(100))
    current_price: Mapped[float | None] = mapped_column(_float())
    volatility_1y: Mapped[float | None] = mapped_column(_float(12, 6))
    sharpe_ratio: Mapped[float | None] = mapped_column(_float(12, 6))
    var_95: Mapped[float | None] = mapped_column(_float(12, 6))
    beta: Mapped[float | None] = mapped_column(_float(12, 6))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
