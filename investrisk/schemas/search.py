"""Asset search schemas."""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SearchFilters(BaseModel):
    """Server-side search filters (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    search_query: str | None = Field(None, alias="searchQuery", max_length=100)
    asset_type: str | None = Field(None, alias="assetType")
    asset_types: tuple[str, ...] = Field(
        (), alias="assetTypes", description="Asset types (simple mode), wins over assetType"
    )
    risk_filter: Literal["low", "medium", "high"] | None = Field(None, alias="riskFilter")
    maturity_filter: Literal["1y", "3y", "5y+"] | None = Field(None, alias="maturityFilter")
    income_filter: bool = Field(
        False, alias="incomeFilter", description="Only coupon-paying treasuries and FIIs"
    )


class InvestmentCardOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    code: str
    emissor: str
    data_vencimento: str | None = None
    maturity_date_raw: date | None = None
    rentabilidade: str
    rentabilidade_tooltip: str | None = Field(None, alias="rentabilidadeTooltip")
    is_market_rate: bool = Field(False, alias="isMarketRate")
    liquidez: str
    risk_score: int
    risk_category: str
    risk_color: str
    asset_id: str
    asset_type: str
    yield_profile: str | None = None
    contract_spread_percent: float | None = None


class SearchPageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    results: list[InvestmentCardOut]
    page: int
    page_size: int = Field(alias="pageSize")
    total_count: int = Field(alias="totalCount")
    has_more: bool = Field(alias="hasMore")


class SuggestionOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ticker: str
    name: str
    type: str
    emissor: str | None = None
    search_count: int | None = Field(None, alias="searchCount")
