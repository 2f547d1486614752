"""Asset search and instant suggestions."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from investrisk.core.config import settings
from investrisk.schemas.search import (
    InvestmentCardOut,
    SearchFilters,
    SearchPageResponse,
    SuggestionOut,
)
from investrisk.search.query import PAGE_SIZE, search_assets
from investrisk.search.state import ValkeyStore
from investrisk.search.suggestions import SearchCache


router = APIRouter()


@lru_cache
def get_search_cache() -> SearchCache:
    """Suggestion cache shared by every API worker through Valkey."""
    return SearchCache(
        ValkeyStore(),
        max_memo_queries=settings.search_memo_max_queries,
        memo_ttl=settings.search_memo_ttl,
    )


@router.get(
    "/assets",
    response_model=SearchPageResponse,
    response_model_by_alias=True,
    summary="Search assets",
    description="Scored, non-expired assets ordered by risk score, 100 per page.",
)
async def search(
    search_query: Optional[str] = Query(None, alias="searchQuery", max_length=100),
    asset_type: Optional[str] = Query(None, alias="assetType"),
    asset_types: List[str] = Query([], alias="assetTypes"),
    risk_filter: Optional[Literal["low", "medium", "high"]] = Query(None, alias="riskFilter"),
    maturity_filter: Optional[Literal["1y", "3y", "5y+"]] = Query(None, alias="maturityFilter"),
    income_filter: bool = Query(False, alias="incomeFilter"),
    page: int = Query(0, ge=0),
    cache: SearchCache = Depends(get_search_cache),
) -> SearchPageResponse:
    filters = SearchFilters(
        search_query=search_query,
        asset_type=asset_type,
        asset_types=tuple(asset_types),
        risk_filter=risk_filter,
        maturity_filter=maturity_filter,
        income_filter=income_filter,
    )
    result = await search_assets(filters, page)

    if page == 0 and filters.search_query and result.cards:
        await run_in_threadpool(
            cache.update_cache,
            filters.search_query,
            [
                {"code": c.code, "emissor": c.emissor, "asset_type": c.asset_type}
                for c in result.cards
            ],
        )

    return SearchPageResponse(
        results=[InvestmentCardOut.model_validate(card.to_dict()) for card in result.cards],
        page=result.page,
        page_size=PAGE_SIZE,
        total_count=result.total_count,
        has_more=result.has_more,
    )


@router.get(
    "/suggestions",
    response_model=List[SuggestionOut],
    response_model_by_alias=True,
    summary="Instant suggestions",
)
def suggestions(
    q: str = Query("", max_length=100),
    limit: int = Query(5, ge=1, le=20),
    cache: SearchCache = Depends(get_search_cache),
) -> list[SuggestionOut]:
    return [
        SuggestionOut(
            ticker=asset.ticker,
            name=asset.name,
            type=asset.type,
            emissor=asset.emissor,
            search_count=asset.search_count,
        )
        for asset in cache.get_instant_suggestions(q, limit)
    ]
