"""
Server-side asset search over the ``mv_investment_search`` view.

Only scored assets are returned, never expired ones (a missing maturity
counts as not expired), ordered by risk score ascending and paged at
``PAGE_SIZE`` rows with an exact total count.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from investrisk.core.logging import get_logger
from investrisk.database.connection import get_session
from investrisk.database.orm import InvestmentSearchView
from investrisk.schemas.search import SearchFilters

from .cards import InvestmentCard, card_from_row


logger = get_logger("search.query")

PAGE_SIZE = 100

ASSET_TYPE_FAMILIES: dict[str, list[str]] = {
    "cri_cra": ["cri", "cra"],
    "cri": ["cri"],
    "cra": ["cra"],
    "debenture": ["debenture"],
    "titulo_publico": ["titulo_publico"],
    "fidc": ["fidc"],
    "fundo": ["fundo"],
    "letra_financeira": ["letra_financeira"],
    "letras_financeiras": ["letra_financeira"],
    "stock": ["stock"],
    "fii": ["fii"],
    "etf": ["etf"],
    "bdr": ["bdr"],
    "unit": ["unit"],
    "acao": ["stock"],
    "acoes": ["stock"],
}

# Treasuries that pay coupons; used for the income objective
COUPON_TREASURIES = ("NTN-B", "NTN-C", "NTN-F")

MATURITY_HORIZON_YEARS = {"1y": 1, "3y": 3}


def get_asset_types(asset_type: Optional[str]) -> list[str]:
    """Expand a category into the view's asset types; unknown values pass through."""
    if not asset_type:
        return []
    return list(ASSET_TYPE_FAMILIES.get(asset_type.lower(), [asset_type]))


def resolve_asset_types(filters: SearchFilters) -> list[str]:
    if filters.asset_types:
        return list(filters.asset_types)
    return get_asset_types(filters.asset_type)


def add_years(day: date, years: int) -> date:
    """Same calendar day ``years`` later; Feb 29 rolls over to Mar 1."""
    target = day.year + years
    if day.month == 2 and day.day == 29 and not calendar.isleap(target):
        return date(target, 3, 1)
    return day.replace(year=target)


def search_conditions(filters: SearchFilters, today: date) -> list[ColumnElement[bool]]:
    view = InvestmentSearchView
    conditions: list[ColumnElement[bool]] = [view.risk_score.is_not(None)]

    if filters.search_query:
        pattern = f"%{filters.search_query}%"
        conditions.append(
            or_(
                view.display_name.ilike(pattern),
                view.issuer.ilike(pattern),
                view.asset_code.ilike(pattern),
            )
        )

    asset_types = resolve_asset_types(filters)
    if filters.income_filter and "titulo_publico" in asset_types:
        conditions.append(
            or_(
                view.asset_type == "fii",
                and_(
                    view.asset_type == "titulo_publico",
                    or_(*(view.display_name.ilike(f"{t}%") for t in COUPON_TREASURIES)),
                ),
            )
        )
    elif asset_types:
        conditions.append(view.asset_type.in_(asset_types))

    if filters.risk_filter == "low":
        conditions.append(view.risk_score <= 7)
    elif filters.risk_filter == "medium":
        conditions.append(and_(view.risk_score > 7, view.risk_score <= 14))
    elif filters.risk_filter == "high":
        conditions.append(view.risk_score > 14)

    years = MATURITY_HORIZON_YEARS.get(filters.maturity_filter or "")
    if years is not None:
        conditions.append(view.maturity_date <= add_years(today, years))

    conditions.append(or_(view.maturity_date >= today, view.maturity_date.is_(None)))
    return conditions


def build_search_query(
    filters: SearchFilters, page: int = 0, today: Optional[date] = None
) -> Select:
    today = today or date.today()
    return (
        select(InvestmentSearchView)
        .where(*search_conditions(filters, today))
        .order_by(InvestmentSearchView.risk_score.asc(), InvestmentSearchView.id.asc())
        .offset(page * PAGE_SIZE)
        .limit(PAGE_SIZE)
    )


def build_count_query(filters: SearchFilters, today: Optional[date] = None) -> Select:
    today = today or date.today()
    return (
        select(func.count())
        .select_from(InvestmentSearchView)
        .where(*search_conditions(filters, today))
    )


@dataclass
class SearchPage:
    cards: list[InvestmentCard]
    page: int
    total_count: int

    @property
    def has_more(self) -> bool:
        return self.page * PAGE_SIZE + len(self.cards) < self.total_count


async def search_assets(
    filters: SearchFilters, page: int = 0, today: Optional[date] = None
) -> SearchPage:
    """Fetch one page of cards plus the exact total for the filter set."""
    today = today or date.today()
    async with get_session() as session:
        rows = (await session.execute(build_search_query(filters, page, today))).scalars().all()
        total = (await session.execute(build_count_query(filters, today))).scalar_one()

    logger.debug(f"Search page {page}: {len(rows)} rows of {total}")
    return SearchPage(cards=[card_from_row(row) for row in rows], page=page, total_count=total)
