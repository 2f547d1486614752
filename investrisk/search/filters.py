"""
Client-side refinement over already-fetched search results.

These filters never hit the server: they narrow and reorder the cards of the
pages loaded so far, and report which filter values would still match.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

from .cards import InvestmentCard
from .suggestions import normalize_text


RiskBand = Literal["all", "low", "medium", "high"]
ProfitabilityType = Literal["all", "cdi", "ipca", "prefixado", "variavel", "fundos"]
MaturityBucket = Literal["all", "6m", "1y", "3y", "5y", "5y+"]
SortKey = Literal["risk_asc", "risk_desc", "name", "maturity", "spread_desc", "spread_asc"]

RISK_BANDS = ("low", "medium", "high")
PROFITABILITY_TYPES = ("cdi", "ipca", "prefixado", "variavel", "fundos")
MATURITY_BUCKETS = ("6m", "1y", "3y", "5y", "5y+")

DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class FilterPreferences:
    risk_filter: RiskBand = "all"
    profitability_filter: ProfitabilityType = "all"
    maturity_filter: MaturityBucket = "all"
    sort_by: SortKey = "risk_asc"
    text: str = ""


def risk_band_matches(score: Optional[float], band: str) -> bool:
    score = score or 0
    if band == "low":
        return score <= 7
    if band == "medium":
        return 7 < score <= 14
    if band == "high":
        return score > 14
    return True


def profitability_type(card: InvestmentCard) -> str:
    """Yield family of a card: structured profile first, then asset type."""
    if card.yield_profile:
        profile = card.yield_profile.upper()
        if profile in ("POS_CDI", "POS_SELIC"):
            return "cdi"
        if profile in ("HIBRIDO_IPCA", "HIBRIDO_IGPM"):
            return "ipca"
        if profile == "PREFIXADO":
            return "prefixado"
        if profile == "VARIAVEL":
            return "variavel"

    asset_type = (card.asset_type or "").lower()
    if any(t in asset_type for t in ("stock", "fii", "etf", "bdr")):
        return "variavel"
    if "fundo" in asset_type:
        return "fundos"
    return "outro"


def months_to_maturity(maturity: date, today: date) -> float:
    return (maturity - today).days / DAYS_PER_MONTH


def maturity_bucket_matches(months: float, bucket: str) -> bool:
    if bucket == "6m":
        return months <= 6
    if bucket == "1y":
        return months <= 12
    if bucket == "3y":
        return 12 < months <= 36
    if bucket == "5y":
        return 36 < months <= 60
    if bucket == "5y+":
        return months > 60
    return True


def text_matches(card: InvestmentCard, text: str) -> bool:
    if not text:
        return True
    needle = text.lower()
    return any(
        needle in (field or "").lower() for field in (card.emissor, card.code, card.type)
    )


def _passes(
    card: InvestmentCard,
    prefs: FilterPreferences,
    today: date,
    skip: Optional[str] = None,
) -> bool:
    if not text_matches(card, prefs.text):
        return False
    if skip != "risk" and prefs.risk_filter != "all":
        if not risk_band_matches(card.risk_score, prefs.risk_filter):
            return False
    if skip != "profitability" and prefs.profitability_filter != "all":
        if profitability_type(card) != prefs.profitability_filter:
            return False
    # Cards without a maturity date pass the maturity filter
    if skip != "maturity" and prefs.maturity_filter != "all" and card.maturity_date_raw:
        months = months_to_maturity(card.maturity_date_raw, today)
        if not maturity_bucket_matches(months, prefs.maturity_filter):
            return False
    return True


def _sort(cards: list[InvestmentCard], sort_by: str) -> list[InvestmentCard]:
    if sort_by == "risk_asc":
        return sorted(cards, key=lambda c: c.risk_score or 0)
    if sort_by == "risk_desc":
        return sorted(cards, key=lambda c: c.risk_score or 0, reverse=True)
    if sort_by == "name":
        return sorted(cards, key=lambda c: normalize_text(c.emissor))
    if sort_by == "maturity":
        return sorted(
            cards,
            key=lambda c: (c.maturity_date_raw is None, c.maturity_date_raw or date.max),
        )
    if sort_by == "spread_desc":
        return sorted(
            cards,
            key=lambda c: (
                c.contract_spread_percent is None,
                -(c.contract_spread_percent or 0),
            ),
        )
    if sort_by == "spread_asc":
        return sorted(
            cards,
            key=lambda c: (c.contract_spread_percent is None, c.contract_spread_percent or 0),
        )
    return list(cards)


def apply_filters(
    cards: list[InvestmentCard],
    prefs: FilterPreferences,
    today: Optional[date] = None,
) -> list[InvestmentCard]:
    """Filter and sort fetched cards; missing maturities and spreads sort last."""
    today = today or date.today()
    kept = [card for card in cards if _passes(card, prefs, today)]
    return _sort(kept, prefs.sort_by)


def available_options(
    cards: list[InvestmentCard],
    prefs: FilterPreferences,
    today: Optional[date] = None,
) -> dict[str, dict[str, bool]]:
    """
    Which values of each filter would still yield results.

    Each group is evaluated with every other active filter applied and its
    own filter ignored.
    """
    today = today or date.today()

    def any_risk(band: str) -> bool:
        return any(
            _passes(c, prefs, today, skip="risk") and risk_band_matches(c.risk_score, band)
            for c in cards
        )

    def any_profitability(kind: str) -> bool:
        return any(
            _passes(c, prefs, today, skip="profitability") and profitability_type(c) == kind
            for c in cards
        )

    def any_maturity(bucket: str) -> bool:
        return any(
            _passes(c, prefs, today, skip="maturity")
            and c.maturity_date_raw is not None
            and maturity_bucket_matches(months_to_maturity(c.maturity_date_raw, today), bucket)
            for c in cards
        )

    return {
        "risk": {band: any_risk(band) for band in RISK_BANDS},
        "profitability": {kind: any_profitability(kind) for kind in PROFITABILITY_TYPES},
        "maturity": {bucket: any_maturity(bucket) for bucket in MATURITY_BUCKETS},
    }
