"""
Risk score strategies.

Every strategy answers ``await scorer.score(indicators, profile)`` with a
``ScoreResult`` whose score is an integer in [1, 20] and whose category
follows the scorer's ``RiskFamily`` thresholds.

- ``MarketDataScorer``: deterministic weighted sum for listed assets.
- ``HeuristicFallbackScorer``: deterministic rule set for fixed income.
- ``AiAssistedScorer``: asks a chat model for a number; raises when the
  call fails or no usable number comes back.
- ``FallbackScorer``: runs a primary scorer and delegates to a fallback
  scorer when the primary cannot produce a score.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from investrisk.core.exceptions import ExternalServiceError, ScoreExtractionError
from investrisk.core.logging import get_logger
from investrisk.services.ai import complete_text

from .categories import RiskFamily, categorize, clamp_score
from .statistics import RiskIndicatorSet


logger = get_logger("risk.scoring")

DEFAULT_BETA = 1.0
DEFAULT_YEARS_TO_MATURITY = 5.0
DAYS_PER_YEAR = 365.25

# Listed-asset multipliers; unknown types score as stocks
ASSET_TYPE_MULTIPLIERS: dict[str, float] = {
    "fii": 0.8,
    "etf": 0.9,
    "stock": 1.0,
    "bdr": 1.2,
}

ANBIMA_BASE_SCORES: dict[str, int] = {
    "titulo_publico": 3,
    "cri_cra": 6,
    "debenture": 8,
    "fidc": 13,
}
ANBIMA_DEFAULT_BASE = 5

GOVERNMENT_ISSUER_MARKERS = ("tesouro", "governo")
LARGE_BANK_MARKERS = ("banco do brasil", "caixa", "itau", "bradesco", "santander")

_SCORE_PATTERNS = (
    re.compile(r"score[:\s]+(\d+)", re.IGNORECASE),
    re.compile(r"^\s*(\d+)\s*$"),
    re.compile(r"\b([1-9]|1[0-9]|20)\b"),
)
_SPREAD_PATTERN = re.compile(r"\+\s*([\d,.]+)")


@dataclass(frozen=True)
class AssetProfile:
    """Descriptive metadata of the asset being scored."""

    asset_type: str
    issuer: str = "N/A"
    maturity_date: date | None = None
    offering_type: str | None = None
    interest: str | None = None
    monetary_update: str | None = None
    issue_value: float | None = None


@dataclass(frozen=True)
class FixedIncomeIndicators:
    """Secondary-market indicators published for fixed-income assets."""

    std_deviation: float | None = None
    duration: float | None = None
    indicative_rate: float | None = None
    remuneration_type: str | None = None


@dataclass(frozen=True)
class ScoreResult:
    """Final score, its category, and the strategy that produced it."""

    score: int
    category: str
    strategy: str

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "category": self.category, "strategy": self.strategy}


class RiskScorer(Protocol):
    """Contract shared by all scoring strategies."""

    family: RiskFamily

    async def score(self, indicators: Any, profile: AssetProfile) -> ScoreResult:
        ...


# =============================================================================
# Helpers
# =============================================================================


def resolve_beta(beta: float | None) -> float:
    """Substitute the market-average beta when the estimate is unknown."""
    return DEFAULT_BETA if beta is None else beta


def years_to_maturity(maturity: date | None, today: date | None = None) -> float:
    """Years until maturity (never negative); 5.0 when the date is unknown."""
    if maturity is None:
        return DEFAULT_YEARS_TO_MATURITY
    today = today or date.today()
    return max(0.0, (maturity - today).days / DAYS_PER_YEAR)


def format_offering_yield(interest: str | None, monetary_update: str | None) -> str:
    """Yield text for an offering: ``"<update> + <interest>"`` or ``"Consultar"``."""
    parts = [part.strip() for part in (monetary_update, interest) if part and part.strip()]
    return " + ".join(parts) if parts else "Consultar"


def extract_score(text: str) -> int | None:
    """
    First score in [1, 20] found in free text.

    Patterns are tried in order: ``score: N``, a lone number, then any
    bounded integer anywhere in the text.
    """
    for pattern in _SCORE_PATTERNS:
        match = pattern.search(text)
        if match:
            value = int(match.group(1))
            if 1 <= value <= 20:
                return value
    return None


# =============================================================================
# Deterministic rules
# =============================================================================


def market_data_score(indicators: RiskIndicatorSet, asset_type: str) -> int:
    """Weighted indicator sum scaled by the asset-type multiplier."""
    total = 0.0
    total += min(indicators.volatility_1y * 10, 6)                  # volatility, 30%
    total += min(abs(resolve_beta(indicators.beta)) * 2.5, 5)       # beta, 25%
    total += min(indicators.var_95 / 2, 4)                          # VaR 95, 20%
    total += min(indicators.max_drawdown / 10, 3)                   # drawdown, 15%
    total *= ASSET_TYPE_MULTIPLIERS.get(asset_type, 1.0)
    return clamp_score(total)


def anbima_fallback_score(indicators: FixedIncomeIndicators, profile: AssetProfile) -> int:
    """Rule-based score for ANBIMA-quoted fixed income."""
    score = ANBIMA_BASE_SCORES.get(profile.asset_type, ANBIMA_DEFAULT_BASE)

    if indicators.std_deviation:
        if indicators.std_deviation > 2.0:
            score += 3
        elif indicators.std_deviation > 1.0:
            score += 1

    if indicators.duration and indicators.duration > 7:
        score += 2

    issuer = profile.issuer.lower()
    if any(marker in issuer for marker in GOVERNMENT_ISSUER_MARKERS):
        score = max(1, score - 2)
    elif any(marker in issuer for marker in LARGE_BANK_MARKERS):
        score = max(2, score - 1)

    return clamp_score(score)


def cvm_fallback_score(indicators: FixedIncomeIndicators, profile: AssetProfile) -> int:
    """Rule-based score for CVM public offerings."""
    offering = profile.offering_type or ""
    score = 8
    if "DEBÊNTURE" in offering:
        score = 7
        issuer = profile.issuer.lower()
        if "leasing" in issuer or "banco" in issuer:
            score = 5
    elif "AGRONEGÓCIO" in offering:
        score = 9
    elif "IMOBILIÁRIO" in offering:
        score = 10

    years = years_to_maturity(profile.maturity_date)
    if years > 7:
        score += 2
    elif years > 4:
        score += 1

    if profile.interest:
        match = _SPREAD_PATTERN.search(profile.interest.lower())
        if match:
            try:
                spread = float(match.group(1).replace(",", "."))
            except ValueError:
                spread = 0.0
            if spread > 4:
                score += 2
            elif spread > 2:
                score += 1

    return clamp_score(score)


# =============================================================================
# Strategies
# =============================================================================


class MarketDataScorer:
    """Deterministic scorer for listed assets (stocks, FIIs, ETFs, BDRs)."""

    family = RiskFamily.MARKET_DATA

    async def score(self, indicators: RiskIndicatorSet, profile: AssetProfile) -> ScoreResult:
        value = market_data_score(indicators, profile.asset_type)
        return ScoreResult(value, categorize(value, self.family), "market_data")


class HeuristicFallbackScorer:
    """Deterministic fixed-income scorer driven by a rule function."""

    def __init__(
        self,
        rule: Callable[[FixedIncomeIndicators, AssetProfile], int],
        family: RiskFamily = RiskFamily.FIXED_INCOME,
    ):
        self.rule = rule
        self.family = family

    async def score(self, indicators: FixedIncomeIndicators, profile: AssetProfile) -> ScoreResult:
        value = clamp_score(self.rule(indicators, profile))
        return ScoreResult(value, categorize(value, self.family), "heuristic")


class AiAssistedScorer:
    """Scores by prompting a chat model and reading the number it returns."""

    def __init__(
        self,
        prompt_builder: Callable[[Any, AssetProfile], str],
        system_prompt: str,
        family: RiskFamily = RiskFamily.FIXED_INCOME,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        complete: Callable[..., Awaitable[str]] = complete_text,
    ):
        self.prompt_builder = prompt_builder
        self.system_prompt = system_prompt
        self.family = family
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._complete = complete

    async def score(self, indicators: Any, profile: AssetProfile) -> ScoreResult:
        prompt = self.prompt_builder(indicators, profile)
        text = await self._complete(
            self.system_prompt,
            prompt,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        value = extract_score(text or "")
        if value is None:
            raise ScoreExtractionError(details={"response": (text or "")[:200]})
        logger.debug(f"AI score {value} for {profile.asset_type} ({profile.issuer})")
        return ScoreResult(value, categorize(value, self.family), "ai")


class FallbackScorer:
    """Primary scorer with a deterministic scorer behind it."""

    def __init__(self, primary: RiskScorer, fallback: RiskScorer):
        if primary.family is not fallback.family:
            raise ValueError("Primary and fallback scorers must share a risk family")
        self.primary = primary
        self.fallback = fallback
        self.family = primary.family

    async def score(self, indicators: Any, profile: AssetProfile) -> ScoreResult:
        try:
            return await self.primary.score(indicators, profile)
        except ScoreExtractionError as exc:
            logger.info(f"No usable AI score, using fallback: {exc.details.get('response', '')!r}")
        except ExternalServiceError as exc:
            logger.warning(f"AI scoring unavailable, using fallback: {exc.message}")
        return await self.fallback.score(indicators, profile)
