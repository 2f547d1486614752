"""Risk statistics, score strategies and category thresholds."""

from .categories import (
    UNAVAILABLE_CATEGORY,
    UNAVAILABLE_SCORE,
    RiskFamily,
    categorize,
    clamp_score,
)
from .fixed_income import anbima_scorer, cvm_scorer
from .scoring import (
    AiAssistedScorer,
    AssetProfile,
    FallbackScorer,
    FixedIncomeIndicators,
    HeuristicFallbackScorer,
    MarketDataScorer,
    RiskScorer,
    ScoreResult,
    extract_score,
    resolve_beta,
)
from .statistics import PriceObservation, RiskIndicatorSet, compute_indicators, compute_returns


__all__ = [
    "UNAVAILABLE_CATEGORY",
    "UNAVAILABLE_SCORE",
    "RiskFamily",
    "categorize",
    "clamp_score",
    "anbima_scorer",
    "cvm_scorer",
    "AiAssistedScorer",
    "AssetProfile",
    "FallbackScorer",
    "FixedIncomeIndicators",
    "HeuristicFallbackScorer",
    "MarketDataScorer",
    "RiskScorer",
    "ScoreResult",
    "extract_score",
    "resolve_beta",
    "PriceObservation",
    "RiskIndicatorSet",
    "compute_indicators",
    "compute_returns",
]
