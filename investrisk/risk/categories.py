"""Risk score bounds and category thresholds per asset-class family."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


MIN_SCORE = 1
MAX_SCORE = 20

# Sentinel for assets that can never be scored with the data available
UNAVAILABLE_SCORE = -1
UNAVAILABLE_CATEGORY = "Indisponível"

LOW = "Baixo"
MODERATE = "Moderado"
HIGH = "Alto"


@dataclass(frozen=True)
class CategoryThresholds:
    """Inclusive upper bounds of the low and moderate tiers."""

    low_max: int
    moderate_max: int


class RiskFamily(Enum):
    """Asset-class families; each carries its own category thresholds.

    Fixed income: <=6 low, 7-13 moderate, >=14 high.
    Market data:  <=6 low, 7-12 moderate, >=13 high.
    """

    FIXED_INCOME = CategoryThresholds(low_max=6, moderate_max=13)
    MARKET_DATA = CategoryThresholds(low_max=6, moderate_max=12)

    @property
    def thresholds(self) -> CategoryThresholds:
        return self.value


def clamp_score(value: float) -> int:
    """Round half up and clamp any finite value into [1, 20]."""
    return max(MIN_SCORE, min(MAX_SCORE, math.floor(value + 0.5)))


def categorize(score: int, family: RiskFamily) -> str:
    """Category label for a final score under the family's thresholds."""
    thresholds = family.thresholds
    if score <= thresholds.low_max:
        return LOW
    if score <= thresholds.moderate_max:
        return MODERATE
    return HIGH
