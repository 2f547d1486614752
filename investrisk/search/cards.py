"""Search result cards: display labels and yield headlines for search-view rows."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from investrisk.database.orm import InvestmentSearchView


ASSET_TYPE_LABELS = {
    "cri_cra": "CRI/CRA",
    "cri": "CRI",
    "cra": "CRA",
    "debenture": "Debênture",
    "fidc": "FIDC",
    "letras_financeiras": "Letra Financeira",
    "letra_financeira": "Letra Financeira",
    "fundo": "Fundo",
    "titulo_publico": "Título Público",
    "stock": "Ação",
    "fii": "FII",
    "etf": "ETF",
    "bdr": "BDR",
    "unit": "Unit",
}

HELD_TO_MATURITY_TYPES = {"cri_cra", "debenture", "fidc", "cri", "cra"}
EXCHANGE_TRADED_TYPES = {"stock", "fii", "etf", "bdr", "unit"}

DEFAULT_CARD_SCORE = 10
DEFAULT_CARD_CATEGORY = "Moderado"


def format_asset_type(asset_type: str) -> str:
    return ASSET_TYPE_LABELS.get(asset_type, asset_type)


def get_liquidez(asset_type: str, liquidity: Optional[str] = None) -> str:
    """Liquidity label; a value from the row wins over the per-type default."""
    if liquidity:
        return liquidity
    if asset_type in HELD_TO_MATURITY_TYPES:
        return "No vencimento"
    if asset_type == "titulo_publico":
        return "Diária"
    if asset_type == "fundo":
        return "Conforme regulamento"
    if asset_type in EXCHANGE_TRADED_TYPES:
        return "D+2"
    return "Consultar"


def risk_color(score: float) -> str:
    if score <= 7:
        return "green"
    if score <= 14:
        return "yellow"
    return "red"


def risk_bars(score: float) -> list[bool]:
    """Five-bar gauge for a 1-20 score."""
    filled = math.ceil(score / 20 * 5)
    return [i < filled for i in range(5)]


@dataclass(frozen=True)
class YieldDisplay:
    headline: str
    is_market_rate: bool
    tooltip: str
    subtitle: Optional[str] = None


def _pct(value: Optional[float]) -> str:
    if value is None or math.isnan(value):
        return "0,00"
    return f"{value:.2f}".replace(".", ",")


def format_asset_yield(
    *,
    yield_profile: Optional[str] = None,
    contract_rate_type: Optional[str] = None,
    contract_spread_percent: Optional[float] = None,
    market_rate_indicative_percent: Optional[float] = None,
    dividend_yield: Optional[float] = None,
    profitability: Optional[str] = None,
    price_change_percent: Optional[float] = None,
) -> YieldDisplay:
    """Headline yield text from the structured yield-profile columns."""
    spread = contract_spread_percent

    if yield_profile == "PREFIXADO":
        return YieldDisplay(
            f"{_pct(spread)}% ao ano", False,
            "Taxa contratual fixa definida na emissão", "Taxa fixa",
        )
    if yield_profile == "POS_CDI":
        if contract_rate_type == "PERCENT_INDEXADOR":
            return YieldDisplay(
                f"{_pct(spread)}% do CDI", False, "Rendimento proporcional à taxa CDI"
            )
        return YieldDisplay(f"CDI + {_pct(spread)}% ao ano", False, "CDI mais um spread fixo")
    if yield_profile == "POS_SELIC":
        if spread and spread > 0:
            return YieldDisplay(
                f"SELIC + {_pct(spread)}% ao ano", False, "Taxa SELIC mais um spread fixo"
            )
        return YieldDisplay("100% da SELIC", False, "Acompanha a taxa básica de juros")
    if yield_profile == "HIBRIDO_IPCA":
        return YieldDisplay(
            f"IPCA + {_pct(spread)}% ao ano", False, "Inflação (IPCA) mais uma taxa fixa"
        )
    if yield_profile == "HIBRIDO_IGPM":
        return YieldDisplay(
            f"IGP-M + {_pct(spread)}% ao ano", False, "Inflação (IGP-M) mais uma taxa fixa"
        )
    if yield_profile == "VARIAVEL":
        if dividend_yield and dividend_yield > 0:
            return YieldDisplay(
                f"DY {_pct(dividend_yield)}%", True,
                "Rendimento de dividendos nos últimos 12 meses. "
                "Rentabilidade variável conforme mercado.",
                "Dividend Yield",
            )
        if price_change_percent is not None:
            sign = "+" if price_change_percent >= 0 else ""
            return YieldDisplay(
                f"{sign}{_pct(price_change_percent)}%", True,
                "Variação de preço. Rentabilidade variável conforme mercado.",
                "Variação",
            )
        return YieldDisplay(
            "Renda Variável", True, "Rentabilidade variável conforme condições de mercado"
        )

    # Unknown profile: legacy text, then the ANBIMA indicative rate
    if profitability and profitability != "Consultar prospecto":
        return YieldDisplay(
            profitability,
            market_rate_indicative_percent is not None,
            "Taxa indicativa de mercado (referência ANBIMA). Pode variar diariamente."
            if market_rate_indicative_percent
            else "Consulte o prospecto para detalhes",
        )
    if market_rate_indicative_percent is not None:
        return YieldDisplay(
            f"{_pct(market_rate_indicative_percent)}% a.a.", True,
            "Taxa indicativa ANBIMA (referência de mercado). Não é garantia de retorno.",
            "Taxa de mercado",
        )
    return YieldDisplay(
        "Consultar prospecto", False,
        "Consulte o prospecto do ativo para detalhes sobre a rentabilidade",
    )


@dataclass
class InvestmentCard:
    id: str
    type: str
    code: str
    emissor: str
    data_vencimento: Optional[str]
    maturity_date_raw: Optional[date]
    rentabilidade: str
    rentabilidade_tooltip: Optional[str]
    is_market_rate: bool
    liquidez: str
    risk_score: int
    risk_category: str
    risk_color: str
    asset_id: str
    asset_type: str
    yield_profile: Optional[str] = None
    contract_spread_percent: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "code": self.code,
            "emissor": self.emissor,
            "data_vencimento": self.data_vencimento,
            "maturity_date_raw": self.maturity_date_raw.isoformat() if self.maturity_date_raw else None,
            "rentabilidade": self.rentabilidade,
            "rentabilidadeTooltip": self.rentabilidade_tooltip,
            "isMarketRate": self.is_market_rate,
            "liquidez": self.liquidez,
            "risk_score": self.risk_score,
            "risk_category": self.risk_category,
            "risk_color": self.risk_color,
            "asset_id": self.asset_id,
            "asset_type": self.asset_type,
            "yield_profile": self.yield_profile,
            "contract_spread_percent": self.contract_spread_percent,
        }


def card_from_row(row: InvestmentSearchView) -> InvestmentCard:
    """Map a search-view row to a card; missing scores display as 10/Moderado."""
    asset_type = row.asset_type or ""
    score = row.risk_score or DEFAULT_CARD_SCORE
    display = format_asset_yield(
        yield_profile=row.yield_profile,
        contract_rate_type=row.contract_rate_type,
        contract_spread_percent=row.contract_spread_percent,
        market_rate_indicative_percent=row.market_rate_indicative_percent,
        dividend_yield=row.dividend_yield,
        profitability=row.profitability,
    )
    return InvestmentCard(
        id=row.id,
        type=format_asset_type(asset_type),
        code=row.asset_code or "",
        emissor=row.issuer or row.display_name or "N/A",
        data_vencimento=row.maturity_date.strftime("%d/%m/%Y") if row.maturity_date else None,
        maturity_date_raw=row.maturity_date,
        rentabilidade=display.headline,
        rentabilidade_tooltip=display.tooltip,
        is_market_rate=display.is_market_rate,
        liquidez=get_liquidez(asset_type, row.liquidity),
        risk_score=score,
        risk_category=row.risk_category or DEFAULT_CARD_CATEGORY,
        risk_color=risk_color(score),
        asset_id=row.source_id or row.id,
        asset_type=asset_type,
        yield_profile=row.yield_profile,
        contract_spread_percent=row.contract_spread_percent,
    )
