"""Fixed-income scorers: AI prompts plus the deterministic rules behind them.

The weights in these prompts are guidance for the model only; nothing
checks that the returned number follows them.
"""

from __future__ import annotations

from .categories import RiskFamily
from .scoring import (
    AiAssistedScorer,
    AssetProfile,
    FallbackScorer,
    FixedIncomeIndicators,
    HeuristicFallbackScorer,
    anbima_fallback_score,
    cvm_fallback_score,
    format_offering_yield,
    years_to_maturity,
)


ANBIMA_SYSTEM_PROMPT = "Você é um analista de risco. Responda apenas com um número de 1 a 20."

CVM_SYSTEM_PROMPT = (
    "Você é um analista de risco de investimentos brasileiro especializado em renda fixa."
)


def _value(value: object) -> str:
    return "N/A" if value in (None, "") else str(value)


def build_anbima_prompt(indicators: FixedIncomeIndicators, profile: AssetProfile) -> str:
    """Prompt for ANBIMA-quoted assets (CRI/CRA, debentures, FIDC, public bonds)."""
    maturity = profile.maturity_date.isoformat() if profile.maturity_date else None
    return f"""Você é um analista de risco de investimentos brasileiro. Calcule um score de risco de 1 a 20 para este ativo de renda fixa do tipo {profile.asset_type}.

IMPORTANTE: Este é um produto de RENDA FIXA, não renda variável. O score deve refletir risco de crédito e liquidez, NÃO volatilidade de preço.

Indicadores do ativo:
- Desvio Padrão: {_value(indicators.std_deviation)} (em pontos percentuais)
- Duration: {_value(indicators.duration)} (em anos)
- Taxa Indicativa: {_value(indicators.indicative_rate)}% a.a.
- Tipo Remuneração: {_value(indicators.remuneration_type)}
- Data Vencimento: {_value(maturity)}
- Emissor: {profile.issuer}

Critérios de avaliação (pesos):
1. Qualidade do emissor (40%): Governo < Banco Grande < Securitizadora < Empresa
2. Desvio padrão (30%): <0.5 = baixo, 0.5-2.0 = moderado, >2.0 = alto
3. Liquidez (20%): Título público > CDB > CRI/Debênture > FIDC
4. Duration (10%): Só penalizar se >7 anos

Escalas de referência:
- 1-6: Baixo risco (Títulos públicos, CDBs grandes bancos)
- 7-13: Risco moderado (CRI/CRA, LF, Debêntures IG)
- 14-20: Alto risco (FIDC, Debêntures HY)

Retorne apenas um número de 1 a 20."""


def _format_brl(value: float | None) -> str:
    amount = f"{value or 0:,.2f}"
    # pt-BR grouping: 1.234.567,89
    return amount.replace(",", "_").replace(".", ",").replace("_", ".")


def build_cvm_prompt(indicators: FixedIncomeIndicators, profile: AssetProfile) -> str:
    """Prompt for CVM public offerings (CRI, CRA, debentures)."""
    years = years_to_maturity(profile.maturity_date)
    yield_text = format_offering_yield(profile.interest, profile.monetary_update)
    return f"""Você é um analista de risco brasileiro. Calcule um score de risco de 1 a 20 para este ativo:

TIPO: {profile.offering_type or profile.asset_type}
EMISSOR: {profile.issuer}
RENTABILIDADE: {yield_text}
VENCIMENTO: {years:.1f} anos
VALOR: R$ {_format_brl(profile.issue_value)}

CRITÉRIOS:
- Emissor (40%): Banco=3-5, Leasing/Securitizadora=6-10, Outros=11-15
- Rentabilidade (25%): CDI puro=baixo, CDI+spread<2%=moderado, IPCA+>5%=alto
- Prazo (20%): <2 anos=+0, 2-5 anos=+1-2, >5 anos=+2-3
- Tipo (15%): Debênture banco<CRA<CRI

ESCALAS:
1-6 = Baixo risco
7-13 = Moderado
14-20 = Alto risco

RESPONDA APENAS COM UM NÚMERO DE 1 A 20. EXEMPLO: 8"""


def anbima_scorer() -> FallbackScorer:
    """AI-first scorer for ANBIMA assets with the ANBIMA rule set behind it."""
    return FallbackScorer(
        AiAssistedScorer(
            build_anbima_prompt,
            ANBIMA_SYSTEM_PROMPT,
            RiskFamily.FIXED_INCOME,
            max_tokens=50,
        ),
        HeuristicFallbackScorer(anbima_fallback_score, RiskFamily.FIXED_INCOME),
    )


def cvm_scorer() -> FallbackScorer:
    """AI-first scorer for CVM offerings with the CVM rule set behind it."""
    return FallbackScorer(
        AiAssistedScorer(
            build_cvm_prompt,
            CVM_SYSTEM_PROMPT,
            RiskFamily.FIXED_INCOME,
            temperature=0.3,
        ),
        HeuristicFallbackScorer(cvm_fallback_score, RiskFamily.FIXED_INCOME),
    )
