"""Fixed-income risk job over the ANBIMA secondary-market tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from investrisk.anomaly.policies import ANBIMA_RISK_POLICY
from investrisk.core.config import settings
from investrisk.core.logging import get_logger
from investrisk.repositories import fixed_income_orm as fixed_income_repo
from investrisk.risk.fixed_income import anbima_scorer
from investrisk.risk.scoring import AssetProfile, FixedIncomeIndicators, RiskScorer
from investrisk.schemas.jobs import JobInvocation

from .chunking import ChunkedRiskJob, ChunkOutcome
from .registry import register_job


logger = get_logger("jobs.anbima_risk")


@dataclass(frozen=True)
class AnbimaAsset:
    """Scoring inputs and display fields extracted from one ANBIMA row."""

    asset_code: str
    profile: AssetProfile
    indicators: FixedIncomeIndicators
    yield_text: str


def _format_rate(value: float) -> str:
    return format(float(value), "g")


def anbima_yield_text(asset_type: str, row: Any) -> str:
    """Display yield for an ANBIMA row; ``"Consultar"`` when not derivable."""
    remuneration = getattr(row, "tipo_remuneracao", None)
    rate = getattr(row, "taxa_indicativa", None)
    if asset_type == "cri_cra" and remuneration and rate:
        return f"{remuneration} + {_format_rate(rate)}%"
    if asset_type == "debenture" and getattr(row, "percentual_taxa", None):
        return row.percentual_taxa
    if asset_type == "titulo_publico" and rate:
        return f"{_format_rate(rate)}% a.a."
    return "Consultar"


def describe_anbima_asset(asset_type: str, row: Any) -> AnbimaAsset:
    code = (
        getattr(row, "codigo_ativo", None)
        or getattr(row, "codigo_b3", None)
        or getattr(row, "codigo_isin", None)
        or "N/A"
    )
    return AnbimaAsset(
        asset_code=code,
        profile=AssetProfile(
            asset_type=asset_type,
            issuer=getattr(row, "emissor", None) or "N/A",
            maturity_date=getattr(row, "data_vencimento", None),
        ),
        indicators=FixedIncomeIndicators(
            std_deviation=getattr(row, "desvio_padrao", None),
            duration=getattr(row, "duration", None),
            indicative_rate=getattr(row, "taxa_indicativa", None),
            remuneration_type=getattr(row, "tipo_remuneracao", None),
        ),
        yield_text=anbima_yield_text(asset_type, row),
    )


@register_job("precalculate-anbima-risks")
class AnbimaRiskJob(ChunkedRiskJob):
    """Full refresh of every ANBIMA asset (up to a per-table limit)."""

    name = "precalculate-anbima-risks"
    policy = ANBIMA_RISK_POLICY
    selects_by_default = True

    def __init__(self, scorer: RiskScorer | None = None, **kwargs):
        super().__init__(**kwargs)
        self.scorer = scorer or anbima_scorer()

    def execution_type(self, request: JobInvocation) -> str:
        return "risk_calculation"

    async def select_pending(self, request: JobInvocation) -> list[str]:
        return await fixed_income_repo.list_anbima_asset_keys(settings.anbima_table_limit)

    async def process_asset(self, key: str, context: Any, outcome: ChunkOutcome) -> None:
        asset_type, asset_id = fixed_income_repo.split_asset_key(key)
        row = await fixed_income_repo.get_anbima_asset(asset_type, asset_id)
        if row is None:
            logger.warning(f"ANBIMA asset {key} not found, skipping")
            outcome.record_skip()
            return

        asset = describe_anbima_asset(asset_type, row)
        result = await self.scorer.score(asset.indicators, asset.profile)
        await fixed_income_repo.upsert_risk_score(
            asset_type=asset_type,
            asset_id=asset_id,
            asset_code=asset.asset_code,
            emissor=asset.profile.issuer,
            data_vencimento=asset.profile.maturity_date,
            rentabilidade=asset.yield_text,
            result=result,
        )
        outcome.record_score(asset_type, result)
        logger.debug(f"{asset.asset_code}: score {result.score} ({result.category}, {result.strategy})")
