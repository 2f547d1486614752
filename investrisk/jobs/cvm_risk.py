"""Fixed-income risk job over CVM public offerings."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from investrisk.anomaly.policies import CVM_RISK_POLICY
from investrisk.core.config import settings
from investrisk.core.logging import get_logger
from investrisk.database.orm import CvmOfertaPublica
from investrisk.repositories import fixed_income_orm as fixed_income_repo
from investrisk.risk.fixed_income import cvm_scorer
from investrisk.risk.scoring import AssetProfile, FixedIncomeIndicators, RiskScorer, format_offering_yield
from investrisk.schemas.jobs import JobInvocation

from .chunking import OFFERING_STATUSES, ChunkedRiskJob, ChunkOutcome
from .registry import register_job


logger = get_logger("jobs.cvm_risk")

# Substring of tipo_ativo -> stored asset type, checked in order
OFFERING_TYPES: tuple[tuple[str, str], ...] = (
    ("CERTIFICADO DE RECEBÍVEIS IMOBILIÁRIOS", "cvm_cri"),
    ("CERTIFICADO DE RECEBÍVEIS DO AGRONEGÓCIO", "cvm_cra"),
    ("DEBÊNTURE", "cvm_debenture"),
)


def map_offering_type(tipo_ativo: str | None) -> str | None:
    """Stored asset type for an offering, or None when it is not scored."""
    for marker, asset_type in OFFERING_TYPES:
        if tipo_ativo and marker in tipo_ativo:
            return asset_type
    return None


def offering_code(offering: CvmOfertaPublica) -> str:
    issued = offering.data_emissao.isoformat()[:10] if offering.data_emissao else "N/A"
    return f"{offering.serie or 'S/S'}-{issued}"


def offering_profile(offering: CvmOfertaPublica, asset_type: str) -> AssetProfile:
    return AssetProfile(
        asset_type=asset_type,
        issuer=offering.nome_emissor or "N/A",
        maturity_date=offering.data_vencimento,
        offering_type=offering.tipo_ativo,
        interest=offering.juros,
        monetary_update=offering.atualizacao_monetaria,
        issue_value=offering.valor_total_emissao,
    )


@register_job("precalculate-cvm-risks")
class CvmRiskJob(ChunkedRiskJob):
    name = "precalculate-cvm-risks"
    policy = CVM_RISK_POLICY
    statuses = OFFERING_STATUSES
    selects_by_default = True

    def __init__(self, scorer: RiskScorer | None = None, **kwargs):
        super().__init__(**kwargs)
        self.scorer = scorer or cvm_scorer()
        self._issuers: dict[str, str] = {}

    @property
    def fetch_delay_ms(self) -> int:
        return settings.cvm_fetch_delay_ms

    async def select_pending(self, request: JobInvocation) -> list[str]:
        stale_before = datetime.now(UTC) - timedelta(days=settings.risk_staleness_days)
        markers = [marker for marker, _ in OFFERING_TYPES]
        return await fixed_income_repo.list_pending_offering_ids(stale_before, markers)

    async def process_asset(self, offering_id: str, context: Any, outcome: ChunkOutcome) -> None:
        offering = await fixed_income_repo.get_offering(offering_id)
        if offering is None:
            logger.warning(f"CVM offering {offering_id} not found, skipping")
            outcome.record_skip()
            return
        self._issuers[offering_id] = offering.nome_emissor

        asset_type = map_offering_type(offering.tipo_ativo)
        if asset_type is None:
            outcome.record_skip()
            return

        profile = offering_profile(offering, asset_type)
        result = await self.scorer.score(FixedIncomeIndicators(), profile)
        await fixed_income_repo.upsert_risk_score(
            asset_type=asset_type,
            asset_id=offering.id,
            asset_code=offering_code(offering),
            emissor=offering.nome_emissor,
            data_vencimento=offering.data_vencimento,
            rentabilidade=format_offering_yield(offering.juros, offering.atualizacao_monetaria),
            result=result,
        )
        outcome.record_score(asset_type, result)

    def error_detail(self, offering_id: str, error: Exception) -> dict[str, Any]:
        return {
            "asset_id": offering_id,
            "emissor": self._issuers.get(offering_id),
            "error": str(error),
        }
