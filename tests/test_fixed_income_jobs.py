"""Tests for the ANBIMA and CVM fixed-income risk jobs."""

from __future__ import annotations

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.dialects import postgresql

from investrisk.database.orm import AnbimaCriCra, AnbimaDebenture, AnbimaTituloPublico, CvmOfertaPublica
from investrisk.jobs import anbima_risk, cvm_risk
from investrisk.jobs.anbima_risk import AnbimaRiskJob, anbima_yield_text, describe_anbima_asset
from investrisk.jobs.chunking import ChunkOutcome
from investrisk.jobs.cvm_risk import OFFERING_TYPES, CvmRiskJob, map_offering_type, offering_code
from investrisk.repositories.fixed_income_orm import (
    asset_key,
    pending_offerings_query,
    split_asset_key,
)
from investrisk.risk.categories import RiskFamily
from investrisk.risk.fixed_income import build_anbima_prompt, build_cvm_prompt
from investrisk.risk.scoring import (
    AssetProfile,
    FixedIncomeIndicators,
    HeuristicFallbackScorer,
    anbima_fallback_score,
    cvm_fallback_score,
)
from investrisk.schemas.jobs import JobInvocation


def _offering(**overrides) -> CvmOfertaPublica:
    values = {
        "id": "7b0c",
        "tipo_ativo": "DEBÊNTURE",
        "cnpj_emissor": "00000000000100",
        "nome_emissor": "Banco Alfa Leasing SA",
        "serie": "2",
        "data_emissao": date(2024, 3, 1),
        "data_vencimento": None,
        "juros": "CDI + 4,5%",
        "atualizacao_monetaria": None,
        "valor_total_emissao": 1_500_000.0,
    }
    values.update(overrides)
    return CvmOfertaPublica(**values)


class TestAssetKeys:
    def test_roundtrip(self):
        assert split_asset_key(asset_key("cri_cra", "abc")) == ("cri_cra", "abc")


class TestAnbimaDescription:
    def test_cri_cra_row(self):
        row = AnbimaCriCra(
            codigo_ativo="CRI0001",
            emissor="Securitizadora Beta",
            data_vencimento=date(2031, 6, 15),
            tipo_remuneracao="IPCA",
            taxa_indicativa=6.25,
            desvio_padrao=0.8,
            duration=4.2,
        )
        asset = describe_anbima_asset("cri_cra", row)

        assert asset.asset_code == "CRI0001"
        assert asset.profile.issuer == "Securitizadora Beta"
        assert asset.indicators.std_deviation == 0.8
        assert asset.yield_text == "IPCA + 6.25%"

    def test_debenture_yield_text(self):
        row = AnbimaDebenture(codigo_ativo="DEB1", percentual_taxa="CDI + 1,35%")
        assert anbima_yield_text("debenture", row) == "CDI + 1,35%"

    def test_public_bond_uses_isin(self):
        row = AnbimaTituloPublico(codigo_isin="BRSTNCNTB0O7", taxa_indicativa=6.0)
        asset = describe_anbima_asset("titulo_publico", row)
        assert asset.asset_code == "BRSTNCNTB0O7"
        assert asset.profile.issuer == "N/A"
        assert asset.yield_text == "6% a.a."

    def test_unknown_yield(self):
        assert anbima_yield_text("fidc", AnbimaCriCra()) == "Consultar"

    def test_prompt_mentions_indicators(self):
        prompt = build_anbima_prompt(
            FixedIncomeIndicators(std_deviation=1.2, duration=3.0),
            AssetProfile(asset_type="debenture", issuer="Empresa SA"),
        )
        assert "debenture" in prompt
        assert "Desvio Padrão: 1.2" in prompt
        assert "Taxa Indicativa: N/A" in prompt
        assert "Emissor: Empresa SA" in prompt


class TestAnbimaRiskJob:
    @pytest.fixture
    def job(self):
        return AnbimaRiskJob(scorer=HeuristicFallbackScorer(anbima_fallback_score))

    @pytest.mark.asyncio
    async def test_selects_by_default(self, job):
        with patch.object(
            anbima_risk.fixed_income_repo,
            "list_anbima_asset_keys",
            AsyncMock(return_value=["debenture:1"]),
        ) as select:
            assert await job.select_pending(JobInvocation()) == ["debenture:1"]
        select.assert_awaited_once_with(100)
        assert job.execution_type(JobInvocation()) == "risk_calculation"

    @pytest.mark.asyncio
    async def test_process_asset_upserts_score(self, job):
        row = AnbimaDebenture(
            codigo_ativo="VALE29",
            emissor="Vale SA",
            data_vencimento=date(2032, 1, 1),
            percentual_taxa="107% do CDI",
            desvio_padrao=2.4,
            duration=8.1,
        )
        upsert = AsyncMock()
        outcome = ChunkOutcome()

        with (
            patch.object(anbima_risk.fixed_income_repo, "get_anbima_asset", AsyncMock(return_value=row)) as get,
            patch.object(anbima_risk.fixed_income_repo, "upsert_risk_score", upsert),
        ):
            await job.process_asset("debenture:row-1", None, outcome)

        get.assert_awaited_once_with("debenture", "row-1")
        kwargs = upsert.await_args.kwargs
        assert kwargs["asset_code"] == "VALE29"
        assert kwargs["rentabilidade"] == "107% do CDI"
        assert kwargs["result"].score == 13
        assert kwargs["result"].category == "Moderado"
        assert outcome.by_type == {"debenture": 1}

    @pytest.mark.asyncio
    async def test_missing_row_is_skipped(self, job):
        outcome = ChunkOutcome()
        with patch.object(anbima_risk.fixed_income_repo, "get_anbima_asset", AsyncMock(return_value=None)):
            await job.process_asset("fidc:gone", None, outcome)
        assert outcome.skipped == 1
        assert outcome.processed == 0


class TestCvmOfferings:
    @pytest.mark.parametrize(
        "tipo,expected",
        [
            ("CERTIFICADO DE RECEBÍVEIS IMOBILIÁRIOS", "cvm_cri"),
            ("CERTIFICADO DE RECEBÍVEIS DO AGRONEGÓCIO", "cvm_cra"),
            ("DEBÊNTURE", "cvm_debenture"),
            ("DEBÊNTURES CONVERSÍVEIS", "cvm_debenture"),
            ("AÇÕES", None),
            (None, None),
        ],
    )
    def test_map_offering_type(self, tipo, expected):
        assert map_offering_type(tipo) == expected

    def test_offering_code(self):
        assert offering_code(_offering()) == "2-2024-03-01"
        assert offering_code(_offering(serie=None, data_emissao=None)) == "S/S-N/A"

    def test_prompt_uses_brazilian_number_format(self):
        prompt = build_cvm_prompt(
            FixedIncomeIndicators(),
            AssetProfile(
                asset_type="cvm_debenture",
                issuer="Banco Alfa",
                offering_type="DEBÊNTURE",
                interest="CDI + 2%",
                issue_value=1_234_567.89,
            ),
        )
        assert "VALOR: R$ 1.234.567,89" in prompt
        assert "VENCIMENTO: 5.0 anos" in prompt
        assert "RENTABILIDADE: CDI + 2%" in prompt


class TestCvmRiskJob:
    @pytest.fixture
    def job(self):
        return CvmRiskJob(
            scorer=HeuristicFallbackScorer(cvm_fallback_score, RiskFamily.FIXED_INCOME)
        )

    @pytest.mark.asyncio
    async def test_scores_debenture(self, job):
        upsert = AsyncMock()
        outcome = ChunkOutcome()

        with (
            patch.object(cvm_risk.fixed_income_repo, "get_offering", AsyncMock(return_value=_offering())),
            patch.object(cvm_risk.fixed_income_repo, "upsert_risk_score", upsert),
        ):
            await job.process_asset("7b0c", None, outcome)

        kwargs = upsert.await_args.kwargs
        assert kwargs["asset_type"] == "cvm_debenture"
        assert kwargs["asset_code"] == "2-2024-03-01"
        assert kwargs["rentabilidade"] == "CDI + 4,5%"
        assert kwargs["result"].score == 8
        assert outcome.processed == 1

    @pytest.mark.asyncio
    async def test_unsupported_offering_is_skipped(self, job):
        upsert = AsyncMock()
        outcome = ChunkOutcome()

        with (
            patch.object(cvm_risk.fixed_income_repo, "get_offering", AsyncMock(return_value=_offering(tipo_ativo="AÇÕES"))),
            patch.object(cvm_risk.fixed_income_repo, "upsert_risk_score", upsert),
        ):
            await job.process_asset("7b0c", None, outcome)

        assert outcome.skipped == 1
        upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_error_detail_carries_issuer(self, job):
        with patch.object(cvm_risk.fixed_income_repo, "get_offering", AsyncMock(return_value=_offering(tipo_ativo="AÇÕES"))):
            await job.process_asset("7b0c", None, ChunkOutcome())

        assert job.error_detail("7b0c", RuntimeError("boom")) == {
            "asset_id": "7b0c",
            "emissor": "Banco Alfa Leasing SA",
            "error": "boom",
        }

    def test_uses_offering_statuses(self, job):
        assert job.statuses.success == "success"
        assert job.statuses.partial == "partial"
        assert job.statuses.failure == "error"
        assert job.fetch_delay_ms == 100


class TestCvmSelection:
    @pytest.mark.asyncio
    async def test_selects_only_scored_offering_types(self):
        job = CvmRiskJob(scorer=HeuristicFallbackScorer(cvm_fallback_score, RiskFamily.FIXED_INCOME))
        with patch.object(
            cvm_risk.fixed_income_repo, "list_pending_offering_ids", AsyncMock(return_value=["7b0c"])
        ) as select:
            assert await job.select_pending(JobInvocation()) == ["7b0c"]

        markers = select.await_args.args[1]
        assert markers == [marker for marker, _ in OFFERING_TYPES]
        assert all(map_offering_type(marker) is not None for marker in markers)

    def test_query_filters_on_type_markers(self):
        query = pending_offerings_query(datetime(2025, 1, 1, tzinfo=UTC), ["DEBÊNTURE", "AGRONEGÓCIO"])
        compiled = query.compile(dialect=postgresql.dialect())
        sql = str(compiled)

        assert sql.count("cvm_ofertas_publicas.tipo_ativo LIKE") == 2
        assert "is_active IS true" in sql
        assert {"DEBÊNTURE", "AGRONEGÓCIO"} <= set(compiled.params.values())
