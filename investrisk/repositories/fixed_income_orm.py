"""Fixed-income repository (ANBIMA quotes, CVM offerings, stored scores).

Usage:
    from investrisk.repositories import fixed_income_orm as fixed_income_repo

    keys = await fixed_income_repo.list_anbima_asset_keys(limit=100)
    row = await fixed_income_repo.get_anbima_asset("debenture", asset_id)
    await fixed_income_repo.upsert_risk_score(...)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.dialects.postgresql import insert

from investrisk.core.logging import get_logger
from investrisk.database.connection import get_session
from investrisk.database.orm import (
    AnbimaAssetRiskScore,
    AnbimaCriCra,
    AnbimaDebenture,
    AnbimaFidc,
    AnbimaTituloPublico,
    CvmOfertaPublica,
)
from investrisk.risk.scoring import ScoreResult

from .brapi_orm import summarize_score_groups


logger = get_logger("repositories.fixed_income_orm")

# Asset type -> source table, in processing order
ANBIMA_TABLES: dict[str, type] = {
    "cri_cra": AnbimaCriCra,
    "debenture": AnbimaDebenture,
    "fidc": AnbimaFidc,
    "titulo_publico": AnbimaTituloPublico,
}

ANBIMA_ASSET_TYPES = tuple(ANBIMA_TABLES)
CVM_ASSET_TYPES = ("cvm_cri", "cvm_cra", "cvm_debenture")


def asset_key(asset_type: str, asset_id: str) -> str:
    return f"{asset_type}:{asset_id}"


def split_asset_key(key: str) -> tuple[str, str]:
    asset_type, _, asset_id = key.partition(":")
    return asset_type, asset_id


# =============================================================================
# ANBIMA
# =============================================================================


async def list_anbima_asset_keys(limit: int) -> list[str]:
    """Up to ``limit`` rows from each ANBIMA table as ``"<type>:<id>"`` keys."""
    keys: list[str] = []
    async with get_session() as session:
        for asset_type, model in ANBIMA_TABLES.items():
            result = await session.execute(select(model.id).order_by(model.id.asc()).limit(limit))
            ids = result.scalars().all()
            keys.extend(asset_key(asset_type, asset_id) for asset_id in ids)
            logger.debug(f"Selected {len(ids)} {asset_type} assets")
    return keys


async def get_anbima_asset(asset_type: str, asset_id: str) -> Any | None:
    """Source row for one ANBIMA asset, or None if the type or row is unknown."""
    model = ANBIMA_TABLES.get(asset_type)
    if model is None:
        return None
    async with get_session() as session:
        return await session.get(model, asset_id)


async def count_anbima_source_rows() -> dict[str, int]:
    """Row counts of the ANBIMA source tables, keyed by asset type."""
    counts: dict[str, int] = {}
    async with get_session() as session:
        for asset_type, model in ANBIMA_TABLES.items():
            result = await session.execute(select(func.count(model.id)))
            counts[asset_type] = result.scalar_one()
    return counts


# =============================================================================
# CVM
# =============================================================================


def pending_offerings_query(stale_before: datetime, type_markers: Sequence[str]) -> Select:
    """Active offerings of a scored type whose score is missing or older than ``stale_before``.

    ``type_markers`` are substrings of ``tipo_ativo``; offerings matching none
    of them are never scored and so are left out instead of being reselected
    on every run.
    """
    score = AnbimaAssetRiskScore
    return (
        select(CvmOfertaPublica.id)
        .outerjoin(
            score,
            and_(
                score.asset_id == CvmOfertaPublica.id,
                score.asset_type.in_(CVM_ASSET_TYPES),
            ),
        )
        .where(
            CvmOfertaPublica.is_active.is_(True),
            or_(*(CvmOfertaPublica.tipo_ativo.contains(marker) for marker in type_markers)),
            or_(score.id.is_(None), score.calculated_at < stale_before),
        )
        .order_by(CvmOfertaPublica.id.asc())
    )


async def list_pending_offering_ids(stale_before: datetime, type_markers: Sequence[str]) -> list[str]:
    async with get_session() as session:
        result = await session.execute(pending_offerings_query(stale_before, type_markers))
        return list(result.scalars().all())


async def get_offering(offering_id: str) -> CvmOfertaPublica | None:
    async with get_session() as session:
        return await session.get(CvmOfertaPublica, offering_id)


# =============================================================================
# SCORES
# =============================================================================


async def upsert_risk_score(
    *,
    asset_type: str,
    asset_id: str,
    asset_code: str,
    emissor: str | None,
    data_vencimento: date | None,
    rentabilidade: str | None,
    result: ScoreResult,
) -> None:
    """Insert or replace the current score keyed by (asset_type, asset_id)."""
    now = datetime.now(UTC)
    values = {
        "asset_type": asset_type,
        "asset_id": asset_id,
        "asset_code": asset_code,
        "emissor": emissor,
        "data_vencimento": data_vencimento,
        "rentabilidade": rentabilidade,
        "risk_score": result.score,
        "risk_category": result.category,
        "calculated_at": now,
        "updated_at": now,
    }
    stmt = insert(AnbimaAssetRiskScore).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["asset_type", "asset_id"],
        set_={key: value for key, value in values.items() if key not in ("asset_type", "asset_id")},
    )
    async with get_session() as session:
        await session.execute(stmt)
        await session.commit()


async def get_score_stats(asset_types: Sequence[str]) -> dict[str, Any]:
    """Current distribution of stored scores for the given asset types."""
    async with get_session() as session:
        result = await session.execute(
            select(
                AnbimaAssetRiskScore.asset_type,
                AnbimaAssetRiskScore.risk_category,
                func.count(AnbimaAssetRiskScore.id),
                func.sum(AnbimaAssetRiskScore.risk_score),
            )
            .where(AnbimaAssetRiskScore.asset_type.in_(list(asset_types)))
            .group_by(AnbimaAssetRiskScore.asset_type, AnbimaAssetRiskScore.risk_category)
        )
        return summarize_score_groups(result.all())
