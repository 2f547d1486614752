"""Anomaly alert repository using SQLAlchemy ORM.

Usage:
    from investrisk.repositories import alerts_orm as alerts_repo

    await alerts_repo.insert_alerts(execution_id, drafts)
    pending = await alerts_repo.count_pending_alerts("precalculate-cvm-risks")
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update

from investrisk.core.logging import get_logger
from investrisk.database.connection import get_session
from investrisk.database.orm import AnomalyAlert, ExecutionStat


if TYPE_CHECKING:
    from investrisk.anomaly.detector import AlertDraft


logger = get_logger("repositories.alerts_orm")


async def insert_alerts(execution_id: str, drafts: Sequence[AlertDraft]) -> int:
    """Persist alert drafts for one terminal execution. Returns rows inserted."""
    if not drafts:
        return 0

    async with get_session() as session:
        for draft in drafts:
            session.add(
                AnomalyAlert(
                    execution_id=execution_id,
                    alert_type=draft.alert_type,
                    severity=draft.severity,
                    metric_name=draft.metric_name,
                    expected_value=draft.expected_value,
                    actual_value=draft.actual_value,
                    deviation_percent=draft.deviation_percent,
                    message=draft.message,
                )
            )
        await session.commit()

    logger.info(f"Inserted {len(drafts)} anomaly alerts for execution {execution_id}")
    return len(drafts)


async def count_pending_alerts(function_name: str | None = None) -> int:
    """Unacknowledged alerts, optionally limited to one job's executions."""
    query = select(func.count(AnomalyAlert.id)).where(AnomalyAlert.is_acknowledged.is_(False))
    if function_name is not None:
        query = query.join(ExecutionStat, ExecutionStat.id == AnomalyAlert.execution_id).where(
            ExecutionStat.function_name == function_name
        )

    async with get_session() as session:
        result = await session.execute(query)
        return result.scalar_one()


async def list_alerts(
    *,
    pending_only: bool = True,
    function_name: str | None = None,
    limit: int = 50,
) -> list[AnomalyAlert]:
    """Alerts newest first."""
    query = select(AnomalyAlert).order_by(AnomalyAlert.created_at.desc()).limit(limit)
    if pending_only:
        query = query.where(AnomalyAlert.is_acknowledged.is_(False))
    if function_name is not None:
        query = query.join(ExecutionStat, ExecutionStat.id == AnomalyAlert.execution_id).where(
            ExecutionStat.function_name == function_name
        )

    async with get_session() as session:
        result = await session.execute(query)
        return list(result.scalars().all())


async def acknowledge_alert(
    alert_id: str,
    acknowledged_by: str,
    resolution_notes: str | None = None,
) -> AnomalyAlert | None:
    """Mark an alert acknowledged. Returns None when the alert does not exist."""
    async with get_session() as session:
        result = await session.execute(
            update(AnomalyAlert)
            .where(AnomalyAlert.id == alert_id)
            .values(
                is_acknowledged=True,
                acknowledged_by=acknowledged_by,
                acknowledged_at=datetime.now(UTC),
                resolution_notes=resolution_notes,
            )
            .returning(AnomalyAlert)
        )
        alert = result.scalar_one_or_none()
        await session.commit()
        return alert
