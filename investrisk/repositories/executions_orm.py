"""Execution log repository using SQLAlchemy ORM.

Every batch-job invocation (one chunk) owns one ``sync_execution_stats`` row:
inserted as ``running`` when the invocation starts and updated exactly once
when it reaches a terminal status. The row of the chunk that ends a run also
carries the run totals under ``metadata["run"]``.

Usage:
    from investrisk.repositories import executions_orm as executions_repo

    execution_id = await executions_repo.start_execution("calculate-brapi-risk", "batch")
    await executions_repo.finish_execution(execution_id, status="completed", duration_ms=1200)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update

from investrisk.anomaly.runs import RUN_KEY
from investrisk.core.logging import get_logger
from investrisk.database.connection import get_session
from investrisk.database.orm import ExecutionStat


logger = get_logger("repositories.executions_orm")

RUNNING = "running"


async def start_execution(
    function_name: str,
    execution_type: str,
    *,
    triggered_by: str | None = "api",
    metadata: dict[str, Any] | None = None,
) -> str:
    """Insert a running execution record and return its id."""
    async with get_session() as session:
        record = ExecutionStat(
            function_name=function_name,
            execution_type=execution_type,
            status=RUNNING,
            triggered_by=triggered_by,
            started_at=datetime.now(UTC),
            metadata_=metadata,
        )
        session.add(record)
        await session.commit()
        logger.debug(f"Execution {record.id} started for {function_name}")
        return record.id


async def finish_execution(
    execution_id: str,
    *,
    status: str,
    duration_ms: int,
    total_assets_processed: int = 0,
    total_assets_skipped: int = 0,
    total_errors: int = 0,
    distribution_by_type: dict[str, int] | None = None,
    distribution_by_risk_category: dict[str, int] | None = None,
    avg_risk_score: float | None = None,
    min_risk_score: int | None = None,
    max_risk_score: int | None = None,
    error_details: list[Any] | None = None,
    metadata: dict[str, Any] | None = None,
) -> ExecutionStat | None:
    """Move a running execution to its terminal status.

    The update is guarded on ``status = 'running'`` so a record is never
    revisited once terminal. Returns the updated row, or None when the
    record was not running.
    """
    values: dict[str, Any] = {
        "status": status,
        "completed_at": datetime.now(UTC),
        "duration_ms": duration_ms,
        "total_assets_processed": total_assets_processed,
        "total_assets_skipped": total_assets_skipped,
        "total_errors": total_errors,
        "distribution_by_type": distribution_by_type,
        "distribution_by_risk_category": distribution_by_risk_category,
        "avg_risk_score": avg_risk_score,
        "min_risk_score": min_risk_score,
        "max_risk_score": max_risk_score,
        "error_details": error_details or None,
    }
    if metadata is not None:
        values["metadata_"] = metadata

    async with get_session() as session:
        result = await session.execute(
            update(ExecutionStat)
            .where(ExecutionStat.id == execution_id, ExecutionStat.status == RUNNING)
            .values(**values)
            .returning(ExecutionStat)
        )
        record = result.scalar_one_or_none()
        await session.commit()

    if record is None:
        logger.warning(f"Execution {execution_id} was not running; terminal update skipped")
    return record


async def get_execution(execution_id: str) -> ExecutionStat | None:
    async with get_session() as session:
        return await session.get(ExecutionStat, execution_id)


async def get_previous_execution(
    function_name: str,
    statuses: Iterable[str],
    *,
    exclude_id: str | None = None,
    runs_only: bool = False,
) -> ExecutionStat | None:
    """Most recent execution of a job in one of ``statuses``.

    Args:
        function_name: Job name
        statuses: Terminal statuses that qualify as "previous"
        exclude_id: Execution to leave out (usually the current one)
        runs_only: Only records that end a chunked run; ``statuses`` is then
            matched against the run status instead of the chunk status
    """
    statuses = list(statuses)
    query = (
        select(ExecutionStat)
        .where(ExecutionStat.function_name == function_name)
        .order_by(ExecutionStat.started_at.desc())
        .limit(1)
    )
    if runs_only:
        query = query.where(ExecutionStat.metadata_[RUN_KEY]["status"].astext.in_(statuses))
    else:
        query = query.where(ExecutionStat.status.in_(statuses))
    if exclude_id is not None:
        query = query.where(ExecutionStat.id != exclude_id)

    async with get_session() as session:
        result = await session.execute(query)
        return result.scalar_one_or_none()


async def list_run_chunks(
    function_name: str, snapshot_id: str, *, exclude_id: str | None = None
) -> list[ExecutionStat]:
    """Terminal chunk records of one snapshot run, oldest first."""
    query = (
        select(ExecutionStat)
        .where(
            ExecutionStat.function_name == function_name,
            ExecutionStat.status != RUNNING,
            ExecutionStat.metadata_["snapshotId"].astext == snapshot_id,
        )
        .order_by(ExecutionStat.started_at.asc())
    )
    if exclude_id is not None:
        query = query.where(ExecutionStat.id != exclude_id)

    async with get_session() as session:
        result = await session.execute(query)
        return list(result.scalars().all())


async def list_executions(function_name: str, limit: int = 20) -> list[ExecutionStat]:
    """Latest executions of a job, newest first."""
    async with get_session() as session:
        result = await session.execute(
            select(ExecutionStat)
            .where(ExecutionStat.function_name == function_name)
            .order_by(ExecutionStat.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
