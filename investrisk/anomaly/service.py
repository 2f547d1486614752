"""Alert creation after terminal executions, and per-job health checks."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from investrisk.core.exceptions import NotFoundError
from investrisk.core.logging import get_logger
from investrisk.database.orm import ExecutionStat
from investrisk.repositories import alerts_orm as alerts_repo
from investrisk.repositories import brapi_orm as brapi_repo
from investrisk.repositories import executions_orm as executions_repo
from investrisk.repositories import fixed_income_orm as fixed_income_repo
from investrisk.schemas.jobs import ExecutionRecordOut, JobHealthResponse

from .detector import AlertDraft, ExecutionMetrics, detect_anomalies, health_status
from .policies import AnomalyPolicy, get_policy


logger = get_logger("anomaly.service")


async def _anbima_sync_stats() -> dict[str, Any]:
    counts = await fixed_income_repo.count_anbima_source_rows()
    return {"total_assets": sum(counts.values()), "by_type": counts}


# Job name -> loader of the job's current table statistics
CURRENT_STATS_LOADERS: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
    "calculate-brapi-risk": brapi_repo.get_score_stats,
    "precalculate-anbima-risks": lambda: fixed_income_repo.get_score_stats(
        fixed_income_repo.ANBIMA_ASSET_TYPES
    ),
    "precalculate-cvm-risks": lambda: fixed_income_repo.get_score_stats(
        fixed_income_repo.CVM_ASSET_TYPES
    ),
    "sync-anbima-data": _anbima_sync_stats,
}


async def create_execution_alerts(
    policy: AnomalyPolicy, execution: ExecutionStat
) -> list[AlertDraft]:
    """Compare the execution that ended a run with the previous run and persist the alerts."""
    previous = await executions_repo.get_previous_execution(
        policy.job_name,
        policy.comparison_statuses,
        exclude_id=execution.id,
        runs_only=policy.chunked,
    )
    drafts = detect_anomalies(
        policy,
        ExecutionMetrics.from_record(previous) if previous is not None else None,
        ExecutionMetrics.from_record(execution),
    )
    await alerts_repo.insert_alerts(execution.id, drafts)
    for draft in drafts:
        logger.info(
            f"Anomaly {draft.alert_type} ({draft.severity}) on {policy.job_name}: {draft.message}"
        )
    return drafts


async def check_job_health(job_name: str) -> JobHealthResponse:
    """Current score-table statistics checked against the totals of the job's last run."""
    policy = get_policy(job_name)
    loader = CURRENT_STATS_LOADERS.get(job_name)
    if policy is None or loader is None:
        raise NotFoundError(message=f"Unknown job: {job_name}", details={"job": job_name})

    last_execution = await executions_repo.get_previous_execution(
        job_name, policy.comparison_statuses, runs_only=policy.chunked
    )
    current_stats = await loader()
    current = ExecutionMetrics(
        total=current_stats.get("total_assets", 0),
        avg_risk_score=current_stats.get("avg_risk_score"),
    )
    drafts = detect_anomalies(
        policy,
        ExecutionMetrics.from_record(last_execution) if last_execution is not None else None,
        current,
    )
    pending = await alerts_repo.count_pending_alerts(job_name)

    return JobHealthResponse(
        status=health_status(drafts),
        last_execution=(
            ExecutionRecordOut.model_validate(last_execution) if last_execution is not None else None
        ),
        current_stats=current_stats,
        anomalies=[draft.alert_type for draft in drafts],
        pending_alerts_count=pending,
    )
