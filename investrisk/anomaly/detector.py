"""
Execution-to-execution anomaly detection.

``detect_anomalies`` compares the aggregate numbers of the current run (or
the current score table) with the previous run of the same job and returns
alert drafts. It performs no I/O; persisting the drafts is the
caller's job.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from investrisk.database.orm import ExecutionStat

from .policies import AnomalyPolicy
from .runs import RunSummary


INFO = "info"
WARNING = "warning"
CRITICAL = "critical"

SECONDS_PER_DAY = 60 * 60 * 24


@dataclass(frozen=True)
class ExecutionMetrics:
    """Aggregate numbers compared between two points in time."""

    total: int
    avg_risk_score: float | None = None
    completed_at: datetime | None = None
    status: str | None = None

    @classmethod
    def from_record(cls, record: ExecutionStat) -> ExecutionMetrics:
        """Run totals when the record ends a chunked run, else the record itself."""
        run = RunSummary.from_metadata(record.metadata_)
        if run is not None:
            return cls(
                total=run.processed,
                avg_risk_score=run.avg_risk_score,
                completed_at=record.completed_at or record.started_at,
                status=run.status,
            )
        return cls(
            total=record.total_assets_processed or 0,
            avg_risk_score=float(record.avg_risk_score) if record.avg_risk_score is not None else None,
            completed_at=record.completed_at or record.started_at,
            status=record.status,
        )


@dataclass(frozen=True)
class AlertDraft:
    """An alert before it is attached to an execution."""

    alert_type: str
    severity: str
    metric_name: str
    message: str
    expected_value: float | None = None
    actual_value: float | None = None
    deviation_percent: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _relative_change(previous: float, current: float) -> float:
    return (current - previous) / previous * 100


def detect_anomalies(
    policy: AnomalyPolicy,
    previous: ExecutionMetrics | None,
    current: ExecutionMetrics,
    now: datetime | None = None,
) -> list[AlertDraft]:
    """
    Alerts raised by ``current`` against ``previous`` under ``policy``.

    Without a previous execution the only result is a ``no_history`` info
    alert; every other check is skipped.
    """
    if previous is None:
        return [
            AlertDraft(
                alert_type="no_history",
                severity=INFO,
                metric_name="execution_history",
                message="Nenhuma execução anterior encontrada",
            )
        ]

    alerts: list[AlertDraft] = []

    if policy.failure_status is not None and previous.status == policy.failure_status:
        alerts.append(
            AlertDraft(
                alert_type="execution_failure",
                severity=CRITICAL,
                metric_name="execution_status",
                message="Última execução falhou",
            )
        )

    if previous.total > 0:
        change = _relative_change(previous.total, current.total)
        if change < policy.count_drop_pct:
            alerts.append(
                AlertDraft(
                    alert_type="count_drop",
                    severity=WARNING,
                    metric_name="total_assets",
                    expected_value=previous.total,
                    actual_value=current.total,
                    deviation_percent=round(change, 2),
                    message=f"Queda de {abs(change):.1f}% no total de ativos",
                )
            )
        elif change > policy.count_spike_pct:
            alerts.append(
                AlertDraft(
                    alert_type="count_spike",
                    severity=INFO,
                    metric_name="total_assets",
                    expected_value=previous.total,
                    actual_value=current.total,
                    deviation_percent=round(change, 2),
                    message=f"Aumento de {change:.1f}% no total de ativos",
                )
            )

    previous_avg = previous.avg_risk_score or 0.0
    current_avg = current.avg_risk_score or 0.0
    if policy.risk_shift_threshold is not None and previous_avg > 0:
        change = _relative_change(previous_avg, current_avg)
        if policy.risk_shift_absolute:
            shifted = abs(current_avg - previous_avg) > policy.risk_shift_threshold
        else:
            shifted = abs(change) > policy.risk_shift_threshold
        if shifted:
            alerts.append(
                AlertDraft(
                    alert_type="risk_shift",
                    severity=WARNING,
                    metric_name="avg_risk_score",
                    expected_value=previous_avg,
                    actual_value=current_avg,
                    deviation_percent=round(change, 2),
                    message=f"Variação de {change:.1f}% no score médio de risco",
                )
            )

    if previous.completed_at is not None:
        now = now or datetime.now(UTC)
        days = (now - previous.completed_at).total_seconds() / SECONDS_PER_DAY
        if days > policy.stale_after_days:
            alerts.append(
                AlertDraft(
                    alert_type="stale_data",
                    severity=WARNING,
                    metric_name="days_since_execution",
                    expected_value=policy.stale_after_days,
                    actual_value=math.floor(days),
                    message=f"Última execução há {math.floor(days)} dias",
                )
            )

    return alerts


def health_status(alerts: list[AlertDraft]) -> str:
    """``healthy`` without alerts, ``warning`` when all are informational."""
    if not alerts:
        return "healthy"
    if all(alert.severity == INFO for alert in alerts):
        return "warning"
    return "unhealthy"
