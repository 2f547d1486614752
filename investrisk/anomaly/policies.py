"""Per-job anomaly thresholds.

Thresholds diverge between jobs (count drop at -20% for most, -10% for the
CVM job; risk shift relative for some, absolute for ANBIMA). Each job keeps
its own policy; nothing here is shared.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AnomalyPolicy:
    """Thresholds one job's executions are checked against.

    Count thresholds are relative changes in percent against the previous
    total (a 0.8x ratio is ``-20.0``, a 1.5x ratio is ``50.0``).
    """

    job_name: str
    success_statuses: tuple[str, ...]
    count_drop_pct: float = -20.0
    count_spike_pct: float = 50.0
    # None disables the risk-shift check
    risk_shift_threshold: float | None = 15.0
    risk_shift_absolute: bool = False
    stale_after_days: int = 7
    # Previous status that raises execution_failure; None disables the check
    failure_status: str | None = None
    # Executions are written by a chunked job and compared as whole runs
    chunked: bool = True

    @property
    def comparison_statuses(self) -> tuple[str, ...]:
        """Statuses a previous execution may have to be compared against."""
        if self.failure_status is None:
            return self.success_statuses
        return (*self.success_statuses, self.failure_status)


BRAPI_RISK_POLICY = AnomalyPolicy(
    job_name="calculate-brapi-risk",
    success_statuses=("completed", "completed_with_errors"),
)

ANBIMA_RISK_POLICY = AnomalyPolicy(
    job_name="precalculate-anbima-risks",
    success_statuses=("completed", "completed_with_errors"),
    risk_shift_threshold=2.0,
    risk_shift_absolute=True,
)

CVM_RISK_POLICY = AnomalyPolicy(
    job_name="precalculate-cvm-risks",
    success_statuses=("success",),
    count_drop_pct=-10.0,
    failure_status="error",
)

ANBIMA_SYNC_POLICY = AnomalyPolicy(
    job_name="sync-anbima-data",
    success_statuses=("success", "completed"),
    risk_shift_threshold=None,
    stale_after_days=30,
    failure_status="failed",
    chunked=False,
)

POLICIES: dict[str, AnomalyPolicy] = {
    policy.job_name: policy
    for policy in (BRAPI_RISK_POLICY, ANBIMA_RISK_POLICY, CVM_RISK_POLICY, ANBIMA_SYNC_POLICY)
}


def get_policy(job_name: str) -> AnomalyPolicy | None:
    return POLICIES.get(job_name)
