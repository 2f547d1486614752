"""Execution anomaly detection and job health."""

from .detector import AlertDraft, ExecutionMetrics, detect_anomalies, health_status
from .policies import POLICIES, AnomalyPolicy, get_policy


__all__ = [
    "AlertDraft",
    "ExecutionMetrics",
    "detect_anomalies",
    "health_status",
    "POLICIES",
    "AnomalyPolicy",
    "get_policy",
]
