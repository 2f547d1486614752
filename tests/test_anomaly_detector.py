"""Tests for execution anomaly detection and per-job policies."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from investrisk.anomaly import detect_anomalies, get_policy, health_status
from investrisk.anomaly.detector import AlertDraft, ExecutionMetrics
from investrisk.anomaly.policies import (
    ANBIMA_RISK_POLICY,
    ANBIMA_SYNC_POLICY,
    BRAPI_RISK_POLICY,
    CVM_RISK_POLICY,
)


NOW = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


def _previous(total=100, avg=10.0, days_ago=1, status="completed") -> ExecutionMetrics:
    return ExecutionMetrics(
        total=total,
        avg_risk_score=avg,
        completed_at=NOW - timedelta(days=days_ago),
        status=status,
    )


def _types(alerts: list[AlertDraft]) -> list[str]:
    return [alert.alert_type for alert in alerts]


class TestNoHistory:
    def test_only_no_history_alert(self):
        alerts = detect_anomalies(BRAPI_RISK_POLICY, None, ExecutionMetrics(total=0), now=NOW)
        assert _types(alerts) == ["no_history"]
        assert alerts[0].severity == "info"
        assert health_status(alerts) == "warning"


class TestCountChecks:
    def test_drop_below_threshold(self):
        alerts = detect_anomalies(
            BRAPI_RISK_POLICY, _previous(total=100), ExecutionMetrics(total=70, avg_risk_score=10.0), now=NOW
        )
        assert _types(alerts) == ["count_drop"]
        assert alerts[0].severity == "warning"
        assert alerts[0].deviation_percent == -30.0
        assert alerts[0].expected_value == 100
        assert alerts[0].actual_value == 70
        assert health_status(alerts) == "unhealthy"

    def test_drop_exactly_at_threshold_is_tolerated(self):
        alerts = detect_anomalies(
            BRAPI_RISK_POLICY, _previous(total=100), ExecutionMetrics(total=80, avg_risk_score=10.0), now=NOW
        )
        assert alerts == []
        assert health_status(alerts) == "healthy"

    def test_cvm_policy_is_stricter(self):
        alerts = detect_anomalies(
            CVM_RISK_POLICY,
            _previous(total=100, status="success"),
            ExecutionMetrics(total=85, avg_risk_score=10.0),
            now=NOW,
        )
        assert _types(alerts) == ["count_drop"]

    def test_spike_is_informational(self):
        alerts = detect_anomalies(
            BRAPI_RISK_POLICY, _previous(total=100), ExecutionMetrics(total=200, avg_risk_score=10.0), now=NOW
        )
        assert _types(alerts) == ["count_spike"]
        assert health_status(alerts) == "warning"

    def test_zero_previous_total_skips_count_checks(self):
        alerts = detect_anomalies(
            BRAPI_RISK_POLICY, _previous(total=0), ExecutionMetrics(total=500, avg_risk_score=10.0), now=NOW
        )
        assert "count_spike" not in _types(alerts)


class TestRiskShift:
    def test_relative_shift(self):
        alerts = detect_anomalies(
            BRAPI_RISK_POLICY, _previous(avg=10.0), ExecutionMetrics(total=100, avg_risk_score=12.0), now=NOW
        )
        assert _types(alerts) == ["risk_shift"]
        assert alerts[0].deviation_percent == 20.0

    def test_relative_shift_within_tolerance(self):
        alerts = detect_anomalies(
            BRAPI_RISK_POLICY, _previous(avg=10.0), ExecutionMetrics(total=100, avg_risk_score=11.0), now=NOW
        )
        assert alerts == []

    def test_absolute_shift_for_anbima(self):
        # 25% relative change but only 1.5 points absolute
        alerts = detect_anomalies(
            ANBIMA_RISK_POLICY, _previous(avg=6.0), ExecutionMetrics(total=100, avg_risk_score=7.5), now=NOW
        )
        assert alerts == []

        alerts = detect_anomalies(
            ANBIMA_RISK_POLICY, _previous(avg=6.0), ExecutionMetrics(total=100, avg_risk_score=8.5), now=NOW
        )
        assert _types(alerts) == ["risk_shift"]

    def test_sync_policy_has_no_risk_shift(self):
        alerts = detect_anomalies(
            ANBIMA_SYNC_POLICY,
            _previous(avg=5.0, status="success"),
            ExecutionMetrics(total=100, avg_risk_score=15.0),
            now=NOW,
        )
        assert "risk_shift" not in _types(alerts)


class TestStaleAndFailure:
    def test_stale_previous_execution(self):
        alerts = detect_anomalies(
            BRAPI_RISK_POLICY,
            _previous(days_ago=9),
            ExecutionMetrics(total=100, avg_risk_score=10.0),
            now=NOW,
        )
        assert _types(alerts) == ["stale_data"]
        assert alerts[0].actual_value == 9
        assert alerts[0].expected_value == 7

    def test_sync_policy_tolerates_a_month(self):
        alerts = detect_anomalies(
            ANBIMA_SYNC_POLICY,
            _previous(days_ago=20, status="success"),
            ExecutionMetrics(total=100),
            now=NOW,
        )
        assert alerts == []

    def test_previous_failure_is_critical(self):
        alerts = detect_anomalies(
            CVM_RISK_POLICY,
            _previous(status="error"),
            ExecutionMetrics(total=100, avg_risk_score=10.0),
            now=NOW,
        )
        assert _types(alerts) == ["execution_failure"]
        assert alerts[0].severity == "critical"
        assert health_status(alerts) == "unhealthy"


class TestPolicies:
    @pytest.mark.parametrize(
        "name",
        ["calculate-brapi-risk", "precalculate-anbima-risks", "precalculate-cvm-risks", "sync-anbima-data"],
    )
    def test_registered(self, name):
        assert get_policy(name).job_name == name

    def test_unknown_job(self):
        assert get_policy("nope") is None

    def test_comparison_statuses_include_failure(self):
        assert CVM_RISK_POLICY.comparison_statuses == ("success", "error")
        assert BRAPI_RISK_POLICY.comparison_statuses == ("completed", "completed_with_errors")
