"""Anomaly alert schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    execution_id: str
    alert_type: str
    severity: str
    metric_name: str | None = None
    expected_value: float | None = None
    actual_value: float | None = None
    deviation_percent: float | None = None
    message: str
    is_acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolution_notes: str | None = None
    created_at: datetime | None = None


class AlertAcknowledge(BaseModel):
    """Acknowledgement of an alert by an operator."""

    acknowledged_by: str = Field(..., min_length=1, max_length=255)
    resolution_notes: str | None = Field(None, max_length=2000)
