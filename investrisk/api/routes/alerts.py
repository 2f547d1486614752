"""Anomaly alert listing and acknowledgement."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Query

from investrisk.core.exceptions import NotFoundError
from investrisk.repositories import alerts_orm as alerts_repo
from investrisk.schemas.alerts import AlertAcknowledge, AlertOut


router = APIRouter()


@router.get("", response_model=List[AlertOut], summary="List anomaly alerts")
async def list_alerts(
    pending_only: bool = Query(True, description="Only unacknowledged alerts"),
    function_name: Optional[str] = Query(None, description="Filter by job name"),
    limit: int = Query(50, ge=1, le=500),
) -> list[AlertOut]:
    alerts = await alerts_repo.list_alerts(
        pending_only=pending_only, function_name=function_name, limit=limit
    )
    return [AlertOut.model_validate(alert) for alert in alerts]


@router.post(
    "/{alert_id}/acknowledge",
    response_model=AlertOut,
    summary="Acknowledge an alert",
)
async def acknowledge_alert(alert_id: str, body: AlertAcknowledge) -> AlertOut:
    alert = await alerts_repo.acknowledge_alert(
        alert_id, body.acknowledged_by, body.resolution_notes
    )
    if alert is None:
        raise NotFoundError(message="Alert not found", details={"alert_id": alert_id})
    return AlertOut.model_validate(alert)
