"""Batch job invocation, job health and execution history."""

from __future__ import annotations

from typing import Annotated, List, Optional

from fastapi import APIRouter, Body, Path, Query
from fastapi.responses import JSONResponse

from investrisk.anomaly.service import check_job_health
from investrisk.core.exceptions import BadRequestError, NotFoundError
from investrisk.jobs import execute_job, get_job, list_job_names
from investrisk.jobs.risk_indicators import calculate_risk_indicators
from investrisk.repositories import executions_orm as executions_repo
from investrisk.schemas.jobs import (
    ExecutionRecordOut,
    JobHealthResponse,
    JobInvocation,
    JobRunResponse,
    RiskIndicatorsRequest,
    RiskIndicatorsResponse,
)


router = APIRouter()

JobName = Annotated[str, Path(min_length=1, max_length=64)]


@router.get("", response_model=List[str], summary="List batch jobs")
async def list_jobs() -> list[str]:
    return list_job_names()


@router.post(
    "/calculate-risk-indicators",
    response_model=RiskIndicatorsResponse,
    summary="Estimate risk indicators for one user investment",
)
async def risk_indicators(request: RiskIndicatorsRequest) -> RiskIndicatorsResponse:
    return await calculate_risk_indicators(request.investment_id)


@router.post(
    "/{name}",
    response_model=JobRunResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    summary="Run one chunk of a batch job",
    description=(
        "Processes one chunk and returns the continuation (nextChunkIndex, "
        "snapshotId) while hasMoreChunks is true."
    ),
)
async def run_job(
    name: JobName,
    request: Optional[JobInvocation] = Body(None),
):
    result = await execute_job(name, request or JobInvocation())
    if not result.success and result.error:
        return JSONResponse(
            status_code=500,
            content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
    return result


@router.get(
    "/{name}",
    response_model=JobHealthResponse,
    summary="Job health check",
    description="Compares current score statistics with the last execution (?action=health).",
)
async def job_health(
    name: JobName,
    action: str = Query("health"),
) -> JobHealthResponse:
    if action != "health":
        raise BadRequestError(message=f"Unsupported action: {action}", details={"action": action})
    return await check_job_health(name)


@router.get(
    "/{name}/executions",
    response_model=List[ExecutionRecordOut],
    summary="Recent executions of a job",
)
async def job_executions(
    name: JobName,
    limit: int = Query(20, ge=1, le=200),
) -> list[ExecutionRecordOut]:
    if get_job(name) is None:
        raise NotFoundError(message=f"Unknown job: {name}", details={"job": name})
    records = await executions_repo.list_executions(name, limit=limit)
    return [ExecutionRecordOut.model_validate(record) for record in records]
