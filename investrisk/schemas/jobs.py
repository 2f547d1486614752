"""Batch job request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobInvocation(BaseModel):
    """Body of a batch-job invocation (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ticker: str | None = Field(None, description="Single ticker to process")
    asset_ids: list[str] | None = Field(
        None, alias="assetIds", description="Explicit asset ids to process"
    )
    process_all: bool = Field(
        False, alias="processAll", description="Process every asset needing recalculation"
    )
    chunk_index: int = Field(0, ge=0, alias="chunkIndex")
    chunk_size: int | None = Field(None, ge=1, le=1000, alias="chunkSize")
    prioritize_liquid: bool = Field(True, alias="prioritizeLiquid")
    snapshot_id: str | None = Field(
        None, alias="snapshotId", description="Selection snapshot returned by a previous chunk"
    )
    triggered_by: str = Field("api", alias="triggeredBy")


class JobRunResponse(BaseModel):
    """Outcome of one chunk invocation."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str | None = None
    error: str | None = None
    execution_id: str | None = Field(None, alias="executionId")
    snapshot_id: str | None = Field(None, alias="snapshotId")
    chunk_index: int | None = Field(None, alias="chunkIndex")
    total_chunks: int | None = Field(None, alias="totalChunks")
    processed: int | None = None
    skipped: int | None = None
    errors: int | None = None
    has_more_chunks: bool | None = Field(None, alias="hasMoreChunks")
    next_chunk_index: int | None = Field(None, alias="nextChunkIndex")
    total_pending: int | None = Field(None, alias="totalPending")
    duration_ms: int | None = None
    error_details: list[Any] | None = None


class ExecutionRecordOut(BaseModel):
    """Execution log row as exposed by the health check."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    function_name: str
    execution_type: str
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    total_assets_processed: int | None = None
    total_assets_skipped: int | None = None
    total_errors: int | None = None
    distribution_by_type: dict[str, int] | None = None
    distribution_by_risk_category: dict[str, int] | None = None
    avg_risk_score: float | None = None
    min_risk_score: int | None = None
    max_risk_score: int | None = None
    error_details: list[Any] | None = None
    metadata: dict[str, Any] | None = Field(None, validation_alias="metadata_")


class JobHealthResponse(BaseModel):
    """Health of one batch job."""

    status: str = Field(..., examples=["healthy", "warning", "unhealthy"])
    last_execution: ExecutionRecordOut | None = None
    current_stats: dict[str, Any] = Field(default_factory=dict)
    anomalies: list[str] = Field(default_factory=list)
    pending_alerts_count: int = 0


class RiskIndicatorsRequest(BaseModel):
    """Body of a per-investment indicator calculation."""

    model_config = ConfigDict(populate_by_name=True)

    investment_id: str = Field(..., alias="investmentId")


class RiskIndicatorsResponse(BaseModel):
    success: bool
    indicators: dict[str, float]
    data_source: str
