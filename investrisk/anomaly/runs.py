"""
Run-level totals of chunked executions.

A chunked job writes one execution record per chunk, so a single record
holds only a slice of the run. The record of the chunk that ends a run also
stores the totals of every chunk under ``metadata["run"]``. Anomaly checks
and job health compare those run totals, never individual chunks.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from investrisk.database.orm import ExecutionStat


RUN_KEY = "run"


@dataclass(frozen=True)
class ChunkStats:
    """Counters of one chunk, as stored on its execution record."""

    processed: int = 0
    skipped: int = 0
    errors: int = 0
    avg_risk_score: float | None = None
    min_risk_score: int | None = None
    max_risk_score: int | None = None
    by_type: Mapping[str, int] = field(default_factory=dict)
    by_category: Mapping[str, int] = field(default_factory=dict)
    status: str | None = None

    @classmethod
    def from_record(cls, record: ExecutionStat) -> ChunkStats:
        return cls(
            processed=record.total_assets_processed or 0,
            skipped=record.total_assets_skipped or 0,
            errors=record.total_errors or 0,
            avg_risk_score=float(record.avg_risk_score) if record.avg_risk_score is not None else None,
            min_risk_score=record.min_risk_score,
            max_risk_score=record.max_risk_score,
            by_type=record.distribution_by_type or {},
            by_category=record.distribution_by_risk_category or {},
            status=record.status,
        )


@dataclass(frozen=True)
class RunSummary:
    """Totals of every chunk of one run."""

    status: str
    chunks: int
    processed: int
    skipped: int
    errors: int
    avg_risk_score: float | None
    min_risk_score: int | None
    max_risk_score: int | None
    by_type: dict[str, int]
    by_category: dict[str, int]

    def to_metadata(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "chunks": self.chunks,
            "totalAssetsProcessed": self.processed,
            "totalAssetsSkipped": self.skipped,
            "totalErrors": self.errors,
            "avgRiskScore": self.avg_risk_score,
            "minRiskScore": self.min_risk_score,
            "maxRiskScore": self.max_risk_score,
            "distributionByType": self.by_type,
            "distributionByRiskCategory": self.by_category,
        }

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any] | None) -> RunSummary | None:
        payload = (metadata or {}).get(RUN_KEY)
        if not isinstance(payload, Mapping) or "status" not in payload:
            return None
        avg = payload.get("avgRiskScore")
        return cls(
            status=payload["status"],
            chunks=int(payload.get("chunks") or 1),
            processed=int(payload.get("totalAssetsProcessed") or 0),
            skipped=int(payload.get("totalAssetsSkipped") or 0),
            errors=int(payload.get("totalErrors") or 0),
            avg_risk_score=float(avg) if avg is not None else None,
            min_risk_score=payload.get("minRiskScore"),
            max_risk_score=payload.get("maxRiskScore"),
            by_type=dict(payload.get("distributionByType") or {}),
            by_category=dict(payload.get("distributionByRiskCategory") or {}),
        )


def _merge_counts(parts: Sequence[Mapping[str, int]]) -> dict[str, int]:
    merged: dict[str, int] = {}
    for counts in parts:
        for key, value in counts.items():
            merged[key] = merged.get(key, 0) + value
    return merged


def summarize_run(parts: Sequence[ChunkStats], status: str) -> RunSummary:
    """
    Combine chunk counters into run totals.

    The average score is weighted by each chunk's processed count; chunks
    that scored nothing do not pull it down.
    """
    scored = [p for p in parts if p.avg_risk_score is not None and p.processed > 0]
    weight = sum(p.processed for p in scored)
    avg = round(sum(p.avg_risk_score * p.processed for p in scored) / weight, 2) if weight else None
    mins = [p.min_risk_score for p in parts if p.min_risk_score is not None]
    maxes = [p.max_risk_score for p in parts if p.max_risk_score is not None]

    return RunSummary(
        status=status,
        chunks=len(parts),
        processed=sum(p.processed for p in parts),
        skipped=sum(p.skipped for p in parts),
        errors=sum(p.errors for p in parts),
        avg_risk_score=avg,
        min_risk_score=min(mins) if mins else None,
        max_risk_score=max(maxes) if maxes else None,
        by_type=_merge_counts([p.by_type for p in parts]),
        by_category=_merge_counts([p.by_category for p in parts]),
    )
