"""
Resumable chunked execution shared by the batch risk jobs.

One invocation processes one chunk of the pending selection and answers with
a continuation token (``nextChunkIndex`` plus ``snapshotId``) that an external
scheduler or a Celery task sends back to get the next chunk.

The pending selection is frozen in a snapshot the first time it is computed.
Assets drop out of the live "needs calculation" query as soon as they are
scored, so slicing the live query at chunk N would skip assets; slicing the
snapshot does not.

Lifecycle of a chunk:

1. resolve the cursor (explicit ids, snapshot, or a fresh selection)
2. take a non-blocking lock on (job, snapshot, chunk index)
3. insert a ``running`` execution record
4. process assets sequentially with the job's inter-fetch delay; per-asset
   failures are recorded and never abort the chunk
5. single terminal update of the execution record
6. on the last chunk, roll every chunk of the snapshot up into run totals and
   check them for anomalies against the previous run

Without Valkey a chunk runs unlocked and every continuation reselects.
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

from sqlalchemy.exc import SQLAlchemyError

from investrisk.anomaly.policies import AnomalyPolicy
from investrisk.anomaly.runs import RUN_KEY, ChunkStats, RunSummary, summarize_run
from investrisk.anomaly.service import create_execution_alerts
from investrisk.cache import VALKEY_ERRORS, Cache, DistributedLock
from investrisk.core.config import settings
from investrisk.core.exceptions import PermanentAssetError
from investrisk.core.logging import get_logger
from investrisk.database.orm import ExecutionStat
from investrisk.repositories import executions_orm as executions_repo
from investrisk.risk.scoring import ScoreResult
from investrisk.schemas.jobs import JobInvocation, JobRunResponse


logger = get_logger("jobs.chunking")

CHUNK_LOCK_TIMEOUT = 60 * 30


@dataclass(frozen=True)
class ExecutionStatuses:
    """Terminal status vocabulary of one job."""

    success: str
    partial: str
    failure: str


COMPLETED_STATUSES = ExecutionStatuses("completed", "completed_with_errors", "failed")
OFFERING_STATUSES = ExecutionStatuses("success", "partial", "error")


@dataclass(frozen=True)
class ChunkCursor:
    """Position of one chunk inside an ordered selection."""

    items: tuple[str, ...]
    chunk_index: int
    chunk_size: int
    snapshot_id: str | None = None

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def total_chunks(self) -> int:
        return math.ceil(self.total / self.chunk_size)

    @property
    def start(self) -> int:
        return self.chunk_index * self.chunk_size

    @property
    def end(self) -> int:
        return min(self.start + self.chunk_size, self.total)

    @property
    def assets(self) -> tuple[str, ...]:
        return self.items[self.start:self.end]

    @property
    def exhausted(self) -> bool:
        return self.start >= self.total

    @property
    def has_more(self) -> bool:
        return self.end < self.total

    @property
    def next_chunk_index(self) -> int | None:
        return self.chunk_index + 1 if self.has_more else None


class SelectionSnapshotStore:
    """Pending selections kept in Valkey for the lifetime of a chunked run."""

    def __init__(self, cache: Cache | None = None):
        self.cache = cache or Cache(prefix="snapshot", default_ttl=settings.selection_snapshot_ttl)

    async def save(self, job_name: str, items: Sequence[str], snapshot_id: str | None = None) -> str:
        snapshot_id = snapshot_id or uuid.uuid4().hex
        if not await self.cache.set(f"{job_name}:{snapshot_id}", list(items)):
            logger.warning(f"Snapshot {snapshot_id} for {job_name} not stored; continuations will reselect")
        return snapshot_id

    async def load(self, job_name: str, snapshot_id: str) -> list[str] | None:
        value = await self.cache.get(f"{job_name}:{snapshot_id}")
        if not isinstance(value, list):
            return None
        return [str(item) for item in value]


@dataclass
class ChunkOutcome:
    """Counters and score aggregates collected while processing a chunk."""

    processed: int = 0
    skipped: int = 0
    errors: list[Any] = field(default_factory=list)
    scores: list[int] = field(default_factory=list)
    by_type: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)

    def record_score(self, asset_type: str, result: ScoreResult) -> None:
        self.processed += 1
        self.scores.append(result.score)
        self.by_type[asset_type] = self.by_type.get(asset_type, 0) + 1
        self.by_category[result.category] = self.by_category.get(result.category, 0) + 1

    def record_skip(self) -> None:
        self.skipped += 1

    def record_error(self, detail: Any) -> None:
        self.errors.append(detail)

    @property
    def avg_score(self) -> float | None:
        return round(sum(self.scores) / len(self.scores), 2) if self.scores else None

    def chunk_stats(self, status: str) -> ChunkStats:
        return ChunkStats(
            processed=self.processed,
            skipped=self.skipped,
            errors=len(self.errors),
            avg_risk_score=self.avg_score,
            min_risk_score=min(self.scores) if self.scores else None,
            max_risk_score=max(self.scores) if self.scores else None,
            by_type=dict(self.by_type),
            by_category=dict(self.by_category),
            status=status,
        )

    def execution_stats(self, error_sample: int) -> dict[str, Any]:
        """Keyword arguments for the terminal execution update."""
        return {
            "total_assets_processed": self.processed,
            "total_assets_skipped": self.skipped,
            "total_errors": len(self.errors),
            "distribution_by_type": self.by_type or None,
            "distribution_by_risk_category": self.by_category or None,
            "avg_risk_score": self.avg_score,
            "min_risk_score": min(self.scores) if self.scores else None,
            "max_risk_score": max(self.scores) if self.scores else None,
            "error_details": self.errors[:error_sample],
        }


class ChunkedRiskJob(ABC):
    """Base class of the resumable batch risk jobs.

    Subclasses define ``name``, ``policy``, the pending selection and the
    per-asset step; everything else (cursor, lock, execution record, alerts,
    response) lives here.
    """

    name: ClassVar[str]
    policy: ClassVar[AnomalyPolicy]
    statuses: ClassVar[ExecutionStatuses] = COMPLETED_STATUSES
    # Jobs that select their pending set without an explicit processAll
    selects_by_default: ClassVar[bool] = False

    def __init__(
        self,
        snapshots: SelectionSnapshotStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.snapshots = snapshots or SelectionSnapshotStore()
        self._sleep = sleep

    # -- hooks -----------------------------------------------------------------

    @property
    def fetch_delay_ms(self) -> int:
        """Pause between consecutive assets of a chunk."""
        return 0

    def execution_type(self, request: JobInvocation) -> str:
        return "manual"

    def explicit_selection(self, request: JobInvocation) -> list[str] | None:
        return list(request.asset_ids) if request.asset_ids else None

    @abstractmethod
    async def select_pending(self, request: JobInvocation) -> list[str]:
        """Ordered ids of every asset needing a calculation."""

    async def prepare_chunk(self, request: JobInvocation) -> Any:
        """Per-chunk context shared by every asset (benchmark, rates, ...)."""
        return None

    @abstractmethod
    async def process_asset(self, asset_id: str, context: Any, outcome: ChunkOutcome) -> None:
        """Score and persist one asset, recording the result on ``outcome``."""

    async def on_permanent_failure(self, asset_id: str, error: PermanentAssetError) -> None:
        logger.info(f"{self.name}: {asset_id} has no usable data ({error.message})")

    def error_detail(self, asset_id: str, error: Exception) -> Any:
        return f"{asset_id}: {error}"

    # -- orchestration ---------------------------------------------------------

    def lock_name(self, cursor: ChunkCursor) -> str:
        return f"job:{self.name}:{cursor.snapshot_id}:chunk:{cursor.chunk_index}"

    async def resolve_cursor(self, request: JobInvocation) -> ChunkCursor | None:
        """Cursor for this invocation, or None when nothing was asked for."""
        chunk_size = request.chunk_size or settings.risk_chunk_size

        explicit = self.explicit_selection(request)
        if explicit is not None:
            # Explicit selections are not stored, the id only groups their chunks into a run
            snapshot_id = request.snapshot_id or uuid.uuid4().hex
            return ChunkCursor(tuple(explicit), request.chunk_index, chunk_size, snapshot_id)

        if not (request.process_all or self.selects_by_default):
            return None

        snapshot_id = request.snapshot_id
        items: list[str] | None = None
        if snapshot_id:
            items = await self.snapshots.load(self.name, snapshot_id)
            if items is None:
                logger.info(f"{self.name}: snapshot {snapshot_id} missing or expired, reselecting")

        if items is None:
            items = await self.select_pending(request)
            if items:
                # A reselection keeps the run id so its chunks still roll up together
                snapshot_id = await self.snapshots.save(self.name, items, snapshot_id=snapshot_id)
            else:
                snapshot_id = None
            logger.info(f"{self.name}: selected {len(items)} pending assets")

        return ChunkCursor(tuple(items), request.chunk_index, chunk_size, snapshot_id)

    async def run(self, request: JobInvocation) -> JobRunResponse:
        started = time.monotonic()

        try:
            cursor = await self.resolve_cursor(request)
        except Exception as e:
            logger.exception(f"{self.name}: pending selection failed")
            execution_id = await executions_repo.start_execution(
                self.name, self.execution_type(request), triggered_by=request.triggered_by
            )
            return await self._fail(execution_id, started, e)

        if cursor is None or cursor.total == 0:
            return JobRunResponse(success=True, message="No assets to process or all are up to date")

        if cursor.exhausted:
            return JobRunResponse(
                success=True,
                message="All chunks processed",
                snapshot_id=cursor.snapshot_id,
                total_chunks=cursor.total_chunks,
                total_pending=cursor.total,
            )

        lock: DistributedLock | None = DistributedLock(
            self.lock_name(cursor), timeout=CHUNK_LOCK_TIMEOUT, blocking=False
        )
        try:
            acquired = await lock.acquire()
        except VALKEY_ERRORS as e:
            logger.warning(
                f"{self.name}: Valkey unavailable, running chunk {cursor.chunk_index} unlocked: {e}"
            )
            lock, acquired = None, True
        if not acquired:
            logger.warning(f"{self.name}: chunk {cursor.chunk_index} already running")
            return JobRunResponse(
                success=False,
                error="Chunk already running",
                snapshot_id=cursor.snapshot_id,
                chunk_index=cursor.chunk_index,
                total_chunks=cursor.total_chunks,
            )

        try:
            return await self._run_chunk(request, cursor, started)
        finally:
            if lock is not None:
                await self._release(lock)

    async def _release(self, lock: DistributedLock) -> None:
        try:
            await lock.release()
        except VALKEY_ERRORS as e:
            # The lock expires on its own after CHUNK_LOCK_TIMEOUT
            logger.warning(f"{self.name}: lock {lock.name} not released: {e}")

    async def _run_chunk(
        self, request: JobInvocation, cursor: ChunkCursor, started: float
    ) -> JobRunResponse:
        metadata = {
            "chunkIndex": cursor.chunk_index,
            "totalChunks": cursor.total_chunks,
            "chunkSize": cursor.chunk_size,
            "totalPending": cursor.total,
            "prioritizeLiquid": request.prioritize_liquid,
            "snapshotId": cursor.snapshot_id,
        }
        execution_id = await executions_repo.start_execution(
            self.name,
            self.execution_type(request),
            triggered_by=request.triggered_by,
            metadata=metadata,
        )
        logger.info(
            f"{self.name}: processing chunk {cursor.chunk_index + 1}/{cursor.total_chunks} "
            f"({len(cursor.assets)} assets)"
        )

        outcome = ChunkOutcome()
        try:
            context = await self.prepare_chunk(request)
            for position, asset_id in enumerate(cursor.assets):
                if position > 0 and self.fetch_delay_ms:
                    await self._sleep(self.fetch_delay_ms / 1000)
                await self._process_one(asset_id, context, outcome)
        except Exception as e:
            logger.exception(f"{self.name}: chunk {cursor.chunk_index} aborted")
            return await self._fail(execution_id, started, e, metadata, cursor)

        duration_ms = int((time.monotonic() - started) * 1000)
        status = self.statuses.partial if outcome.errors else self.statuses.success
        ends_run = not cursor.has_more
        if ends_run:
            run = await self._summarize_run(cursor, execution_id, outcome.chunk_stats(status))
            metadata = {**metadata, RUN_KEY: run.to_metadata()}
        record = await executions_repo.finish_execution(
            execution_id,
            status=status,
            duration_ms=duration_ms,
            metadata=metadata,
            **outcome.execution_stats(settings.execution_error_sample),
        )
        if ends_run:
            await self._create_alerts(record)

        logger.info(
            f"{self.name}: chunk {cursor.chunk_index} {status}: "
            f"{outcome.processed} processed, {outcome.skipped} skipped, {len(outcome.errors)} errors"
        )

        error_count = len(outcome.errors)
        return JobRunResponse(
            success=True,
            execution_id=execution_id,
            snapshot_id=cursor.snapshot_id,
            chunk_index=cursor.chunk_index,
            total_chunks=cursor.total_chunks,
            processed=outcome.processed,
            skipped=outcome.skipped,
            errors=error_count,
            has_more_chunks=cursor.has_more,
            next_chunk_index=cursor.next_chunk_index,
            total_pending=cursor.total,
            duration_ms=duration_ms,
            error_details=(
                outcome.errors if 0 < error_count <= settings.response_error_sample else None
            ),
        )

    async def _process_one(self, asset_id: str, context: Any, outcome: ChunkOutcome) -> None:
        try:
            await self.process_asset(asset_id, context, outcome)
        except PermanentAssetError as e:
            outcome.record_error(self.error_detail(asset_id, e))
            try:
                await self.on_permanent_failure(asset_id, e)
            except SQLAlchemyError as mark_exc:
                logger.warning(f"{self.name}: could not mark {asset_id} unavailable: {mark_exc}")
        except Exception as e:
            logger.warning(f"{self.name}: {asset_id} failed: {e}")
            outcome.record_error(self.error_detail(asset_id, e))

    async def _summarize_run(
        self, cursor: ChunkCursor | None, execution_id: str, current: ChunkStats
    ) -> RunSummary:
        """
        Totals of every chunk of the cursor's snapshot, ``current`` included.

        A chunk that was run more than once counts with its latest record.
        The run fails with its last chunk, and is partial when any chunk
        had errors or failed.
        """
        parts: dict[int | None, ChunkStats] = {}
        if cursor is not None and cursor.snapshot_id:
            try:
                earlier = await executions_repo.list_run_chunks(
                    self.name, cursor.snapshot_id, exclude_id=execution_id
                )
            except SQLAlchemyError as e:
                logger.warning(f"{self.name}: earlier chunks of {cursor.snapshot_id} not loaded: {e}")
                earlier = []
            for chunk in earlier:
                parts[(chunk.metadata_ or {}).get("chunkIndex")] = ChunkStats.from_record(chunk)
        parts[cursor.chunk_index if cursor is not None else None] = current

        chunks = list(parts.values())
        if current.status == self.statuses.failure:
            status = self.statuses.failure
        elif any(chunk.errors or chunk.status != self.statuses.success for chunk in chunks):
            status = self.statuses.partial
        else:
            status = self.statuses.success
        return summarize_run(chunks, status)

    async def _fail(
        self,
        execution_id: str,
        started: float,
        error: Exception,
        metadata: dict[str, Any] | None = None,
        cursor: ChunkCursor | None = None,
    ) -> JobRunResponse:
        """A crashed chunk ends its run: record it as failed and check the run."""
        duration_ms = int((time.monotonic() - started) * 1000)
        run = await self._summarize_run(
            cursor, execution_id, ChunkStats(errors=1, status=self.statuses.failure)
        )
        record = await executions_repo.finish_execution(
            execution_id,
            status=self.statuses.failure,
            duration_ms=duration_ms,
            total_errors=1,
            error_details=[str(error)],
            metadata={**(metadata or {}), RUN_KEY: run.to_metadata()},
        )
        await self._create_alerts(record)
        return JobRunResponse(
            success=False,
            error=str(error),
            execution_id=execution_id,
            duration_ms=duration_ms,
        )

    async def _create_alerts(self, record: ExecutionStat | None) -> None:
        if record is None:
            return
        try:
            await create_execution_alerts(self.policy, record)
        except SQLAlchemyError as e:
            logger.warning(f"{self.name}: anomaly alerts not stored: {e}")
