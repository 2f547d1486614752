"""Tests for resumable chunked job execution (database, Valkey and alerts mocked)."""

from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as ValkeyConnectionError
from sqlalchemy.exc import OperationalError

from investrisk.anomaly import service
from investrisk.anomaly.policies import BRAPI_RISK_POLICY
from investrisk.cache import cache as cache_module
from investrisk.cache import distributed_lock
from investrisk.database.orm import ExecutionStat
from investrisk.core.exceptions import InsufficientDataError
from investrisk.jobs import chunking
from investrisk.jobs.chunking import (
    ChunkCursor,
    ChunkedRiskJob,
    ChunkOutcome,
    SelectionSnapshotStore,
)
from investrisk.risk.scoring import ScoreResult
from investrisk.schemas.jobs import JobInvocation


class FakeCache:
    """In-memory stand-in for the Valkey JSON cache."""

    def __init__(self):
        self.data: dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        return self.data.get(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self.data[key] = value
        return True


class ScoringJob(ChunkedRiskJob):
    """Scores every asset 5, except the ones listed as failing."""

    name = "calculate-brapi-risk"
    policy = BRAPI_RISK_POLICY
    selects_by_default = True

    def __init__(self, pending: list[str], *, failing=(), permanent=(), **kwargs):
        super().__init__(**kwargs)
        self.pending = pending
        self.failing = set(failing)
        self.permanent = set(permanent)
        self.seen: list[str] = []
        self.marked: list[str] = []
        self.select_calls = 0

    async def select_pending(self, request: JobInvocation) -> list[str]:
        self.select_calls += 1
        return list(self.pending)

    async def process_asset(self, asset_id: str, context: Any, outcome: ChunkOutcome) -> None:
        self.seen.append(asset_id)
        if asset_id in self.permanent:
            raise InsufficientDataError()
        if asset_id in self.failing:
            raise RuntimeError("provider timeout")
        outcome.record_score("stock", ScoreResult(5, "Baixo", "market_data"))

    async def on_permanent_failure(self, asset_id: str, error) -> None:
        self.marked.append(asset_id)


@pytest.fixture
def snapshots():
    return SelectionSnapshotStore(cache=FakeCache())


@pytest.fixture
def infra():
    """Patch the execution log, the chunk lock and alert creation."""
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()
    record = MagicMock(name="execution_record")

    with (
        patch.object(chunking.executions_repo, "start_execution", AsyncMock(return_value="exec-1")) as start,
        patch.object(chunking.executions_repo, "finish_execution", AsyncMock(return_value=record)) as finish,
        patch.object(chunking.executions_repo, "list_run_chunks", AsyncMock(return_value=[])),
        patch.object(chunking, "DistributedLock", MagicMock(return_value=lock)) as lock_cls,
        patch.object(chunking, "create_execution_alerts", AsyncMock(return_value=[])) as alerts,
    ):
        yield {
            "start": start,
            "finish": finish,
            "lock": lock,
            "lock_cls": lock_cls,
            "alerts": alerts,
            "record": record,
        }


def _assets(n: int) -> list[str]:
    return [f"asset-{i:03d}" for i in range(n)]


class TestChunkCursor:
    def test_geometry(self):
        cursor = ChunkCursor(tuple(_assets(120)), chunk_index=2, chunk_size=50)
        assert cursor.total_chunks == 3
        assert cursor.assets == tuple(_assets(120)[100:120])
        assert not cursor.has_more
        assert cursor.next_chunk_index is None

    def test_exhausted(self):
        assert ChunkCursor(tuple(_assets(10)), chunk_index=1, chunk_size=10).exhausted


class TestSnapshotStore:
    @pytest.mark.asyncio
    async def test_roundtrip(self, snapshots):
        snapshot_id = await snapshots.save("job", ["a", "b"])
        assert await snapshots.load("job", snapshot_id) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_snapshot(self, snapshots):
        assert await snapshots.load("job", "unknown") is None


class TestChunkedRun:
    @pytest.mark.asyncio
    async def test_three_chunk_walk(self, infra, snapshots):
        job = ScoringJob(_assets(120), snapshots=snapshots, sleep=AsyncMock())

        first = await job.run(JobInvocation(chunk_size=50))
        assert first.success
        assert first.total_chunks == 3
        assert first.processed == 50
        assert first.has_more_chunks is True
        assert first.next_chunk_index == 1
        assert first.snapshot_id is not None

        # assets scored by chunk 0 would vanish from a live reselection
        job.pending = _assets(120)[50:]

        second = await job.run(
            JobInvocation(chunk_size=50, chunk_index=1, snapshot_id=first.snapshot_id)
        )
        assert second.processed == 50
        assert second.has_more_chunks is True
        assert second.next_chunk_index == 2
        assert job.seen[50:100] == _assets(120)[50:100]

        third = await job.run(
            JobInvocation(chunk_size=50, chunk_index=2, snapshot_id=first.snapshot_id)
        )
        assert third.processed == 20
        assert third.has_more_chunks is False
        assert third.next_chunk_index is None

        assert job.select_calls == 1
        assert job.seen == _assets(120)
        assert infra["start"].await_count == 3
        assert infra["finish"].await_count == 3
        # one anomaly check per run, made by the chunk that ends it
        infra["alerts"].assert_awaited_once_with(BRAPI_RISK_POLICY, infra["record"])

    @pytest.mark.asyncio
    async def test_terminal_record(self, infra, snapshots):
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=AsyncMock())
        await job.run(JobInvocation(triggered_by="scheduler"))

        start_kwargs = infra["start"].await_args.kwargs
        assert start_kwargs["triggered_by"] == "scheduler"
        assert start_kwargs["metadata"]["totalPending"] == 3

        finish = infra["finish"].await_args
        assert finish.args == ("exec-1",)
        assert finish.kwargs["status"] == "completed"
        assert finish.kwargs["total_assets_processed"] == 3
        assert finish.kwargs["avg_risk_score"] == 5.0
        assert finish.kwargs["distribution_by_risk_category"] == {"Baixo": 3}
        assert finish.kwargs["metadata"]["run"]["status"] == "completed"
        assert finish.kwargs["metadata"]["run"]["totalAssetsProcessed"] == 3
        infra["alerts"].assert_awaited_once_with(BRAPI_RISK_POLICY, infra["record"])

    @pytest.mark.asyncio
    async def test_lock_name_and_release(self, infra, snapshots):
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=AsyncMock())
        result = await job.run(JobInvocation())

        lock_name = infra["lock_cls"].call_args.args[0]
        assert lock_name == f"job:calculate-brapi-risk:{result.snapshot_id}:chunk:0"
        assert infra["lock_cls"].call_args.kwargs["blocking"] is False
        infra["lock"].release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_chunk_already_running(self, infra, snapshots):
        infra["lock"].acquire.return_value = False
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=AsyncMock())

        result = await job.run(JobInvocation())

        assert result.success is False
        assert result.error == "Chunk already running"
        assert job.seen == []
        infra["start"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_asset_failures_do_not_abort_chunk(self, infra, snapshots):
        job = ScoringJob(
            _assets(4),
            failing={"asset-001"},
            permanent={"asset-002"},
            snapshots=snapshots,
            sleep=AsyncMock(),
        )
        result = await job.run(JobInvocation())

        assert result.success
        assert result.processed == 2
        assert result.errors == 2
        assert len(result.error_details) == 2
        assert job.marked == ["asset-002"]
        assert infra["finish"].await_args.kwargs["status"] == "completed_with_errors"

    @pytest.mark.asyncio
    async def test_delay_between_assets(self, infra, snapshots):
        sleep = AsyncMock()
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=sleep)

        with patch.object(ScoringJob, "fetch_delay_ms", 500):
            await job.run(JobInvocation())

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_nothing_pending(self, infra, snapshots):
        job = ScoringJob([], snapshots=snapshots, sleep=AsyncMock())
        result = await job.run(JobInvocation())

        assert result.success
        assert result.message == "No assets to process or all are up to date"
        infra["start"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_chunk_past_the_end(self, infra, snapshots):
        job = ScoringJob(_assets(10), snapshots=snapshots, sleep=AsyncMock())
        result = await job.run(JobInvocation(chunk_index=5, chunk_size=5))

        assert result.success
        assert result.message == "All chunks processed"
        assert result.total_chunks == 2

    @pytest.mark.asyncio
    async def test_explicit_ids_skip_selection(self, infra, snapshots):
        job = ScoringJob(_assets(50), snapshots=snapshots, sleep=AsyncMock())
        result = await job.run(JobInvocation(asset_ids=["x", "y"]))

        assert job.select_calls == 0
        assert job.seen == ["x", "y"]
        assert result.snapshot_id is not None
        assert infra["lock_cls"].call_args.args[0] == f"job:calculate-brapi-risk:{result.snapshot_id}:chunk:0"
        # only computed selections are stored
        assert await snapshots.load(job.name, result.snapshot_id) is None

    @pytest.mark.asyncio
    async def test_explicit_ids_keep_the_given_run_id(self, infra, snapshots):
        job = ScoringJob([], snapshots=snapshots, sleep=AsyncMock())
        result = await job.run(
            JobInvocation(asset_ids=["x", "y"], chunk_size=1, chunk_index=1, snapshot_id="run-1")
        )

        assert job.seen == ["y"]
        assert result.snapshot_id == "run-1"

    @pytest.mark.asyncio
    async def test_expired_snapshot_reselects(self, infra, snapshots):
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=AsyncMock())
        result = await job.run(JobInvocation(snapshot_id="expired"))

        assert job.select_calls == 1
        assert result.snapshot_id == "expired"
        assert await snapshots.load(job.name, "expired") == _assets(3)

    @pytest.mark.asyncio
    async def test_selection_failure_is_recorded(self, infra, snapshots):
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=AsyncMock())
        job.select_pending = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))

        result = await job.run(JobInvocation())

        assert result.success is False
        assert "db down" in result.error
        assert infra["finish"].await_args.kwargs["status"] == "failed"
        infra["alerts"].assert_awaited_once()

    @pytest.mark.asyncio
    async def test_alert_storage_failure_is_tolerated(self, infra, snapshots):
        infra["alerts"].side_effect = OperationalError("INSERT", {}, Exception("db down"))
        job = ScoringJob(_assets(2), snapshots=snapshots, sleep=AsyncMock())

        result = await job.run(JobInvocation())

        assert result.success
        assert result.processed == 2


class FakeExecutionLog:
    """Execution records kept in memory, with the repository's call signatures."""

    def __init__(self):
        self.records: dict[str, ExecutionStat] = {}
        self._ids = itertools.count(1)

    async def start(self, function_name, execution_type, *, triggered_by="api", metadata=None):
        execution_id = f"exec-{next(self._ids)}"
        self.records[execution_id] = ExecutionStat(
            id=execution_id,
            function_name=function_name,
            execution_type=execution_type,
            status="running",
            triggered_by=triggered_by,
            started_at=datetime.now(UTC),
            metadata_=metadata,
        )
        return execution_id

    async def finish(self, execution_id, *, status, duration_ms, metadata=None, **stats):
        record = self.records[execution_id]
        record.status = status
        record.duration_ms = duration_ms
        record.completed_at = datetime.now(UTC)
        for column, value in stats.items():
            setattr(record, column, value)
        if metadata is not None:
            record.metadata_ = metadata
        return record

    async def run_chunks(self, function_name, snapshot_id, *, exclude_id=None):
        return [
            record
            for record in self.records.values()
            if record.id != exclude_id
            and record.status != "running"
            and (record.metadata_ or {}).get("snapshotId") == snapshot_id
        ]


@pytest.fixture
def execution_log():
    log = FakeExecutionLog()
    repo = chunking.executions_repo
    with (
        patch.object(repo, "start_execution", log.start),
        patch.object(repo, "finish_execution", log.finish),
        patch.object(repo, "list_run_chunks", log.run_chunks),
    ):
        yield log


@pytest.fixture
def chunk_lock():
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()
    with patch.object(chunking, "DistributedLock", MagicMock(return_value=lock)):
        yield lock


def _previous_run(total: int, avg: float = 5.0) -> ExecutionStat:
    finished = datetime.now(UTC) - timedelta(days=1)
    return ExecutionStat(
        id="exec-0",
        function_name="calculate-brapi-risk",
        execution_type="manual",
        status="completed",
        started_at=finished - timedelta(minutes=5),
        completed_at=finished,
        total_assets_processed=20,
        avg_risk_score=avg,
        metadata_={
            "run": {"status": "completed", "chunks": 3, "totalAssetsProcessed": total, "avgRiskScore": avg}
        },
    )


@pytest.mark.usefixtures("chunk_lock")
class TestRunRollup:
    async def _walk(self, job: ScoringJob, chunks: int) -> list:
        results = [await job.run(JobInvocation(chunk_size=50))]
        for index in range(1, chunks):
            results.append(
                await job.run(
                    JobInvocation(chunk_size=50, chunk_index=index, snapshot_id=results[0].snapshot_id)
                )
            )
        return results

    @pytest.mark.asyncio
    async def test_steady_three_chunk_run_raises_no_alerts(self, execution_log, snapshots):
        job = ScoringJob(_assets(120), snapshots=snapshots, sleep=AsyncMock())

        with (
            patch.object(
                service.executions_repo, "get_previous_execution", AsyncMock(return_value=_previous_run(120))
            ) as previous,
            patch.object(service.alerts_repo, "insert_alerts", AsyncMock(return_value=0)) as insert,
        ):
            results = await self._walk(job, 3)

        assert [r.processed for r in results] == [50, 50, 20]
        # a 50 -> 20 chunk comparison would have reported a count drop
        insert.assert_awaited_once_with("exec-3", [])
        previous.assert_awaited_once_with(
            "calculate-brapi-risk",
            ("completed", "completed_with_errors"),
            exclude_id="exec-3",
            runs_only=True,
        )

    @pytest.mark.asyncio
    async def test_last_chunk_carries_run_totals(self, execution_log, snapshots):
        job = ScoringJob(_assets(120), failing={"asset-060"}, snapshots=snapshots, sleep=AsyncMock())

        with patch.object(chunking, "create_execution_alerts", AsyncMock(return_value=[])) as alerts:
            await self._walk(job, 3)

        first, second, last = execution_log.records.values()
        assert "run" not in first.metadata_
        assert "run" not in second.metadata_
        assert second.status == "completed_with_errors"
        assert last.status == "completed"
        assert last.metadata_["run"] == {
            "status": "completed_with_errors",
            "chunks": 3,
            "totalAssetsProcessed": 119,
            "totalAssetsSkipped": 0,
            "totalErrors": 1,
            "avgRiskScore": 5.0,
            "minRiskScore": 5,
            "maxRiskScore": 5,
            "distributionByType": {"stock": 119},
            "distributionByRiskCategory": {"Baixo": 119},
        }
        alerts.assert_awaited_once_with(BRAPI_RISK_POLICY, last)

    @pytest.mark.asyncio
    async def test_rerun_chunk_counts_once(self, execution_log, snapshots):
        job = ScoringJob(_assets(100), snapshots=snapshots, sleep=AsyncMock())

        with patch.object(chunking, "create_execution_alerts", AsyncMock(return_value=[])):
            first = await job.run(JobInvocation(chunk_size=50))
            await job.run(JobInvocation(chunk_size=50, snapshot_id=first.snapshot_id))
            await job.run(JobInvocation(chunk_size=50, chunk_index=1, snapshot_id=first.snapshot_id))

        last = list(execution_log.records.values())[-1]
        assert last.metadata_["run"]["chunks"] == 2
        assert last.metadata_["run"]["totalAssetsProcessed"] == 100

    @pytest.mark.asyncio
    async def test_crashed_chunk_ends_run_as_failed(self, execution_log, snapshots):
        job = ScoringJob(_assets(120), snapshots=snapshots, sleep=AsyncMock())

        with patch.object(chunking, "create_execution_alerts", AsyncMock(return_value=[])) as alerts:
            first = await job.run(JobInvocation(chunk_size=50))
            alerts.assert_not_awaited()

            job.prepare_chunk = AsyncMock(side_effect=RuntimeError("benchmark unavailable"))
            result = await job.run(
                JobInvocation(chunk_size=50, chunk_index=1, snapshot_id=first.snapshot_id)
            )

        assert result.success is False
        failed = execution_log.records[result.execution_id]
        assert failed.status == "failed"
        assert failed.metadata_["run"]["status"] == "failed"
        assert failed.metadata_["run"]["totalAssetsProcessed"] == 50
        alerts.assert_awaited_once_with(BRAPI_RISK_POLICY, failed)


def _unreachable_valkey() -> MagicMock:
    client = MagicMock()
    refused = ValkeyConnectionError("Error 111 connecting to valkey:6379. Connection refused.")
    client.get = AsyncMock(side_effect=refused)
    client.set = AsyncMock(side_effect=refused)
    client.eval = AsyncMock(side_effect=refused)
    return client


class TestWithoutValkey:
    @pytest.mark.asyncio
    async def test_chunks_run_unlocked_and_reselect(self, execution_log):
        client = AsyncMock(return_value=_unreachable_valkey())
        job = ScoringJob(_assets(4), sleep=AsyncMock())

        with (
            patch.object(cache_module, "get_valkey_client", client),
            patch.object(distributed_lock, "get_valkey_client", client),
            patch.object(chunking, "create_execution_alerts", AsyncMock(return_value=[])),
        ):
            first = await job.run(JobInvocation(chunk_size=2))
            second = await job.run(
                JobInvocation(chunk_size=2, chunk_index=1, snapshot_id=first.snapshot_id)
            )

        assert first.success and second.success
        assert second.snapshot_id == first.snapshot_id
        assert job.select_calls == 2
        assert [r.status for r in execution_log.records.values()] == ["completed", "completed"]

    @pytest.mark.asyncio
    async def test_lock_error_is_not_fatal(self, infra, snapshots):
        infra["lock"].acquire.side_effect = ValkeyConnectionError("Connection refused")
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=AsyncMock())

        result = await job.run(JobInvocation())

        assert result.success
        assert result.processed == 3
        infra["start"].assert_awaited_once()
        infra["lock"].release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_release_error_keeps_the_result(self, infra, snapshots):
        infra["lock"].release.side_effect = TimeoutError("read timed out")
        job = ScoringJob(_assets(3), snapshots=snapshots, sleep=AsyncMock())

        result = await job.run(JobInvocation())

        assert result.success
        assert infra["finish"].await_args.kwargs["status"] == "completed"
