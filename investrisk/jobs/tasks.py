"""Celery tasks for the batch risk jobs.

Each task runs one chunk and, while the job reports more chunks, enqueues
the next one with the returned continuation token.
"""

from __future__ import annotations

import asyncio
from typing import Any

from investrisk.celery_app import celery_app
from investrisk.core.logging import get_logger
from investrisk.schemas.jobs import JobInvocation, JobRunResponse

from .executor import execute_job


logger = get_logger("jobs.celery_tasks")

# Per-worker event loop for Celery prefork pool
_worker_loop: asyncio.AbstractEventLoop | None = None


def _get_worker_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the worker process."""
    global _worker_loop
    if _worker_loop is None or _worker_loop.is_closed():
        _worker_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_worker_loop)
    return _worker_loop


def _run_async(coro: Any) -> Any:
    """Run a coroutine on the worker's loop (async Valkey/DB pools are per loop)."""
    return _get_worker_loop().run_until_complete(coro)


def continuation_payload(request: JobInvocation, result: JobRunResponse) -> dict[str, Any] | None:
    """Body of the next chunk's invocation, or None when the run is done."""
    if not result.success or not result.has_more_chunks or result.next_chunk_index is None:
        return None
    payload = request.model_dump(by_alias=True, exclude_none=True)
    payload.update(
        chunkIndex=result.next_chunk_index,
        snapshotId=result.snapshot_id,
        triggeredBy="continuation",
    )
    return payload


def run_chunk(job_name: str, payload: dict[str, Any] | None) -> dict[str, Any]:
    request = JobInvocation.model_validate(
        payload if payload is not None else {"processAll": True, "triggeredBy": "scheduler"}
    )
    result: JobRunResponse = _run_async(execute_job(job_name, request))

    next_payload = continuation_payload(request, result)
    if next_payload is not None:
        celery_app.send_task(f"jobs.{job_name}", args=[next_payload])
        logger.info(f"Enqueued {job_name} chunk {next_payload['chunkIndex']}")

    return result.model_dump(by_alias=True, exclude_none=True)


@celery_app.task(name="jobs.calculate-brapi-risk")
def calculate_brapi_risk_task(payload: dict[str, Any] | None = None) -> dict[str, Any]:
    return run_chunk("calculate-brapi-risk", payload)


@celery_app.task(name="jobs.precalculate-anbima-risks")
def precalculate_anbima_risks_task(payload: dict[str, Any] | None = None) -> dict[str, Any]:
    return run_chunk("precalculate-anbima-risks", payload)


@celery_app.task(name="jobs.precalculate-cvm-risks")
def precalculate_cvm_risks_task(payload: dict[str, Any] | None = None) -> dict[str, Any]:
    return run_chunk("precalculate-cvm-risks", payload)
