"""Job dispatch by name."""

from __future__ import annotations

import time

from investrisk.core.exceptions import JobError, NotFoundError
from investrisk.core.logging import get_logger
from investrisk.schemas.jobs import JobInvocation, JobRunResponse

from .registry import get_job


logger = get_logger("jobs.executor")


async def execute_job(name: str, request: JobInvocation) -> JobRunResponse:
    """
    Run one invocation (one chunk) of a registered batch job.

    Raises:
        NotFoundError: Unknown job name
        JobError: The job raised instead of reporting its own failure
    """
    factory = get_job(name)
    if factory is None:
        raise NotFoundError(message=f"Unknown job: {name}", details={"job": name})

    start_time = time.monotonic()
    job = factory()
    try:
        result = await job.run(request)
    except Exception as e:
        duration = time.monotonic() - start_time
        logger.exception(f"Job {name} failed after {duration:.2f}s")
        raise JobError(
            message=f"Job execution failed: {e!s}",
            error_code="JOB_EXECUTION_FAILED",
            details={"job_name": name, "duration_seconds": round(duration, 2)},
        ) from e

    duration = time.monotonic() - start_time
    logger.info(
        f"Job {name} chunk {request.chunk_index} finished in {duration:.2f}s "
        f"(success={result.success})"
    )
    return result
