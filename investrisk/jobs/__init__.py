"""Batch risk jobs; importing this package registers them."""

from . import anbima_risk, brapi_risk, cvm_risk  # noqa: F401 - register jobs
from .chunking import ChunkCursor, ChunkedRiskJob, ChunkOutcome, SelectionSnapshotStore
from .executor import execute_job
from .registry import get_job, list_job_names, register_job


__all__ = [
    "ChunkCursor",
    "ChunkedRiskJob",
    "ChunkOutcome",
    "SelectionSnapshotStore",
    "execute_job",
    "get_job",
    "list_job_names",
    "register_job",
]
