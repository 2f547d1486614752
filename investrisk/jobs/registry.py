"""Job registry for mapping job names to job factories."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from investrisk.core.logging import get_logger


logger = get_logger("jobs.registry")

# Global job registry
_registry: dict[str, Callable[[], Any]] = {}


def register_job(name: str) -> Callable:
    """
    Decorator to register a job factory (usually the job class).

    Usage:
        @register_job("calculate-brapi-risk")
        class BrapiRiskJob(ChunkedRiskJob):
            ...
    """

    def decorator(factory: Callable[[], Any]) -> Callable[[], Any]:
        _registry[name] = factory
        logger.debug(f"Registered job: {name}")
        return factory

    return decorator


def get_job(name: str) -> Callable[[], Any] | None:
    """Get a registered job factory by name."""
    return _registry.get(name)


def list_job_names() -> list[str]:
    """List all registered job names."""
    return list(_registry.keys())
