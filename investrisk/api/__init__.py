"""HTTP API: job invocation, health checks, alerts and asset search."""

from .app import create_api_app


__all__ = ["create_api_app"]
