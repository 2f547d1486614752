"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from investrisk.risk.statistics import PriceObservation
from investrisk.search.state import MemoryStore


pytest_plugins = ["pytest_asyncio"]


def make_prices(closes: list[float | None], start: date = date(2024, 1, 2)) -> list[PriceObservation]:
    """Daily observations with the given closes (no adjusted close)."""
    return [
        PriceObservation(
            date=start + timedelta(days=i),
            open=close,
            high=close,
            low=close,
            close=close,
            adjusted_close=None,
            volume=1_000,
        )
        for i, close in enumerate(closes)
    ]


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client for the API app; lifespan is not started."""
    from investrisk.api.app import create_api_app

    app = create_api_app()
    yield TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def rising_prices() -> list[PriceObservation]:
    """61 closes growing 1% a day (60 returns)."""
    closes = [100.0]
    for _ in range(60):
        closes.append(closes[-1] * 1.01)
    return make_prices(closes)


@pytest.fixture
def price_factory():
    return make_prices
