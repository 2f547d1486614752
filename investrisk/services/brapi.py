"""Brapi market data client (quotes and one-year daily history)."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from investrisk.core.config import settings
from investrisk.core.exceptions import ExternalServiceError, PriceHistoryNotFoundError
from investrisk.core.logging import get_logger
from investrisk.risk.statistics import PriceObservation


logger = get_logger("services.brapi")


def _quote_url(ticker: str) -> str:
    return f"{settings.brapi_base_url.rstrip('/')}/quote/{ticker}"


def _params(**extra: str) -> dict[str, str]:
    params = dict(extra)
    if settings.brapi_api_key:
        params["token"] = settings.brapi_api_key
    return params


async def _get_json(
    client: httpx.AsyncClient, ticker: str, params: dict[str, str]
) -> dict[str, Any]:
    try:
        response = await client.get(_quote_url(ticker), params=params)
    except httpx.HTTPError as e:
        raise ExternalServiceError(
            message=f"Brapi request failed for {ticker}: {e}",
            details={"ticker": ticker},
        ) from e

    if response.status_code == 404:
        raise PriceHistoryNotFoundError(
            message=f"Brapi API error: 404 for {ticker}",
            details={"ticker": ticker},
        )
    if response.status_code != 200:
        raise ExternalServiceError(
            message=f"Brapi API error: {response.status_code}",
            details={"ticker": ticker, "status_code": response.status_code},
        )
    return response.json()


async def fetch_historical_prices(
    ticker: str,
    client: Optional[httpx.AsyncClient] = None,
) -> list[PriceObservation]:
    """
    One year of daily prices for a ticker, oldest first.

    Raises:
        PriceHistoryNotFoundError: unknown ticker or no history in the payload.
        ExternalServiceError: transport failure or non-404 error status.
    """
    logger.debug(f"Fetching historical prices for {ticker}")
    params = _params(range="1y", interval="1d")

    if client is None:
        async with httpx.AsyncClient(timeout=float(settings.external_api_timeout)) as own_client:
            payload = await _get_json(own_client, ticker, params)
    else:
        payload = await _get_json(client, ticker, params)

    results = payload.get("results") or []
    history = results[0].get("historicalDataPrice") if results else None
    if not history:
        raise PriceHistoryNotFoundError(
            message=f"No historical data for {ticker}",
            details={"ticker": ticker},
        )
    return [PriceObservation.from_provider(item) for item in history if item.get("date")]


async def fetch_quote(ticker: str) -> Optional[dict[str, Any]]:
    """Latest quote for a ticker, or None when the provider has nothing usable."""
    try:
        async with httpx.AsyncClient(timeout=settings.quote_lookup_timeout) as client:
            payload = await _get_json(client, ticker, _params(range="1y", interval="1d"))
    except (ExternalServiceError, PriceHistoryNotFoundError) as e:
        logger.warning(f"Quote lookup failed for {ticker}: {e.message}")
        return None

    results = payload.get("results") or []
    return results[0] if results else None
