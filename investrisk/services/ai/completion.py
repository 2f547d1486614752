"""Single-turn chat completion with retry, used by the AI-assisted scorers."""

from __future__ import annotations

import httpx
from openai import OpenAIError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from investrisk.core.exceptions import ExternalServiceError
from investrisk.core.logging import get_logger

from .client import AiClientManager, get_client_manager


logger = get_logger("ai.completion")


async def complete_text(
    system_prompt: str,
    user_prompt: str,
    *,
    max_tokens: int | None = None,
    temperature: float | None = None,
    manager: AiClientManager | None = None,
) -> str:
    """
    Send one system+user exchange and return the assistant text.

    Raises:
        ExternalServiceError: client unavailable (no key, circuit open) or
            every attempt failed.
    """
    manager = manager or get_client_manager()
    client = await manager.get_client()
    if client is None:
        raise ExternalServiceError(
            message="AI client unavailable",
            details={"circuit_open": manager.is_circuit_open()},
        )

    settings = manager.settings
    params: dict = {
        "model": settings.model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
    }
    if max_tokens is not None:
        params["max_completion_tokens"] = max_tokens
    if temperature is not None:
        params["temperature"] = temperature

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, settings.max_retries)),
            wait=wait_exponential_jitter(
                initial=settings.retry_delay,
                max=settings.retry_max_delay,
                jitter=1.0,
            ),
            retry=retry_if_exception_type((OpenAIError, httpx.HTTPError)),
            reraise=True,
        ):
            with attempt:
                response = await client.chat.completions.create(**params)
    except (OpenAIError, httpx.HTTPError, RetryError) as e:
        manager.record_failure()
        logger.warning(f"AI completion failed: {e}")
        raise ExternalServiceError(message=f"AI completion failed: {e}") from e

    manager.record_success()
    if not response.choices:
        return ""
    return response.choices[0].message.content or ""
