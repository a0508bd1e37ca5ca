"""HTTP utilities providing retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryConfig:
    """Retry policy shared by every outbound call.

    ``attempts`` counts the first try, so ``attempts=1`` disables retries.
    Backoff grows linearly: ``backoff_seconds * attempt``.
    """

    def __init__(self, *, attempts: int = 2, backoff_seconds: float = 0.5) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds

    def delay_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """Invoke ``func`` until it yields a non-retryable response.

    Transport errors and 429/5xx responses are retried. Any other response,
    including 4xx, is handed back to the caller untouched. When attempts run
    out, the last response is returned or the last transport error raised.
    """
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: httpx.TransportError | None = None
    last_response: httpx.Response | None = None

    while attempt < config.attempts:
        try:
            response = await func(*args, **kwargs)
        except httpx.TransportError as exc:
            last_exception = exc
            last_response = None
            logger.warning("Outbound request failed (%s); attempt %d", type(exc).__name__, attempt + 1)
        else:
            if response.status_code not in RETRYABLE_STATUS_CODES:
                return response
            last_exception = None
            last_response = response
            logger.warning(
                "Outbound request returned %d; attempt %d", response.status_code, attempt + 1
            )

        attempt += 1
        if attempt >= config.attempts:
            break
        await asyncio.sleep(config.delay_for(attempt))

    if last_response is not None:
        return last_response
    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


__all__ = ["RETRYABLE_STATUS_CODES", "RetryConfig", "request_with_retry"]
