"""Shared retry policy for vendor HTTP calls.

Client errors (4xx other than 429) are returned immediately. Rate limiting,
server errors and transport failures are retried with exponential backoff,
honoring a vendor-supplied ``Retry-After``.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from config import settings
from providers.errors import error_from_exception, parse_retry_after

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds, doubled per attempt
    max_delay: float = 30.0
    jitter: bool = False

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.retry_max_attempts),
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait after the given zero-based attempt."""
        if retry_after is not None:
            return min(retry_after, self.max_delay)
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay = random.uniform(0, delay)
        return delay


def should_retry(response: httpx.Response) -> bool:
    return response.status_code == 429 or response.status_code >= 500


async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: RetryPolicy,
    vendor: str,
    sleep: Sleep = asyncio.sleep,
    **kwargs,
) -> httpx.Response:
    """Send a request, retrying transient failures per ``policy``.

    Returns the last response once it is final or attempts are exhausted, so
    the caller can normalize it. Raises ProviderError if the last attempt
    failed at the transport level.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        last = attempt == attempts - 1
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if last:
                logger.error("%s %s failed after %d attempts: %s", vendor, method, attempts, e)
                raise error_from_exception(e, vendor) from e
            delay = policy.delay_for(attempt)
            logger.warning("%s %s transport error (%s), retrying in %.1fs", vendor, method, e, delay)
            await sleep(delay)
            continue

        if not should_retry(response) or last:
            return response

        retry_after = None
        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
        delay = policy.delay_for(attempt, retry_after)
        logger.warning(
            "%s %s returned %d (attempt %d/%d), retrying in %.1fs",
            vendor,
            method,
            response.status_code,
            attempt + 1,
            attempts,
            delay,
        )
        await sleep(delay)

    raise AssertionError("unreachable")
