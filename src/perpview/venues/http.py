"""Bounded-timeout JSON REST calls with retry on transient failures."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from perpview.errors import ConfigError, NotFoundError, TransientError

log = structlog.get_logger(__name__)


def backoff_delay(retries: int, base_delay: float = 0.25) -> float:
    """Delay in seconds before retry number `retries` (0-based). Exponential."""
    return base_delay * (2**retries)


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    json: Any = None,
    retry_attempts: int = 0,
    base_delay: float = 0.25,
) -> Any:
    """Issue a request and decode JSON, mapping failures onto perpview errors.

    Timeouts, transport errors, 429, 5xx and other 4xx are TransientError, retried
    up to retry_attempts times. 400/404 map to NotFoundError, 401/403 to
    ConfigError; neither is retried. The per-request timeout is the client's.
    """
    retries = 0
    while True:
        try:
            resp = await client.request(method, url, params=params, json=json)
        except httpx.TimeoutException as e:
            err = TransientError(f"timeout calling {url}")
            cause: Exception = e
        except httpx.TransportError as e:
            err = TransientError(f"transport error calling {url}: {e}")
            cause = e
        else:
            status = resp.status_code
            if status in (400, 404):
                raise NotFoundError(f"{url} returned {status}: {resp.text[:200]}")
            if status in (401, 403):
                raise ConfigError(f"{url} returned {status}")
            if status >= 400:
                err = TransientError(f"{url} returned {status}")
                cause = httpx.HTTPStatusError(err.args[0], request=resp.request, response=resp)
            else:
                try:
                    return resp.json()
                except ValueError as e:
                    err = TransientError(f"invalid JSON from {url}")
                    cause = e
        if retries >= retry_attempts:
            raise err from cause
        delay = backoff_delay(retries, base_delay)
        log.debug("rest_retry", url=url, error=str(err), retry=retries + 1, delay=delay)
        retries += 1
        await asyncio.sleep(delay)
