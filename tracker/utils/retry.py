"""Retry helpers for provider HTTP calls."""

from __future__ import annotations

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable

import httpx

RETRY_EXCEPTIONS = (httpx.TransportError, asyncio.TimeoutError)
RETRY_STATUS = 429
MAX_ATTEMPTS = 3
BASE_DELAY = 1.0


def retry_async(func: Callable[..., Awaitable]):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        delay = BASE_DELAY
        for attempt in range(MAX_ATTEMPTS):
            last_attempt = attempt == MAX_ATTEMPTS - 1
            try:
                result = await func(*args, **kwargs)
            except RETRY_EXCEPTIONS:
                if last_attempt:
                    raise
                await asyncio.sleep(delay + random.random())
                delay *= 2
                continue
            if isinstance(result, httpx.Response) and result.status_code == RETRY_STATUS and not last_attempt:
                await asyncio.sleep(_retry_after(result, delay))
                delay *= 2
                continue
            return result
    return wrapper


def _retry_after(response: httpx.Response, fallback: float) -> float:
    header = response.headers.get("Retry-After")
    try:
        return max(float(header), 0.0) if header else fallback
    except ValueError:
        return fallback
