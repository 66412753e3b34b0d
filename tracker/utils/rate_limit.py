"""Per-stream request pacing."""

from __future__ import annotations

import asyncio
import os
import time
from collections import defaultdict

DEFAULT_INTERVAL = float(os.environ.get("PROVIDER_REQUEST_INTERVAL", 0.25))


class RateLimiter:
    """Fixed minimum interval between requests sharing a key.

    The first request on a key goes out immediately; later ones wait until
    ``interval`` seconds have passed since the previous request on that key.
    """

    def __init__(self, *, interval: float = DEFAULT_INTERVAL) -> None:
        self.interval = interval
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_request: dict[str, float] = {}

    async def wait(self, key: str) -> None:
        lock = self._locks[key]
        async with lock:
            last = self._last_request.get(key)
            if last is not None and self.interval > 0:
                elapsed = time.monotonic() - last
                if elapsed < self.interval:
                    await asyncio.sleep(self.interval - elapsed)
            self._last_request[key] = time.monotonic()
