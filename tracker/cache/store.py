"""Redis-backed JSON cache."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping

from redis import asyncio as aioredis

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://redis:6379/0"


class RedisCacheStore:
    def __init__(self, client: aioredis.Redis) -> None:
        self.client = client

    @classmethod
    def from_env(cls) -> RedisCacheStore:
        url = os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client)

    async def close(self) -> None:
        await self.client.aclose()

    async def get(self, key: str) -> Any | None:
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON under cache key %s; treating as miss", key)
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        await self.client.setex(key, ttl, json.dumps(value))

    async def set_many(self, values: Mapping[str, Any], ttl: int) -> None:
        """Write every key in one MULTI/EXEC so readers never see a partial generation."""
        async with self.client.pipeline(transaction=True) as pipe:
            for key, value in values.items():
                pipe.setex(key, ttl, json.dumps(value))
            await pipe.execute()

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.client.delete(*keys)
