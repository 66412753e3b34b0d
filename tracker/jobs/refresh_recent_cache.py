"""Scheduled rebuild of the recent digital releases cache."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from tracker.cache.store import RedisCacheStore
from tracker.ingest.tmdb import TMDBClient
from tracker.logic.recent import RecentBuildResult, RecentCacheBuilder, RecentReader
from tracker.utils.healthcheck import ping_healthcheck

logger = logging.getLogger(__name__)


async def run_refresh_recent_cache() -> RecentBuildResult:
    load_dotenv()
    healthcheck_url = os.environ.get("HEALTHCHECK_REFRESH_RECENT_CACHE_URL")
    tmdb = cache = None
    try:
        tmdb = TMDBClient.from_env()
        cache = RedisCacheStore.from_env()
        result = await RecentReader(cache, RecentCacheBuilder(tmdb, tmdb, cache)).rebuild_cache()
    except Exception:
        logger.exception("Recent cache refresh job failed")
        await ping_healthcheck(healthcheck_url, success=False)
        raise
    finally:
        if tmdb is not None:
            await tmdb.close()
        if cache is not None:
            await cache.close()

    if not result.success:
        logger.error("Recent cache refresh failed: %s", result.error)
    await ping_healthcheck(healthcheck_url, success=result.success)
    return result


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    outcome = asyncio.run(run_refresh_recent_cache())
    sys.exit(0 if outcome.success else 1)
