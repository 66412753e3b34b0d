"""Scheduled rebuild of the upcoming releases cache."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from tracker.cache.store import RedisCacheStore
from tracker.email.notifier import Notifier
from tracker.ingest.tmdb import TMDBClient
from tracker.logic.upcoming import CacheBuildResult, UpcomingCacheBuilder, UpcomingReader
from tracker.utils.healthcheck import ping_healthcheck

logger = logging.getLogger(__name__)


async def run_refresh_cache(force: bool = False) -> CacheBuildResult:
    """Rebuild the cache; ``force`` drops the current keys before building.

    A failed unforced build leaves the previous cache in place until its TTL
    runs out and alerts ``ADMIN_EMAIL``.
    """
    load_dotenv()
    healthcheck_url = os.environ.get("HEALTHCHECK_REFRESH_CACHE_URL")
    tmdb = cache = None
    try:
        tmdb = TMDBClient.from_env()
        cache = RedisCacheStore.from_env()
        builder = UpcomingCacheBuilder(tmdb, tmdb, cache)
        if force:
            result = await UpcomingReader(cache, builder).rebuild_cache()
        else:
            result = await builder.build_cache()
    except Exception:
        logger.exception("Cache refresh job failed")
        await ping_healthcheck(healthcheck_url, success=False)
        raise
    finally:
        if tmdb is not None:
            await tmdb.close()
        if cache is not None:
            await cache.close()

    if not result.success:
        await _alert_admin(result)
    await ping_healthcheck(healthcheck_url, success=result.success)
    return result


async def _alert_admin(result: CacheBuildResult) -> None:
    admin = os.environ.get("ADMIN_EMAIL")
    if not admin:
        logger.warning("Cache refresh failed and ADMIN_EMAIL is not set: %s", result.error)
        return
    stats = result.stats
    details = (
        f"Fetched {stats.total_fetched} movies over {stats.total_pages} pages; "
        f"{stats.stream_errors} stream errors, {stats.enrichment_failures} enrichment failures."
    )
    try:
        await Notifier().send_admin_notification(
            admin,
            "Cache Refresh Failed",
            f"The upcoming movies cache refresh failed: {result.error}",
            details,
        )
    except Exception as exc:
        logger.error("Failed to send cache refresh alert to %s: %s", admin, exc)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    outcome = asyncio.run(run_refresh_cache(force="--force" in sys.argv))
    sys.exit(0 if outcome.success else 1)
