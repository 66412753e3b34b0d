"""Daily check of followed movies for newly announced release dates."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from tracker.db.session import create_engine_from_env
from tracker.db.store import ReleaseStore
from tracker.email.notifier import Notifier
from tracker.ingest.tmdb import TMDBClient
from tracker.logic.discovery import DateDiscoveryJob, DiscoveryResult
from tracker.utils.healthcheck import ping_healthcheck

logger = logging.getLogger(__name__)


async def run_discover_dates() -> DiscoveryResult:
    load_dotenv()
    engine = create_engine_from_env()
    tmdb = TMDBClient.from_env()
    healthcheck_url = os.environ.get("HEALTHCHECK_DISCOVER_DATES_URL")
    job = DateDiscoveryJob(ReleaseStore(engine), tmdb, Notifier())
    try:
        result = await job.execute()
    except Exception:
        logger.exception("Date discovery job failed")
        await ping_healthcheck(healthcheck_url, success=False)
        raise
    finally:
        await tmdb.close()
        engine.dispose()
    await ping_healthcheck(healthcheck_url, success=True)
    return result


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_discover_dates())
