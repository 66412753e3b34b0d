"""Release-day notifications for followed movies."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from tracker.db.session import create_engine_from_env
from tracker.db.store import ReleaseStore
from tracker.email.notifier import Notifier
from tracker.logic.releases import DailyReleasesJob, ReleasesResult
from tracker.utils.healthcheck import ping_healthcheck

logger = logging.getLogger(__name__)


async def run_daily_releases() -> ReleasesResult:
    load_dotenv()
    engine = create_engine_from_env()
    healthcheck_url = os.environ.get("HEALTHCHECK_DAILY_RELEASES_URL")
    job = DailyReleasesJob(ReleaseStore(engine), Notifier())
    try:
        result = await job.execute()
    except Exception:
        logger.exception("Daily releases job failed")
        await ping_healthcheck(healthcheck_url, success=False)
        raise
    finally:
        engine.dispose()
    await ping_healthcheck(healthcheck_url, success=True)
    return result


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_daily_releases())
