"""Celery configuration for scheduled jobs."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from tracker.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery(
    "tracker",
    broker=broker_url,
    backend=backend_url,
    include=[
        "tracker.jobs.refresh_cache",
        "tracker.jobs.refresh_recent_cache",
        "tracker.jobs.discover_dates",
        "tracker.jobs.daily_releases",
    ],
)
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "refresh-cache": {
        "task": "tracker.jobs.refresh_cache.run_refresh_cache",
        "schedule": crontab(hour=int(os.environ.get("REFRESH_CACHE_HOUR", "3")), minute=0),
    },
    "refresh-recent-cache": {
        "task": "tracker.jobs.refresh_recent_cache.run_refresh_recent_cache",
        "schedule": crontab(hour=int(os.environ.get("REFRESH_RECENT_CACHE_HOUR", "4")), minute=0),
    },
    "discover-dates": {
        "task": "tracker.jobs.discover_dates.run_discover_dates",
        "schedule": crontab(hour=int(os.environ.get("DISCOVER_DATES_HOUR", "11")), minute=0),
    },
    "daily-releases": {
        "task": "tracker.jobs.daily_releases.run_daily_releases",
        "schedule": crontab(hour=int(os.environ.get("DAILY_RELEASES_HOUR", "16")), minute=0),
    },
}


@celery_app.task(name="tracker.jobs.refresh_cache.run_refresh_cache")
def run_refresh_cache_task():  # pragma: no cover - executed by worker
    import asyncio

    from tracker.jobs.refresh_cache import run_refresh_cache

    return asyncio.run(run_refresh_cache()).to_dict()


@celery_app.task(name="tracker.jobs.refresh_recent_cache.run_refresh_recent_cache")
def run_refresh_recent_cache_task():  # pragma: no cover - executed by worker
    import asyncio

    from tracker.jobs.refresh_recent_cache import run_refresh_recent_cache

    return asyncio.run(run_refresh_recent_cache()).to_dict()

@celery_app.task(name="tracker.jobs.discover_dates.run_discover_dates")
def run_discover_dates_task():  # pragma: no cover - executed by worker
    import asyncio

    from tracker.jobs.discover_dates import run_discover_dates

    return asyncio.run(run_discover_dates()).to_dict()


@celery_app.task(name="tracker.jobs.daily_releases.run_daily_releases")
def run_daily_releases_task():  # pragma: no cover - executed by worker
    import asyncio

    from tracker.jobs.daily_releases import run_daily_releases

    return asyncio.run(run_daily_releases()).to_dict()
