"""FastAPI application for upcoming and recent releases and cron triggers."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tracker.cache.store import RedisCacheStore
from tracker.ingest.tmdb import TMDBClient
from tracker.jobs import daily_releases, discover_dates, refresh_cache, refresh_recent_cache
from tracker.logic.recent import RecentCacheBuilder, RecentReader
from tracker.logic.upcoming import CacheBuildError, UpcomingCacheBuilder, UpcomingReader
from tracker.utils.env import missing_env

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    missing_env()
    yield


app = FastAPI(title="Movie Release Tracker API", lifespan=lifespan)

MAX_LIMIT = 100


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    duration: str | None = None


async def get_reader() -> AsyncIterator[UpcomingReader]:
    tmdb = TMDBClient.from_env()
    cache = RedisCacheStore.from_env()
    try:
        yield UpcomingReader(cache, UpcomingCacheBuilder(tmdb, tmdb, cache))
    finally:
        await tmdb.close()
        await cache.close()


async def get_recent_reader() -> AsyncIterator[RecentReader]:
    tmdb = TMDBClient.from_env()
    cache = RedisCacheStore.from_env()
    try:
        yield RecentReader(cache, RecentCacheBuilder(tmdb, tmdb, cache))
    finally:
        await tmdb.close()
        await cache.close()

def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    secret = os.environ.get("CRON_SECRET")
    if not secret or authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def _elapsed(started: float) -> str:
    return f"{time.monotonic() - started:.2f}s"


def _error(status_code: int, message: str, duration: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=message, duration=duration)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code)


@app.get("/api/movies/upcoming", responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def upcoming_movies(
    sort: str = Query("popularity"),
    page: int = Query(1),
    limit: int = Query(20),
    reader: UpcomingReader = Depends(get_reader),
) -> JSONResponse:
    if sort not in {"popularity", "release_date"}:
        return _error(400, 'Invalid sort parameter. Must be "popularity" or "release_date"')
    if page < 1:
        return _error(400, "Page must be greater than 0")
    if limit < 1 or limit > MAX_LIMIT:
        return _error(400, f"Limit must be between 1 and {MAX_LIMIT}")
    try:
        result = await reader.get_upcoming_movies(sort_by=sort, page=page, limit=limit)
    except CacheBuildError as exc:
        logger.error("Upcoming movies unavailable: %s", exc)
        return _error(500, "Failed to fetch upcoming movies")
    return JSONResponse({"success": True, "sort": sort, **result.to_dict()})


@app.get("/api/movies/upcoming/cache-info")
async def upcoming_cache_info(reader: UpcomingReader = Depends(get_reader)) -> JSONResponse:
    return JSONResponse({"success": True, **(await reader.cache_info())})


@app.get("/api/movies/recent", responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def recent_movies(
    page: int = Query(1),
    limit: int = Query(30),
    reader: RecentReader = Depends(get_recent_reader),
) -> JSONResponse:
    if page < 1:
        return _error(400, "Page must be greater than 0")
    if limit < 1 or limit > MAX_LIMIT:
        return _error(400, f"Limit must be between 1 and {MAX_LIMIT}")
    try:
        result = await reader.get_recent_movies(page=page, limit=limit)
    except CacheBuildError as exc:
        logger.error("Recent movies unavailable: %s", exc)
        return _error(500, "Failed to fetch recent movies")
    return JSONResponse({"success": True, **result.to_dict()})

@app.get("/api/cron/refresh-cache", dependencies=[Depends(require_cron_secret)])
async def cron_refresh_cache(force: bool = False) -> JSONResponse:
    started = time.monotonic()
    try:
        result = await refresh_cache.run_refresh_cache(force=force)
    except Exception as exc:
        logger.exception("Cache refresh cron failed")
        return _error(500, str(exc), duration=_elapsed(started))
    payload = {**result.to_dict(), "forced": force, "duration": _elapsed(started)}
    return JSONResponse(payload, status_code=200 if result.success else 500)


@app.get("/api/cron/refresh-recent-cache", dependencies=[Depends(require_cron_secret)])
async def cron_refresh_recent_cache() -> JSONResponse:
    started = time.monotonic()
    try:
        result = await refresh_recent_cache.run_refresh_recent_cache()
    except Exception as exc:
        logger.exception("Recent cache refresh cron failed")
        return _error(500, str(exc), duration=_elapsed(started))
    payload = {**result.to_dict(), "duration": _elapsed(started)}
    return JSONResponse(payload, status_code=200 if result.success else 500)

@app.get("/api/cron/discover-dates", dependencies=[Depends(require_cron_secret)])
async def cron_discover_dates() -> JSONResponse:
    started = time.monotonic()
    try:
        result = await discover_dates.run_discover_dates()
    except Exception as exc:
        logger.exception("Date discovery cron failed")
        return _error(500, str(exc), duration=_elapsed(started))
    return JSONResponse({**result.to_dict(), "duration": _elapsed(started)})


@app.get("/api/cron/daily-releases", dependencies=[Depends(require_cron_secret)])
async def cron_daily_releases() -> JSONResponse:
    started = time.monotonic()
    try:
        result = await daily_releases.run_daily_releases()
    except Exception as exc:
        logger.exception("Daily releases cron failed")
        return _error(500, str(exc), duration=_elapsed(started))
    return JSONResponse({**result.to_dict(), "duration": _elapsed(started)})
