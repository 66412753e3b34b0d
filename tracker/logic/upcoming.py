"""Upcoming release cache: discovery crawl, enrichment, and paginated reads."""

from __future__ import annotations

import asyncio
import logging
import math
import os
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

import pendulum

from tracker.ingest import DATE_SORT, DiscoveryStream, load_streams
from tracker.ingest.models import EnrichedMovie, MovieIdSet, MovieSummary
from tracker.logic.enrich import PROVIDER_ERRORS, enrich_movies
from tracker.logic.filters import (
    already_released,
    beyond_window,
    has_feature_runtime,
    is_upcoming_candidate,
    sort_by_popularity,
    sort_by_release_date,
)
from tracker.utils.dates import add_months, now_in_tz, parse_iso_date, today_in_tz
from tracker.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

CACHE_KEY_POPULARITY = "upcoming_movies_popularity"
CACHE_KEY_RELEASE_DATE = "upcoming_movies_release_date"
CACHE_KEY_METADATA = "upcoming_movies_metadata"
CACHE_KEYS = (CACHE_KEY_POPULARITY, CACHE_KEY_RELEASE_DATE, CACHE_KEY_METADATA)
CACHE_TTL = int(os.environ.get("UPCOMING_CACHE_TTL", 24 * 60 * 60))
WINDOW_MONTHS = 6
SORT_KEYS = {"popularity": CACHE_KEY_POPULARITY, "release_date": CACHE_KEY_RELEASE_DATE}


class CacheBuildError(RuntimeError):
    pass


@dataclass(slots=True)
class BuildStats:
    total_fetched: int = 0
    total_pages: int = 0
    duplicates_removed: int = 0
    movies_within_window: int = 0
    found_movies_beyond_cutoff: bool = False
    stream_errors: int = 0
    enrichment_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class UpcomingCacheData:
    popularity_sorted: list[EnrichedMovie]
    release_date_sorted: list[EnrichedMovie]
    total_count: int
    cache_built_at: str
    date_range_end: str

    def metadata(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "cache_built_at": self.cache_built_at,
            "date_range_end": self.date_range_end,
        }

    def sorted_by(self, sort_by: str) -> list[EnrichedMovie]:
        return self.popularity_sorted if sort_by == "popularity" else self.release_date_sorted


@dataclass(slots=True)
class CacheBuildResult:
    success: bool
    stats: BuildStats
    data: UpcomingCacheData | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "stats": self.stats.to_dict()}
        if self.data is not None:
            payload["metadata"] = self.data.metadata()
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class Pagination:
    current_page: int
    total_pages: int
    total_movies: int
    has_next_page: bool
    has_previous_page: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class UpcomingPage:
    movies: list[EnrichedMovie]
    pagination: Pagination

    def to_dict(self) -> dict[str, Any]:
        return {
            "movies": [movie.to_dict() for movie in self.movies],
            "pagination": self.pagination.to_dict(),
        }


@dataclass(slots=True)
class _Crawl:
    today: date
    cutoff: date
    seen: MovieIdSet = field(default_factory=MovieIdSet)
    movies: list[MovieSummary] = field(default_factory=list)


class UpcomingCacheBuilder:
    def __init__(
        self,
        search,
        details,
        cache,
        *,
        streams: list[DiscoveryStream] | None = None,
        rate_limiter: RateLimiter | None = None,
        enrich_concurrency: int = 5,
        stream_concurrency: int = 1,
        ttl: int = CACHE_TTL,
    ) -> None:
        self.search = search
        self.details = details
        self.cache = cache
        self.streams = streams if streams is not None else load_streams()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.enrich_concurrency = max(1, enrich_concurrency)
        self.stream_concurrency = max(1, stream_concurrency)
        self.ttl = ttl

    async def build_cache(self, today: date | None = None) -> CacheBuildResult:
        stats = BuildStats()
        try:
            today = today or today_in_tz()
            cutoff = add_months(today, WINDOW_MONTHS)
            logger.info("Building upcoming cache for %s to %s", today, cutoff)

            crawl = _Crawl(today=today, cutoff=cutoff)
            semaphore = asyncio.Semaphore(self.stream_concurrency)

            async def run(stream: DiscoveryStream) -> None:
                async with semaphore:
                    await self._crawl_stream(stream, crawl, stats)

            await asyncio.gather(*(run(stream) for stream in self.streams))
            stats.duplicates_removed = crawl.seen.duplicates

            candidates = [movie for movie in crawl.movies if is_upcoming_candidate(movie, today, cutoff)]
            enriched, stats.enrichment_failures = await enrich_movies(
                self.details, candidates, rate_limiter=self.rate_limiter, concurrency=self.enrich_concurrency
            )
            upcoming = [
                movie
                for movie in enriched
                if has_feature_runtime(movie)
                and not already_released(movie, today)
                and not beyond_window(movie, cutoff)
            ]
            stats.movies_within_window = len(upcoming)

            data = UpcomingCacheData(
                popularity_sorted=sort_by_popularity(upcoming),
                release_date_sorted=sort_by_release_date(upcoming),
                total_count=len(upcoming),
                cache_built_at=now_in_tz().isoformat(),
                date_range_end=cutoff.isoformat(),
            )
            await self.cache.set_many(
                {
                    CACHE_KEY_POPULARITY: [movie.to_dict() for movie in data.popularity_sorted],
                    CACHE_KEY_RELEASE_DATE: [movie.to_dict() for movie in data.release_date_sorted],
                    CACHE_KEY_METADATA: data.metadata(),
                },
                self.ttl,
            )
        except Exception as exc:
            logger.exception("Upcoming cache build failed")
            return CacheBuildResult(success=False, stats=stats, error=str(exc) or type(exc).__name__)

        logger.info(
            "Upcoming cache built: fetched=%s duplicates=%s valid=%s pages=%s",
            stats.total_fetched,
            stats.duplicates_removed,
            stats.movies_within_window,
            stats.total_pages,
        )
        return CacheBuildResult(success=True, stats=stats, data=data)

    async def _crawl_stream(self, stream: DiscoveryStream, crawl: _Crawl, stats: BuildStats) -> None:
        page = 1
        while True:
            await self.rate_limiter.wait(stream.key)
            try:
                results = await self.search.discover_by_date_range(
                    start=crawl.today,
                    end=crawl.cutoff,
                    sort_by=stream.sort_by,
                    language=stream.language,
                    page=page,
                )
            except PROVIDER_ERRORS as exc:
                logger.warning("Discover %s page %s failed: %s", stream.key, page, exc)
                stats.stream_errors += 1
                return
            stats.total_pages += 1

            if not results:
                logger.debug("No more results for %s at page %s", stream.key, page)
                return

            reached_cutoff = False
            if stream.sort_by == DATE_SORT:
                reached_cutoff = any(_is_after(movie, crawl.cutoff) for movie in results)
                if reached_cutoff:
                    stats.found_movies_beyond_cutoff = True

            for movie in results:
                if not movie.release_date or not movie.title:
                    continue
                if not crawl.seen.claim(movie.id):
                    continue
                crawl.movies.append(movie)
                stats.total_fetched += 1

            if reached_cutoff or page >= stream.max_pages:
                return
            page += 1


def _is_after(movie: MovieSummary, cutoff: date) -> bool:
    released = parse_iso_date(movie.release_date)
    return released is not None and released > cutoff


class UpcomingReader:
    def __init__(self, cache, builder: UpcomingCacheBuilder) -> None:
        self.cache = cache
        self.builder = builder

    async def get_upcoming_movies(
        self,
        sort_by: str = "popularity",
        page: int = 1,
        limit: int = 20,
    ) -> UpcomingPage:
        if sort_by not in SORT_KEYS:
            raise ValueError('sort_by must be "popularity" or "release_date"')
        if page < 1:
            raise ValueError("page must be >= 1")
        if limit < 1:
            raise ValueError("limit must be > 0")

        # the three keys are one generation; any missing key means a miss
        stored = {key: await self.cache.get(key) for key in CACHE_KEYS}
        cached = stored[SORT_KEYS[sort_by]]
        metadata = stored[CACHE_KEY_METADATA]
        if any(value is None for value in stored.values()):
            logger.info("Upcoming cache miss for %s; building", sort_by)
            result = await self.builder.build_cache()
            if not result.success or result.data is None:
                raise CacheBuildError(f"Failed to build upcoming movies cache: {result.error}")
            movies = result.data.sorted_by(sort_by)
            total = result.data.total_count
        else:
            movies = [EnrichedMovie.from_dict(item) for item in cached]
            total = int(metadata.get("total_count", len(movies)))

        start = (page - 1) * limit
        total_pages = math.ceil(total / limit)
        return UpcomingPage(
            movies=movies[start:start + limit],
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_movies=total,
                has_next_page=page < total_pages,
                has_previous_page=page > 1,
            ),
        )

    async def rebuild_cache(self) -> CacheBuildResult:
        """Drop the current generation and build a fresh one."""
        await self.cache.delete(*CACHE_KEYS)
        return await self.builder.build_cache()

    async def cache_info(self) -> dict[str, Any]:
        metadata = await self.cache.get(CACHE_KEY_METADATA)
        if not metadata:
            return {"is_cached": False}
        info: dict[str, Any] = {"is_cached": True, "metadata": metadata}
        built_at = metadata.get("cache_built_at")
        if built_at:
            age = now_in_tz() - pendulum.parse(built_at)
            info["age_hours"] = round(age.total_seconds() / 3600, 2)
        return info
