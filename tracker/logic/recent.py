"""Recent digital releases cache: well-rated movies that reached streaming lately."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Mapping

from tracker.ingest.models import EnrichedMovie, MovieIdSet
from tracker.logic.enrich import enrich_movies
from tracker.logic.upcoming import CacheBuildError
from tracker.utils.dates import format_date, now_in_tz, today_in_tz
from tracker.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

CACHE_KEY = "recent_movies_digital"
CACHE_TTL = int(os.environ.get("RECENT_CACHE_TTL", 24 * 60 * 60))
DAYS_BACK = 90
VOTE_COUNT_MIN = 10
VOTE_AVERAGE_MIN = 6.0
TARGET_COUNT = 100
MAX_PAGES = 15
# TMDB's release_date is the primary date, so search a little wider than the window
SEARCH_MARGIN_DAYS = 30


@dataclass(slots=True)
class RecentFilters:
    days_back: int = DAYS_BACK
    vote_count_min: int = VOTE_COUNT_MIN
    vote_average_min: float = VOTE_AVERAGE_MIN

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RecentFilters:
        data = data or {}
        return cls(
            days_back=int(data.get("days_back", DAYS_BACK)),
            vote_count_min=int(data.get("vote_count_min", VOTE_COUNT_MIN)),
            vote_average_min=float(data.get("vote_average_min", VOTE_AVERAGE_MIN)),
        )


@dataclass(slots=True)
class RecentBuildStats:
    total_fetched: int = 0
    total_pages: int = 0
    filtered_count: int = 0
    oldest_date: str | None = None
    newest_date: str | None = None
    enrichment_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class RecentCacheData:
    movies: list[EnrichedMovie]
    total_count: int
    cache_built_at: str
    filters: RecentFilters = field(default_factory=RecentFilters)

    def to_dict(self) -> dict[str, Any]:
        return {
            "movies": [movie.to_dict() for movie in self.movies],
            "total_count": self.total_count,
            "cache_built_at": self.cache_built_at,
            "filters": self.filters.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RecentCacheData:
        movies = [EnrichedMovie.from_dict(item) for item in data.get("movies") or []]
        return cls(
            movies=movies,
            total_count=int(data.get("total_count", len(movies))),
            cache_built_at=data.get("cache_built_at") or "",
            filters=RecentFilters.from_dict(data.get("filters")),
        )


@dataclass(slots=True)
class RecentBuildResult:
    success: bool
    stats: RecentBuildStats
    data: RecentCacheData | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "stats": self.stats.to_dict()}
        if self.data is not None:
            payload["cache_built_at"] = self.data.cache_built_at
            payload["filters"] = self.data.filters.to_dict()
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class RecentPage:
    movies: list[EnrichedMovie]
    page: int
    total_pages: int
    total_results: int
    filters: RecentFilters

    def to_dict(self) -> dict[str, Any]:
        return {
            "movies": [movie.to_dict() for movie in self.movies],
            "pagination": {
                "page": self.page,
                "total_pages": self.total_pages,
                "total_results": self.total_results,
            },
            "filters": self.filters.to_dict(),
        }


def digital_date(movie: EnrichedMovie) -> date | None:
    return movie.unified_dates.streaming


class RecentCacheBuilder:
    def __init__(
        self,
        search,
        details,
        cache,
        *,
        rate_limiter: RateLimiter | None = None,
        filters: RecentFilters | None = None,
        target_count: int = TARGET_COUNT,
        max_pages: int = MAX_PAGES,
        enrich_concurrency: int = 5,
        ttl: int = CACHE_TTL,
    ) -> None:
        self.search = search
        self.details = details
        self.cache = cache
        self.rate_limiter = rate_limiter or RateLimiter()
        self.filters = filters or RecentFilters()
        self.target_count = target_count
        self.max_pages = max_pages
        self.enrich_concurrency = enrich_concurrency
        self.ttl = ttl

    async def build_cache(self, today: date | None = None) -> RecentBuildResult:
        """Page through recent digital releases until enough fall inside the window.

        Paging stops at ``target_count`` kept movies, ``max_pages`` or an empty
        page. Any provider or cache error fails the whole build.
        """
        stats = RecentBuildStats()
        try:
            today = today or today_in_tz()
            since = today - timedelta(days=self.filters.days_back)
            logger.info("Building recent digital cache for %s to %s", since, today)

            seen = MovieIdSet()
            recent: list[EnrichedMovie] = []
            page = 1
            while len(recent) < self.target_count and page <= self.max_pages:
                await self.rate_limiter.wait("recent")
                results = await self.search.discover_recent_digital(
                    start=since - timedelta(days=SEARCH_MARGIN_DAYS),
                    end=today,
                    vote_count_min=self.filters.vote_count_min,
                    vote_average_min=self.filters.vote_average_min,
                    page=page,
                )
                stats.total_pages += 1
                if not results:
                    break
                fresh = [movie for movie in results if seen.claim(movie.id)]
                stats.total_fetched += len(fresh)
                enriched, failures = await enrich_movies(
                    self.details, fresh, rate_limiter=self.rate_limiter, concurrency=self.enrich_concurrency
                )
                stats.enrichment_failures += failures
                recent.extend(movie for movie in enriched if _within(digital_date(movie), since, today))
                page += 1

            recent.sort(key=digital_date, reverse=True)
            stats.filtered_count = len(recent)
            if recent:
                stats.newest_date = format_date(digital_date(recent[0]))
                stats.oldest_date = format_date(digital_date(recent[-1]))

            data = RecentCacheData(
                movies=recent,
                total_count=len(recent),
                cache_built_at=now_in_tz().isoformat(),
                filters=self.filters,
            )
            await self.cache.set(CACHE_KEY, data.to_dict(), self.ttl)
        except Exception as exc:
            logger.exception("Recent digital cache build failed")
            return RecentBuildResult(success=False, stats=stats, error=str(exc) or type(exc).__name__)

        logger.info(
            "Recent digital cache built: fetched=%s kept=%s pages=%s",
            stats.total_fetched,
            stats.filtered_count,
            stats.total_pages,
        )
        return RecentBuildResult(success=True, stats=stats, data=data)


def _within(value: date | None, since: date, today: date) -> bool:
    return value is not None and since <= value <= today


class RecentReader:
    def __init__(self, cache, builder: RecentCacheBuilder) -> None:
        self.cache = cache
        self.builder = builder

    async def get_recent_movies(self, page: int = 1, limit: int = 30) -> RecentPage:
        if page < 1:
            raise ValueError("page must be >= 1")
        if limit < 1:
            raise ValueError("limit must be > 0")

        cached = await self.cache.get(CACHE_KEY)
        if cached is None:
            logger.info("Recent digital cache miss; building")
            result = await self.builder.build_cache()
            if not result.success or result.data is None:
                raise CacheBuildError(f"Failed to build recent movies cache: {result.error}")
            data = result.data
        else:
            data = RecentCacheData.from_dict(cached)

        start = (page - 1) * limit
        return RecentPage(
            movies=data.movies[start:start + limit],
            page=page,
            total_pages=math.ceil(data.total_count / limit),
            total_results=data.total_count,
            filters=data.filters,
        )

    async def rebuild_cache(self) -> RecentBuildResult:
        """Build over the current key; a failed build leaves it in place."""
        return await self.builder.build_cache()
