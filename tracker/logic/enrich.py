"""Release-date enrichment shared by the movie list caches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import httpx

from tracker.ingest.models import EnrichedMovie, MovieSummary, unified_release_dates
from tracker.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

PROVIDER_ERRORS = (httpx.HTTPError, ValueError, KeyError)


async def enrich_movies(
    details,
    movies: Sequence[MovieSummary],
    *,
    rate_limiter: RateLimiter,
    concurrency: int = 5,
) -> tuple[list[EnrichedMovie], int]:
    """Attach runtime and unified US dates, ``concurrency`` requests at a time.

    A movie whose details cannot be fetched is kept without dates. Returns the
    enriched movies in input order and the number of failed lookups.
    """
    concurrency = max(1, concurrency)
    enriched: list[EnrichedMovie] = []
    failures = 0
    for start in range(0, len(movies), concurrency):
        await rate_limiter.wait("enrich")
        batch = movies[start:start + concurrency]
        for movie, ok in await asyncio.gather(*(_enrich_one(details, movie) for movie in batch)):
            enriched.append(movie)
            failures += 0 if ok else 1
    return enriched, failures


async def _enrich_one(details, movie: MovieSummary) -> tuple[EnrichedMovie, bool]:
    try:
        detail = await details.movie_details(movie.id)
    except PROVIDER_ERRORS as exc:
        logger.warning("Release dates unavailable for movie %s: %s", movie.id, exc)
        return EnrichedMovie.from_summary(movie), False
    return (
        EnrichedMovie.from_summary(
            movie,
            runtime=detail.runtime,
            unified_dates=unified_release_dates(detail),
        ),
        True,
    )
