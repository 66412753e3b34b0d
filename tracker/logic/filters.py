"""Validity, quality and ordering rules for upcoming movies."""

from __future__ import annotations

import os
from datetime import date
from typing import Iterable

from tracker.ingest.models import EnrichedMovie, MovieSummary
from tracker.utils.dates import parse_iso_date

RERELEASE_VOTE_COUNT = int(os.environ.get("RERELEASE_VOTE_COUNT", 1500))
MIN_RUNTIME = int(os.environ.get("MIN_RUNTIME", 60))


def is_upcoming_candidate(movie: MovieSummary, today: date, cutoff: date) -> bool:
    released = parse_iso_date(movie.release_date)
    if released is None:
        return False
    if released <= today or released > cutoff:
        return False
    if not movie.poster_path:
        return False
    current_year = today.year
    # high vote counts on a "future" date are re-releases
    if movie.vote_count > RERELEASE_VOTE_COUNT and released.year <= current_year + 1:
        return False
    if released.year < current_year - 1:
        return False
    return True


def has_feature_runtime(movie: EnrichedMovie) -> bool:
    return not movie.runtime or movie.runtime >= MIN_RUNTIME


def already_released(movie: EnrichedMovie, today: date) -> bool:
    return any(value <= today for value in movie.unified_dates.known())


def beyond_window(movie: EnrichedMovie, cutoff: date) -> bool:
    earliest = movie.unified_dates.earliest()
    return earliest is not None and earliest > cutoff


def sort_by_popularity(movies: Iterable[EnrichedMovie]) -> list[EnrichedMovie]:
    return sorted(movies, key=lambda movie: movie.popularity, reverse=True)


def sort_by_release_date(movies: Iterable[EnrichedMovie]) -> list[EnrichedMovie]:
    """Earliest known unified date first; movies with no known date trail."""

    def key(movie: EnrichedMovie) -> tuple[bool, date]:
        earliest = movie.unified_dates.earliest()
        return (earliest is None, earliest or date.max)

    return sorted(movies, key=key)
