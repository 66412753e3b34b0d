"""TMDB discover and detail client."""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any

import httpx

from tracker.ingest.models import MovieDetail, MovieSummary
from tracker.utils.dates import format_date
from tracker.utils.env import require_env
from tracker.utils.retry import retry_async

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
DEFAULT_TIMEOUT = 10.0
RECENT_RELEASE_TYPES = "4|5|6"
RECENT_LANGUAGES = "en|es|fr|de|ja|ko|it|pt"


class TMDBClient:
    def __init__(
        self,
        api_key: str,
        *,
        session: httpx.AsyncClient | None = None,
        base_url: str = TMDB_BASE_URL,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        timeout = float(os.environ.get("TMDB_TIMEOUT", DEFAULT_TIMEOUT))
        self.session = session or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_env(cls) -> TMDBClient:
        return cls(require_env("TMDB_API_KEY"))

    async def close(self) -> None:
        await self.session.aclose()

    async def discover_by_date_range(
        self,
        *,
        start: date,
        end: date,
        sort_by: str,
        language: str,
        page: int,
    ) -> list[MovieSummary]:
        params = {
            "primary_release_date.gte": format_date(start),
            "primary_release_date.lte": format_date(end),
            "with_original_language": language,
            "sort_by": sort_by,
            "page": page,
            "include_adult": "false",
        }
        data = await self._get("/discover/movie", params)
        results = data.get("results") or []
        return [MovieSummary.from_tmdb(item) for item in results if item.get("id") is not None]

    async def discover_recent_digital(
        self,
        *,
        start: date,
        end: date,
        vote_count_min: int,
        vote_average_min: float,
        page: int,
    ) -> list[MovieSummary]:
        """Digital, physical or TV releases in ``[start, end]``, newest first."""
        params = {
            "release_date.gte": format_date(start),
            "release_date.lte": format_date(end),
            "with_release_type": RECENT_RELEASE_TYPES,
            "with_original_language": RECENT_LANGUAGES,
            "vote_count.gte": vote_count_min,
            "vote_average.gte": vote_average_min,
            "sort_by": "release_date.desc",
            "page": page,
            "include_adult": "false",
        }
        data = await self._get("/discover/movie", params)
        results = data.get("results") or []
        return [
            MovieSummary.from_tmdb(item)
            for item in results
            if item.get("id") is not None and not item.get("adult")
        ]

    async def movie_details(self, movie_id: int) -> MovieDetail:
        data = await self._get(f"/movie/{movie_id}", {"append_to_response": "release_dates"})
        return MovieDetail.from_tmdb(data)

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        response = await retry_async(self.session.get)(url, params={**params, "api_key": self.api_key})
        response.raise_for_status()
        logger.debug("TMDB %s ok", path)
        return response.json()
