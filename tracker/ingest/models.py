"""Movie data models shared by the discovery and enrichment steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from tracker.utils.dates import format_date, parse_iso_date

US = "US"

# TMDB release types
PREMIERE = 1
THEATRICAL_LIMITED = 2
THEATRICAL = 3
DIGITAL = 4
PHYSICAL = 5
TV = 6


@dataclass(slots=True)
class MovieSummary:
    id: int
    title: str
    release_date: str | None
    popularity: float = 0.0
    vote_average: float = 0.0
    vote_count: int = 0
    poster_path: str | None = None

    @classmethod
    def from_tmdb(cls, payload: Mapping[str, Any]) -> MovieSummary:
        return cls(
            id=int(payload["id"]),
            title=payload.get("title") or "",
            release_date=payload.get("release_date") or None,
            popularity=float(payload.get("popularity") or 0.0),
            vote_average=float(payload.get("vote_average") or 0.0),
            vote_count=int(payload.get("vote_count") or 0),
            poster_path=payload.get("poster_path") or None,
        )


@dataclass(slots=True)
class CountryRelease:
    country: str
    type: int
    release_date: date | None


@dataclass(slots=True)
class MovieDetail:
    id: int
    title: str
    poster_path: str | None
    runtime: int | None
    releases: list[CountryRelease] = field(default_factory=list)

    @classmethod
    def from_tmdb(cls, payload: Mapping[str, Any]) -> MovieDetail:
        releases: list[CountryRelease] = []
        for country in (payload.get("release_dates") or {}).get("results") or []:
            code = country.get("iso_3166_1")
            for entry in country.get("release_dates") or []:
                releases.append(
                    CountryRelease(
                        country=code,
                        type=int(entry.get("type") or 0),
                        release_date=parse_iso_date(entry.get("release_date")),
                    )
                )
        return cls(
            id=int(payload["id"]),
            title=payload.get("title") or "",
            poster_path=payload.get("poster_path") or None,
            runtime=payload.get("runtime") or None,
            releases=releases,
        )


@dataclass(slots=True)
class UnifiedDates:
    us_theatrical: date | None = None
    streaming: date | None = None

    def known(self) -> list[date]:
        return [value for value in (self.us_theatrical, self.streaming) if value is not None]

    def earliest(self) -> date | None:
        known = self.known()
        return min(known) if known else None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "us_theatrical": format_date(self.us_theatrical),
            "streaming": format_date(self.streaming),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> UnifiedDates:
        data = data or {}
        return cls(
            us_theatrical=parse_iso_date(data.get("us_theatrical")),
            streaming=parse_iso_date(data.get("streaming")),
        )


@dataclass(slots=True)
class EnrichedMovie:
    id: int
    title: str
    release_date: str | None
    popularity: float
    vote_average: float
    vote_count: int
    poster_path: str | None
    runtime: int | None = None
    unified_dates: UnifiedDates = field(default_factory=UnifiedDates)

    @classmethod
    def from_summary(
        cls,
        movie: MovieSummary,
        *,
        runtime: int | None = None,
        unified_dates: UnifiedDates | None = None,
    ) -> EnrichedMovie:
        return cls(
            id=movie.id,
            title=movie.title,
            release_date=movie.release_date,
            popularity=movie.popularity,
            vote_average=movie.vote_average,
            vote_count=movie.vote_count,
            poster_path=movie.poster_path,
            runtime=runtime,
            unified_dates=unified_dates or UnifiedDates(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "release_date": self.release_date,
            "popularity": self.popularity,
            "vote_average": self.vote_average,
            "vote_count": self.vote_count,
            "poster_path": self.poster_path,
            "runtime": self.runtime,
            "unified_dates": self.unified_dates.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EnrichedMovie:
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            release_date=data.get("release_date"),
            popularity=float(data.get("popularity") or 0.0),
            vote_average=float(data.get("vote_average") or 0.0),
            vote_count=int(data.get("vote_count") or 0),
            poster_path=data.get("poster_path"),
            runtime=data.get("runtime"),
            unified_dates=UnifiedDates.from_dict(data.get("unified_dates")),
        )


class MovieIdSet:
    """Movie ids claimed so far in one discovery run."""

    def __init__(self) -> None:
        self._ids: set[int] = set()
        self.duplicates = 0

    def claim(self, movie_id: int) -> bool:
        """Record ``movie_id``; False (and a duplicate counted) if already seen."""
        if movie_id in self._ids:
            self.duplicates += 1
            return False
        self._ids.add(movie_id)
        return True

    def __contains__(self, movie_id: object) -> bool:
        return movie_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


def unified_release_dates(detail: MovieDetail) -> UnifiedDates:
    """Collapse US release entries into a theatrical/streaming pair.

    Wide theatrical (3) always wins over limited (2); the first digital,
    physical or TV entry becomes the streaming date.
    """
    dates = UnifiedDates()
    for release in detail.releases:
        if release.country != US or release.release_date is None:
            continue
        if release.type == THEATRICAL:
            dates.us_theatrical = release.release_date
        elif release.type == THEATRICAL_LIMITED:
            if dates.us_theatrical is None:
                dates.us_theatrical = release.release_date
        elif release.type in (DIGITAL, PHYSICAL, TV):
            if dates.streaming is None:
                dates.streaming = release.release_date
    return dates


def us_release_date(detail: MovieDetail, release_type: int) -> date | None:
    for release in detail.releases:
        if release.country == US and release.type == release_type and release.release_date:
            return release.release_date
    return None
