"""Date discovery job: find newly announced US release dates for followed movies."""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from tracker.db.models import (
    EmailStatus,
    FollowRecord,
    LedgerEntry,
    MovieWithDates,
    NotificationType,
    Recipient,
    ReleaseDateRecord,
    ReleaseType,
)
from tracker.ingest.models import US, us_release_date
from tracker.logic.enrich import PROVIDER_ERRORS
from tracker.utils.dates import format_date, now_in_tz, today_in_tz
from tracker.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

MAX_MOVIES = int(os.environ.get("DISCOVER_MAX_MOVIES", 500))


@dataclass(slots=True)
class DiscoveryResult:
    success: bool = True
    movies_processed: int = 0
    dates_discovered: int = 0
    emails_sent: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "movies_processed": self.movies_processed,
            "dates_discovered": self.dates_discovered,
            "emails_sent": self.emails_sent,
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class _Discovered:
    movie: MovieWithDates
    theatrical: bool
    streaming: bool

    def wanted_by(self, follow: FollowRecord) -> bool:
        return (self.theatrical and follow.follow_type.wants_theatrical) or (
            self.streaming and follow.follow_type.wants_streaming
        )


def _check_order(follow: FollowRecord) -> tuple[bool, float]:
    """Never-checked movies first, then the least recently checked."""
    checked_at = follow.dates_checked_at
    return (checked_at is not None, checked_at.timestamp() if checked_at else 0.0)


class DateDiscoveryJob:
    def __init__(
        self,
        store,
        details,
        notifier,
        *,
        rate_limiter: RateLimiter | None = None,
        max_movies: int = MAX_MOVIES,
    ) -> None:
        self.store = store
        self.details = details
        self.notifier = notifier
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_movies = max_movies

    async def execute(self, today: date | None = None) -> DiscoveryResult:
        today = today or today_in_tz()
        result = DiscoveryResult()

        follows = [follow for follow in self.store.load_follows() if follow.needs_dates()]
        by_movie: dict[int, list[FollowRecord]] = defaultdict(list)
        for follow in follows:
            by_movie[follow.movie_id].append(follow)
        movie_ids = sorted(by_movie, key=lambda movie_id: _check_order(by_movie[movie_id][0]))
        if len(movie_ids) > self.max_movies:
            logger.warning("Checking %s of %s followed movies missing dates", self.max_movies, len(movie_ids))
            movie_ids = movie_ids[: self.max_movies]
        logger.info("Checking %s movies for new release dates", len(movie_ids))

        discovered: dict[int, _Discovered] = {}
        checked: list[int] = []
        for movie_id in movie_ids:
            found = await self._check_movie(movie_id, by_movie[movie_id][0], today, result, checked)
            if found is not None:
                discovered[movie_id] = found
        self.store.mark_checked(checked, now_in_tz())

        if not discovered:
            logger.info("No new release dates discovered")
            return result

        await self._notify(by_movie, discovered, result)
        logger.info(
            "Date discovery finished: movies=%s dates=%s emails=%s errors=%s",
            result.movies_processed,
            result.dates_discovered,
            result.emails_sent,
            len(result.errors),
        )
        return result

    async def _check_movie(
        self,
        movie_id: int,
        follow: FollowRecord,
        today: date,
        result: DiscoveryResult,
        checked: list[int],
    ) -> _Discovered | None:
        await self.rate_limiter.wait("details")
        try:
            detail = await self.details.movie_details(movie_id)
        except PROVIDER_ERRORS as exc:
            logger.warning("Failed to fetch details for movie %s: %s", movie_id, exc)
            result.errors.append({"movie_id": movie_id, "error": str(exc)})
            return None
        result.movies_processed += 1
        checked.append(movie_id)

        theatrical = us_release_date(detail, ReleaseType.THEATRICAL)
        streaming = us_release_date(detail, ReleaseType.STREAMING)
        new_records: list[ReleaseDateRecord] = []
        for release_type, value in ((ReleaseType.THEATRICAL, theatrical), (ReleaseType.STREAMING, streaming)):
            if value is None or follow.has_us_release(release_type):
                continue
            if value <= today:
                # past dates are neither stored nor announced
                logger.info("Ignoring past %s date %s for movie %s", release_type.name.lower(), value, movie_id)
                continue
            new_records.append(
                ReleaseDateRecord(movie_id=movie_id, country=US, release_type=release_type, release_date=value)
            )
        if not new_records:
            return None

        try:
            self.store.upsert_release_dates(new_records)
        except SQLAlchemyError as exc:
            logger.error("Failed to save release dates for movie %s: %s", movie_id, exc)
            result.errors.append({"movie_id": movie_id, "error": str(exc)})
            return None
        result.dates_discovered += len(new_records)

        found_types = {record.release_type for record in new_records}
        return _Discovered(
            movie=MovieWithDates(
                movie_id=movie_id,
                title=follow.title or detail.title,
                poster_path=follow.poster_path or detail.poster_path,
                theatrical_date=theatrical if ReleaseType.THEATRICAL in found_types else None,
                streaming_date=streaming if ReleaseType.STREAMING in found_types else None,
            ),
            theatrical=ReleaseType.THEATRICAL in found_types,
            streaming=ReleaseType.STREAMING in found_types,
        )

    async def _notify(
        self,
        by_movie: dict[int, list[FollowRecord]],
        discovered: dict[int, _Discovered],
        result: DiscoveryResult,
    ) -> None:
        interested = [
            follow
            for movie_id, found in discovered.items()
            for follow in by_movie[movie_id]
            if found.wanted_by(follow)
        ]
        if not interested:
            return

        already = self.store.load_notified(
            [NotificationType.DATE_DISCOVERED],
            {follow.user_id for follow in interested},
            discovered.keys(),
        )

        recipients: dict[str, Recipient] = {}
        queued: dict[str, dict[int, MovieWithDates]] = defaultdict(dict)
        for follow in interested:
            if (follow.user_id, follow.movie_id, NotificationType.DATE_DISCOVERED) in already:
                continue
            recipients.setdefault(follow.user_id, follow.user)
            queued[follow.user_id].setdefault(follow.movie_id, discovered[follow.movie_id].movie)

        entries: list[LedgerEntry] = []
        for user_id, movies in queued.items():
            user = recipients[user_id]
            batch = list(movies.values())
            status = EmailStatus.SENT
            try:
                if len(batch) == 1:
                    await self.notifier.send_date_discovered_email(user, batch[0])
                else:
                    await self.notifier.send_batch_date_discovered_email(user, batch)
                result.emails_sent += 1
            except Exception as exc:
                logger.error("Failed to send date discovery email to %s: %s", user.email, exc)
                result.errors.append({"user_id": user_id, "error": str(exc)})
                status = EmailStatus.FAILED
            entries.extend(
                LedgerEntry(
                    user_id=user_id,
                    movie_id=movie.movie_id,
                    notification_type=NotificationType.DATE_DISCOVERED,
                    email_status=status,
                    metadata={
                        "theatrical_date": format_date(movie.theatrical_date),
                        "streaming_date": format_date(movie.streaming_date),
                    },
                )
                for movie in batch
            )

        self.store.insert_notifications(entries)
