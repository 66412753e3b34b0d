"""Release-day job: notify followers when a movie opens in theaters or starts streaming."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from tracker.db.models import (
    EmailStatus,
    FollowRecord,
    LedgerEntry,
    MovieWithDates,
    NotificationType,
    Recipient,
    ReleaseType,
)
from tracker.ingest.models import US
from tracker.utils.dates import format_date, today_in_tz

logger = logging.getLogger(__name__)

LEDGER_TYPES = {
    ReleaseType.THEATRICAL: NotificationType.THEATRICAL_RELEASE,
    ReleaseType.STREAMING: NotificationType.STREAMING_RELEASE,
}


@dataclass(slots=True)
class ReleasesResult:
    success: bool = True
    releases_today: int = 0
    emails_sent: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "releases_today": self.releases_today,
            "emails_sent": self.emails_sent,
            "errors": list(self.errors),
        }


def _movie_with_dates(follow: FollowRecord) -> MovieWithDates:
    dates = {
        rd.release_type: rd.release_date
        for rd in follow.release_dates
        if rd.country == US
    }
    return MovieWithDates(
        movie_id=follow.movie_id,
        title=follow.title,
        poster_path=follow.poster_path,
        theatrical_date=dates.get(ReleaseType.THEATRICAL),
        streaming_date=dates.get(ReleaseType.STREAMING),
    )


def _wanted_today(follow: FollowRecord, today: date) -> list[ReleaseType]:
    releasing = follow.us_releases_on(today)
    wanted: list[ReleaseType] = []
    if ReleaseType.THEATRICAL in releasing and follow.follow_type.wants_theatrical:
        wanted.append(ReleaseType.THEATRICAL)
    if ReleaseType.STREAMING in releasing and follow.follow_type.wants_streaming:
        wanted.append(ReleaseType.STREAMING)
    return wanted


class DailyReleasesJob:
    def __init__(self, store, notifier) -> None:
        self.store = store
        self.notifier = notifier

    async def execute(self, today: date | None = None) -> ReleasesResult:
        today = today or today_in_tz()
        result = ReleasesResult()

        due: list[tuple[FollowRecord, ReleaseType]] = [
            (follow, release_type)
            for follow in self.store.load_follows()
            for release_type in _wanted_today(follow, today)
        ]
        result.releases_today = len({(follow.movie_id, release_type) for follow, release_type in due})
        if not due:
            logger.info("No followed releases on %s", today)
            return result

        already = self.store.load_notified(
            LEDGER_TYPES.values(),
            {follow.user_id for follow, _ in due},
            {follow.movie_id for follow, _ in due},
        )

        recipients: dict[str, Recipient] = {}
        queued: dict[str, dict[ReleaseType, dict[int, MovieWithDates]]] = defaultdict(
            lambda: {ReleaseType.THEATRICAL: {}, ReleaseType.STREAMING: {}}
        )
        for follow, release_type in due:
            if (follow.user_id, follow.movie_id, LEDGER_TYPES[release_type]) in already:
                continue
            recipients.setdefault(follow.user_id, follow.user)
            queued[follow.user_id][release_type].setdefault(follow.movie_id, _movie_with_dates(follow))

        entries: list[LedgerEntry] = []
        for user_id, by_type in queued.items():
            user = recipients[user_id]
            theatrical = list(by_type[ReleaseType.THEATRICAL].values())
            streaming = list(by_type[ReleaseType.STREAMING].values())
            status = EmailStatus.SENT
            try:
                if len(theatrical) + len(streaming) == 1:
                    if theatrical:
                        await self.notifier.send_release_email(user, theatrical[0], "theatrical")
                    else:
                        await self.notifier.send_release_email(user, streaming[0], "streaming")
                else:
                    await self.notifier.send_batch_release_email(user, theatrical, streaming)
                result.emails_sent += 1
            except Exception as exc:
                logger.error("Failed to send release email to %s: %s", user.email, exc)
                result.errors.append({"user_id": user_id, "error": str(exc)})
                status = EmailStatus.FAILED
            for release_type, movies in ((ReleaseType.THEATRICAL, theatrical), (ReleaseType.STREAMING, streaming)):
                entries.extend(
                    LedgerEntry(
                        user_id=user_id,
                        movie_id=movie.movie_id,
                        notification_type=LEDGER_TYPES[release_type],
                        email_status=status,
                        metadata={"release_date": format_date(today)},
                    )
                    for movie in movies
                )

        self.store.insert_notifications(entries)
        logger.info(
            "Daily releases finished: releases=%s emails=%s errors=%s",
            result.releases_today,
            result.emails_sent,
            len(result.errors),
        )
        return result
