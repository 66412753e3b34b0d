"""Follow, release date and ledger records."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from tracker.ingest.models import DIGITAL, THEATRICAL, US


class FollowType(str, enum.Enum):
    THEATRICAL = "THEATRICAL"
    STREAMING = "STREAMING"
    BOTH = "BOTH"

    @property
    def wants_theatrical(self) -> bool:
        return self in (FollowType.THEATRICAL, FollowType.BOTH)

    @property
    def wants_streaming(self) -> bool:
        return self in (FollowType.STREAMING, FollowType.BOTH)


class ReleaseType(enum.IntEnum):
    THEATRICAL = THEATRICAL
    STREAMING = DIGITAL


class NotificationType(str, enum.Enum):
    DATE_DISCOVERED = "DATE_DISCOVERED"
    THEATRICAL_RELEASE = "THEATRICAL_RELEASE"
    STREAMING_RELEASE = "STREAMING_RELEASE"


class EmailStatus(str, enum.Enum):
    SENT = "SENT"
    FAILED = "FAILED"


@dataclass(slots=True)
class ReleaseDateRecord:
    movie_id: int
    country: str
    release_type: int
    release_date: date


@dataclass(slots=True)
class Recipient:
    user_id: str
    email: str
    name: str | None = None


@dataclass(slots=True)
class FollowRecord:
    follow_id: int
    follow_type: FollowType
    user: Recipient
    movie_id: int
    title: str
    poster_path: str | None = None
    overview: str | None = None
    release_dates: list[ReleaseDateRecord] = field(default_factory=list)
    dates_checked_at: datetime | None = None

    @property
    def user_id(self) -> str:
        return self.user.user_id

    def has_us_release(self, release_type: int) -> bool:
        return any(rd.country == US and rd.release_type == release_type for rd in self.release_dates)

    def needs_dates(self) -> bool:
        missing_theatrical = not self.has_us_release(ReleaseType.THEATRICAL)
        missing_streaming = not self.has_us_release(ReleaseType.STREAMING)
        if self.follow_type is FollowType.THEATRICAL:
            return missing_theatrical
        if self.follow_type is FollowType.STREAMING:
            return missing_streaming
        return missing_theatrical or missing_streaming

    def us_releases_on(self, day: date) -> set[int]:
        return {
            rd.release_type
            for rd in self.release_dates
            if rd.country == US and rd.release_date == day
        }


@dataclass(slots=True)
class MovieWithDates:
    movie_id: int
    title: str
    poster_path: str | None
    theatrical_date: date | None = None
    streaming_date: date | None = None


@dataclass(slots=True)
class LedgerEntry:
    user_id: str
    movie_id: int
    notification_type: NotificationType
    email_status: EmailStatus
    metadata: dict[str, Any] = field(default_factory=dict)
