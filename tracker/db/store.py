"""Relational store for follows, release dates and the notification ledger."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine

from tracker.db.models import (
    FollowRecord,
    FollowType,
    LedgerEntry,
    NotificationType,
    Recipient,
    ReleaseDateRecord,
)
from tracker.db.schema import follows, movies, notifications, release_dates, users
from tracker.utils.dates import parse_iso_date

logger = logging.getLogger(__name__)


def _insert(conn: Connection, table):
    if conn.dialect.name == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


class ReleaseStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def load_follows(self) -> list[FollowRecord]:
        """Every follow joined with its user, movie and persisted release dates."""
        stmt = (
            select(
                follows.c.id,
                follows.c.follow_type,
                follows.c.user_id,
                users.c.email,
                users.c.name,
                movies.c.id.label("movie_id"),
                movies.c.title,
                movies.c.poster_path,
                movies.c.overview,
                movies.c.dates_checked_at,
                release_dates.c.country,
                release_dates.c.release_type,
                release_dates.c.release_date,
            )
            .select_from(
                follows.join(users, users.c.id == follows.c.user_id)
                .join(movies, movies.c.id == follows.c.movie_id)
                .outerjoin(release_dates, release_dates.c.movie_id == movies.c.id)
            )
            .order_by(follows.c.id)
        )
        records: dict[int, FollowRecord] = {}
        with self.engine.connect() as conn:
            for row in conn.execute(stmt).mappings():
                record = records.get(row["id"])
                if record is None:
                    record = FollowRecord(
                        follow_id=row["id"],
                        follow_type=FollowType(row["follow_type"]),
                        user=Recipient(user_id=row["user_id"], email=row["email"], name=row["name"]),
                        movie_id=row["movie_id"],
                        title=row["title"],
                        poster_path=row["poster_path"],
                        overview=row["overview"],
                        dates_checked_at=row["dates_checked_at"],
                    )
                    records[row["id"]] = record
                released = parse_iso_date(row["release_date"])
                if row["country"] is not None and released is not None:
                    record.release_dates.append(
                        ReleaseDateRecord(
                            movie_id=row["movie_id"],
                            country=row["country"],
                            release_type=int(row["release_type"]),
                            release_date=released,
                        )
                    )
        return list(records.values())

    def mark_checked(self, movie_ids: Iterable[int], checked_at: datetime) -> None:
        """Stamp movies whose details were fetched by the discovery job."""
        movie_ids = list(movie_ids)
        if not movie_ids:
            return
        with self.engine.begin() as conn:
            conn.execute(update(movies).where(movies.c.id.in_(movie_ids)).values(dates_checked_at=checked_at))

    def upsert_release_dates(self, records: Sequence[ReleaseDateRecord]) -> None:
        if not records:
            return
        with self.engine.begin() as conn:
            stmt = _insert(conn, release_dates)
            stmt = stmt.on_conflict_do_update(
                index_elements=["movie_id", "country", "release_type"],
                set_={"release_date": stmt.excluded.release_date},
            )
            conn.execute(
                stmt,
                [
                    {
                        "movie_id": record.movie_id,
                        "country": record.country,
                        "release_type": int(record.release_type),
                        "release_date": record.release_date,
                    }
                    for record in records
                ],
            )

    def load_notified(
        self,
        notification_types: Iterable[NotificationType],
        user_ids: Iterable[str],
        movie_ids: Iterable[int],
    ) -> set[tuple[str, int, NotificationType]]:
        """Ledger keys already written for the given users and movies."""
        types = [NotificationType(value).value for value in notification_types]
        user_ids = list(user_ids)
        movie_ids = list(movie_ids)
        if not types or not user_ids or not movie_ids:
            return set()
        stmt = select(
            notifications.c.user_id,
            notifications.c.movie_id,
            notifications.c.notification_type,
        ).where(
            notifications.c.notification_type.in_(types),
            notifications.c.user_id.in_(user_ids),
            notifications.c.movie_id.in_(movie_ids),
        )
        with self.engine.connect() as conn:
            return {
                (row.user_id, row.movie_id, NotificationType(row.notification_type))
                for row in conn.execute(stmt)
            }

    def insert_notifications(self, entries: Sequence[LedgerEntry]) -> None:
        """Write ledger rows; rows already present for the same key are left alone."""
        if not entries:
            return
        with self.engine.begin() as conn:
            stmt = _insert(conn, notifications).on_conflict_do_nothing(
                index_elements=["user_id", "movie_id", "notification_type"]
            )
            conn.execute(
                stmt,
                [
                    {
                        "user_id": entry.user_id,
                        "movie_id": entry.movie_id,
                        "notification_type": entry.notification_type.value,
                        "email_status": entry.email_status.value,
                        "metadata": entry.metadata,
                    }
                    for entry in entries
                ],
            )
        logger.info("Recorded %s ledger rows", len(entries))
