"""Templated notification emails for followers and admins."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from tracker.db.models import MovieWithDates, Recipient
from tracker.email.render import render_email
from tracker.utils.esp import EmailMessage, EmailProvider

logger = logging.getLogger(__name__)


def _plural(count: int) -> str:
    return "Movie" if count == 1 else "Movies"


class Notifier:
    def __init__(self, provider: EmailProvider | None = None) -> None:
        self.provider = provider or EmailProvider()

    async def send_date_discovered_email(self, user: Recipient, movie: MovieWithDates) -> None:
        await self._send(
            user,
            "date_discovered",
            {"subject": f"Release Date Added: {movie.title}", "movies": [movie]},
        )

    async def send_batch_date_discovered_email(
        self, user: Recipient, movies: Sequence[MovieWithDates]
    ) -> None:
        count = len(movies)
        await self._send(
            user,
            "date_discovered_batch",
            {"subject": f"Release Dates Added: {count} {_plural(count)}", "movies": list(movies)},
        )

    async def send_release_email(self, user: Recipient, movie: MovieWithDates, release_type: str) -> None:
        label = "In Theaters" if release_type == "theatrical" else "Streaming"
        theatrical = [movie] if release_type == "theatrical" else []
        streaming = [] if release_type == "theatrical" else [movie]
        await self._send(
            user,
            "release",
            {
                "subject": f"Now Available: {movie.title} ({label})",
                "theatrical": theatrical,
                "streaming": streaming,
            },
        )

    async def send_batch_release_email(
        self,
        user: Recipient,
        theatrical: Sequence[MovieWithDates],
        streaming: Sequence[MovieWithDates],
    ) -> None:
        count = len(theatrical) + len(streaming)
        await self._send(
            user,
            "release",
            {
                "subject": f"{count} {_plural(count)} Available Today!",
                "theatrical": list(theatrical),
                "streaming": list(streaming),
            },
        )

    async def send_admin_notification(self, to: str, subject: str, message: str, details: str | None = None) -> None:
        await self._send(
            Recipient(user_id="admin", email=to),
            "admin",
            {"subject": subject, "message": message, "details": details},
        )

    async def send_test_email(self, to: str) -> None:
        await self._send(
            Recipient(user_id="test", email=to),
            "test",
            {"subject": "Test Email - Movie Release Tracker"},
        )

    async def _send(self, user: Recipient, kind: str, context: dict) -> None:
        subject, html = render_email(kind, {"name": user.name, **context})
        await self.provider.send(EmailMessage(to=user.email, subject=subject, html=html, to_name=user.name))
        logger.info("Sent %s email to %s", kind, user.email)
