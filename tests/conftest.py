import json
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from tracker.db.migrate import run_migrations
from tracker.db.schema import follows, movies, release_dates, users
from tracker.ingest.models import CountryRelease, MovieDetail, MovieSummary
from tracker.utils.rate_limit import RateLimiter

TODAY = date(2026, 3, 2)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    run_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def limiter():
    return RateLimiter(interval=0)


def seed(engine, *, users_=(), movies_=(), follows_=(), dates_=()):
    with engine.begin() as conn:
        if users_:
            conn.execute(users.insert(), [dict(row) for row in users_])
        if movies_:
            conn.execute(movies.insert(), [dict(row) for row in movies_])
        if follows_:
            conn.execute(follows.insert(), [dict(row) for row in follows_])
        if dates_:
            conn.execute(release_dates.insert(), [dict(row) for row in dates_])


def summary(movie_id, days_out, *, popularity=10.0, poster="/p.jpg", title=None, today=TODAY, vote_count=0):
    return MovieSummary(
        id=movie_id,
        title=title or f"Movie {movie_id}",
        release_date=(today + timedelta(days=days_out)).isoformat(),
        popularity=popularity,
        vote_count=vote_count,
        poster_path=poster,
    )


def detail(movie_id, *, runtime=110, theatrical=None, streaming=None, limited=None, title=None):
    releases = []
    if limited is not None:
        releases.append(CountryRelease(country="US", type=2, release_date=limited))
    if theatrical is not None:
        releases.append(CountryRelease(country="US", type=3, release_date=theatrical))
    if streaming is not None:
        releases.append(CountryRelease(country="US", type=4, release_date=streaming))
    return MovieDetail(
        id=movie_id,
        title=title or f"Movie {movie_id}",
        poster_path="/p.jpg",
        runtime=runtime,
        releases=releases,
    )


class FakeCache:
    """In-memory stand-in for the Redis cache store; values round-trip through JSON."""

    def __init__(self, *, fail_writes=False):
        self.values = {}
        self.ttls = {}
        self.fail_writes = fail_writes
        self.closed = False

    async def get(self, key):
        raw = self.values.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key, value, ttl):
        await self.set_many({key: value}, ttl)

    async def set_many(self, values, ttl):
        if self.fail_writes:
            raise ConnectionError("cache unavailable")
        for key, value in values.items():
            self.values[key] = json.dumps(value)
            self.ttls[key] = ttl

    async def delete(self, *keys):
        for key in keys:
            self.values.pop(key, None)
            self.ttls.pop(key, None)

    async def close(self):
        self.closed = True


class FakeTMDB:
    """Serves canned discover pages per (language, sort), recent digital pages and movie details."""

    def __init__(self, pages=None, details=None, recent=None):
        self.pages = pages or {}
        self.details = details or {}
        self.recent = recent or []
        self.discover_calls = []
        self.recent_calls = []
        self.detail_calls = []
        self.closed = False

    async def discover_by_date_range(self, *, start, end, sort_by, language, page):
        self.discover_calls.append((language, sort_by, page))
        stream = self.pages.get((language, sort_by), [])
        if isinstance(stream, Exception):
            raise stream
        if callable(stream):
            return stream(page)
        return list(stream[page - 1]) if page <= len(stream) else []

    async def discover_recent_digital(self, *, start, end, vote_count_min, vote_average_min, page):
        self.recent_calls.append((start, end, page))
        if isinstance(self.recent, Exception):
            raise self.recent
        return list(self.recent[page - 1]) if page <= len(self.recent) else []

    async def movie_details(self, movie_id):
        self.detail_calls.append(movie_id)
        value = self.details.get(movie_id)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return detail(movie_id)
        return value

    async def close(self):
        self.closed = True


class RecordingNotifier:
    def __init__(self, fail_for=()):
        self.sent = []
        self.movies = []
        self.fail_for = set(fail_for)

    def _record(self, kind, user, movies):
        if user.email in self.fail_for:
            raise RuntimeError(f"send failed for {user.email}")
        self.sent.append((kind, user.user_id, [movie.movie_id for movie in movies]))
        self.movies.extend(movies)

    async def send_date_discovered_email(self, user, movie):
        self._record("date_discovered", user, [movie])

    async def send_batch_date_discovered_email(self, user, movies):
        self._record("batch_date_discovered", user, movies)

    async def send_release_email(self, user, movie, release_type):
        self._record(f"release_{release_type}", user, [movie])

    async def send_batch_release_email(self, user, theatrical, streaming):
        self._record("batch_release", user, [*theatrical, *streaming])

    async def send_admin_notification(self, to, subject, message, details=None):
        self.sent.append(("admin", to, subject))
