from datetime import timedelta

import httpx
import pytest

from conftest import TODAY, FakeCache, FakeTMDB, detail, summary
from tracker.ingest import DATE_SORT, POPULARITY_SORT, DiscoveryStream
from tracker.ingest.models import EnrichedMovie
from tracker.logic.upcoming import (
    CACHE_KEY_METADATA,
    CACHE_KEY_POPULARITY,
    CACHE_KEY_RELEASE_DATE,
    CACHE_KEYS,
    BuildStats,
    CacheBuildError,
    CacheBuildResult,
    UpcomingCacheBuilder,
    UpcomingCacheData,
    UpcomingReader,
)

EN_POPULAR = DiscoveryStream("en", POPULARITY_SORT, 5)
KO_POPULAR = DiscoveryStream("ko", POPULARITY_SORT, 5)
EN_DATE = DiscoveryStream("en", DATE_SORT, 15)


def build(tmdb, cache, streams, limiter, **kwargs):
    return UpcomingCacheBuilder(tmdb, tmdb, cache, streams=streams, rate_limiter=limiter, **kwargs)


@pytest.mark.asyncio
async def test_build_keeps_only_windowed_movies_with_posters(limiter):
    in_ten = TODAY + timedelta(days=10)
    tmdb = FakeTMDB(
        pages={
            ("en", POPULARITY_SORT): [[
                summary(101, 10, popularity=50),
                summary(102, 200, popularity=90),
                summary(103, 10, poster=None),
            ]],
        },
        details={101: detail(101, theatrical=in_ten)},
    )
    cache = FakeCache()

    result = await build(tmdb, cache, [EN_POPULAR], limiter).build_cache(today=TODAY)

    assert result.success
    assert result.data.total_count == 1
    assert [m.id for m in result.data.popularity_sorted] == [101]
    assert [m.id for m in result.data.release_date_sorted] == [101]
    assert tmdb.detail_calls == [101]
    stored = await cache.get(CACHE_KEY_POPULARITY)
    assert stored[0]["unified_dates"] == {"us_theatrical": in_ten.isoformat(), "streaming": None}
    metadata = await cache.get(CACHE_KEY_METADATA)
    assert metadata["total_count"] == 1
    assert metadata["date_range_end"] == "2026-09-02"
    assert set(cache.ttls.values()) == {24 * 60 * 60}


@pytest.mark.asyncio
async def test_build_deduplicates_across_streams(limiter):
    tmdb = FakeTMDB(
        pages={
            ("en", POPULARITY_SORT): [[summary(1, 10), summary(2, 20)]],
            ("ko", POPULARITY_SORT): [[summary(2, 20), summary(3, 30)]],
        }
    )
    cache = FakeCache()

    result = await build(tmdb, cache, [EN_POPULAR, KO_POPULAR], limiter).build_cache(today=TODAY)

    assert result.stats.duplicates_removed == 1
    assert result.stats.total_fetched == 3
    ids = [m.id for m in result.data.popularity_sorted]
    assert sorted(ids) == [1, 2, 3]
    assert sorted(m.id for m in result.data.release_date_sorted) == sorted(ids)


@pytest.mark.asyncio
async def test_date_stream_stops_at_cutoff(limiter):
    pages = [
        [summary(1, 10), summary(2, 400)],
        [summary(3, 20)],
    ]
    tmdb = FakeTMDB(pages={("en", DATE_SORT): pages})

    result = await build(tmdb, FakeCache(), [EN_DATE], limiter).build_cache(today=TODAY)

    assert tmdb.discover_calls == [("en", DATE_SORT, 1)]
    assert result.stats.found_movies_beyond_cutoff
    assert [m.id for m in result.data.popularity_sorted] == [1]


@pytest.mark.asyncio
async def test_popularity_stream_respects_page_cap(limiter):
    tmdb = FakeTMDB(pages={("en", POPULARITY_SORT): lambda page: [summary(page, 10 + page)]})

    result = await build(tmdb, FakeCache(), [EN_POPULAR], limiter).build_cache(today=TODAY)

    assert [call[2] for call in tmdb.discover_calls] == [1, 2, 3, 4, 5]
    assert result.stats.total_pages == 5
    assert result.data.total_count == 5


@pytest.mark.asyncio
async def test_stream_failure_keeps_other_streams(limiter):
    tmdb = FakeTMDB(
        pages={
            ("en", POPULARITY_SORT): [[summary(1, 10)]],
            ("ko", POPULARITY_SORT): httpx.ConnectError("boom"),
        }
    )

    result = await build(tmdb, FakeCache(), [EN_POPULAR, KO_POPULAR], limiter).build_cache(today=TODAY)

    assert result.success
    assert result.stats.stream_errors == 1
    assert [m.id for m in result.data.popularity_sorted] == [1]


@pytest.mark.asyncio
async def test_enrichment_failure_keeps_movie_without_dates(limiter):
    tmdb = FakeTMDB(
        pages={("en", POPULARITY_SORT): [[summary(1, 10)]]},
        details={1: httpx.ConnectError("timeout")},
    )

    result = await build(tmdb, FakeCache(), [EN_POPULAR], limiter).build_cache(today=TODAY)

    movie = result.data.popularity_sorted[0]
    assert result.stats.enrichment_failures == 1
    assert movie.runtime is None
    assert movie.unified_dates.known() == []


@pytest.mark.asyncio
async def test_enriched_filters_drop_shorts_and_released(limiter):
    tmdb = FakeTMDB(
        pages={("en", POPULARITY_SORT): [[summary(1, 10), summary(2, 10), summary(3, 10)]]},
        details={
            1: detail(1, runtime=12),
            2: detail(2, streaming=TODAY - timedelta(days=3)),
            3: detail(3, theatrical=TODAY + timedelta(days=300)),
        },
    )

    result = await build(tmdb, FakeCache(), [EN_POPULAR], limiter).build_cache(today=TODAY)

    assert result.success
    assert result.data.total_count == 0


@pytest.mark.asyncio
async def test_cache_write_failure_reports_error(limiter):
    tmdb = FakeTMDB(pages={("en", POPULARITY_SORT): [[summary(1, 10)]]})

    result = await build(tmdb, FakeCache(fail_writes=True), [EN_POPULAR], limiter).build_cache(today=TODAY)

    assert not result.success
    assert result.error == "cache unavailable"
    assert result.stats.total_fetched == 1


def _movies(count):
    return [
        EnrichedMovie.from_summary(summary(i, 10, popularity=float(count - i))).to_dict()
        for i in range(1, count + 1)
    ]


async def _prime(cache, count):
    await cache.set_many(
        {
            CACHE_KEY_POPULARITY: _movies(count),
            CACHE_KEY_RELEASE_DATE: _movies(count),
            CACHE_KEY_METADATA: {
                "total_count": count,
                "cache_built_at": "2026-03-02T03:00:00+00:00",
                "date_range_end": "2026-09-02",
            },
        },
        60,
    )


class StubBuilder:
    def __init__(self, cache=None, result=None):
        self.cache = cache
        self.result = result
        self.calls = 0
        self.keys_at_build = None

    async def build_cache(self, today=None):
        self.calls += 1
        if self.cache is not None:
            self.keys_at_build = set(self.cache.values)
        return self.result


def _built(movies):
    return CacheBuildResult(
        success=True,
        stats=BuildStats(),
        data=UpcomingCacheData(
            popularity_sorted=movies,
            release_date_sorted=list(reversed(movies)),
            total_count=len(movies),
            cache_built_at="2026-03-02T03:00:00+00:00",
            date_range_end="2026-09-02",
        ),
    )


@pytest.mark.asyncio
async def test_reader_paginates_cached_projection():
    cache = FakeCache()
    await _prime(cache, 45)
    builder = StubBuilder()
    reader = UpcomingReader(cache, builder)

    page = await reader.get_upcoming_movies(sort_by="popularity", page=3, limit=20)

    assert builder.calls == 0
    assert [m.id for m in page.movies] == [41, 42, 43, 44, 45]
    assert page.pagination.to_dict() == {
        "current_page": 3,
        "total_pages": 3,
        "total_movies": 45,
        "has_next_page": False,
        "has_previous_page": True,
    }

    beyond = await reader.get_upcoming_movies(page=4, limit=20)
    assert beyond.movies == []


@pytest.mark.asyncio
async def test_reader_treats_partial_cache_as_miss():
    cache = FakeCache()
    await cache.set(CACHE_KEY_POPULARITY, _movies(3), 60)
    fresh = [EnrichedMovie.from_summary(summary(7, 10)), EnrichedMovie.from_summary(summary(8, 12))]
    builder = StubBuilder(result=_built(fresh))

    page = await UpcomingReader(cache, builder).get_upcoming_movies(sort_by="release_date", limit=1)

    assert builder.calls == 1
    assert [m.id for m in page.movies] == [8]
    assert page.pagination.total_pages == 2
    assert page.pagination.has_next_page


@pytest.mark.asyncio
async def test_reader_rebuilds_when_other_sort_key_is_missing():
    cache = FakeCache()
    await _prime(cache, 3)
    await cache.delete(CACHE_KEY_RELEASE_DATE)
    fresh = [EnrichedMovie.from_summary(summary(7, 10))]
    builder = StubBuilder(result=_built(fresh))

    page = await UpcomingReader(cache, builder).get_upcoming_movies(sort_by="popularity")

    assert builder.calls == 1
    assert [m.id for m in page.movies] == [7]
    assert page.pagination.total_movies == 1

@pytest.mark.asyncio
async def test_reader_raises_when_rebuild_fails():
    builder = StubBuilder(result=CacheBuildResult(success=False, stats=BuildStats(), error="boom"))

    with pytest.raises(CacheBuildError):
        await UpcomingReader(FakeCache(), builder).get_upcoming_movies()


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [{"sort_by": "title"}, {"page": 0}, {"limit": 0}])
async def test_reader_rejects_invalid_arguments(kwargs):
    with pytest.raises(ValueError):
        await UpcomingReader(FakeCache(), StubBuilder()).get_upcoming_movies(**kwargs)


@pytest.mark.asyncio
async def test_rebuild_cache_deletes_keys_first():
    cache = FakeCache()
    await _prime(cache, 2)
    builder = StubBuilder(cache=cache, result=_built([]))

    await UpcomingReader(cache, builder).rebuild_cache()

    assert builder.keys_at_build == set()
    assert all(key not in cache.values for key in CACHE_KEYS)


@pytest.mark.asyncio
async def test_cache_info_reports_metadata():
    cache = FakeCache()
    reader = UpcomingReader(cache, StubBuilder())
    assert await reader.cache_info() == {"is_cached": False}

    await _prime(cache, 2)
    info = await reader.cache_info()
    assert info["is_cached"]
    assert info["metadata"]["total_count"] == 2
    assert "age_hours" in info
