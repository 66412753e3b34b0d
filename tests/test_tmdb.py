import json
from datetime import date
from pathlib import Path

import httpx
import pytest
import respx

from tracker.ingest.models import DIGITAL, THEATRICAL, unified_release_dates, us_release_date
from tracker.ingest.tmdb import TMDB_BASE_URL, TMDBClient
from tracker.utils.esp import BREVO_ENDPOINT, EmailMessage, EmailProvider
from tracker.utils.healthcheck import ping_healthcheck

FIXTURES = Path(__file__).parent / "fixtures" / "http"


def load_fixture(path: str) -> str:
    return (FIXTURES / path).read_text()


@pytest.mark.asyncio
async def test_discover_sends_window_filters_and_parses_results():
    async with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{TMDB_BASE_URL}/discover/movie").mock(
            return_value=httpx.Response(200, text=load_fixture("tmdb/discover_en_popularity.json"))
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            client = TMDBClient("key", session=session)
            movies = await client.discover_by_date_range(
                start=date(2026, 10, 18),
                end=date(2027, 4, 18),
                sort_by="popularity.desc",
                language="en",
                page=2,
            )
    params = route.calls.last.request.url.params
    assert params["primary_release_date.gte"] == "2026-10-18"
    assert params["primary_release_date.lte"] == "2027-04-18"
    assert params["with_original_language"] == "en"
    assert params["sort_by"] == "popularity.desc"
    assert params["page"] == "2"
    assert params["include_adult"] == "false"
    assert params["api_key"] == "key"
    assert [movie.id for movie in movies] == [693134, 1011985]
    assert movies[0].popularity == 812.4
    assert movies[1].release_date is None
    assert movies[1].poster_path is None


@pytest.mark.asyncio
async def test_recent_digital_discover_filters_by_votes_and_drops_adult_titles():
    async with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{TMDB_BASE_URL}/discover/movie").mock(
            return_value=httpx.Response(200, text=load_fixture("tmdb/discover_recent_digital.json"))
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            movies = await TMDBClient("key", session=session).discover_recent_digital(
                start=date(2026, 6, 20),
                end=date(2026, 10, 18),
                vote_count_min=10,
                vote_average_min=6.0,
                page=3,
            )
    params = route.calls.last.request.url.params
    assert params["release_date.gte"] == "2026-06-20"
    assert params["release_date.lte"] == "2026-10-18"
    assert params["with_release_type"] == "4|5|6"
    assert params["vote_count.gte"] == "10"
    assert params["vote_average.gte"] == "6.0"
    assert params["sort_by"] == "release_date.desc"
    assert params["page"] == "3"
    assert [movie.id for movie in movies] == [840705, 573435]
    assert movies[0].vote_count == 1203

@pytest.mark.asyncio
async def test_movie_details_parse_us_release_dates():
    async with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{TMDB_BASE_URL}/movie/693134").mock(
            return_value=httpx.Response(200, text=load_fixture("tmdb/movie_693134.json"))
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            detail = await TMDBClient("key", session=session).movie_details(693134)
    assert route.calls.last.request.url.params["append_to_response"] == "release_dates"
    assert detail.runtime == 166
    assert us_release_date(detail, THEATRICAL) == date(2026, 12, 18)
    assert us_release_date(detail, DIGITAL) == date(2027, 2, 9)
    dates = unified_release_dates(detail)
    assert dates.us_theatrical == date(2026, 12, 18)
    assert dates.streaming == date(2027, 2, 9)


@pytest.mark.asyncio
async def test_rate_limited_request_is_retried():
    async with respx.mock() as router:
        router.get(f"{TMDB_BASE_URL}/movie/693134").mock(
            side_effect=[
                httpx.Response(429, headers={"Retry-After": "0"}),
                httpx.Response(200, text=load_fixture("tmdb/movie_693134.json")),
            ]
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            detail = await TMDBClient("key", session=session).movie_details(693134)
    assert detail.title == "Dune: Part Three"


@pytest.mark.asyncio
async def test_not_found_raises_http_error():
    async with respx.mock() as router:
        router.get(f"{TMDB_BASE_URL}/movie/1").mock(return_value=httpx.Response(404, json={"status_code": 34}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            with pytest.raises(httpx.HTTPStatusError):
                await TMDBClient("key", session=session).movie_details(1)


@pytest.mark.asyncio
async def test_brevo_payload(monkeypatch):
    monkeypatch.setenv("ESP_PROVIDER", "brevo")
    monkeypatch.setenv("BREVO_API_KEY", "xkeysib-test")
    monkeypatch.setenv("EMAIL_FROM", "alerts@example.com")
    monkeypatch.setenv("EMAIL_FROM_NAME", "Release Alerts")
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(BREVO_ENDPOINT).mock(return_value=httpx.Response(201, json={"messageId": "1"}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            provider = EmailProvider(session=session)
            await provider.send(EmailMessage(to="ada@example.com", subject="Hi", html="<p>Hi</p>", to_name="Ada"))
    request = route.calls.last.request
    assert request.headers["api-key"] == "xkeysib-test"
    assert json.loads(request.content) == {
        "sender": {"name": "Release Alerts", "email": "alerts@example.com"},
        "to": [{"email": "ada@example.com", "name": "Ada"}],
        "subject": "Hi",
        "htmlContent": "<p>Hi</p>",
    }


@pytest.mark.asyncio
async def test_brevo_requires_api_key(monkeypatch):
    monkeypatch.setenv("ESP_PROVIDER", "brevo")
    monkeypatch.delenv("BREVO_API_KEY", raising=False)
    with pytest.raises(EnvironmentError):
        await EmailProvider().send(EmailMessage(to="ada@example.com", subject="Hi", html=""))


@pytest.mark.asyncio
async def test_healthcheck_pings_fail_endpoint():
    async with respx.mock(assert_all_called=True) as router:
        router.get("https://hc-ping.com/abc/fail").mock(return_value=httpx.Response(200))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            outcome = await ping_healthcheck("https://hc-ping.com/abc", success=False, session=session)
    assert outcome == {"attempted": True, "success": True, "url": "https://hc-ping.com/abc/fail", "status": 200}
    assert await ping_healthcheck(None, success=True) == {"attempted": False, "success": False}


@pytest.mark.asyncio
async def test_healthcheck_errors_are_reported_not_raised():
    async with respx.mock() as router:
        router.get("https://hc-ping.com/abc").mock(side_effect=httpx.ConnectError("down"))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            outcome = await ping_healthcheck("https://hc-ping.com/abc", success=True, session=session)
    assert outcome["attempted"] and not outcome["success"]
    assert outcome["error"] == "down"
