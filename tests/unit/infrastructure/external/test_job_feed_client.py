"""Tests for HttpJobFeedClient and listing normalization."""

import httpx
import pytest

from src.domain.shared.exceptions import JobFeedError
from src.infrastructure.external.job_feed_client import HttpJobFeedClient, normalize_listing


def _client(handler) -> HttpJobFeedClient:
    return HttpJobFeedClient("https://feed.test/api", transport=httpx.MockTransport(handler))


# ============================================================================
# NORMALIZATION
# ============================================================================


def test_normalize_listing_cleans_fields():
    listing = normalize_listing(
        {
            "id": 42,
            "title": "  Backend Engineer ",
            "skills": ["Python", " ", 3, " SQL "],
            "organization": "Acme",
            "location": None,
        }
    )

    assert listing == {
        "external_id": "42",
        "title": "Backend Engineer",
        "skills": ["Python", "SQL"],
        "organization": "Acme",
        "location": None,
        "description": None,
    }


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "listing",
        {"title": "No id"},
        {"external_id": "e1"},
        {"external_id": "e1", "title": "   "},
    ],
)
def test_normalize_listing_rejects_incomplete(raw):
    assert normalize_listing(raw) is None


def test_normalize_listing_non_list_skills():
    listing = normalize_listing({"external_id": "e1", "title": "Dev", "skills": "Python"})

    assert listing["skills"] == []


# ============================================================================
# HTTP
# ============================================================================


@pytest.mark.asyncio
async def test_fetch_listings_skips_malformed():
    def handler(request):
        assert request.url.path == "/api/sources/remoteok/listings"
        return httpx.Response(
            200,
            json={
                "listings": [
                    {"external_id": "e1", "title": "Dev"},
                    {"title": "missing id"},
                ]
            },
        )

    client = _client(handler)
    listings = await client.fetch_listings("remoteok")
    await client.close()

    assert [item["external_id"] for item in listings] == ["e1"]


@pytest.mark.asyncio
async def test_fetch_listings_accepts_bare_list():
    client = _client(lambda request: httpx.Response(200, json=[{"id": "e9", "title": "QA"}]))

    listings = await client.fetch_listings("board")
    await client.close()

    assert listings[0]["external_id"] == "e9"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, retryable, code",
    [(503, True, "http_503"), (429, True, "http_429"), (404, False, "not_found"), (400, False, "http_400")],
)
async def test_http_errors_are_classified(status, retryable, code):
    client = _client(lambda request: httpx.Response(status))

    with pytest.raises(JobFeedError) as exc_info:
        await client.fetch_listings("remoteok")
    await client.close()

    assert exc_info.value.retryable is retryable
    assert exc_info.value.code == code


@pytest.mark.asyncio
async def test_timeout_is_retryable():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    client = _client(handler)

    with pytest.raises(JobFeedError) as exc_info:
        await client.fetch_listings("remoteok")
    await client.close()

    assert exc_info.value.retryable
    assert exc_info.value.code == "timeout"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [httpx.Response(200, text="<html>"), httpx.Response(200, json={"listings": "none"})],
)
async def test_invalid_body_is_permanent(response):
    client = _client(lambda request: response)

    with pytest.raises(JobFeedError) as exc_info:
        await client.fetch_listings("remoteok")
    await client.close()

    assert not exc_info.value.retryable
    assert exc_info.value.code == "invalid_response"
