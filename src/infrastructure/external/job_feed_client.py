"""
Job Feed Client

HTTP client for the external job-listing feed consumed by data-sync.

Responsibility:
    - GET {base}/sources/{source}/listings
    - Normalize listings to the columns of the `jobs` table
    - Classify failures into JobFeedError

Business Rules:
    - Listings without external_id or title are skipped (logged)
    - `skills` is coerced to a list of non-empty strings

Error Handling:
    - 5xx, 429, timeouts, transport errors -> retryable
    - 404 (unknown source) and other 4xx -> permanent
    - Body that is not a list (or {"listings": [...]}) -> permanent
"""

import logging
import os
from typing import Any, Optional

import httpx

from src.domain.shared.exceptions import JobFeedError

# Configure logger for this module
logger = logging.getLogger(__name__)

_LISTING_FIELDS = ("organization", "location", "description")


def normalize_listing(raw: Any) -> Optional[dict[str, Any]]:
    """Return a listing ready for upsert, or None if it lacks its keys."""
    if not isinstance(raw, dict):
        return None
    external_id = raw.get("external_id") or raw.get("id")
    title = raw.get("title")
    if not external_id or not isinstance(title, str) or not title.strip():
        return None

    skills = raw.get("skills") or []
    listing: dict[str, Any] = {
        "external_id": str(external_id),
        "title": title.strip(),
        "skills": [s.strip() for s in skills if isinstance(s, str) and s.strip()]
        if isinstance(skills, list)
        else [],
    }
    for key in _LISTING_FIELDS:
        value = raw.get(key)
        listing[key] = value if isinstance(value, str) else None
    return listing


class HttpJobFeedClient:
    """
    JobFeedProtocol implementation over httpx.

    Examples:
        >>> feed = HttpJobFeedClient("https://feed.example.com/api")
        >>> listings = await feed.fetch_listings("remote-boards")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=(base_url or os.getenv("JOB_FEED_BASE_URL", "http://localhost:8080")).rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def fetch_listings(self, source: str) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(f"/sources/{source}/listings")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            retryable = status >= 500 or status == 429
            raise JobFeedError(
                f"Job feed returned {status} for source {source}",
                retryable=retryable,
                code="not_found" if status == 404 else f"http_{status}",
                status_code=status,
            ) from e
        except httpx.TimeoutException as e:
            raise JobFeedError(f"Job feed timed out: {e}", retryable=True, code="timeout") from e
        except httpx.TransportError as e:
            raise JobFeedError(f"Job feed unreachable: {e}", retryable=True, code="transport_error") from e

        try:
            body = response.json()
        except ValueError as e:
            raise JobFeedError("Job feed returned invalid JSON", retryable=False, code="invalid_response") from e

        items = body.get("listings") if isinstance(body, dict) else body
        if not isinstance(items, list):
            raise JobFeedError("Job feed body is not a list", retryable=False, code="invalid_response")

        listings = []
        for raw in items:
            listing = normalize_listing(raw)
            if listing is None:
                logger.warning(f"Skipping malformed listing from {source}")
                continue
            listings.append(listing)

        logger.info(f"Fetched {len(listings)}/{len(items)} listing(s) from {source}")
        return listings

    async def close(self) -> None:
        await self._client.aclose()
