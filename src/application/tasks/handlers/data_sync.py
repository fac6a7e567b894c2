"""
Data Sync Handler (queue: data-sync, job: sync-jobs)

Pulls listings from an external job feed and upserts them by external_id.
Feed 5xx and timeouts are retryable (JobFeedError.retryable).
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.application.ports.external_services import CacheProtocol, JobFeedProtocol
from src.application.ports.repositories import JobListingRepositoryProtocol
from src.application.tasks.context import JobContext


class SyncJobsPayload(BaseModel):
    """Payload of sync-jobs jobs."""

    source: str = Field(..., min_length=1, max_length=100)

    model_config = ConfigDict(extra="ignore")


class DataSyncHandler:
    """Handler for sync-jobs jobs."""

    def __init__(
        self,
        feed: JobFeedProtocol,
        listings: JobListingRepositoryProtocol,
        cache: Optional[CacheProtocol] = None,
    ) -> None:
        self._feed = feed
        self._listings = listings
        self._cache = cache

    async def __call__(self, payload: Any, ctx: JobContext) -> dict[str, Any]:
        data = SyncJobsPayload.model_validate(payload)
        ctx.progress(10)

        listings = await self._feed.fetch_listings(data.source)
        ctx.progress(30)
        ctx.raise_if_cancelled()

        synced = await self._listings.upsert_listings(listings)
        ctx.progress(90)

        if self._cache is not None and synced:
            await self._cache.invalidate("jobs:recent")
        ctx.progress(100)

        ctx.log("job sync finished", source=data.source, synced=synced)
        return {"source": data.source, "jobs_synced": synced}
