"""
GetQueueStatsQuery - CQRS Read Query

Per-queue counters for every registered queue.
"""

from typing import Optional

from pydantic import BaseModel

from src.application.services.job_dispatcher import JobDispatcher
from src.domain.jobs import QueueStats


class GetQueueStatsQuery(BaseModel):
    """Optional filter on one queue name."""

    queue: Optional[str] = None


class GetQueueStatsQueryHandler:
    def __init__(self, dispatcher: JobDispatcher) -> None:
        self._dispatcher = dispatcher

    async def handle(self, query: GetQueueStatsQuery) -> list[QueueStats]:
        """
        Raises:
            UnknownQueueError: Filter names an unregistered queue
            BrokerUnavailableError: Broker I/O failed
        """
        if query.queue is not None:
            self._dispatcher.registry.get(query.queue)
            return [s for s in await self._dispatcher.stats() if s.queue == query.queue]
        return await self._dispatcher.stats()
