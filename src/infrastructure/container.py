"""
Dispatch Container

Composition root for the dispatch subsystem.

Responsibility:
    - Select the broker from DispatchSettings.broker_url (memory or Redis)
    - Build the collaborators (SQL repositories, object store, LLM, SMTP,
      job feed, cache) and the handler catalogue
    - Freeze the registry and expose JobDispatcher and WorkerPool
    - Close everything it opened, in reverse order

Architecture Notes:
    - Infrastructure Layer (the only place that knows concrete adapters)
    - API lifespan and scripts/run_worker.py both build one container
    - Handlers can be injected directly (tests, partial deployments); the
      collaborators are then never constructed

Examples:
    >>> container = await create_container()
    >>> await container.start_workers()
    >>> job_id = await container.dispatcher.enqueue("analytics", payload)
    >>> await container.aclose()
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

from src.application.ports import CacheProtocol, JobBrokerProtocol
from src.application.services import JobDispatcher
from src.application.tasks import DispatchSettings, Handler, QueueRegistry, WorkerPool
from src.application.tasks.bootstrap import build_registry
from src.application.tasks.handlers import (
    AnalyticsReportHandler,
    BulkEmailHandler,
    DataSyncHandler,
    ResumeExtractHandler,
    UserJobMatchHandler,
)
from src.domain.jobs import constants
from src.infrastructure.ai import OpenAICompatibleClient
from src.infrastructure.email import SmtpEmailSender
from src.infrastructure.external import HttpJobFeedClient
from src.infrastructure.file_storage import LocalObjectStore
from src.infrastructure.persistence.memory import InMemoryJobBroker
from src.infrastructure.persistence.redis import (
    NullCache,
    RedisCache,
    RedisJobBroker,
    close_connections,
    get_redis_client,
)
from src.infrastructure.persistence.sql import (
    SqlAnalyticsRepository,
    SqlJobListingRepository,
    SqlMatchingRepository,
    SqlNotificationRepository,
    SqlResumeRepository,
    dispose_engine,
    get_session_factory,
)

logger = logging.getLogger(__name__)

Closer = Callable[[], Awaitable[Any]]


@dataclass
class DispatchContainer:
    """
    Wired dispatch subsystem.

    Attributes:
        settings: Settings the container was built from
        broker: Broker shared by the dispatcher and the pool
        registry: Frozen queue registry
        dispatcher: Enqueue / status / retry / stats / cancel
        pool: Worker pool, created by start_workers()
        closers: Async close callbacks, run in reverse order by aclose()
    """

    settings: DispatchSettings
    broker: JobBrokerProtocol
    registry: QueueRegistry
    dispatcher: JobDispatcher
    pool: Optional[WorkerPool] = None
    closers: list[Closer] = field(default_factory=list)

    @property
    def broker_kind(self) -> str:
        return getattr(self.broker, "kind", "unknown")

    async def start_workers(self, queues: Optional[list[str]] = None) -> WorkerPool:
        """
        Start a worker pool for the given queues (all registered if None).

        Raises:
            UnknownQueueError: A queue name is not registered
        """
        if self.pool is None:
            self.pool = WorkerPool(self.registry, self.broker, self.settings, queues=queues)
        await self.pool.start()
        return self.pool

    async def aclose(self) -> None:
        """Drain the pool, then close the broker and collaborators."""
        if self.pool is not None:
            await self.pool.shutdown()
            self.pool = None

        await self.broker.close()

        while self.closers:
            closer = self.closers.pop()
            try:
                await closer()
            except Exception as e:
                logger.warning(f"Error while closing dispatch collaborator: {e}")

        logger.info("Dispatch container closed")


async def build_broker(settings: DispatchSettings) -> JobBrokerProtocol:
    """
    Create the broker named by settings.broker_url.

    Raises:
        ValueError: Unsupported broker URL scheme
        redis.exceptions.RedisError: Redis unreachable after connect retries
    """
    if settings.broker_url.startswith("memory://"):
        logger.info("Using in-process job broker")
        return InMemoryJobBroker(crash_allowance=settings.crash_allowance)

    if settings.uses_redis:
        client = await get_redis_client(settings.broker_url)
        logger.info(f"Using Redis job broker (prefix={settings.redis_key_prefix})")
        return RedisJobBroker(
            client,
            prefix=settings.redis_key_prefix,
            crash_allowance=settings.crash_allowance,
        )

    raise ValueError(f"Unsupported BROKER_URL: {settings.broker_url!r}")


async def build_handlers(
    settings: DispatchSettings, closers: list[Closer]
) -> dict[str, Handler]:
    """
    Build the five catalogue handlers with their production collaborators.

    Appends a close callback to `closers` for every collaborator that holds
    connections.

    Raises:
        RuntimeError: DATABASE_URL is not configured
    """
    session_factory = get_session_factory()
    closers.append(dispose_engine)

    cache: CacheProtocol
    if settings.uses_redis:
        cache = RedisCache(await get_redis_client(settings.broker_url))
    else:
        cache = NullCache()

    llm = OpenAICompatibleClient()
    closers.append(llm.close)
    feed = HttpJobFeedClient()
    closers.append(feed.close)

    return {
        constants.QUEUE_RESUME_PROCESSING: ResumeExtractHandler(
            SqlResumeRepository(session_factory), LocalObjectStore(), llm, cache
        ),
        constants.QUEUE_JOB_MATCHING: UserJobMatchHandler(
            SqlMatchingRepository(session_factory), llm, cache
        ),
        constants.QUEUE_EMAIL_NOTIFICATIONS: BulkEmailHandler(
            SqlNotificationRepository(session_factory), SmtpEmailSender()
        ),
        constants.QUEUE_DATA_SYNC: DataSyncHandler(
            feed, SqlJobListingRepository(session_factory), cache
        ),
        constants.QUEUE_ANALYTICS: AnalyticsReportHandler(
            SqlAnalyticsRepository(session_factory), cache
        ),
    }


async def create_container(
    settings: Optional[DispatchSettings] = None,
    handlers: Optional[Mapping[str, Handler]] = None,
    broker: Optional[JobBrokerProtocol] = None,
) -> DispatchContainer:
    """
    Build a DispatchContainer.

    Args:
        settings: Dispatch settings (DispatchSettings.from_env() if None)
        handlers: Queue -> handler; production handlers are built if None
        broker: Pre-built broker; selected from settings if None

    Raises:
        ValueError: Invalid settings
        UnknownQueueError: WORKER_CONCURRENCY names an unknown queue
    """
    settings = settings or DispatchSettings.from_env()
    closers: list[Closer] = []

    if broker is None:
        broker = await build_broker(settings)
        if settings.uses_redis:
            closers.append(close_connections)

    if handlers is None:
        handlers = await build_handlers(settings, closers)

    registry = build_registry(settings, handlers)
    dispatcher = JobDispatcher(registry, broker)

    logger.info(
        f"Dispatch container ready: broker={getattr(broker, 'kind', 'unknown')}, "
        f"queues={', '.join(registry.names())}"
    )
    return DispatchContainer(
        settings=settings,
        broker=broker,
        registry=registry,
        dispatcher=dispatcher,
        closers=closers,
    )
