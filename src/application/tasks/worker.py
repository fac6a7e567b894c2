"""
Worker Pool

Per-queue asyncio consumers that reserve jobs, drive handlers, keep leases
alive and translate handler outcomes into broker transitions.

Responsibility:
    - Reserve loop per logical worker (poll with idle wait)
    - Run each handler as its own task with a fresh JobContext
    - Lease keeper: heartbeat at visibility/3, poll for operator cancel
    - Classify outcomes (completed / retry with backoff / failed)
    - Graceful shutdown: stop reserving, drain, signal cancellation,
      release leases of jobs that did not finish
    - Retention sweeper for terminal jobs
    - Log each job with memory usage (psutil)

Architecture Notes:
    - Part of Application Layer (orchestration)
    - Parallel workers within a queue; one handler at a time per worker
    - Cancellation is cooperative first (ctx.cancelled(), ctx.sleep()),
      then the handler task is cancelled after a short grace window

Business Rules:
    - Retry only when the error is retryable and attempts_made + 1 < attempts_max
    - Permanent errors and operator cancels finalize as failed immediately
    - Lease loss abandons the attempt without any broker write
    - Shutdown past the drain deadline releases the lease (attempt not consumed)
      when the handler stopped as cancelled; its own errors finalize as usual
"""

import asyncio
import logging
import os
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import psutil
from pydantic import BaseModel, ValidationError

from src.application.ports.job_broker import JobBrokerProtocol
from src.application.tasks.context import CancelReason, JobContext
from src.application.tasks.dispatch_config import DispatchSettings
from src.application.tasks.registry import QueueDefinition, QueueRegistry
from src.domain.jobs import ErrorCause, Job, JobError, now_ms
from src.domain.shared.exceptions import (
    BrokerUnavailableError,
    DependencyError,
    DomainException,
    JobCancelledError,
    JobHandlerError,
    LeaseLostError,
)

# Configure logger for worker operations
logger = logging.getLogger(__name__)

# Extra time after the shutdown grace for workers to write their release
_FINALIZE_MARGIN_SECONDS = 2.0

_process = psutil.Process(os.getpid())


def _log_with_memory(stage: str, message: str) -> None:
    memory_mb = _process.memory_info().rss / 1024 / 1024
    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    logger.info(f"{timestamp} | {memory_mb:.1f}MB | {stage} | {message}")


def is_retryable(error: BaseException) -> bool:
    """
    Classify a handler error.

    - JobHandlerError / DependencyError: their own retryable flag
    - Other domain errors and payload validation errors: permanent
    - Anything else (unclassified): retryable
    """
    if isinstance(error, (JobHandlerError, DependencyError)):
        return bool(error.retryable)
    if isinstance(error, (DomainException, ValidationError)):
        return False
    return True


def _to_jsonable(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result


@dataclass
class _Outcome:
    succeeded: bool
    result: Any = None
    error: Optional[BaseException] = None


class Worker:
    """
    One logical consumer of a queue.

    Examples:
        >>> worker = Worker(definition, broker, settings, stop_event, "analytics-1")
        >>> await worker.run()  # until stop_event is set
    """

    def __init__(
        self,
        definition: QueueDefinition,
        broker: JobBrokerProtocol,
        settings: DispatchSettings,
        stop_event: asyncio.Event,
        worker_id: str,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.definition = definition
        self.worker_id = worker_id
        self.jobs_processed = 0
        self._broker = broker
        self._settings = settings
        self._stop_event = stop_event
        self._rng = rng or random.Random()
        self._ctx: Optional[JobContext] = None
        self._handler_task: Optional[asyncio.Task] = None
        self._hard_cancel: Optional[asyncio.TimerHandle] = None

    @property
    def busy(self) -> bool:
        return self._ctx is not None

    @property
    def current_job_id(self) -> Optional[str]:
        return self._ctx.job_id if self._ctx else None

    # ------------------------------------------------------------------
    # Reserve loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        queue = self.definition.name
        logger.info(f"Worker {self.worker_id} started for queue {queue}")

        while not self._stop_event.is_set():
            try:
                job = await self._broker.reserve(queue, self.definition.visibility_ms)
            except BrokerUnavailableError as e:
                logger.warning(f"Worker {self.worker_id}: broker unavailable, backing off: {e}")
                await self._idle()
                continue
            except Exception as e:
                logger.error(
                    f"Worker {self.worker_id}: unexpected error while reserving: {e}",
                    exc_info=True,
                )
                await self._idle()
                continue

            if job is None:
                await self._idle()
                continue

            try:
                await self.process(job)
            except Exception as e:
                logger.error(
                    f"Worker {self.worker_id}: unexpected error while processing job {job.id}: {e}",
                    exc_info=True,
                )

        logger.info(f"Worker {self.worker_id} stopped after {self.jobs_processed} job(s)")

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(
                self._stop_event.wait(), timeout=self._settings.poll_interval_seconds
            )
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # One job
    # ------------------------------------------------------------------

    async def process(self, job: Job) -> None:
        """Drive one reserved job to a broker transition (or abandon it)."""
        ctx = JobContext(job, self._broker)
        self._ctx = ctx
        started = time.monotonic()
        _log_with_memory(
            "START",
            f"Job {job.id} ({job.queue}/{job.name}) attempt {ctx.attempt}/{job.attempts_max} "
            f"on {self.worker_id}",
        )

        handler_task = asyncio.create_task(
            self.definition.handler(job.payload, ctx), name=f"job-{job.id}"
        )
        self._handler_task = handler_task
        keeper = asyncio.create_task(self._keep_lease(job, ctx), name=f"lease-{job.id}")

        try:
            outcome = await self._wait_for_handler(handler_task, ctx)
            keeper.cancel()
            await asyncio.gather(keeper, return_exceptions=True)
            await ctx.flush_progress()
            await self._finalize(job, ctx, outcome)
        finally:
            keeper.cancel()
            if not handler_task.done():
                handler_task.cancel()
            if self._hard_cancel is not None:
                self._hard_cancel.cancel()
                self._hard_cancel = None
            self._ctx = None
            self._handler_task = None

        self.jobs_processed += 1
        _log_with_memory(
            "FINISH", f"Job {job.id} handled in {time.monotonic() - started:.3f}s"
        )

    async def _wait_for_handler(self, task: asyncio.Task, ctx: JobContext) -> _Outcome:
        # asyncio.wait keeps a cancellation of this worker from leaking into the handler
        await asyncio.wait({task})

        if task.cancelled():
            reason = ctx.cancel_reason.value if ctx.cancel_reason else "unknown"
            return _Outcome(succeeded=False, error=JobCancelledError(f"Job cancelled ({reason})"))

        error = task.exception()
        if error is not None:
            return _Outcome(succeeded=False, error=error)
        return _Outcome(succeeded=True, result=_to_jsonable(task.result()))

    async def _keep_lease(self, job: Job, ctx: JobContext) -> None:
        visibility_ms = self.definition.visibility_ms
        heartbeat_interval = visibility_ms / 3000
        tick = min(heartbeat_interval, self._settings.cancel_poll_interval_seconds)
        last_heartbeat = time.monotonic()

        while True:
            await asyncio.sleep(tick)

            if time.monotonic() - last_heartbeat >= heartbeat_interval:
                try:
                    await self._broker.heartbeat(job.id, job.lease_token, visibility_ms)
                    last_heartbeat = time.monotonic()
                    logger.debug(f"Job {job.id}: lease extended by {visibility_ms}ms")
                except LeaseLostError as e:
                    logger.warning(f"Job {job.id}: {e.reason}, cancelling attempt {ctx.attempt}")
                    self.signal_cancel(CancelReason.LEASE_LOST, self._settings.cancel_grace_seconds)
                    return
                except BrokerUnavailableError as e:
                    logger.warning(f"Job {job.id}: heartbeat failed, broker unavailable: {e}")
                except Exception as e:
                    logger.error(f"Job {job.id}: heartbeat failed: {e}", exc_info=True)

            if ctx.cancelled():
                continue
            try:
                if await self._broker.is_cancel_requested(job.id):
                    self.signal_cancel(CancelReason.OPERATOR, self._settings.cancel_grace_seconds)
            except BrokerUnavailableError as e:
                logger.warning(f"Job {job.id}: cancel check failed, broker unavailable: {e}")
            except Exception as e:
                logger.error(f"Job {job.id}: cancel check failed: {e}", exc_info=True)

    def signal_cancel(self, reason: CancelReason, grace_seconds: float) -> None:
        """
        Ask the running handler to stop; cancel its task after grace_seconds.

        No-op when the worker is idle.
        """
        ctx, task = self._ctx, self._handler_task
        if ctx is None or task is None or task.done():
            return

        ctx.cancel(reason)
        if self._hard_cancel is None:
            self._hard_cancel = asyncio.get_running_loop().call_later(grace_seconds, task.cancel)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def _finalize(self, job: Job, ctx: JobContext, outcome: _Outcome) -> None:
        reason = ctx.cancel_reason
        token = job.lease_token

        if reason == CancelReason.LEASE_LOST:
            logger.warning(f"Job {job.id}: lease lost, abandoning attempt {ctx.attempt} without writes")
            return

        try:
            if reason == CancelReason.OPERATOR:
                await self._broker.fail(
                    job.id,
                    token,
                    JobError(
                        message="Job cancelled by operator",
                        cause=ErrorCause.CANCELLED,
                        cause_class=JobCancelledError.__name__,
                    ),
                )
                logger.info(f"Job {job.id}: cancelled by operator")
            elif outcome.succeeded:
                await self._broker.complete(job.id, token, outcome.result)
                logger.info(f"Job {job.id}: completed on attempt {ctx.attempt}")
            elif reason == CancelReason.SHUTDOWN and isinstance(outcome.error, JobCancelledError):
                await self._broker.release(job.id, token)
                logger.info(f"Job {job.id}: released on shutdown, attempt not consumed")
            else:
                await self._fail_attempt(job, ctx, outcome.error)
        except LeaseLostError as e:
            logger.warning(f"Job {job.id}: late finalize rejected by broker ({e.reason})")
        except BrokerUnavailableError as e:
            logger.error(
                f"Job {job.id}: finalize failed, broker unavailable; "
                f"visibility timeout will recover the job: {e}"
            )

    async def _fail_attempt(self, job: Job, ctx: JobContext, error: BaseException) -> None:
        token = job.lease_token

        if isinstance(error, JobCancelledError):
            await self._broker.fail(job.id, token, JobError.from_exception(error, ErrorCause.CANCELLED))
            logger.info(f"Job {job.id}: handler stopped itself as cancelled")
            return

        if not is_retryable(error):
            logger.warning(f"Job {job.id}: permanent failure on attempt {ctx.attempt}: {error}")
            await self._broker.fail(
                job.id, token, JobError.from_exception(error, ErrorCause.HANDLER_PERMANENT)
            )
            return

        if not isinstance(error, DomainException):
            logger.error(f"Job {job.id}: unexpected handler error: {error}", exc_info=error)

        if job.attempts_made + 1 < job.attempts_max:
            delay_ms = job.backoff.compute_delay_ms(job.attempts_made, self._rng)
            logger.info(
                f"Job {job.id}: retryable failure on attempt {ctx.attempt}/{job.attempts_max}, "
                f"retrying in {delay_ms}ms: {error}"
            )
            await self._broker.fail(
                job.id,
                token,
                JobError.from_exception(error, ErrorCause.HANDLER_RETRYABLE),
                retry_at=now_ms() + delay_ms,
            )
            return

        logger.warning(f"Job {job.id}: attempts exhausted ({job.attempts_max}): {error}")
        await self._broker.fail(
            job.id, token, JobError.from_exception(error, ErrorCause.EXHAUSTED_ATTEMPTS)
        )


class WorkerPool:
    """
    Pool of workers for a set of queues plus the retention sweeper.

    Examples:
        >>> pool = WorkerPool(registry, broker, settings)
        >>> await pool.start()
        >>> ...
        >>> await pool.shutdown()
    """

    def __init__(
        self,
        registry: QueueRegistry,
        broker: JobBrokerProtocol,
        settings: DispatchSettings,
        queues: Optional[list[str]] = None,
    ) -> None:
        self._registry = registry
        self._broker = broker
        self._settings = settings
        # Resolve eagerly so unknown queue names fail at construction
        self._definitions = [registry.get(name) for name in (queues or registry.names())]
        self._stop_event: Optional[asyncio.Event] = None
        self._workers: list[Worker] = []
        self._tasks: list[asyncio.Task] = []
        self._sweeper: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    @property
    def queues(self) -> list[str]:
        return [definition.name for definition in self._definitions]

    async def start(self) -> None:
        if self._running:
            return

        self._stop_event = asyncio.Event()
        for definition in self._definitions:
            for index in range(definition.concurrency):
                worker = Worker(
                    definition,
                    self._broker,
                    self._settings,
                    self._stop_event,
                    worker_id=f"{definition.name}-{index + 1}",
                )
                self._workers.append(worker)
                self._tasks.append(
                    asyncio.create_task(worker.run(), name=f"worker-{worker.worker_id}")
                )

        if self._retention_enabled:
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="retention-sweeper")

        self._running = True
        logger.info(
            f"Worker pool started: {len(self._workers)} worker(s) across "
            f"{len(self._definitions)} queue(s) ({', '.join(self.queues)})"
        )

    async def shutdown(self, drain_timeout: Optional[float] = None) -> None:
        """
        Stop the pool.

        1. Stop reserving new jobs
        2. Let in-flight handlers run until the drain deadline
        3. Signal cancellation (reason=shutdown) to handlers still running
        4. After the grace window, cancel remaining worker tasks; their
           leases lapse and the visibility timeout recovers the jobs
        """
        if not self._running:
            return

        drain = self._settings.drain_timeout_seconds if drain_timeout is None else drain_timeout
        logger.info(f"Worker pool shutting down (drain deadline {drain}s)")
        self._stop_event.set()

        pending: set[asyncio.Task] = set(self._tasks)
        if pending:
            _, pending = await asyncio.wait(pending, timeout=drain)

        if pending:
            busy = [worker for worker in self._workers if worker.busy]
            logger.warning(
                f"Drain deadline reached with {len(busy)} job(s) in flight; signalling cancellation"
            )
            for worker in busy:
                worker.signal_cancel(CancelReason.SHUTDOWN, self._settings.shutdown_grace_seconds)
            _, pending = await asyncio.wait(
                pending, timeout=self._settings.shutdown_grace_seconds + _FINALIZE_MARGIN_SECONDS
            )

        if pending:
            logger.error(f"{len(pending)} worker(s) did not stop in time; cancelling")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None

        self._workers.clear()
        self._tasks.clear()
        self._running = False
        logger.info("Worker pool stopped")

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    @property
    def _retention_enabled(self) -> bool:
        return (
            self._settings.retention_completed_seconds > 0
            or self._settings.retention_failed_seconds > 0
        )

    async def purge_expired(self) -> int:
        """Purge terminal jobs older than their retention window."""
        now = now_ms()
        completed_before = (
            now - self._settings.retention_completed_seconds * 1000
            if self._settings.retention_completed_seconds > 0
            else None
        )
        failed_before = (
            now - self._settings.retention_failed_seconds * 1000
            if self._settings.retention_failed_seconds > 0
            else None
        )

        try:
            purged = await self._broker.purge_expired(completed_before, failed_before)
        except BrokerUnavailableError as e:
            logger.warning(f"Retention sweep skipped, broker unavailable: {e}")
            return 0

        if purged:
            logger.info(f"Retention sweep purged {purged} job(s)")
        return purged

    async def _sweep_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.purge_expired()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._settings.retention_sweep_interval_seconds,
                )
            except asyncio.TimeoutError:
                pass
