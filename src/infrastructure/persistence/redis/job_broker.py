"""
Redis Job Broker

Shared-broker implementation of JobBrokerProtocol on redis.asyncio.

Responsibility:
    - Persist jobs as hashes with per-queue sorted sets for ready, delayed,
      active (lease expiry), completed and failed jobs
    - Run every state transition as one Lua script (atomic with respect
      to concurrent reservers and to get())
    - Translate RedisError into BrokerUnavailableError

Architecture Notes:
    - Infrastructure Layer (external dependency on Redis)
    - Used when BROKER_URL=redis://... so API processes and worker
      processes share one broker
    - Reads (get/stats) apply lease expiry and due delays on the fly
      without writing; reserve() performs the actual recovery

Error Handling:
    - ConnectionError / TimeoutError / RedisError -> BrokerUnavailableError
    - Script result 0 for lease-scoped writes -> LeaseLostError
"""

import json
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.domain.jobs import (
    BackoffPolicy,
    EnqueueOptions,
    ErrorCause,
    Job,
    JobError,
    JobState,
    QueueStats,
    now_ms,
)
from src.domain.jobs.constants import DEFAULT_CRASH_ALLOWANCE
from src.domain.shared.exceptions import (
    BrokerUnavailableError,
    IllegalJobStateError,
    JobNotFoundException,
    LeaseLostError,
)
from src.infrastructure.persistence.redis import scripts

# Configure logger for this module
logger = logging.getLogger(__name__)

_CANCELLED_ERROR = json.dumps(
    JobError("Job cancelled by operator", ErrorCause.CANCELLED).to_dict()
)


@contextmanager
def _broker_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        logger.warning(f"Redis broker {operation} failed: {e}")
        raise BrokerUnavailableError(f"Broker unavailable during {operation}: {e}", e) from e


def _encode(value: Any) -> str:
    return json.dumps(value) if value is not None else ""


def _decode(raw: Optional[str]) -> Any:
    return json.loads(raw) if raw else None


def _opt_int(raw: Optional[str]) -> Optional[int]:
    return int(float(raw)) if raw not in (None, "") else None


class RedisJobBroker:
    """
    Job broker backed by Redis.

    Examples:
        >>> client = await get_redis_client("redis://localhost:6379/0")
        >>> broker = RedisJobBroker(client, prefix="upstar:jobs")
        >>> job_id = await broker.enqueue("data-sync", "sync-jobs", {"source": "feed"}, options)
    """

    kind = "redis"

    def __init__(
        self,
        client: Redis,
        prefix: str = "upstar:jobs",
        crash_allowance: int = DEFAULT_CRASH_ALLOWANCE,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._crash_allowance = crash_allowance

        self._reserve = client.register_script(scripts.RESERVE)
        self._heartbeat = client.register_script(scripts.HEARTBEAT)
        self._progress = client.register_script(scripts.PROGRESS)
        self._complete = client.register_script(scripts.COMPLETE)
        self._fail = client.register_script(scripts.FAIL)
        self._release = client.register_script(scripts.RELEASE)
        self._cancel = client.register_script(scripts.CANCEL)
        self._retry = client.register_script(scripts.RETRY)
        self._purge = client.register_script(scripts.PURGE)
        self._stats = client.register_script(scripts.STATS)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    def _queue_key(self, queue: str, kind: str) -> str:
        return f"{self._prefix}:queue:{queue}:{kind}"

    @property
    def _seq_key(self) -> str:
        return f"{self._prefix}:seq"

    @property
    def _queues_key(self) -> str:
        return f"{self._prefix}:queues"

    # ------------------------------------------------------------------
    # Hash <-> Job
    # ------------------------------------------------------------------

    def _to_hash(self, job: Job) -> dict[str, Any]:
        return {
            "id": job.id,
            "queue": job.queue,
            "name": job.name,
            "payload": _encode(job.payload),
            "state": job.state.value,
            "attempts_max": job.attempts_max,
            "backoff": _encode(job.backoff.to_dict()),
            "reservations_max": job.reservations_max,
            "priority": job.priority,
            "seq": job.seq,
            "progress": job.progress,
            "attempts_made": job.attempts_made,
            "reservations": job.reservations,
            "next_visible_at": job.next_visible_at,
            "lease_token": job.lease_token or "",
            "cancel_requested": "1" if job.cancel_requested else "0",
            "result": "",
            "error": "",
            "last_error": "",
            "enqueued_at": job.enqueued_at,
            "started_at": "",
            "finished_at": "",
        }

    @staticmethod
    def _from_hash(data: dict[str, str]) -> Job:
        error = _decode(data.get("error"))
        last_error = _decode(data.get("last_error"))
        return Job(
            id=data["id"],
            queue=data["queue"],
            name=data["name"],
            payload=_decode(data.get("payload")),
            state=JobState(data["state"]),
            attempts_max=int(data["attempts_max"]),
            backoff=BackoffPolicy.from_dict(_decode(data["backoff"])),
            reservations_max=int(data["reservations_max"]),
            priority=int(data.get("priority") or 0),
            seq=int(data.get("seq") or 0),
            progress=int(data.get("progress") or 0),
            attempts_made=int(data.get("attempts_made") or 0),
            reservations=int(data.get("reservations") or 0),
            next_visible_at=int(float(data.get("next_visible_at") or 0)),
            lease_token=data.get("lease_token") or None,
            cancel_requested=data.get("cancel_requested") == "1",
            result=_decode(data.get("result")),
            error=JobError.from_dict(error) if error else None,
            last_error=JobError.from_dict(last_error) if last_error else None,
            enqueued_at=int(data["enqueued_at"]),
            started_at=_opt_int(data.get("started_at")),
            finished_at=_opt_int(data.get("finished_at")),
        )

    @staticmethod
    def _as_observed(job: Job, now: int) -> Job:
        """Apply lease expiry / due delay to a snapshot without writing."""
        if job.lease_expired(now):
            if job.cancel_requested:
                job.state = JobState.FAILED
                job.error = JobError("Job cancelled by operator", ErrorCause.CANCELLED)
                job.finished_at = now
            else:
                job.state = JobState.WAITING
                job.progress = 0
            job.lease_token = None
        elif job.is_due(now):
            job.state = JobState.WAITING
        return job

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue(
        self, queue: str, name: str, payload: Any, options: EnqueueOptions
    ) -> str:
        with _broker_errors("enqueue"):
            now = now_ms()
            seq = await self._client.incr(self._seq_key)
            delayed = options.delay_ms > 0
            job = Job(
                id=uuid.uuid4().hex,
                queue=queue,
                name=name,
                payload=payload,
                attempts_max=options.attempts_max,
                backoff=options.backoff,
                reservations_max=options.attempts_max + self._crash_allowance,
                state=JobState.DELAYED if delayed else JobState.WAITING,
                priority=options.priority,
                seq=seq,
                next_visible_at=now + options.delay_ms,
                enqueued_at=now,
            )

            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(job.id), mapping=self._to_hash(job))
                if delayed:
                    pipe.zadd(self._queue_key(queue, "delayed"), {job.id: job.next_visible_at})
                else:
                    pipe.zadd(
                        self._queue_key(queue, "ready"),
                        {job.id: job.priority * scripts.PRIORITY_FACTOR + seq},
                    )
                pipe.sadd(self._queues_key, queue)
                await pipe.execute()

            return job.id

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def reserve(self, queue: str, visibility_ms: int) -> Optional[Job]:
        with _broker_errors("reserve"):
            raw = await self._reserve(
                keys=[
                    self._queue_key(queue, "ready"),
                    self._queue_key(queue, "delayed"),
                    self._queue_key(queue, "active"),
                    self._queue_key(queue, "failed"),
                ],
                args=[
                    self._prefix,
                    now_ms(),
                    visibility_ms,
                    uuid.uuid4().hex,
                    _CANCELLED_ERROR,
                    scripts.PRIORITY_FACTOR,
                ],
            )
        if not raw:
            return None
        return self._from_hash(dict(zip(raw[::2], raw[1::2])))

    async def heartbeat(self, job_id: str, lease_token: str, visibility_ms: int) -> None:
        with _broker_errors("heartbeat"):
            queue = await self._queue_of(job_id)
            ok = await self._heartbeat(
                keys=[self._job_key(job_id), self._queue_key(queue or "", "active")],
                args=[lease_token, now_ms(), visibility_ms, job_id],
            )
        if not ok:
            raise LeaseLostError(job_id)

    async def report_progress(self, job_id: str, lease_token: str, progress: int) -> None:
        with _broker_errors("report_progress"):
            await self._progress(
                keys=[self._job_key(job_id)],
                args=[lease_token, now_ms(), int(progress)],
            )

    async def complete(self, job_id: str, lease_token: str, result: Any) -> None:
        with _broker_errors("complete"):
            queue = await self._queue_of(job_id)
            ok = await self._complete(
                keys=[
                    self._job_key(job_id),
                    self._queue_key(queue or "", "active"),
                    self._queue_key(queue or "", "completed"),
                ],
                args=[lease_token, now_ms(), _encode(result), job_id],
            )
        if not ok:
            raise LeaseLostError(job_id)

    async def fail(
        self,
        job_id: str,
        lease_token: str,
        error: JobError,
        retry_at: Optional[int] = None,
    ) -> None:
        exhausted = JobError(error.message, ErrorCause.EXHAUSTED_ATTEMPTS, error.cause_class)
        with _broker_errors("fail"):
            queue = await self._queue_of(job_id)
            ok = await self._fail(
                keys=[
                    self._job_key(job_id),
                    self._queue_key(queue or "", "active"),
                    self._queue_key(queue or "", "delayed"),
                    self._queue_key(queue or "", "failed"),
                ],
                args=[
                    lease_token,
                    now_ms(),
                    json.dumps(error.to_dict()),
                    "" if retry_at is None else int(retry_at),
                    job_id,
                    json.dumps(exhausted.to_dict()),
                ],
            )
        if not ok:
            raise LeaseLostError(job_id)

    async def release(self, job_id: str, lease_token: str) -> None:
        with _broker_errors("release"):
            queue = await self._queue_of(job_id)
            ok = await self._release(
                keys=[
                    self._job_key(job_id),
                    self._queue_key(queue or "", "active"),
                    self._queue_key(queue or "", "ready"),
                ],
                args=[lease_token, now_ms(), job_id, scripts.PRIORITY_FACTOR],
            )
        if not ok:
            raise LeaseLostError(job_id)

    # ------------------------------------------------------------------
    # Lookup and operator actions
    # ------------------------------------------------------------------

    async def _queue_of(self, job_id: str) -> Optional[str]:
        return await self._client.hget(self._job_key(job_id), "queue")

    async def get(self, job_id: str) -> Optional[Job]:
        with _broker_errors("get"):
            data = await self._client.hgetall(self._job_key(job_id))
        if not data:
            return None
        return self._as_observed(self._from_hash(data), now_ms())

    async def stats(self, queue: str) -> QueueStats:
        with _broker_errors("stats"):
            waiting, active, completed, failed, delayed = await self._stats(
                keys=[
                    self._queue_key(queue, "ready"),
                    self._queue_key(queue, "delayed"),
                    self._queue_key(queue, "active"),
                    self._queue_key(queue, "completed"),
                    self._queue_key(queue, "failed"),
                ],
                args=[self._prefix, now_ms()],
            )

        return QueueStats(
            queue=queue,
            waiting=int(waiting),
            active=int(active),
            completed=int(completed),
            failed=int(failed),
            delayed=int(delayed),
        )

    async def cancel(self, job_id: str) -> JobState:
        with _broker_errors("cancel"):
            queue = await self._queue_of(job_id)
            if queue is None:
                raise JobNotFoundException(job_id)
            outcome = await self._cancel(
                keys=[
                    self._job_key(job_id),
                    self._queue_key(queue, "ready"),
                    self._queue_key(queue, "delayed"),
                    self._queue_key(queue, "active"),
                    self._queue_key(queue, "failed"),
                ],
                args=[now_ms(), job_id, _CANCELLED_ERROR],
            )

        if outcome == "not_found":
            raise JobNotFoundException(job_id)
        if outcome in (JobState.COMPLETED.value, JobState.FAILED.value):
            raise IllegalJobStateError(job_id, outcome, "cancel")
        if outcome == "active":
            return JobState.ACTIVE
        return JobState.FAILED

    async def is_cancel_requested(self, job_id: str) -> bool:
        with _broker_errors("is_cancel_requested"):
            state, flag = await self._client.hmget(
                self._job_key(job_id), ["state", "cancel_requested"]
            )
        return state == JobState.ACTIVE.value and flag == "1"

    async def retry(self, job_id: str) -> None:
        with _broker_errors("retry"):
            queue = await self._queue_of(job_id)
            if queue is None:
                raise JobNotFoundException(job_id)
            outcome = await self._retry(
                keys=[
                    self._job_key(job_id),
                    self._queue_key(queue, "failed"),
                    self._queue_key(queue, "ready"),
                    self._seq_key,
                ],
                args=[now_ms(), job_id, scripts.PRIORITY_FACTOR],
            )

        if outcome == "not_found":
            raise JobNotFoundException(job_id)
        if outcome != "ok":
            raise IllegalJobStateError(job_id, outcome, "retry")

    async def purge_expired(
        self, completed_before: Optional[int], failed_before: Optional[int]
    ) -> int:
        purged = 0
        with _broker_errors("purge_expired"):
            queues = await self._client.smembers(self._queues_key)
            for queue in queues:
                for kind, cut_off in (("completed", completed_before), ("failed", failed_before)):
                    if cut_off is None:
                        continue
                    purged += int(
                        await self._purge(
                            keys=[self._queue_key(queue, kind)],
                            args=[self._prefix, int(cut_off)],
                        )
                    )
        return purged

    async def close(self) -> None:
        with _broker_errors("close"):
            await self._client.aclose()
