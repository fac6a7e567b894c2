"""
Dispatch configuration.

Settings for the broker, the queue defaults and the worker pool, read from
environment variables (with optional .env file).

Architecture Note:
- Part of Application Layer (orchestration)
- Uses environment variables for configuration
- No business logic - pure settings parsing
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from src.domain.jobs import constants

# Load environment variables from .env file
load_dotenv()


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_concurrency(raw: Optional[str]) -> dict[str, int]:
    """
    Parse WORKER_CONCURRENCY ("queue=n,queue=n").

    Examples:
        >>> parse_concurrency("email-notifications=4, analytics=1")
        {'email-notifications': 4, 'analytics': 1}
        >>> parse_concurrency("")
        {}

    Raises:
        ValueError: Malformed entry or non-positive count
    """
    result: dict[str, int] = {}
    if not raw:
        return result

    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        queue, sep, count = entry.partition("=")
        if not sep or not queue.strip():
            raise ValueError(f"WORKER_CONCURRENCY entry must be 'queue=n', got {entry!r}")
        try:
            value = int(count)
        except ValueError as e:
            raise ValueError(f"WORKER_CONCURRENCY count for {queue!r} is not an integer") from e
        if value < 1:
            raise ValueError(f"WORKER_CONCURRENCY count for {queue!r} must be >= 1")
        result[queue.strip()] = value

    return result


@dataclass(frozen=True)
class DispatchSettings:
    """
    Settings recognised by the dispatcher and the worker pool.

    Attributes:
        broker_url: "memory://" for the in-process broker, "redis://..." for Redis
        default_attempts_max: Attempts per job unless the queue/caller overrides
        default_visibility_ms: Lease duration per reservation
        default_backoff_base_ms: Base of the exponential retry backoff
        crash_allowance: Extra reservations tolerated beyond attempts_max
        worker_concurrency_per_queue: Overrides of per-queue worker counts
        retention_completed_seconds / retention_failed_seconds: 0 disables purge
        drain_timeout_seconds: How long shutdown waits for in-flight handlers
        shutdown_grace_seconds: Extra time after the cancel signal before leases are released
        poll_interval_seconds: Idle wait between empty reservations
        cancel_poll_interval_seconds: How often a running job checks for operator cancel
        cancel_grace_seconds: Time a handler gets to honour cancellation before its task is cancelled
        retention_sweep_interval_seconds: Period of the retention sweeper
        run_workers_in_api: Start the worker pool inside the API process
        redis_key_prefix: Namespace of all broker keys in Redis
    """

    broker_url: str = "memory://"
    default_attempts_max: int = constants.DEFAULT_ATTEMPTS_MAX
    default_visibility_ms: int = constants.DEFAULT_VISIBILITY_MS
    default_backoff_base_ms: int = constants.DEFAULT_BACKOFF_BASE_MS
    crash_allowance: int = constants.DEFAULT_CRASH_ALLOWANCE
    worker_concurrency_per_queue: dict[str, int] = field(default_factory=dict)
    retention_completed_seconds: int = constants.DEFAULT_RETENTION_COMPLETED_SECONDS
    retention_failed_seconds: int = constants.DEFAULT_RETENTION_FAILED_SECONDS
    drain_timeout_seconds: float = 30.0
    shutdown_grace_seconds: float = 5.0
    poll_interval_seconds: float = 1.0
    cancel_poll_interval_seconds: float = 0.25
    cancel_grace_seconds: float = 0.5
    retention_sweep_interval_seconds: float = 60.0
    run_workers_in_api: bool = True
    redis_key_prefix: str = "upstar:jobs"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "DispatchSettings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (os.environ if None)

        Raises:
            ValueError: Invalid numeric value or malformed WORKER_CONCURRENCY
        """
        env = os.environ if env is None else env

        return cls(
            broker_url=env.get("BROKER_URL", "memory://"),
            default_attempts_max=_env_int(
                env, "JOB_DEFAULT_ATTEMPTS_MAX", constants.DEFAULT_ATTEMPTS_MAX
            ),
            default_visibility_ms=_env_int(
                env, "JOB_DEFAULT_VISIBILITY_MS", constants.DEFAULT_VISIBILITY_MS
            ),
            default_backoff_base_ms=_env_int(
                env, "JOB_DEFAULT_BACKOFF_BASE_MS", constants.DEFAULT_BACKOFF_BASE_MS
            ),
            crash_allowance=_env_int(
                env, "JOB_CRASH_ALLOWANCE", constants.DEFAULT_CRASH_ALLOWANCE
            ),
            worker_concurrency_per_queue=parse_concurrency(env.get("WORKER_CONCURRENCY")),
            retention_completed_seconds=_env_int(
                env,
                "JOB_RETENTION_COMPLETED_SECONDS",
                constants.DEFAULT_RETENTION_COMPLETED_SECONDS,
            ),
            retention_failed_seconds=_env_int(
                env,
                "JOB_RETENTION_FAILED_SECONDS",
                constants.DEFAULT_RETENTION_FAILED_SECONDS,
            ),
            drain_timeout_seconds=_env_float(env, "WORKER_DRAIN_TIMEOUT_SECONDS", 30.0),
            shutdown_grace_seconds=_env_float(env, "WORKER_SHUTDOWN_GRACE_SECONDS", 5.0),
            poll_interval_seconds=_env_float(env, "WORKER_POLL_INTERVAL_SECONDS", 1.0),
            cancel_poll_interval_seconds=_env_float(
                env, "WORKER_CANCEL_POLL_INTERVAL_SECONDS", 0.25
            ),
            cancel_grace_seconds=_env_float(env, "WORKER_CANCEL_GRACE_SECONDS", 0.5),
            retention_sweep_interval_seconds=_env_float(
                env, "RETENTION_SWEEP_INTERVAL_SECONDS", 60.0
            ),
            run_workers_in_api=_env_bool(env, "RUN_WORKERS_IN_API", True),
            redis_key_prefix=env.get("REDIS_KEY_PREFIX", "upstar:jobs"),
        )

    @property
    def uses_redis(self) -> bool:
        return self.broker_url.startswith(("redis://", "rediss://", "unix://"))
