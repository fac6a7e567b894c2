"""
Queue Registry

Static map of queue name -> queue definition (handler, retry policy,
concurrency, visibility timeout, payload model).

Responsibility:
    - Bind each queue to exactly one handler
    - Hold per-queue defaults used to fill enqueue options
    - Validate payloads against the queue's pydantic payload model
    - Reject unknown queue names with UnknownQueueError

Architecture Notes:
    - Built once at startup (see bootstrap.build_registry) and frozen;
      register() after freeze() raises RuntimeError
    - Handlers are plain async callables `(payload, ctx) -> result`
"""

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterator, Optional

from pydantic import BaseModel, ValidationError

from src.domain.jobs import BackoffPolicy
from src.domain.shared.exceptions import InvalidJobPayloadError, UnknownQueueError

if TYPE_CHECKING:
    from src.application.tasks.context import JobContext

logger = logging.getLogger(__name__)

Handler = Callable[[Any, "JobContext"], Awaitable[Any]]


@dataclass(frozen=True)
class QueueDefinition:
    """
    Definition of one queue.

    Attributes:
        name: Wire-level queue name
        job_name: Handler job name stored on every job of this queue
        handler: Async callable executing one job
        attempts_max: Default attempts per job
        backoff: Default retry backoff
        concurrency: Logical workers spawned for this queue
        visibility_ms: Lease duration per reservation
        payload_model: Pydantic model validating payloads at enqueue (optional)
    """

    name: str
    job_name: str
    handler: Handler
    attempts_max: int
    backoff: BackoffPolicy
    concurrency: int = 1
    visibility_ms: int = 30_000
    payload_model: Optional[type[BaseModel]] = None

    def validate_payload(self, payload: Any) -> Any:
        """
        Validate and normalize a payload.

        Returns:
            JSON-compatible payload (model dump when a model is set,
            the payload unchanged otherwise)

        Raises:
            InvalidJobPayloadError: Payload rejected by the model
        """
        if self.payload_model is None:
            return payload

        if isinstance(payload, self.payload_model):
            return payload.model_dump(mode="json")

        try:
            model = self.payload_model.model_validate(payload)
        except ValidationError as e:
            raise InvalidJobPayloadError(
                self.name,
                f"{e.error_count()} validation error(s)",
                errors=e.errors(include_url=False, include_context=False),
            ) from e
        return model.model_dump(mode="json")


class QueueRegistry:
    """
    Registry of queue definitions.

    Examples:
        >>> registry = QueueRegistry()
        >>> registry.register(QueueDefinition(name="analytics", ...))
        >>> registry.freeze()
        >>> registry.get("analytics").concurrency
        1
        >>> registry.get("nope")  # raises UnknownQueueError
    """

    def __init__(self) -> None:
        self._queues: dict[str, QueueDefinition] = {}
        self._frozen = False

    def register(self, definition: QueueDefinition) -> None:
        if self._frozen:
            raise RuntimeError("Queue registry is frozen; register queues at startup")
        if definition.name in self._queues:
            raise ValueError(f"Queue '{definition.name}' already registered")
        if definition.concurrency < 1:
            raise ValueError(f"Queue '{definition.name}' concurrency must be >= 1")
        if definition.attempts_max < 1:
            raise ValueError(f"Queue '{definition.name}' attempts_max must be >= 1")

        self._queues[definition.name] = definition
        logger.debug(
            f"Registered queue {definition.name} (job={definition.job_name}, "
            f"concurrency={definition.concurrency}, attempts={definition.attempts_max})"
        )

    def apply_concurrency(self, overrides: dict[str, int]) -> None:
        """
        Override per-queue concurrency (WORKER_CONCURRENCY).

        Raises:
            UnknownQueueError: Override names an unregistered queue
        """
        if self._frozen:
            raise RuntimeError("Queue registry is frozen; apply overrides at startup")
        for name, concurrency in overrides.items():
            definition = self.get(name)
            self._queues[name] = replace(definition, concurrency=concurrency)

    def freeze(self) -> "QueueRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> QueueDefinition:
        try:
            return self._queues[name]
        except KeyError:
            raise UnknownQueueError(name) from None

    def names(self) -> list[str]:
        return list(self._queues)

    def __contains__(self, name: object) -> bool:
        return name in self._queues

    def __iter__(self) -> Iterator[QueueDefinition]:
        return iter(self._queues.values())

    def __len__(self) -> int:
        return len(self._queues)
