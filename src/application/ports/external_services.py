"""
External Collaborator Ports

Contracts consumed by the handler catalogue for services outside the
relational store: object storage, the LLM, SMTP, the external job-listing
feed and the read-through cache.

Architecture Notes:
    - Protocol-based interfaces (structural typing)
    - Implementations live in the Infrastructure Layer and raise
      DependencyError subclasses with the retryable flag set, so handlers
      never inspect library-specific exceptions
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class StoredObject:
    """Object downloaded from the object store."""

    data: bytes
    content_type: str = "application/octet-stream"
    metadata: dict[str, str] = field(default_factory=dict)


class ObjectStoreProtocol(Protocol):
    """
    Object storage for uploaded resume files.

    Error mapping (ObjectStoreError.retryable):
        - 5xx, timeout: retryable
        - not_found, access_denied: permanent
    """

    async def download(self, path: str) -> StoredObject:
        ...

    async def upload(
        self, key: str, data: bytes, metadata: Optional[dict[str, str]] = None
    ) -> str:
        """Store bytes under key and return the object location."""
        ...

    async def delete(self, key: str) -> None:
        ...


class LLMClientProtocol(Protocol):
    """
    Chat-completion style LLM.

    Error mapping (LLMError.retryable):
        - rate_limit_exceeded, 5xx, timeout: retryable
        - insufficient_quota, other 4xx: permanent
    """

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> str:
        """Return the text of the first completion choice."""
        ...


class EmailSenderProtocol(Protocol):
    """
    Outgoing email.

    Error mapping (EmailDeliveryError.retryable):
        - transient socket errors and 4xx SMTP replies: retryable
        - 5xx SMTP replies (rejected recipient, auth): permanent
    """

    async def send(self, to: str, subject: str, html: str) -> str:
        """Send one message and return its message id."""
        ...


class JobFeedProtocol(Protocol):
    """External source of job listings for data-sync."""

    async def fetch_listings(self, source: str) -> list[dict[str, Any]]:
        """
        Fetch listings from a named source.

        Each listing carries at least `external_id` and `title`; optional
        keys are `organization`, `location`, `skills`, `description`.
        """
        ...


class CacheProtocol(Protocol):
    """Read-through cache; handlers only invalidate after a successful write."""

    async def invalidate(self, *keys: str) -> None:
        ...
