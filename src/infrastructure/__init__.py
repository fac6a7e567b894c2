"""
Infrastructure Layer - External Dependencies

Implements the application ports against real systems: the job broker
(memory or Redis), PostgreSQL, the local object store, the LLM API, SMTP
and the external job feed.

Modules:
    - persistence: memory/Redis brokers, Redis cache, SQL repositories
    - file_storage: Local object store
    - ai: OpenAI-compatible chat-completions client
    - email: SMTP sender
    - external: HTTP job-feed client
    - container: Composition root (settings -> broker, registry, dispatcher, pool)

Usage:
    >>> from src.infrastructure.container import create_container
    >>> container = await create_container()
"""
