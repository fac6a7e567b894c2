"""
Application Layer - Use Cases and Orchestration

Responsibility:
    Coordinates the flow of data between API and Domain layers.
    Runs queued work on the asyncio worker pool.

Contains:
    - Ports (Protocols implemented by Infrastructure)
    - Tasks (queue registry, worker pool, handler catalogue)
    - Commands (CQRS write operations: enqueue requests)
    - Queries (CQRS read operations: job status, queue stats)
    - Services (JobDispatcher)

Does NOT contain:
    - Domain business rules (belongs to Domain layer)
    - HTTP handling (belongs to API layer)
    - Infrastructure details (belongs to Infrastructure layer)
"""
