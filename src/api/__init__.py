"""
API Layer - FastAPI Presentation Layer

Responsibility:
    HTTP interface for the dispatch subsystem. Enqueues jobs, reports their
    status and exposes operator actions (retry, cancel, queue stats).
    No business logic.

Contains:
    - App factory with lifespan (container + optional in-process worker pool)
    - /api/jobs router and its Pydantic models
    - Request logging middleware and domain exception handlers

Does NOT contain:
    - Job execution (belongs to Application layer worker pool)
    - Broker or database access (belongs to Infrastructure layer)
"""
