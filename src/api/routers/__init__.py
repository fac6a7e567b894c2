"""
API Routers Package

FastAPI routers grouped by functionality.

Architecture Notes:
    - Part of API Layer (Presentation)
    - Routers are thin wrappers around Application Layer commands/queries
    - Dependencies resolved from the DispatchContainer on app.state

Available Routers:
    - jobs_router: Enqueue, status, queue stats, retry and cancel
"""

from .jobs import router as jobs_router

__all__ = ["jobs_router"]
