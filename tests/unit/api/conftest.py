"""
Common fixtures for API unit tests.

Provides shared test utilities:
- A DispatchContainer on the in-memory broker with AsyncMock handlers
  (workers not started, so enqueued jobs stay waiting)
- FastAPI TestClient running the app lifespan
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.application.tasks import DispatchSettings
from src.domain.jobs import constants
from src.infrastructure.container import create_container


@pytest.fixture
def handlers():
    """Queue -> AsyncMock handler for every catalogue queue."""
    return {queue: AsyncMock(return_value={"ok": True}) for queue in constants.ALL_QUEUES}


@pytest.fixture
def containers():
    """Containers built by the app lifespan (one per TestClient)."""
    return []


@pytest.fixture
def app(handlers, containers):
    settings = DispatchSettings(broker_url="memory://", run_workers_in_api=False)

    async def factory():
        container = await create_container(settings, handlers=handlers)
        containers.append(container)
        return container

    return create_app(container_factory=factory)


@pytest.fixture
def client(app):
    """
    FastAPI TestClient for testing endpoints.

    Used as a context manager so the lifespan builds the container.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def container(client, containers):
    """Container of the running app."""
    return containers[-1]


@pytest.fixture
def sample_job_id():
    """Generate a sample job ID (UUID)."""
    return str(uuid4())
