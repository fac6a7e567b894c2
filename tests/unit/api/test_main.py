"""
Tests for FastAPI app setup (src/api/main.py).

Covers:
- Lifespan: container built, workers started on demand, container closed
- Health check endpoint
- CORS middleware
- Global exception handling
"""

from unittest.mock import AsyncMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.application.tasks import DispatchSettings
from src.domain.jobs import constants
from src.domain.shared.exceptions import BrokerUnavailableError
from src.infrastructure.container import create_container


def test_health_check_endpoint(client):
    """
    Test GET /health endpoint.

    Verifies:
    - Returns 200 OK
    - Response carries version, timestamp and broker kind
    """
    # Act
    response = client.get("/health")

    # Assert
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert data["broker"] == "memory"
    assert "T" in data["timestamp"]


def test_cors_middleware_configured(client):
    response = client.get("/health", headers={"Origin": "http://localhost:3000"})

    assert response.status_code == status.HTTP_200_OK
    assert "access-control-allow-origin" in response.headers


def test_lifespan_closes_container(app, containers):
    with TestClient(app) as test_client:
        test_client.get("/health")
        container = containers[-1]
        container.broker.close = AsyncMock(wraps=container.broker.close)

    container.broker.close.assert_awaited_once()


def test_lifespan_starts_workers_when_configured(handlers):
    """
    Verifies:
    - RUN_WORKERS_IN_API starts the pool with the app
    - Shutdown drains it (pool reset to None)
    """
    built = []
    settings = DispatchSettings(
        broker_url="memory://",
        run_workers_in_api=True,
        poll_interval_seconds=0.01,
        drain_timeout_seconds=1.0,
    )

    async def factory():
        container = await create_container(settings, handlers=handlers)
        built.append(container)
        return container

    with TestClient(create_app(container_factory=factory)):
        pool = built[0].pool
        assert pool is not None
        assert set(pool.queues) == set(constants.ALL_QUEUES)

    assert built[0].pool is None


def test_broker_unavailable_maps_to_503(client, container):
    container.broker.enqueue = AsyncMock(side_effect=BrokerUnavailableError("redis down"))

    response = client.post("/api/jobs/sync-jobs", json={"source": "remoteok"})

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["code"] == "BROKER_UNAVAILABLE"


def test_unexpected_error_maps_to_500(app, containers):
    with TestClient(app, raise_server_exceptions=False) as test_client:
        containers[-1].broker.stats = AsyncMock(side_effect=RuntimeError("boom"))

        response = test_client.get("/api/jobs/queue-stats")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    body = response.json()
    assert body["code"] == "INTERNAL_SERVER_ERROR"
    assert body["details"] == {"type": "RuntimeError"}
