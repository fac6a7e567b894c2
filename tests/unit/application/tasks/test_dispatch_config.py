"""
Tests for DispatchSettings and WORKER_CONCURRENCY parsing.
"""

import pytest

from src.application.tasks import DispatchSettings
from src.application.tasks.dispatch_config import parse_concurrency


def test_defaults_from_empty_environment():
    settings = DispatchSettings.from_env({})

    assert settings.broker_url == "memory://"
    assert settings.default_attempts_max == 3
    assert settings.default_visibility_ms == 30_000
    assert settings.default_backoff_base_ms == 2_000
    assert settings.crash_allowance == 3
    assert settings.retention_completed_seconds == 3600
    assert settings.retention_failed_seconds == 86400
    assert settings.run_workers_in_api is True
    assert settings.worker_concurrency_per_queue == {}
    assert not settings.uses_redis


def test_values_read_from_environment():
    settings = DispatchSettings.from_env(
        {
            "BROKER_URL": "redis://redis:6379/1",
            "JOB_DEFAULT_ATTEMPTS_MAX": "5",
            "WORKER_CONCURRENCY": "email-notifications=4,analytics=1",
            "RUN_WORKERS_IN_API": "false",
            "WORKER_POLL_INTERVAL_SECONDS": "0.5",
            "REDIS_KEY_PREFIX": "test:jobs",
        }
    )

    assert settings.uses_redis
    assert settings.default_attempts_max == 5
    assert settings.worker_concurrency_per_queue == {"email-notifications": 4, "analytics": 1}
    assert settings.run_workers_in_api is False
    assert settings.poll_interval_seconds == 0.5
    assert settings.redis_key_prefix == "test:jobs"


def test_invalid_number_fails_fast():
    with pytest.raises(ValueError, match="JOB_DEFAULT_VISIBILITY_MS"):
        DispatchSettings.from_env({"JOB_DEFAULT_VISIBILITY_MS": "soon"})


def test_parse_concurrency_ignores_blank_entries():
    assert parse_concurrency(" data-sync=2 , ,") == {"data-sync": 2}
    assert parse_concurrency(None) == {}


@pytest.mark.parametrize("raw", ["data-sync", "=2", "data-sync=x", "data-sync=0"])
def test_parse_concurrency_rejects_malformed_entries(raw):
    with pytest.raises(ValueError):
        parse_concurrency(raw)
