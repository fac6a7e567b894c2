"""
Tests for the /api/jobs router.

Covers:
- Enqueue endpoints (202 + job id, payload validation)
- GET /jobs/status/{job_id} (no-cache header, 404)
- GET /jobs/queue-stats
- POST /jobs/cancel/{job_id} and /jobs/retry/{job_id}

Workers are not running, so enqueued jobs stay waiting.
"""

import pytest
from fastapi import status

from src.domain.jobs import constants


def enqueue_resume(client, resume_id="R1") -> str:
    response = client.post("/api/jobs/process-resume", json={"resume_id": resume_id})
    assert response.status_code == status.HTTP_202_ACCEPTED
    return response.json()["job_id"]


# ============================================================================
# ENQUEUE
# ============================================================================


def test_process_resume_queues_job(client, container):
    """
    Test POST /jobs/process-resume.

    Verifies:
    - Returns 202 Accepted with job_id and message
    - Job is waiting on resume-processing with the normalized payload
    """
    # Act
    response = client.post("/api/jobs/process-resume", json={"resume_id": "R1", "user_id": "U1"})

    # Assert
    assert response.status_code == status.HTTP_202_ACCEPTED
    data = response.json()
    assert data["message"] == "Resume processing job queued"

    status_response = client.get(f"/api/jobs/status/{data['job_id']}")
    assert status_response.json()["status"] == "waiting"
    assert status_response.json()["queue"] == constants.QUEUE_RESUME_PROCESSING


@pytest.mark.parametrize(
    "path, body, message",
    [
        ("/api/jobs/match-users", {"user_id": "U1"}, "Job matching queued"),
        (
            "/api/jobs/send-notification",
            {"notification_id": "N1", "recipients": [{"id": "u1", "email": "ada@example.com"}]},
            "Notification email job queued",
        ),
        ("/api/jobs/sync-jobs", {"source": "remoteok"}, "Job sync queued"),
        (
            "/api/jobs/generate-report",
            {
                "report_type": "user-growth",
                "date_range": {"start": "2025-01-01T00:00:00Z", "end": "2025-01-31T00:00:00Z"},
            },
            "Report generation queued",
        ),
    ],
)
def test_enqueue_endpoints(client, path, body, message):
    response = client.post(path, json=body)

    assert response.status_code == status.HTTP_202_ACCEPTED
    assert response.json()["message"] == message
    assert response.json()["job_id"]


def test_missing_field_rejected_by_request_schema(client):
    response = client.post("/api/jobs/process-resume", json={})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_invalid_recipient_rejected_by_queue_payload_model(client):
    """
    Verifies:
    - The queue's payload model runs at enqueue time
    - Errors come back as INVALID_JOB_PAYLOAD with field details
    """
    response = client.post(
        "/api/jobs/send-notification",
        json={"notification_id": "N1", "recipients": [{"email": "not-an-email"}]},
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    body = response.json()
    assert body["code"] == "INVALID_JOB_PAYLOAD"
    assert body["details"]["queue"] == constants.QUEUE_EMAIL_NOTIFICATIONS
    assert body["details"]["errors"]


def test_reversed_report_range_rejected(client):
    response = client.post(
        "/api/jobs/generate-report",
        json={
            "report_type": "skill-trends",
            "date_range": {"start": "2025-02-01T00:00:00Z", "end": "2025-01-01T00:00:00Z"},
        },
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["code"] == "INVALID_JOB_PAYLOAD"


# ============================================================================
# STATUS / STATS
# ============================================================================


def test_status_has_no_cache_header(client):
    job_id = enqueue_resume(client)

    response = client.get(f"/api/jobs/status/{job_id}")

    assert response.status_code == status.HTTP_200_OK
    assert response.headers["Cache-Control"] == "no-cache"
    data = response.json()
    assert data["job_id"] == job_id
    assert data["progress"] == 0
    assert data["created_at"] is not None
    assert data["finished_at"] is None


def test_status_unknown_job_returns_404(client, sample_job_id):
    response = client.get(f"/api/jobs/status/{sample_job_id}")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    body = response.json()
    assert body["code"] == "JOB_NOT_FOUND"
    assert body["details"] == {"job_id": sample_job_id}


def test_queue_stats_lists_every_queue(client):
    enqueue_resume(client, "R1")
    enqueue_resume(client, "R2")

    response = client.get("/api/jobs/queue-stats")

    assert response.status_code == status.HTTP_200_OK
    queues = {q["name"]: q for q in response.json()["queues"]}
    assert set(queues) == set(constants.ALL_QUEUES)
    assert queues[constants.QUEUE_RESUME_PROCESSING]["waiting"] == 2
    assert queues[constants.QUEUE_ANALYTICS]["waiting"] == 0


# ============================================================================
# OPERATOR ACTIONS
# ============================================================================


def test_cancel_waiting_job_fails_it(client):
    job_id = enqueue_resume(client)

    response = client.post(f"/api/jobs/cancel/{job_id}")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"job_id": job_id, "status": "failed", "message": "Job cancelled"}
    job = client.get(f"/api/jobs/status/{job_id}").json()
    assert job["status"] == "failed"
    assert "cancelled" in job["error"].lower()


def test_cancel_terminal_job_returns_409(client):
    job_id = enqueue_resume(client)
    client.post(f"/api/jobs/cancel/{job_id}")

    response = client.post(f"/api/jobs/cancel/{job_id}")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["code"] == "ILLEGAL_STATE"


def test_cancel_unknown_job_returns_404(client, sample_job_id):
    assert client.post(f"/api/jobs/cancel/{sample_job_id}").status_code == status.HTTP_404_NOT_FOUND


def test_retry_failed_job_requeues_it(client):
    job_id = enqueue_resume(client)
    client.post(f"/api/jobs/cancel/{job_id}")

    response = client.post(f"/api/jobs/retry/{job_id}")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"job_id": job_id, "message": "Job re-queued"}
    job = client.get(f"/api/jobs/status/{job_id}").json()
    assert job["status"] == "waiting"
    assert job["error"] is None


def test_retry_waiting_job_returns_409(client):
    job_id = enqueue_resume(client)

    response = client.post(f"/api/jobs/retry/{job_id}")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["details"]["state"] == "waiting"
