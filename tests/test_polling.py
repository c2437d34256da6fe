from __future__ import annotations

import requests

from qwen_api.polling import STATUS_COMPLETED, STATUS_FAILED, STATUS_TIMEOUT, poll_task_status
from qwen_api.upstream import UpstreamClient

from conftest import FakeResponse, FakeSession, make_credentials


def _poll(session: FakeSession, sleeps: list, max_attempts: int = 90):
    return poll_task_status(
        UpstreamClient(session=session, task_status_url="https://upstream.test/api/v1/tasks/status"),
        "task-1",
        make_credentials(1)[0],
        max_attempts=max_attempts,
        interval_ms=2000,
        sleep=sleeps.append,
    )


def test_completes_after_three_pending_checks() -> None:
    sleeps: list = []
    session = FakeSession(
        FakeResponse(json_data={"task_status": "processing"}),
        FakeResponse(json_data={"task_status": "processing"}),
        FakeResponse(json_data={"status": "pending"}),
        FakeResponse(json_data={"task_status": "completed", "output": "https://cdn.example/v.mp4"}),
    )

    result = _poll(session, sleeps)

    assert result.status == STATUS_COMPLETED
    assert result.success is True
    assert result.attempts == 4
    assert sleeps == [2.0, 2.0, 2.0]
    assert result.data["output"] == "https://cdn.example/v.mp4"
    assert session.calls[0]["url"] == "https://upstream.test/api/v1/tasks/status/task-1"


def test_failed_task_returns_error_text() -> None:
    sleeps: list = []
    session = FakeSession(FakeResponse(json_data={"task_status": "failed", "message": "content rejected"}))

    result = _poll(session, sleeps)

    assert result.status == STATUS_FAILED
    assert result.error == "content rejected"
    assert sleeps == []


def test_exhausted_attempts_time_out() -> None:
    sleeps: list = []
    session = FakeSession(*[FakeResponse(json_data={"task_status": "running"}) for _ in range(3)])

    result = _poll(session, sleeps, max_attempts=3)

    assert result.status == STATUS_TIMEOUT
    assert result.attempts == 3
    assert len(sleeps) == 2


def test_transport_errors_and_bad_statuses_are_retried() -> None:
    sleeps: list = []
    session = FakeSession(
        requests.ConnectionError("reset"),
        FakeResponse(status_code=502, text="bad gateway"),
        FakeResponse(json_data=["unexpected"]),
        FakeResponse(json_data={"task_status": "success"}),
    )

    result = _poll(session, sleeps)

    assert result.success is True
    assert result.attempts == 4
