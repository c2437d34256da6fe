"""
Bounded status polling for asynchronous (video) generation tasks
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from .config import DEFAULT_POLL_INTERVAL_MS, DEFAULT_POLL_MAX_ATTEMPTS
from .extractors import TASK_STATUS_EXTRACTORS, first_match
from .token_manager import Credential
from .upstream import UpstreamClient

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_TIMEOUT = "timeout"

SUCCESS_STATUSES = ("completed", "success")
FAILURE_STATUSES = ("failed", "error")


@dataclass
class PollResult:
    status: str
    attempts: int
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == STATUS_COMPLETED


def check_task_status(client: UpstreamClient, task_id: str, credential: Credential) -> Optional[PollResult]:
    """
    One status check. Returns a definitive PollResult, or None when the task is
    still running or the check itself failed and is worth repeating.
    """
    response = client.get_task_status(task_id, credential)
    if not response.ok:
        print(f"[Task Poller] Error checking status of {task_id}: {response.status_code}")
        return None

    data = response.json()
    if not isinstance(data, dict):
        data = {}
    task_status = (first_match(TASK_STATUS_EXTRACTORS, data) or "unknown").lower()

    if task_status in SUCCESS_STATUSES:
        return PollResult(status=STATUS_COMPLETED, attempts=1, data=data)
    if task_status in FAILURE_STATUSES:
        error = data.get("error") or data.get("message") or "Task failed"
        return PollResult(status=STATUS_FAILED, attempts=1, data=data, error=str(error))

    print(f"[Task Poller] Task {task_id} status: {task_status}")
    return None


def poll_task_status(client: UpstreamClient, task_id: str, credential: Credential,
                     max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS,
                     interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                     sleep: Callable[[float], None] = time.sleep) -> PollResult:
    """Poll until the task completes, fails, or the attempt ceiling is reached"""
    print(f"[Task Poller] Polling task status: {task_id}")

    for attempt in range(1, max_attempts + 1):
        try:
            result = check_task_status(client, task_id, credential)
        except (requests.RequestException, ValueError) as e:
            print(f"[Task Poller] Error polling task (attempt {attempt}/{max_attempts}): {type(e).__name__}: {e}")
            result = None

        if result is not None:
            result.attempts = attempt
            return result

        if attempt < max_attempts:
            sleep(interval_ms / 1000.0)

    print(f"[Task Poller] Timeout: {max_attempts} attempts exceeded for task {task_id}")
    return PollResult(status=STATUS_TIMEOUT, attempts=max_attempts, error="Task polling timeout exceeded")
