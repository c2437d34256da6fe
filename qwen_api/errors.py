"""
Failure values passed between the upstream client, the poller and the orchestrator.

Failures below the orchestrator are returned, not raised. Each one can carry the
best-known conversation identifiers so a caller can resume the session.
"""

from typing import Any, Dict, Optional


class Failure:
    """Base class for every failure value"""

    kind = "failure"
    retryable = False
    http_status = 500

    def __init__(self, message: str, chat_id: Optional[str] = None, parent_id: Optional[str] = None):
        self.message = message
        self.chat_id = chat_id
        self.parent_id = parent_id

    def with_handle(self, chat_id: Optional[str], parent_id: Optional[str]) -> "Failure":
        """Attach the best-known conversation identifiers"""
        if self.chat_id is None:
            self.chat_id = chat_id
        if self.parent_id is None:
            self.parent_id = parent_id
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.message, "type": self.kind}
        if self.chat_id is not None:
            data["chatId"] = self.chat_id
        if self.parent_id is not None:
            data["parentId"] = self.parent_id
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class NoCredentialsAvailable(Failure):
    kind = "no_credentials"
    http_status = 503

    def __init__(self, message: str = "No valid authentication token available", **kwargs):
        super().__init__(message, **kwargs)


class RateLimited(Failure):
    kind = "rate_limited"
    retryable = True
    http_status = 429

    def __init__(self, credential_id: str, body: str = "", **kwargs):
        super().__init__(f"Account {credential_id} rate limited", **kwargs)
        self.credential_id = credential_id
        self.body = body


class InvalidCredential(Failure):
    kind = "invalid_credential"
    retryable = True
    http_status = 401

    def __init__(self, credential_id: str, status: int = 401, body: str = "", **kwargs):
        super().__init__(f"Account {credential_id} token invalid", **kwargs)
        self.credential_id = credential_id
        self.status = status
        self.body = body


class UpstreamError(Failure):
    kind = "upstream_error"
    http_status = 502

    def __init__(self, status: int, body: str, **kwargs):
        super().__init__(f"HTTP {status}: {body}", **kwargs)
        self.status = status
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class TransportFailure(Failure):
    kind = "transport_error"
    http_status = 504


class InvalidRequest(Failure):
    kind = "invalid_request"
    http_status = 400


class TaskFailed(Failure):
    kind = "task_failed"
    http_status = 502

    def __init__(self, task_id: str, message: str = "Task failed", data: Optional[Dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.task_id = task_id
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["task_id"] = self.task_id
        data["task_status"] = "failed"
        return data


class PollTimeout(Failure):
    """Asynchronous generation never reached a definitive status"""

    kind = "poll_timeout"
    http_status = 504

    def __init__(self, task_id: str, attempts: int, **kwargs):
        super().__init__(f"Task polling timeout exceeded after {attempts} attempts", **kwargs)
        self.task_id = task_id
        self.attempts = attempts

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["task_id"] = self.task_id
        data["task_status"] = "timeout"
        return data
