from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from qwen_api.token_manager import (
    ORIGIN_ENVIRONMENT,
    Credential,
    CredentialManager,
    CredentialStore,
)


class FakeClock:
    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Any = None,
        text: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        chunks: Optional[List[bytes]] = None,
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {"Content-Type": "application/json"}
        self._chunks = chunks
        if text is None:
            if chunks is not None:
                text = b"".join(chunks).decode("utf-8")
            elif json_data is not None:
                text = json.dumps(json_data)
            else:
                text = ""
        self.text = text
        self.closed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.text)

    def iter_content(self, chunk_size: Optional[int] = None):
        if self._chunks is not None:
            yield from self._chunks
        else:
            yield self.text.encode("utf-8")

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in call order"""

    def __init__(self, *responses: Any) -> None:
        self.queue: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, kwargs: Dict[str, Any]) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.queue:
            raise AssertionError(f"unexpected {method} {url}")
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("POST", url, kwargs)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("GET", url, kwargs)


def sse_body(*frames: Any, done: bool = True) -> bytes:
    lines = []
    for frame in frames:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def sse_response(*frames: Any, chunk_size: Optional[int] = None) -> FakeResponse:
    body = sse_body(*frames)
    if chunk_size:
        chunks = [body[i:i + chunk_size] for i in range(0, len(body), chunk_size)]
    else:
        chunks = [body]
    return FakeResponse(headers={"Content-Type": "text/event-stream; charset=utf-8"}, chunks=chunks)


def delta_frame(content: str, finish_reason: Optional[str] = None) -> Dict[str, Any]:
    return {"choices": [{"delta": {"content": content}, "finish_reason": finish_reason}]}


def make_credentials(count: int) -> List[Credential]:
    return [
        Credential(id=f"acc_{i}", secret=f"secret-{i}", name=f"account {i}", origin=ORIGIN_ENVIRONMENT)
        for i in range(1, count + 1)
    ]


@pytest.fixture(autouse=True)
def config_home(tmp_path, monkeypatch):
    home = tmp_path / "qwen-home"
    monkeypatch.setenv("QWEN_API_HOME", str(home))
    return home


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tokens_path(tmp_path) -> str:
    return str(tmp_path / "tokens.json")


@pytest.fixture
def make_manager(tokens_path, clock):
    def factory(count: int = 2) -> CredentialManager:
        store = CredentialStore(path=tokens_path, env_credentials=make_credentials(count), clock=clock)
        return CredentialManager(store)

    return factory
