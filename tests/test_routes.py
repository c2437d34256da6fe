from __future__ import annotations

import json

import pytest

from qwen_api.app import create_app, normalize_path
from qwen_api.state import State
from qwen_api.upstream import UpstreamClient

from conftest import FakeResponse, FakeSession, delta_frame, sse_response


def answer(text: str, response_id: str = "resp-1") -> FakeResponse:
    return sse_response(
        {"response.created": {"response_id": response_id}},
        delta_frame(text),
        delta_frame("", finish_reason="stop"),
    )


@pytest.fixture
def make_client(make_manager):
    def factory(*responses, count: int = 2, api_keys=None):
        app_state = State(credentials=make_manager(count))
        app_state.api_keys = list(api_keys or [])
        app_state.stream_chunk_delay_ms = 0
        session = FakeSession(*responses)
        app = create_app(app_state, client=UpstreamClient(session=session))
        return app.test_client(), session, app_state

    return factory


def sse_payloads(response) -> list:
    events = [line[len("data: "):] for line in response.get_data(as_text=True).split("\n") if line.startswith("data: ")]
    return [e if e == "[DONE]" else json.loads(e) for e in events]


def test_version_prefixes_are_aliases() -> None:
    assert normalize_path("/v1/chat/completions") == "/api/chat/completions"
    assert normalize_path("/api/v1/chat/completions") == "/api/chat/completions"
    assert normalize_path("/api/chat") == "/api/chat"
    assert normalize_path("/v1/models") == "/api/models"


def test_models_lists_openai_shape(make_client) -> None:
    client, _, _ = make_client()

    response = client.get("/v1/models")

    body = response.get_json()
    assert response.status_code == 200
    assert body["object"] == "list"
    assert {"id": "qwen-max-latest", "object": "model", "created": 0, "owned_by": "qwen", "permission": []} in body["data"]


def test_completion_returns_conversation_handle(make_client) -> None:
    client, session, _ = make_client(FakeResponse(json_data={"data": {"id": "chat-1"}}), answer("Hello"))

    response = client.post("/v1/chat/completions", json={
        "model": "gpt-4o",
        "messages": [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ],
    })

    body = response.get_json()
    assert response.status_code == 200
    assert body["object"] == "chat.completion"
    assert body["choices"][0]["message"] == {"role": "assistant", "content": "Hello"}
    assert body["chatId"] == "chat-1"
    assert body["parentId"] == "resp-1"
    sent = session.calls[1]["json"]
    assert sent["model"] == "qwen3-max"
    assert sent["system_message"] == "be brief"


def test_completion_without_credentials_is_503(make_client) -> None:
    client, session, app_state = make_client(count=1)
    app_state.credentials.mark_invalid("acc_1")

    response = client.post("/api/chat/completions", json={
        "messages": [{"role": "user", "content": "hi"}],
        "chatId": "chat-1",
        "parentId": "p-1",
    })

    body = response.get_json()
    assert response.status_code == 503
    assert body["error"]["type"] == "server_error"
    assert body["error"]["chatId"] == "chat-1"
    assert session.calls == []


def test_completion_requires_a_user_message(make_client) -> None:
    client, _, _ = make_client()

    assert client.post("/api/chat/completions", json={"messages": []}).status_code == 400
    response = client.post("/api/chat/completions", json={"messages": [{"role": "system", "content": "x"}]})
    assert response.status_code == 400
    assert response.get_json() == {"error": "No user messages in request"}


def test_streaming_completion_rechunks_answer(make_client) -> None:
    text = "The quick brown fox jumps over the lazy dog"
    client, _, _ = make_client(FakeResponse(json_data={"data": {"id": "chat-1"}}), answer(text))

    response = client.post("/api/chat/completions", json={
        "stream": True,
        "messages": [{"role": "user", "content": "hi"}],
    })

    assert response.mimetype == "text/event-stream"
    events = sse_payloads(response)
    assert events[0]["choices"][0]["delta"] == {"role": "assistant"}
    assert events[-1] == "[DONE]"
    stop = events[-2]
    assert stop["choices"][0]["finish_reason"] == "stop"
    assert stop["chatId"] == "chat-1"
    pieces = [e["choices"][0]["delta"]["content"] for e in events[1:-2]]
    assert "".join(pieces) == text
    assert all(len(p) <= 16 for p in pieces)
    assert len(pieces) == 3


def test_streaming_unknown_model_warns_once(make_client, capsys) -> None:
    client, session, app_state = make_client(FakeResponse(json_data={"data": {"id": "chat-1"}}), answer("Hi"))

    response = client.post("/api/chat/completions", json={
        "stream": True,
        "model": "no-such-model",
        "messages": [{"role": "user", "content": "hi"}],
    })
    events = sse_payloads(response)

    captured = capsys.readouterr()
    assert captured.out.count("not found in available models") == 1
    assert events[0]["model"] == app_state.default_model
    assert session.calls[1]["json"]["model"] == app_state.default_model


def test_streaming_failure_is_an_error_chunk(make_client) -> None:
    client, _, app_state = make_client(count=1)
    app_state.credentials.mark_invalid("acc_1")

    response = client.post("/api/chat/completions", json={
        "stream": True,
        "messages": [{"role": "user", "content": "hi"}],
    })

    events = sse_payloads(response)
    assert events[1]["choices"][0]["delta"]["content"].startswith("Error: ")
    assert events[-2]["choices"][0]["finish_reason"] == "stop"
    assert events[-1] == "[DONE]"


def test_chat_endpoint_accepts_message_and_handle(make_client) -> None:
    client, session, _ = make_client(answer("Hi there", response_id="resp-2"))

    response = client.post("/api/chat", json={"message": "hello", "chatId": "chat-1", "parentId": "resp-1"})

    body = response.get_json()
    assert response.status_code == 200
    assert body["choices"][0]["message"]["content"] == "Hi there"
    assert (body["chatId"], body["parentId"]) == ("chat-1", "resp-2")
    assert session.calls[0]["json"]["parent_id"] == "resp-1"


def test_chat_endpoint_rejects_missing_message(make_client) -> None:
    client, _, _ = make_client()

    response = client.post("/api/chat", json={"model": "qwen3-max"})

    assert response.status_code == 400
    assert response.get_json() == {"error": "Message not specified"}


def test_create_chat_endpoint(make_client) -> None:
    client, _, _ = make_client(FakeResponse(json_data={"chat_id": "chat-3", "parent_id": "p-3"}))

    response = client.post("/api/chats", json={"model": "qwen3-max"})

    assert response.get_json() == {"chatId": "chat-3", "parentId": "p-3", "success": True}


def test_task_status_single_check(make_client) -> None:
    client, session, _ = make_client(
        FakeResponse(json_data={"task_status": "completed", "output": "https://cdn.example/v.mp4"}),
        FakeResponse(json_data={"task_status": "running"}),
    )

    done = client.get("/api/tasks/status/task-1")
    running = client.get("/api/tasks/status/task-1")

    assert done.get_json()["status"] == "completed"
    assert done.get_json()["data"]["output"] == "https://cdn.example/v.mp4"
    assert running.get_json() == {"task_id": "task-1", "status": "processing"}
    assert len(session.calls) == 2


def test_status_sweep_reports_accounts_without_secrets(make_client) -> None:
    client, _, app_state = make_client(
        FakeResponse(json_data={"data": {"id": "probe"}}),
        FakeResponse(status_code=401),
    )

    response = client.get("/api/status")

    body = response.get_json()
    assert body["authenticated"] is True
    assert body["totalAccounts"] == 2
    assert body["validAccounts"] == 1
    assert [a["status"] for a in body["accounts"]] == ["OK", "INVALID"]
    assert "secret-" not in response.get_data(as_text=True)
    assert app_state.credentials.store.get("acc_2").invalid is True


def test_api_key_guard(make_client) -> None:
    client, _, _ = make_client(api_keys=["proxy-key"])

    assert client.get("/api/models").status_code == 401
    assert client.get("/api/models", headers={"Authorization": "Bearer wrong"}).get_json() == {"error": "Invalid token"}
    assert client.get("/v1/models", headers={"Authorization": "Bearer proxy-key"}).status_code == 200


def test_unknown_route_is_json_404(make_client) -> None:
    client, _, _ = make_client()

    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}
