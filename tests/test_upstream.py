from __future__ import annotations

from qwen_api.conversation import ChatRequest, ConversationHandle
from qwen_api.errors import InvalidCredential, RateLimited, UpstreamError
from qwen_api.upstream import UpstreamClient, UpstreamReply, build_message_payload, classify_failure

from conftest import FakeResponse, FakeSession, make_credentials


def test_classify_failure_maps_status_codes() -> None:
    assert isinstance(classify_failure(429, "slow down", "acc_1"), RateLimited)
    assert isinstance(classify_failure(401, "", "acc_1"), InvalidCredential)
    assert isinstance(classify_failure(403, "", "acc_1"), InvalidCredential)

    failure = classify_failure(500, "boom", "acc_1")
    assert isinstance(failure, UpstreamError)
    assert failure.message == "HTTP 500: boom"
    assert classify_failure(429, "", "acc_7").credential_id == "acc_7"


def test_payload_forwards_parent_id_unchanged() -> None:
    handle = ConversationHandle("chat-1", "parent-9")
    request = ChatRequest(content="hi", model="qwen3-max")

    payload = build_message_payload(handle, request)
    message = payload["messages"][0]

    assert payload["chat_id"] == "chat-1"
    assert payload["parent_id"] == "parent-9"
    assert message["parentId"] == "parent-9"
    assert message["parent_id"] == "parent-9"
    assert payload["stream"] is True
    assert message["feature_config"] == {"thinking_enabled": False, "output_schema": "phase"}
    assert "size" not in payload
    assert "tools" not in payload


def test_each_turn_gets_fresh_message_ids() -> None:
    request = ChatRequest(content="hi", model="qwen3-max")
    first = build_message_payload(ConversationHandle("c"), request)["messages"][0]
    second = build_message_payload(ConversationHandle("c"), request)["messages"][0]

    assert first["fid"] != second["fid"]
    assert first["childrenIds"] != second["childrenIds"]


def test_video_payload_is_not_streamed_and_carries_size() -> None:
    request = ChatRequest(content="a cat", model="qwen3-max", chat_type="t2v", size="16:9")

    payload = build_message_payload(ConversationHandle("chat-1"), request)
    feature_config = payload["messages"][0]["feature_config"]

    assert payload["stream"] is False
    assert payload["size"] == "16:9"
    assert feature_config["thinking_enabled"] is True
    assert feature_config["research_mode"] == "normal"
    assert feature_config["auto_search"] is True


def test_tools_default_to_auto_choice_and_system_message_is_sent() -> None:
    tools = [{"type": "function", "function": {"name": "lookup"}}]
    request = ChatRequest(content="hi", model="qwen3-max", tools=tools, system_message="be brief", size="1:1")

    payload = build_message_payload(ConversationHandle("chat-1"), request)

    assert payload["tools"] == tools
    assert payload["tool_choice"] == "auto"
    assert payload["system_message"] == "be brief"
    # size only applies to image and video generation
    assert "size" not in payload


def test_create_session_reads_aliased_ids() -> None:
    credential = make_credentials(1)[0]
    session = FakeSession(
        FakeResponse(json_data={"data": {"id": "chat-a", "parent_id": "p-a"}}),
        FakeResponse(json_data={"chatId": "chat-b", "firstMessageId": "p-b"}),
        FakeResponse(json_data={"success": True, "data": {}}),
    )
    client = UpstreamClient(session=session)

    assert client.create_session("qwen3-max", credential) == ConversationHandle("chat-a", "p-a")
    assert client.create_session("qwen3-max", credential) == ConversationHandle("chat-b", "p-b")
    assert isinstance(client.create_session("qwen3-max", credential), UpstreamError)
    assert session.calls[0]["headers"]["Authorization"] == "Bearer secret-1"


def test_send_turn_classifies_and_closes_failed_response() -> None:
    credential = make_credentials(1)[0]
    rejected = FakeResponse(status_code=429, text="too many requests")
    session = FakeSession(rejected)
    client = UpstreamClient(session=session)

    failure = client.send_turn(ConversationHandle("chat-1"), ChatRequest(content="hi", model="qwen3-max"), credential)

    assert isinstance(failure, RateLimited)
    assert failure.credential_id == "acc_1"
    assert rejected.closed is True
    assert session.calls[0]["params"] == {"chat_id": "chat-1"}
    assert session.calls[0]["stream"] is True


def test_credential_check_reports_acceptance() -> None:
    session = FakeSession(FakeResponse(json_data={"data": {"id": "c"}}), FakeResponse(status_code=401))
    client = UpstreamClient(session=session)

    assert client.probe("good") is True
    assert client.probe("bad") is False


def test_only_credential_failures_are_retryable() -> None:
    assert classify_failure(429, "", "acc_1").retryable is True
    assert classify_failure(401, "", "acc_1").retryable is True
    assert classify_failure(500, "", "acc_1").retryable is False


def test_send_turn_returns_unread_reply() -> None:
    credential = make_credentials(1)[0]
    accepted = FakeResponse(text="data: {}\n\n", headers={"Content-Type": "text/event-stream; charset=utf-8"})
    client = UpstreamClient(session=FakeSession(accepted))

    reply = client.send_turn(ConversationHandle("chat-1"), ChatRequest(content="hi", model="qwen3-max"), credential)

    assert isinstance(reply, UpstreamReply)
    assert reply.response is accepted
    assert reply.is_event_stream() is True
    assert accepted.closed is False
