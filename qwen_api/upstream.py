"""
HTTP client for the Qwen chat web API
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests

from .config import (
    CHAT_API_URL,
    CHAT_TYPE_IMAGE,
    CHAT_TYPE_VIDEO,
    CONNECT_TIMEOUT,
    CREATE_CHAT_URL,
    DEFAULT_MODEL,
    REQUEST_TIMEOUT,
    TASK_STATUS_URL,
    USER_AGENT,
)
from .conversation import ChatRequest, ConversationHandle
from .errors import Failure, InvalidCredential, RateLimited, UpstreamError
from .extractors import PARENT_ID_EXTRACTORS, SESSION_ID_EXTRACTORS, first_match
from .token_manager import Credential

INVALID_CREDENTIAL_STATUSES = (401, 403)
RATE_LIMITED_STATUS = 429


def get_qwen_headers(secret: str, accept: str = "application/json") -> Dict[str, str]:
    """Get headers for upstream API requests"""
    return {
        "Authorization": f"Bearer {secret}",
        "Content-Type": "application/json",
        "Accept": accept,
        "User-Agent": USER_AGENT,
        "X-Request-Id": str(uuid.uuid4()),
    }


def classify_failure(status_code: int, body: str, credential_id: str) -> Failure:
    """Map a non-2xx upstream status onto a failure value"""
    if status_code == RATE_LIMITED_STATUS:
        return RateLimited(credential_id, body=body)
    if status_code in INVALID_CREDENTIAL_STATUSES:
        return InvalidCredential(credential_id, status=status_code, body=body)
    return UpstreamError(status_code, body)


def build_feature_config(chat_type: str) -> Dict[str, Any]:
    is_video = chat_type == CHAT_TYPE_VIDEO
    feature_config: Dict[str, Any] = {
        "thinking_enabled": is_video,
        "output_schema": "phase",
    }
    if is_video:
        feature_config["research_mode"] = "normal"
        feature_config["auto_thinking"] = True
        feature_config["thinking_format"] = "summary"
        feature_config["auto_search"] = True
    return feature_config


def build_message_payload(handle: ConversationHandle, chat_request: ChatRequest) -> Dict[str, Any]:
    """Build the message-send envelope for one turn"""
    chat_type = chat_request.chat_type
    parent_id = handle.parent_id
    timestamp = int(time.time())

    new_message = {
        "fid": str(uuid.uuid4()),
        "parentId": parent_id,
        "parent_id": parent_id,
        "role": "user",
        "content": chat_request.content,
        "chat_type": chat_type,
        "sub_chat_type": chat_type,
        "timestamp": timestamp,
        "user_action": "chat",
        "models": [chat_request.model],
        "files": chat_request.files or [],
        "childrenIds": [str(uuid.uuid4())],
        "extra": {
            "meta": {
                "subChatType": chat_type,
            },
        },
        "feature_config": build_feature_config(chat_type),
    }

    payload: Dict[str, Any] = {
        # Video generation is a task submission, never a stream
        "stream": chat_type != CHAT_TYPE_VIDEO,
        "version": "2.1",
        "incremental_output": True,
        "chat_id": handle.chat_id,
        "chat_mode": "normal",
        "messages": [new_message],
        "model": chat_request.model,
        "parent_id": parent_id,
        "timestamp": timestamp,
    }

    if chat_request.system_message:
        payload["system_message"] = chat_request.system_message

    if chat_request.tools:
        payload["tools"] = chat_request.tools
        payload["tool_choice"] = chat_request.tool_choice or "auto"

    if chat_type in (CHAT_TYPE_IMAGE, CHAT_TYPE_VIDEO) and chat_request.size:
        payload["size"] = chat_request.size

    return payload


@dataclass
class UpstreamReply:
    """A successful (2xx) message-send response, not yet consumed"""

    response: requests.Response

    def is_event_stream(self) -> bool:
        content_type = self.response.headers.get("Content-Type", "")
        return "text/event-stream" in content_type.lower()


class UpstreamClient:
    """Session creation, message send and task status calls. Transport errors propagate."""

    def __init__(self, session: Optional[requests.Session] = None,
                 chat_url: str = CHAT_API_URL,
                 create_chat_url: str = CREATE_CHAT_URL,
                 task_status_url: str = TASK_STATUS_URL,
                 timeout: int = REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.chat_url = chat_url
        self.create_chat_url = create_chat_url
        self.task_status_url = task_status_url.rstrip("/")
        self.timeout = timeout

    def create_session(self, model: str, credential: Credential) -> Union[ConversationHandle, Failure]:
        """Create a new upstream chat and return its handle"""
        response = self.session.post(
            self.create_chat_url,
            headers=get_qwen_headers(credential.secret),
            json={"model": model, "timestamp": int(time.time())},
            timeout=CONNECT_TIMEOUT,
        )

        if not response.ok:
            return classify_failure(response.status_code, response.text, credential.id)

        data = response.json()
        chat_id = first_match(SESSION_ID_EXTRACTORS, data)
        if not chat_id:
            return UpstreamError(response.status_code, "Chat creation failed: No chat ID returned from API")

        return ConversationHandle(chat_id=chat_id, parent_id=first_match(PARENT_ID_EXTRACTORS, data))

    def send_turn(self, handle: ConversationHandle, chat_request: ChatRequest,
                  credential: Credential) -> Union[UpstreamReply, Failure]:
        """Submit one user turn; streaming replies are returned unread"""
        payload = build_message_payload(handle, chat_request)
        streaming = payload["stream"]

        response = self.session.post(
            self.chat_url,
            params={"chat_id": handle.chat_id},
            headers=get_qwen_headers(credential.secret, accept="*/*"),
            json=payload,
            stream=streaming,
            timeout=self.timeout,
        )

        if not response.ok:
            failure = classify_failure(response.status_code, response.text, credential.id)
            response.close()
            return failure

        return UpstreamReply(response=response)

    def get_task_status(self, task_id: str, credential: Credential) -> requests.Response:
        """Single status check for an asynchronous generation task"""
        return self.session.get(
            f"{self.task_status_url}/{task_id}",
            headers=get_qwen_headers(credential.secret),
            timeout=CONNECT_TIMEOUT,
        )

    def probe(self, secret: str) -> bool:
        """Check whether a secret is accepted by creating a throwaway chat"""
        response = self.session.post(
            self.create_chat_url,
            headers=get_qwen_headers(secret),
            json={"model": DEFAULT_MODEL, "timestamp": int(time.time())},
            timeout=CONNECT_TIMEOUT,
        )
        return response.ok
