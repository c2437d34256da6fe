"""
Request and response types for a single chat turn
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .config import CHAT_TYPE_TEXT, CHAT_TYPES


def empty_usage() -> Dict[str, int]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


@dataclass(frozen=True)
class ConversationHandle:
    """Upstream session id plus the id of its latest message node"""

    chat_id: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return not self.chat_id


@dataclass
class ChatRequest:
    content: Any
    model: str
    chat_type: str = CHAT_TYPE_TEXT
    size: Optional[str] = None
    tools: Optional[List[Dict]] = None
    tool_choice: Any = None
    system_message: Optional[str] = None
    files: Optional[List[Dict]] = None
    wait_for_completion: bool = True
    handle: ConversationHandle = field(default_factory=ConversationHandle)


@dataclass
class NormalizedResponse:
    id: str
    model: str
    content: str
    handle: ConversationHandle
    finish_reason: str = "stop"
    usage: Dict[str, Any] = field(default_factory=empty_usage)
    created: int = field(default_factory=lambda: int(time.time()))
    task_id: Optional[str] = None
    task_status: Optional[str] = None
    artifact_url: Optional[str] = None


def normalize_chat_type(chat_type: Optional[str]) -> str:
    if chat_type in CHAT_TYPES:
        return chat_type
    return CHAT_TYPE_TEXT


def _normalize_part(part: Any) -> Optional[Dict]:
    """Map a content part onto the upstream text/image/file shape"""
    if not isinstance(part, dict):
        return None
    part_type = part.get("type")

    if part_type == "text" and isinstance(part.get("text"), str):
        return {"type": "text", "text": part["text"]}
    if part_type == "image" and isinstance(part.get("image"), str):
        return {"type": "image", "image": part["image"]}
    if part_type == "file" and isinstance(part.get("file"), str):
        return {"type": "file", "file": part["file"]}

    # OpenAI-style image parts
    if part_type == "image_url":
        image_url = part.get("image_url")
        if isinstance(image_url, dict):
            image_url = image_url.get("url")
        if isinstance(image_url, str):
            return {"type": "image", "image": image_url}

    return None


def normalize_content(content: Any) -> Tuple[Any, Optional[str]]:
    """
    Validate message content.

    Returns the content in upstream form and an error message, one of which is None.
    """
    if content is None:
        return None, "Message cannot be empty"

    if isinstance(content, str):
        return content, None

    if isinstance(content, list):
        parts = [_normalize_part(p) for p in content]
        if not parts or any(p is None for p in parts):
            return None, "Invalid message structure"
        return parts, None

    return None, "Unsupported message format"


def _text_of(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [p.get("text", "") for p in content if isinstance(p, dict) and p.get("type") == "text"]
        return "\n\n".join(texts) if texts else None
    return None


def extract_from_messages(messages: List[Dict]) -> Tuple[Any, Optional[str]]:
    """Pick the last user message content and the system prompt from an OpenAI message list"""
    system_message = None
    for msg in messages:
        if isinstance(msg, dict) and msg.get("role") == "system":
            system_message = _text_of(msg.get("content"))
            break

    user_messages = [m for m in messages if isinstance(m, dict) and m.get("role") == "user"]
    if not user_messages:
        return None, system_message
    return user_messages[-1].get("content"), system_message
