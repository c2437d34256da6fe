"""
Field-name alias extraction for upstream payloads.

The upstream renames fields between server versions, so each value is read by an
ordered list of extractor functions and the first non-empty match wins.
"""

from typing import Any, Callable, Dict, List, Optional

Extractor = Callable[[Dict[str, Any]], Any]


def top(key: str) -> Extractor:
    """Extractor for a top-level field"""
    def extract(payload: Dict[str, Any]) -> Any:
        return payload.get(key)
    extract.__name__ = f"top[{key}]"
    return extract


def nested(*path: str) -> Extractor:
    """Extractor for a field below one or more nested objects"""
    def extract(payload: Dict[str, Any]) -> Any:
        current: Any = payload
        for key in path:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        return current
    extract.__name__ = "nested[" + ".".join(path) + "]"
    return extract


def first_match(extractors: List[Extractor], payload: Any) -> Optional[str]:
    """Return the first non-empty scalar produced by the extractors, as a string"""
    if not isinstance(payload, dict):
        return None
    for extractor in extractors:
        value = extractor(payload)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (str, int)) and str(value):
            return str(value)
    return None


SESSION_ID_EXTRACTORS: List[Extractor] = [
    nested("data", "id"),
    top("chat_id"),
    top("id"),
    top("chatId"),
]

PARENT_ID_EXTRACTORS: List[Extractor] = [
    nested("data", "parent_id"),
    top("parent_id"),
    top("first_id"),
    top("parentId"),
    top("firstMessageId"),
]

TASK_ID_EXTRACTORS: List[Extractor] = [
    top("task_id"),
    nested("data", "task_id"),
    top("id"),
]

TASK_STATUS_EXTRACTORS: List[Extractor] = [
    top("task_status"),
    top("status"),
    nested("data", "task_status"),
]

# Result of a finished video task
TASK_RESULT_URL_EXTRACTORS: List[Extractor] = [
    top("output"),
    top("result"),
    top("video_url"),
    nested("data", "video_url"),
]

# Artifact carried inside the accumulated content of image/video turns
ARTIFACT_URL_EXTRACTORS: List[Extractor] = [
    top("video_url"),
    top("image_url"),
    top("url"),
    top("task_url"),
    top("output"),
    top("result"),
    nested("data", "url"),
]
