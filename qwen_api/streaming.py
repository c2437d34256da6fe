"""
Rendering of normalized chat results in OpenAI format, buffered or as SSE chunks
"""

import json
import time
from typing import Any, Callable, Dict, Generator, Iterator, Optional

from .config import DEFAULT_STREAM_CHUNK_DELAY_MS, DEFAULT_STREAM_CHUNK_SIZE
from .conversation import ConversationHandle, NormalizedResponse
from .errors import Failure


def sse_event(data: Any) -> str:
    """Format one server-sent event"""
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False)
    return f"data: {data}\n\n"


def to_completion(result: NormalizedResponse) -> Dict[str, Any]:
    """Build an OpenAI chat.completion object with the conversation handle attached"""
    response: Dict[str, Any] = {
        "id": result.id,
        "object": "chat.completion",
        "created": result.created,
        "model": result.model,
        "choices": [{
            "index": 0,
            "message": {
                "role": "assistant",
                "content": result.content,
            },
            "finish_reason": result.finish_reason,
        }],
        "usage": result.usage,
        "chatId": result.handle.chat_id,
        "parentId": result.handle.parent_id,
    }

    if result.task_id:
        response["task_id"] = result.task_id
        response["task_status"] = result.task_status
    if result.artifact_url:
        response["video_url" if result.task_id else "artifact_url"] = result.artifact_url

    return response


def to_error_body(failure: Failure) -> Dict[str, Any]:
    """OpenAI-style error envelope for the completions endpoint"""
    return {
        "error": {
            "message": failure.message,
            "type": "server_error",
            "chatId": failure.chat_id,
            "parentId": failure.parent_id,
        }
    }


def split_content(content: str, chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE) -> Iterator[str]:
    """Split text into pieces of at most chunk_size code points"""
    chunk_size = max(1, chunk_size)
    for start in range(0, len(content), chunk_size):
        yield content[start:start + chunk_size]


class ChunkBuilder:
    """Builds chat.completion.chunk objects sharing one id and model"""
    def __init__(self, model: str, response_id: Optional[str] = None, created: Optional[int] = None):
        self.created = created or int(time.time())
        self.response_id = response_id or f"chatcmpl-{int(time.time() * 1000)}"
        self.model = model

    def chunk(self, delta: Dict[str, Any], finish_reason: Optional[str] = None,
              handle: Optional[ConversationHandle] = None) -> Dict[str, Any]:
        chunk: Dict[str, Any] = {
            "id": self.response_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }],
        }
        if handle is not None:
            chunk["chatId"] = handle.chat_id
            chunk["parentId"] = handle.parent_id
        return chunk


def stream_completion(model: str, run: Callable[[], Any],
                      chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
                      chunk_delay_ms: int = DEFAULT_STREAM_CHUNK_DELAY_MS,
                      sleep: Callable[[float], None] = time.sleep) -> Generator[str, None, None]:
    """
    Re-stream a buffered chat result as OpenAI SSE chunks.

    The role chunk is sent before ``run`` is called so the client sees activity
    while the upstream turn is in progress. A failure is rendered as an
    ``Error: ...`` content chunk and the stream still ends with a stop chunk
    and ``[DONE]``.
    """
    builder = ChunkBuilder(model)
    yield sse_event(builder.chunk({"role": "assistant"}))

    handle = None
    try:
        result = run()
        if isinstance(result, Failure):
            print(f"[Stream] Upstream failure: {result.message}")
            handle = ConversationHandle(result.chat_id, result.parent_id)
            yield sse_event(builder.chunk({"content": f"Error: {result.message}"}))
        else:
            handle = result.handle
            pieces = list(split_content(result.content or "", chunk_size))
            for index, piece in enumerate(pieces):
                yield sse_event(builder.chunk({"content": piece}))
                if chunk_delay_ms > 0 and index < len(pieces) - 1:
                    sleep(chunk_delay_ms / 1000.0)
    except GeneratorExit:
        print("[Stream] Client disconnected")
        return
    except Exception as e:
        print(f"[Stream] Error: {type(e).__name__}: {e}")
        yield sse_event(builder.chunk({"content": f"Error: {e}"}))

    yield sse_event(builder.chunk({}, finish_reason="stop", handle=handle))
    yield sse_event("[DONE]")
