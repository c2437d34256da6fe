"""
Translation of upstream server-sent-event payloads into accumulated chat results
"""

import codecs
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Union

from .config import CHAT_TYPE_TEXT
from .extractors import ARTIFACT_URL_EXTRACTORS, first_match

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"
TERMINAL_FINISH_REASONS = ("stop", "length")


@dataclass
class TranslationResult:
    content: str = ""
    response_id: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    finished: bool = False
    finish_reason: Optional[str] = None
    artifact_url: Optional[str] = None
    skipped_frames: int = 0


def extract_artifact_url(content: str) -> Optional[str]:
    """Return the task/image/video URL when the content itself is a JSON object"""
    if not content:
        return None
    try:
        data = json.loads(content)
    except ValueError:
        return None
    return first_match(ARTIFACT_URL_EXTRACTORS, data)


class StreamTranslator:
    """
    Accumulates SSE frames into a TranslationResult.

    Chunks may split frames (and UTF-8 sequences) at any byte; the trailing
    partial line is held until the next chunk or until close().
    """

    def __init__(self, chat_type: str = CHAT_TYPE_TEXT):
        self.chat_type = chat_type
        self.result = TranslationResult()
        self.done = False
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: Union[bytes, str]) -> None:
        """Feed one delivery chunk of the live stream"""
        if self.done:
            return
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        for line in lines:
            self.feed_line(line)
            if self.done:
                self._buffer = ""
                return

    def feed_line(self, line: str) -> None:
        """Process a single SSE line"""
        if self.done:
            return
        line = line.strip()
        if not line.startswith(SSE_DATA_PREFIX):
            return

        data = line[len(SSE_DATA_PREFIX):].strip()
        if not data:
            return
        if data == SSE_DONE:
            self.done = True
            return

        try:
            frame = json.loads(data)
        except ValueError:
            self.result.skipped_frames += 1
            return
        if not isinstance(frame, dict):
            self.result.skipped_frames += 1
            return

        self.feed_frame(frame)

    def feed_frame(self, frame: Dict[str, Any]) -> None:
        """Apply one decoded frame to the accumulated result"""
        result = self.result

        created = frame.get("response.created")
        response_id = created.get("response_id") if isinstance(created, dict) else None
        response_id = response_id or frame.get("response_id")
        if response_id:
            result.response_id = str(response_id)

        choices = frame.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            choice = choices[0]
            delta = choice.get("delta")

            if isinstance(delta, dict):
                content = delta.get("content")
                if isinstance(content, str) and content:
                    result.content += content
                if delta.get("status") == "finished":
                    result.finished = True
                    result.finish_reason = result.finish_reason or "stop"
            elif delta is None:
                # Complete-message frame: replaces whatever was accumulated
                message = choice.get("message")
                if isinstance(message, dict) and isinstance(message.get("content"), str):
                    result.content = message["content"]

            finish_reason = choice.get("finish_reason")
            if finish_reason in TERMINAL_FINISH_REASONS:
                result.finished = True
                result.finish_reason = finish_reason

        # Last writer wins
        usage = frame.get("usage")
        if isinstance(usage, dict):
            result.usage = usage

    def close(self) -> TranslationResult:
        """Flush the held-over partial line and finalize the result"""
        if not self.done:
            tail = self._buffer + self._decoder.decode(b"", final=True)
            self._buffer = ""
            for line in tail.split("\n"):
                self.feed_line(line)

        if self.chat_type != CHAT_TYPE_TEXT:
            artifact_url = extract_artifact_url(self.result.content)
            if artifact_url:
                self.result.artifact_url = artifact_url
                self.result.content = artifact_url
        return self.result


def translate_stream(chunks: Iterable[Union[bytes, str]], chat_type: str = CHAT_TYPE_TEXT) -> TranslationResult:
    """Translate an incrementally delivered SSE stream"""
    translator = StreamTranslator(chat_type)
    for chunk in chunks:
        translator.feed(chunk)
        if translator.done:
            break
    return translator.close()


def translate_buffered(text: str, chat_type: str = CHAT_TYPE_TEXT) -> TranslationResult:
    """Translate an SSE stream that was collected into a single text blob"""
    translator = StreamTranslator(chat_type)
    for line in text.split("\n"):
        translator.feed_line(line)
        if translator.done:
            break
    return translator.close()


def looks_like_sse(text: str) -> bool:
    return text.lstrip().startswith(SSE_DATA_PREFIX)
