"""
Native chat routes: single turns, session creation and task status
"""

from flask import Blueprint, jsonify, request

from ..config import CHAT_TYPE_LABELS
from ..conversation import ChatRequest, ConversationHandle, extract_from_messages
from ..errors import Failure
from ..polling import STATUS_TIMEOUT
from ..streaming import to_completion
from ..utils import preview
from . import get_orchestrator, map_model

chat_bp = Blueprint('chat', __name__)


def handle_from_payload(payload) -> ConversationHandle:
    """Conversation identifiers supplied by the caller, if any"""
    return ConversationHandle(payload.get("chatId") or None, payload.get("parentId") or None)


@chat_bp.route("/api/chat", methods=["POST"])
def chat():
    """Send a message (text, image or video generation)"""
    try:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Invalid JSON body"}), 400

        content = payload.get("message")
        system_message = None
        messages = payload.get("messages")
        if isinstance(messages, list):
            last_user_content, system_message = extract_from_messages(messages)
            if last_user_content is not None:
                content = last_user_content

        if not content:
            print("[Chat] Request without message")
            return jsonify({"error": "Message not specified"}), 400

        handle = handle_from_payload(payload)
        chat_type = payload.get("chatType")
        size = payload.get("size")

        print(f"[Chat] Received request: {preview(content)}")
        if system_message:
            print(f"[Chat] System message: {preview(system_message)}")
        if handle.chat_id:
            print(f"[Chat] Using chatId: {handle.chat_id}, parentId: {handle.parent_id or 'null'}")
        if chat_type:
            label = CHAT_TYPE_LABELS.get(chat_type, chat_type)
            print(f"[Chat] Chat type: {chat_type} ({label})" + (f", size: {size}" if size else ""))

        result = get_orchestrator().send_message(ChatRequest(
            content=content,
            model=map_model(payload.get("model")),
            chat_type=chat_type,
            size=size,
            system_message=system_message,
            files=payload.get("files"),
            wait_for_completion=payload.get("waitForCompletion") is not False,
            handle=handle,
        ))

        if isinstance(result, Failure):
            print(f"[Chat] Error received in response: {result.message}")
            return jsonify(result.to_dict()), result.http_status

        print(f"[Chat] Response successfully generated, response length: {len(result.content or '')}")
        return jsonify(to_completion(result))
    except Exception as e:
        print(f"[Chat] Error processing request: {type(e).__name__}: {e}")
        return jsonify({"error": "Internal server error"}), 500


@chat_bp.route("/api/chats", methods=["POST"])
def create_chat():
    """Create a new upstream conversation"""
    try:
        payload = request.get_json(silent=True) or {}
        handle = get_orchestrator().create_chat(map_model(payload.get("model")))

        if isinstance(handle, Failure):
            return jsonify({"error": handle.message}), handle.http_status

        print(f"[Chat] Created chat: {handle.chat_id}")
        return jsonify({"chatId": handle.chat_id, "parentId": handle.parent_id, "success": True})
    except Exception as e:
        print(f"[Chat] Error creating chat: {type(e).__name__}: {e}")
        return jsonify({"error": "Internal server error"}), 500


@chat_bp.route("/api/tasks/status/<task_id>", methods=["GET"])
def task_status(task_id: str):
    """Single status check of an asynchronous generation task"""
    try:
        print(f"[Chat] Request for task status: {task_id}")
        result = get_orchestrator().check_task(task_id)

        if isinstance(result, Failure):
            return jsonify({"task_id": task_id, **result.to_dict()}), result.http_status

        if result.success:
            return jsonify({"task_id": task_id, "status": result.status, "data": result.data})
        if result.status == STATUS_TIMEOUT:
            # One check that was not definitive: the task is still running
            return jsonify({"task_id": task_id, "status": "processing"})
        return jsonify({
            "task_id": task_id,
            "status": result.status,
            "error": result.error,
            "data": result.data,
        }), 500
    except Exception as e:
        print(f"[Chat] Error checking task status: {type(e).__name__}: {e}")
        return jsonify({"error": "Internal server error", "details": str(e)}), 500
