"""
OpenAI-compatible API routes
"""

from flask import Blueprint, Response, jsonify, request, stream_with_context

from ..config import AVAILABLE_MODELS
from ..conversation import ChatRequest, extract_from_messages
from ..errors import Failure, NoCredentialsAvailable
from ..streaming import stream_completion, to_completion, to_error_body
from ..utils import preview
from . import get_orchestrator, get_state, map_model
from .chat import handle_from_payload

openai_bp = Blueprint('openai', __name__)


@openai_bp.route("/api/models", methods=["GET"])
def list_models():
    """List available models"""
    models = [
        {
            "id": model,
            "object": "model",
            "created": 0,
            "owned_by": "qwen",
            "permission": [],
        }
        for model in AVAILABLE_MODELS
    ]
    print(f"[OpenAI API] Returned {len(models)} models")
    return jsonify({"object": "list", "data": models})


def combine_tools(payload):
    """Tools from either the tools list or the legacy functions list"""
    if payload.get("tools"):
        return payload["tools"]
    functions = payload.get("functions")
    if functions:
        return [{"type": "function", "function": fn} for fn in functions]
    return None


@openai_bp.route("/api/chat/completions", methods=["POST"])
def chat_completions():
    """Handle chat completions (OpenAI format)"""
    try:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Invalid JSON body"}), 400

        messages = payload.get("messages")
        stream = bool(payload.get("stream"))
        print(f"[OpenAI API] Received request{' (stream)' if stream else ''}")

        if not isinstance(messages, list) or not messages:
            return jsonify({"error": "Messages not specified"}), 400

        content, system_message = extract_from_messages(messages)
        if content is None:
            return jsonify({"error": "No user messages in request"}), 400

        app_state = get_state()
        orchestrator = get_orchestrator()
        model = orchestrator.resolve_model(map_model(payload.get("model")))
        print(f"[OpenAI API] Message: {preview(content)}")

        chat_request = ChatRequest(
            content=content,
            model=model,
            chat_type=payload.get("chatType"),
            size=payload.get("size"),
            tools=combine_tools(payload),
            tool_choice=payload.get("tool_choice"),
            system_message=system_message,
            wait_for_completion=payload.get("waitForCompletion") is not False,
            handle=handle_from_payload(payload),
        )

        if stream:
            generator = stream_completion(
                model,
                lambda: orchestrator.send_message(chat_request),
                chunk_size=app_state.stream_chunk_size,
                chunk_delay_ms=app_state.stream_chunk_delay_ms,
            )
            return Response(
                stream_with_context(generator),
                mimetype="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no",
                },
            )

        result = orchestrator.send_message(chat_request)
        if isinstance(result, Failure):
            status_code = 503 if isinstance(result, NoCredentialsAvailable) else 500
            return jsonify(to_error_body(result)), status_code

        return jsonify(to_completion(result))
    except Exception as e:
        print(f"[OpenAI API] Error processing request: {type(e).__name__}: {e}")
        return jsonify({"error": {"message": "Internal server error", "type": "server_error"}}), 500
