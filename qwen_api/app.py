"""
Flask application factory and initialization
"""

import re
from typing import Optional

from flask import Flask, jsonify, request

from .orchestrator import ChatOrchestrator
from .routes import EXTENSION_KEY
from .routes.chat import chat_bp
from .routes.openai import openai_bp
from .routes.status import status_bp
from .state import State
from .upstream import UpstreamClient

VERSION_SEGMENT = re.compile(r"/v[12](?=/|$)")


class VersionPrefixMiddleware:
    """
    WSGI middleware accepting ``/v1/...`` and ``/api/v1/...`` as aliases of ``/api/...``
    """
    def __init__(self, wsgi_app):
        self.wsgi_app = wsgi_app

    def __call__(self, environ, start_response):
        environ["PATH_INFO"] = normalize_path(environ.get("PATH_INFO", ""))
        return self.wsgi_app(environ, start_response)


def normalize_path(path: str) -> str:
    stripped = VERSION_SEGMENT.sub("", path)
    if stripped == path:
        return path
    stripped = re.sub(r"/+", "/", stripped) or "/"
    if not stripped.startswith("/api"):
        stripped = "/api" + stripped
    return stripped


def create_app(app_state: Optional[State] = None, client: Optional[UpstreamClient] = None) -> Flask:
    """Create and configure the Flask application"""
    if app_state is None:
        from .state import state as app_state

    app = Flask(__name__)
    app.wsgi_app = VersionPrefixMiddleware(app.wsgi_app)
    app.extensions[EXTENSION_KEY] = {
        "state": app_state,
        "orchestrator": ChatOrchestrator.from_state(app_state, client=client),
    }

    # Register blueprints
    app.register_blueprint(chat_bp)
    app.register_blueprint(openai_bp)
    app.register_blueprint(status_bp)

    @app.before_request
    def require_api_key():
        if not app_state.api_keys or not request.path.startswith("/api"):
            return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            print("[Auth] Missing or invalid authorization header")
            return jsonify({"error": "Authorization required"}), 401

        if auth_header[len("Bearer "):].strip() not in app_state.api_keys:
            print("[Auth] Invalid API key provided")
            return jsonify({"error": "Invalid token"}), 401
        return None

    # Error handlers
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error"}), 500

    return app


def initialize_app(app_state: Optional[State] = None) -> None:
    """Report the credential pool at startup"""
    if app_state is None:
        from .state import state as app_state

    credentials = app_state.credentials
    tokens = credentials.list_tokens()
    if not credentials.has_valid_tokens():
        print("\n" + "=" * 60)
        print("WARNING: No valid Qwen token available!")
        print("=" * 60)
        print("Options to provide a token:")
        print("  1. Set the QWEN_TOKEN or QWEN_TOKENS environment variable")
        print("  2. Run: qwen-api --add-token <token> [--name <label>]")
        print("=" * 60)
        print("Chat requests will fail with 503 until a token is added.")
        return

    print(f"[Token Manager] Loaded {len(tokens)} account(s)")
    for info in credentials.describe():
        print(f"  {info['id']} - {info['name']} [{info['status']}]")
    print("Application initialized successfully")
