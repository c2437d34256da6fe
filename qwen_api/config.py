"""
Configuration constants for the Qwen chat API proxy
"""

import os
from typing import Dict, List, Any

# Environment variables
PORT = int(os.environ.get("PORT", 3264))
HOST = os.environ.get("HOST", "0.0.0.0")
DEBUG = os.environ.get("DEBUG", "false").lower() == "true"

# Credentials provided through the environment (never written back to disk)
QWEN_TOKEN_ENV = "QWEN_TOKEN"
QWEN_TOKENS_ENV = "QWEN_TOKENS"

# Optional proxy API keys (comma-separated)
API_KEYS: List[str] = [k.strip() for k in os.environ.get("API_KEYS", "").split(",") if k.strip()]

# Upstream API Configuration
QWEN_BASE_URL = os.environ.get("QWEN_BASE_URL", "https://chat.qwen.ai").rstrip("/")
CHAT_API_URL = os.environ.get("CHAT_API_URL", f"{QWEN_BASE_URL}/api/v2/chat/completions")
CREATE_CHAT_URL = os.environ.get("CREATE_CHAT_URL", f"{QWEN_BASE_URL}/api/v2/chats/new")
TASK_STATUS_URL = os.environ.get("TASK_STATUS_URL", f"{QWEN_BASE_URL}/api/v1/tasks/status")

USER_AGENT = os.environ.get(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
)

# Timeouts (seconds)
REQUEST_TIMEOUT = int(os.environ.get("REQUEST_TIMEOUT", 1200))
CONNECT_TIMEOUT = int(os.environ.get("CONNECT_TIMEOUT", 30))

# Rotation and polling defaults
DEFAULT_COOLDOWN_HOURS = 24
DEFAULT_MAX_RETRIES_PER_FAILURE = 1
DEFAULT_POLL_MAX_ATTEMPTS = 90
DEFAULT_POLL_INTERVAL_MS = int(os.environ.get("RETRY_DELAY", 2000))

# Re-streaming of buffered answers in OpenAI streaming mode
DEFAULT_STREAM_CHUNK_SIZE = 16
DEFAULT_STREAM_CHUNK_DELAY_MS = int(os.environ.get("STREAMING_CHUNK_DELAY", 20))

# Conversation modes
CHAT_TYPE_TEXT = "t2t"
CHAT_TYPE_IMAGE = "t2i"
CHAT_TYPE_VIDEO = "t2v"
CHAT_TYPES = (CHAT_TYPE_TEXT, CHAT_TYPE_IMAGE, CHAT_TYPE_VIDEO)
CHAT_TYPE_LABELS = {
    CHAT_TYPE_TEXT: "text",
    CHAT_TYPE_IMAGE: "image",
    CHAT_TYPE_VIDEO: "video",
}

DEFAULT_MODEL = os.environ.get("DEFAULT_MODEL", "qwen-max-latest")

AVAILABLE_MODELS = [
    "qwen3-max",
    "qwen3-vl-plus",
    "qwen3-coder-plus",
    "qwen3-omni-flash",
    "qwen-plus-2025-09-11",
    "qwen3-235b-a22b",
    "qwen3-30b-a3b",
    "qwen3-coder-30b-a3b-instruct",
    "qwen-max-latest",
    "qwen-plus-2025-01-25",
    "qwq-32b",
    "qwen-turbo-2025-02-11",
    "qwen2.5-omni-7b",
    "qvq-72b-preview-0310",
    "qwen2.5-vl-32b-instruct",
    "qwen2.5-14b-instruct-1m",
    "qwen2.5-coder-32b-instruct",
    "qwen2.5-72b-instruct",
]

DEFAULT_EXACT_MAPPINGS = {
    "gpt-4o": "qwen3-max",
    "gpt-4o-mini": "qwen-turbo-2025-02-11",
    "gpt-4-turbo": "qwen3-max",
    "gpt-4": "qwen-max-latest",
    "gpt-3.5-turbo": "qwen-turbo-2025-02-11",
}


def is_valid_model(model: str) -> bool:
    """Check whether the model name is known to the upstream"""
    return model in AVAILABLE_MODELS


# Model name mappings (loaded from config file)
class ModelMappings:
    """Stores model name translation mappings"""
    def __init__(self):
        self.exact_mappings: Dict[str, str] = dict(DEFAULT_EXACT_MAPPINGS)
        self.prefix_mappings: Dict[str, str] = {}

    def translate(self, model: str) -> str:
        """Translate model name using exact match first, then prefix match"""
        if model in self.exact_mappings:
            return self.exact_mappings[model]

        for prefix, target in self.prefix_mappings.items():
            if model.startswith(prefix):
                return target

        return model

    def load_from_config(self, config: Dict[str, Any]) -> None:
        """Load mappings from config dictionary"""
        model_mappings = config.get("model_mappings") or {}
        exact = model_mappings.get("exact")
        if exact is not None:
            self.exact_mappings = dict(exact)
        self.prefix_mappings = dict(model_mappings.get("prefix") or {})


# Global model mappings instance
model_mappings = ModelMappings()
