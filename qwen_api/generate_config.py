import os
import platform

from .config import (
    DEFAULT_COOLDOWN_HOURS,
    DEFAULT_MAX_RETRIES_PER_FAILURE,
    DEFAULT_MODEL,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_MAX_ATTEMPTS,
    DEFAULT_STREAM_CHUNK_DELAY_MS,
    DEFAULT_STREAM_CHUNK_SIZE,
    PORT,
)
from .utils import get_config_dir


def get_config_path(config_dir=None):
    return os.path.join(config_dir or get_config_dir(), "config.yaml")


CONFIG_TEMPLATE = """# Qwen Chat API Proxy Configuration
# =================================

# Server Settings
# ---------------

address: localhost
port: {port}
debug: false

# Default Model
# -------------
# Used when a request names no model or a model the upstream does not know.
default_model: {default_model}

# Proxy API Keys
# --------------
# When non-empty, every /api route requires "Authorization: Bearer <key>".
# The API_KEYS environment variable (comma-separated) is used when this is empty.
api_keys: []

# Token Rotation
# --------------
# Hours an account stays out of rotation after the upstream answers 429.
cooldown_hours: {cooldown_hours}

# How many times a single request may switch accounts per failure class
# (rate limited / invalid token) before the failure is returned.
max_retries_per_failure: {max_retries_per_failure}

# Video Generation Polling
# ------------------------
poll_max_attempts: {poll_max_attempts}
poll_interval_ms: {poll_interval_ms}

# OpenAI Streaming
# ----------------
# Buffered answers are re-streamed in pieces of this many characters.
stream_chunk_size: {stream_chunk_size}
stream_chunk_delay_ms: {stream_chunk_delay_ms}

# Model Name Mappings
# -------------------
# Translate incoming model names before they are sent upstream.
#
# 1. exact: Full model name must match exactly
# 2. prefix: Model name starts with the specified prefix
#
# Setting "exact" replaces the built-in OpenAI name mappings.
model_mappings:
  exact:
    gpt-4o: qwen3-max
    gpt-4o-mini: qwen-turbo-2025-02-11
    gpt-4-turbo: qwen3-max
    gpt-4: qwen-max-latest
    gpt-3.5-turbo: qwen-turbo-2025-02-11

  prefix:
    qwen3-coder-: qwen3-coder-plus
"""


def generate_config_file(config_dir=None):
    """Generate a YAML config file in the config directory with comments"""
    config_dir = config_dir or get_config_dir()
    os.makedirs(config_dir, exist_ok=True)

    config_path = get_config_path(config_dir)

    config_content = CONFIG_TEMPLATE.format(
        port=PORT,
        default_model=DEFAULT_MODEL,
        cooldown_hours=DEFAULT_COOLDOWN_HOURS,
        max_retries_per_failure=DEFAULT_MAX_RETRIES_PER_FAILURE,
        poll_max_attempts=DEFAULT_POLL_MAX_ATTEMPTS,
        poll_interval_ms=DEFAULT_POLL_INTERVAL_MS,
        stream_chunk_size=DEFAULT_STREAM_CHUNK_SIZE,
        stream_chunk_delay_ms=DEFAULT_STREAM_CHUNK_DELAY_MS,
    )
    if os.path.exists(config_path):
        print(f"Configuration file already exists at: {config_path}")
    else:
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write(config_content)
        print(f"Configuration file generated at: {config_path}")

    # On Windows, try to open with notepad
    if platform.system() == "Windows":
        os.system(f"notepad {config_path}")

    return config_path
