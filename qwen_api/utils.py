from datetime import datetime
import json
import os
import platform
from typing import Any, Optional

from .config import model_mappings


def get_config_dir():
    """Get the config directory path based on the OS"""
    override = os.environ.get("QWEN_API_HOME")
    if override:
        return os.path.expanduser(override)
    if platform.system() == "Windows":
        return os.path.expandvars("%APPDATA%/qwen-api")
    else:
        return os.path.expanduser("~/.qwen-api")


def log_error_request(endpoint: str, request_body: Any, response_body: str, status_code: Optional[int]):
    """Log failed upstream requests to the error log file"""
    try:
        log_dir = get_config_dir()
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, "error.log")

        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "endpoint": endpoint,
            "status_code": status_code,
            "request": request_body,
            "response": response_body,
        }

        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry, ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        print(f"[Error Log] Failed to write log: {e}")


def preview(text: Any, limit: int = 50) -> str:
    """Shorten a message for console output"""
    if not isinstance(text, str):
        return "Complex message"
    return text[:limit] + ("..." if len(text) > limit else "")


def print_model_mappings():
    """Print the loaded model mappings"""
    print("\n" + "=" * 60)
    print("Model Name Mappings")
    print("=" * 60)

    if model_mappings.exact_mappings:
        print("\nExact Mappings:")
        for source, target in model_mappings.exact_mappings.items():
            print(f"  {source} -> {target}")
    else:
        print("\nExact Mappings: (none)")

    if model_mappings.prefix_mappings:
        print("\nPrefix Mappings:")
        for prefix, target in model_mappings.prefix_mappings.items():
            print(f"  {prefix}* -> {target}")
    else:
        print("\nPrefix Mappings: (none)")

    print("=" * 60 + "\n")

