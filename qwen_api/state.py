"""
Application state: runtime settings and the credential manager
"""

from typing import Any, Dict, List, Optional

from .config import (
    API_KEYS,
    DEFAULT_COOLDOWN_HOURS,
    DEFAULT_MAX_RETRIES_PER_FAILURE,
    DEFAULT_MODEL,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_MAX_ATTEMPTS,
    DEFAULT_STREAM_CHUNK_DELAY_MS,
    DEFAULT_STREAM_CHUNK_SIZE,
    model_mappings,
)
from .token_manager import CredentialManager


class State:
    """Runtime settings shared by the request handlers"""
    def __init__(self, credentials: Optional[CredentialManager] = None):
        self._credentials = credentials
        self.default_model: str = DEFAULT_MODEL
        self.api_keys: List[str] = list(API_KEYS)

        # Rotation settings
        self.cooldown_hours: float = DEFAULT_COOLDOWN_HOURS
        self.max_retries_per_failure: int = DEFAULT_MAX_RETRIES_PER_FAILURE

        # Asynchronous generation polling
        self.poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
        self.poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS

        # OpenAI streaming re-chunking
        self.stream_chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE
        self.stream_chunk_delay_ms: int = DEFAULT_STREAM_CHUNK_DELAY_MS

    @property
    def credentials(self) -> CredentialManager:
        """Credential manager, built from the environment on first use"""
        if self._credentials is None:
            self._credentials = CredentialManager.from_environment()
        return self._credentials

    @credentials.setter
    def credentials(self, manager: CredentialManager) -> None:
        self._credentials = manager

    def load_from_config(self, config: Dict[str, Any]) -> None:
        """Override settings from a parsed config.yaml"""
        self.default_model = config.get("default_model", self.default_model)
        api_keys = config.get("api_keys")
        if api_keys:
            self.api_keys = [str(k).strip() for k in api_keys if str(k).strip()]
        self.cooldown_hours = float(config.get("cooldown_hours", self.cooldown_hours))
        self.max_retries_per_failure = int(config.get("max_retries_per_failure", self.max_retries_per_failure))
        self.poll_max_attempts = int(config.get("poll_max_attempts", self.poll_max_attempts))
        self.poll_interval_ms = int(config.get("poll_interval_ms", self.poll_interval_ms))
        self.stream_chunk_size = int(config.get("stream_chunk_size", self.stream_chunk_size))
        self.stream_chunk_delay_ms = int(config.get("stream_chunk_delay_ms", self.stream_chunk_delay_ms))
        model_mappings.load_from_config(config)


# Global state instance
state = State()
