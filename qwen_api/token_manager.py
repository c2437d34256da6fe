"""
Credential pool management: durable token store, round-robin selection and the
manager object that owns both.
"""

import dataclasses
import json
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

from .config import DEFAULT_COOLDOWN_HOURS, QWEN_TOKEN_ENV, QWEN_TOKENS_ENV
from .utils import get_config_dir

ORIGIN_ENVIRONMENT = "environment"
ORIGIN_PERSISTED = "persisted"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written by this store or by older JS tooling"""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            print(f"[Token Manager] Warning: ignoring unreadable timestamp {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Credential:
    """One upstream account: its bearer secret plus validity state"""

    id: str
    secret: str = field(repr=False)
    name: Optional[str] = None
    invalid: bool = False
    cool_down_until: Optional[datetime] = None
    origin: str = ORIGIN_PERSISTED

    def is_eligible(self, now: datetime) -> bool:
        if self.invalid:
            return False
        return self.cool_down_until is None or now >= self.cool_down_until

    def status(self, now: datetime) -> str:
        if self.invalid:
            return "INVALID"
        if self.cool_down_until is not None and now < self.cool_down_until:
            return "RATE_LIMITED"
        return "OK"

    def describe(self, now: datetime) -> Dict:
        """Public view of the credential, without the secret"""
        return {
            "id": self.id,
            "name": self.name or "Unknown",
            "status": self.status(now),
            "resetAt": format_timestamp(self.cool_down_until),
            "invalid": self.invalid,
            "origin": self.origin,
        }

    def to_record(self) -> Dict:
        return {
            "id": self.id,
            "token": self.secret,
            "name": self.name,
            "resetAt": format_timestamp(self.cool_down_until),
            "invalid": self.invalid,
            "origin": self.origin,
        }

    @classmethod
    def from_record(cls, record: Mapping) -> "Credential":
        return cls(
            id=str(record["id"]),
            secret=str(record.get("token") or ""),
            name=record.get("name"),
            invalid=bool(record.get("invalid", False)),
            cool_down_until=parse_timestamp(record.get("resetAt")),
            origin=ORIGIN_PERSISTED,
        )


def get_tokens_file_path():
    """Get the path to the persisted token list"""
    return os.path.join(get_config_dir(), "tokens.json")


def credentials_from_environment(environ: Optional[Mapping[str, str]] = None) -> List[Credential]:
    """Build credentials from QWEN_TOKEN and the comma-separated QWEN_TOKENS"""
    environ = os.environ if environ is None else environ
    credentials: List[Credential] = []
    seen = set()

    single = (environ.get(QWEN_TOKEN_ENV) or "").strip()
    if single:
        credentials.append(Credential(id="env_token_1", secret=single, origin=ORIGIN_ENVIRONMENT))
        seen.add(single)

    multi = [t.strip() for t in (environ.get(QWEN_TOKENS_ENV) or "").split(",") if t.strip()]
    for i, secret in enumerate(multi):
        if secret in seen:
            continue
        seen.add(secret)
        credentials.append(Credential(id=f"env_token_{i + 2}", secret=secret, origin=ORIGIN_ENVIRONMENT))

    return credentials


class CredentialStore:
    """
    Durable credential list.

    Persisted credentials live in a JSON file and every mutation is a
    load-all / mutate / save-all cycle. Environment credentials are kept in
    memory only. Storage failures never raise: reads fall back to the last
    known list and failed writes keep the mutation in memory.
    """

    def __init__(self, path: Optional[str] = None, env_credentials: Optional[List[Credential]] = None,
                 clock: Clock = utc_now):
        self.path = path or get_tokens_file_path()
        self.clock = clock
        self._env: List[Credential] = list(env_credentials or [])
        self._cached: List[Credential] = []
        self._unsaved = False
        self._lock = threading.RLock()

    @classmethod
    def from_environment(cls, path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                         clock: Clock = utc_now) -> "CredentialStore":
        return cls(path=path, env_credentials=credentials_from_environment(environ), clock=clock)

    def load_tokens(self) -> List[Credential]:
        """Load the persisted credential list"""
        with self._lock:
            if self._unsaved:
                return [dataclasses.replace(c) for c in self._cached]
            if not os.path.exists(self.path):
                self._cached = []
                return []
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    records = json.load(f)
                if not isinstance(records, list):
                    raise ValueError("token file must contain a JSON list")
                tokens = [Credential.from_record(r) for r in records if isinstance(r, dict) and r.get("id")]
            except (OSError, ValueError, KeyError) as e:
                print(f"[Token Manager] Warning: failed to read {self.path}: {e}")
                return [dataclasses.replace(c) for c in self._cached]
            self._cached = tokens
            return [dataclasses.replace(c) for c in tokens]

    def save_tokens(self, tokens: List[Credential]) -> bool:
        """Persist the credential list; on failure keep it in memory only"""
        with self._lock:
            self._cached = [dataclasses.replace(c) for c in tokens if c.origin != ORIGIN_ENVIRONMENT]
            try:
                os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
                temp_path = f"{self.path}.tmp"
                with open(temp_path, "w", encoding="utf-8") as f:
                    json.dump([c.to_record() for c in self._cached], f, indent=2, ensure_ascii=False)
                os.replace(temp_path, self.path)
            except OSError as e:
                self._unsaved = True
                print(f"[Token Manager] Warning: failed to save {self.path}, keeping change in memory: {e}")
                return False
            self._unsaved = False
            return True

    def list(self) -> List[Credential]:
        """All credentials, environment-provided first"""
        with self._lock:
            env = [dataclasses.replace(c) for c in self._env]
        env_ids = {c.id for c in env}
        env_secrets = {c.secret for c in env}
        persisted = [
            c for c in self.load_tokens()
            if c.id not in env_ids and c.secret not in env_secrets
        ]
        return env + persisted

    def get(self, credential_id: str) -> Optional[Credential]:
        for credential in self.list():
            if credential.id == credential_id:
                return credential
        return None

    def _mutate(self, credential_id: str, update: Callable[[Credential], None]) -> bool:
        with self._lock:
            for credential in self._env:
                if credential.id == credential_id:
                    update(credential)
                    return True

            tokens = self.load_tokens()
            for credential in tokens:
                if credential.id == credential_id:
                    update(credential)
                    self.save_tokens(tokens)
                    return True
        return False

    def mark_invalid(self, credential_id: str) -> bool:
        def update(credential: Credential) -> None:
            credential.invalid = True

        return self._mutate(credential_id, update)

    def mark_cooling_down(self, credential_id: str, hours: float = DEFAULT_COOLDOWN_HOURS) -> bool:
        until = self.clock() + timedelta(hours=hours)

        def update(credential: Credential) -> None:
            credential.cool_down_until = until

        return self._mutate(credential_id, update)

    def mark_valid(self, credential_id: str, new_secret: Optional[str] = None) -> bool:
        def update(credential: Credential) -> None:
            credential.invalid = False
            credential.cool_down_until = None
            if new_secret:
                credential.secret = new_secret

        return self._mutate(credential_id, update)

    def add(self, secret: str, name: Optional[str] = None) -> Credential:
        """Add a persisted credential"""
        with self._lock:
            tokens = self.load_tokens()
            existing_ids = {c.id for c in tokens} | {c.id for c in self._env}
            credential_id = f"acc_{int(time.time() * 1000)}"
            suffix = 1
            while credential_id in existing_ids:
                credential_id = f"acc_{int(time.time() * 1000)}_{suffix}"
                suffix += 1
            credential = Credential(id=credential_id, secret=secret, name=name, origin=ORIGIN_PERSISTED)
            tokens.append(credential)
            self.save_tokens(tokens)
        return dataclasses.replace(credential)

    def remove(self, credential_id: str) -> bool:
        """Delete a persisted credential. Environment credentials cannot be removed."""
        with self._lock:
            tokens = self.load_tokens()
            remaining = [c for c in tokens if c.id != credential_id]
            if len(remaining) == len(tokens):
                return False
            self.save_tokens(remaining)
        return True


class TokenSelector:
    """Round-robin selection over the eligible credentials"""

    def __init__(self, store: CredentialStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or store.clock
        self._cursor = 0
        self._lock = threading.Lock()

    def eligible(self) -> List[Credential]:
        now = self.clock()
        return [c for c in self.store.list() if c.is_eligible(now)]

    def next(self) -> Optional[Credential]:
        eligible = self.eligible()
        if not eligible:
            return None
        with self._lock:
            index = self._cursor % len(eligible)
            self._cursor += 1
        return eligible[index]


class CredentialManager:
    """Owns the credential store and the selector cursor for one process"""

    def __init__(self, store: CredentialStore, selector: Optional[TokenSelector] = None):
        self.store = store
        self.selector = selector or TokenSelector(store)

    @classmethod
    def from_environment(cls, path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                         clock: Clock = utc_now) -> "CredentialManager":
        return cls(CredentialStore.from_environment(path=path, environ=environ, clock=clock))

    @property
    def clock(self) -> Clock:
        return self.store.clock

    def next_credential(self) -> Optional[Credential]:
        return self.selector.next()

    def mark_rate_limited(self, credential_id: str, hours: float = DEFAULT_COOLDOWN_HOURS) -> None:
        print(f"[Token Manager] Account {credential_id} rate limited, cooling down for {hours}h")
        self.store.mark_cooling_down(credential_id, hours)

    def mark_invalid(self, credential_id: str) -> None:
        print(f"[Token Manager] Account {credential_id} token invalid")
        self.store.mark_invalid(credential_id)

    def mark_valid(self, credential_id: str, new_secret: Optional[str] = None) -> None:
        self.store.mark_valid(credential_id, new_secret)

    def list_tokens(self) -> List[Credential]:
        return self.store.list()

    def has_valid_tokens(self) -> bool:
        return bool(self.selector.eligible())

    def describe(self) -> List[Dict]:
        now = self.clock()
        return [c.describe(now) for c in self.store.list()]
