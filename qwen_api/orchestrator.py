"""
Retry and recovery around upstream chat calls.

Each logical request runs a bounded state machine:

    SELECT_TOKEN -> [CREATE_SESSION] -> SEND -> SUCCESS
                                             -> RATE_LIMITED  -> SELECT_TOKEN
                                             -> INVALID_CRED  -> SELECT_TOKEN
                                             -> UPSTREAM_ERROR / EXHAUSTED -> FAIL

Rate-limited credentials are put on cool-down, rejected ones are invalidated,
and each of those two failure classes is retried at most
``max_retries_per_failure`` times per request.
"""

import dataclasses
import json
import time
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from .config import (
    CHAT_TYPE_VIDEO,
    DEFAULT_COOLDOWN_HOURS,
    DEFAULT_MAX_RETRIES_PER_FAILURE,
    DEFAULT_MODEL,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_MAX_ATTEMPTS,
    is_valid_model,
)
from .conversation import (
    ChatRequest,
    ConversationHandle,
    NormalizedResponse,
    empty_usage,
    normalize_chat_type,
    normalize_content,
)
from .errors import (
    Failure,
    InvalidRequest,
    NoCredentialsAvailable,
    PollTimeout,
    RateLimited,
    TaskFailed,
    TransportFailure,
    UpstreamError,
)
from .extractors import TASK_ID_EXTRACTORS, TASK_RESULT_URL_EXTRACTORS, first_match
from .polling import STATUS_TIMEOUT, PollResult, poll_task_status
from .token_manager import Credential, CredentialManager
from .translator import StreamTranslator, TranslationResult, looks_like_sse, translate_buffered, translate_stream
from .upstream import UpstreamClient, UpstreamReply
from .utils import log_error_request

ChatOutcome = Union[NormalizedResponse, Failure]


class ChatOrchestrator:
    """Runs chat turns against the upstream while rotating credentials"""

    def __init__(self, credentials: CredentialManager,
                 client: Optional[UpstreamClient] = None,
                 default_model: str = DEFAULT_MODEL,
                 cooldown_hours: float = DEFAULT_COOLDOWN_HOURS,
                 max_retries_per_failure: int = DEFAULT_MAX_RETRIES_PER_FAILURE,
                 poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS,
                 poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                 sleep: Callable[[float], None] = time.sleep):
        self.credentials = credentials
        self.client = client or UpstreamClient()
        self.default_model = default_model
        self.cooldown_hours = cooldown_hours
        self.max_retries_per_failure = max_retries_per_failure
        self.poll_max_attempts = poll_max_attempts
        self.poll_interval_ms = poll_interval_ms
        self.sleep = sleep

    @classmethod
    def from_state(cls, state, client: Optional[UpstreamClient] = None) -> "ChatOrchestrator":
        return cls(
            state.credentials,
            client=client,
            default_model=state.default_model,
            cooldown_hours=state.cooldown_hours,
            max_retries_per_failure=state.max_retries_per_failure,
            poll_max_attempts=state.poll_max_attempts,
            poll_interval_ms=state.poll_interval_ms,
        )

    def resolve_model(self, model: Optional[str]) -> str:
        """Fall back to the default model for empty or unknown names"""
        if not model or not model.strip():
            return self.default_model
        if not is_valid_model(model):
            print(f'[Chat] Warning: Model "{model}" not found in available models. Using default.')
            return self.default_model
        return model

    def _recover(self, failure: Failure, retries: Dict[str, int]) -> bool:
        """Update the credential store for a classified failure; True if the request should be retried"""
        if not failure.retryable:
            return False
        if isinstance(failure, RateLimited):
            self.credentials.mark_rate_limited(failure.credential_id, self.cooldown_hours)
        else:
            self.credentials.mark_invalid(failure.credential_id)

        used = retries.get(failure.kind, 0)
        if used >= self.max_retries_per_failure:
            print(f"[Chat] Retry budget for {failure.kind} exhausted")
            return False
        retries[failure.kind] = used + 1
        return True

    def create_chat(self, model: Optional[str] = None) -> Union[ConversationHandle, Failure]:
        """Create a new upstream chat session with credential rotation"""
        model = self.resolve_model(model)
        retries: Dict[str, int] = {}

        while True:
            credential = self.credentials.next_credential()
            if credential is None:
                return NoCredentialsAvailable()
            try:
                created = self.client.create_session(model, credential)
            except (requests.RequestException, ValueError) as e:
                print(f"[Chat] Error creating chat: {type(e).__name__}: {e}")
                return TransportFailure(f"{type(e).__name__}: {e}")

            if isinstance(created, ConversationHandle):
                return created
            if self._recover(created, retries):
                continue
            return created

    def send_message(self, chat_request: ChatRequest) -> ChatOutcome:
        """Run one chat turn and return a normalized response or a failure value"""
        caller_handle = chat_request.handle
        content, error = normalize_content(chat_request.content)
        if error:
            return InvalidRequest(error, chat_id=caller_handle.chat_id, parent_id=caller_handle.parent_id)

        chat_request = dataclasses.replace(
            chat_request,
            content=content,
            model=self.resolve_model(chat_request.model),
            chat_type=normalize_chat_type(chat_request.chat_type),
        )
        print(f'[Chat] Using model: "{chat_request.model}"')

        retries: Dict[str, int] = {}
        handle = caller_handle

        while True:
            credential = self.credentials.next_credential()
            if credential is None:
                return NoCredentialsAvailable().with_handle(handle.chat_id, handle.parent_id)

            print(f"[Chat] Using account: {credential.id} - {credential.name or 'Unknown'}")
            try:
                if handle.is_new:
                    created = self.client.create_session(chat_request.model, credential)
                    if isinstance(created, Failure):
                        if self._recover(created, retries):
                            continue
                        return self._fail(created, handle, chat_request)
                    handle = created

                print(f"[Chat] Sending message to chat {handle.chat_id} with parent_id: {handle.parent_id or 'null'}")
                reply = self.client.send_turn(handle, chat_request, credential)
                if isinstance(reply, Failure):
                    if self._recover(reply, retries):
                        # A chat created during this request belongs to the rejected account
                        handle = caller_handle if caller_handle.is_new else handle
                        continue
                    return self._fail(reply, handle, chat_request)

                return self._complete_turn(reply, handle, chat_request, credential)
            except (requests.RequestException, ValueError) as e:
                print(f"[Chat] Error in send_message: {type(e).__name__}: {e}")
                return TransportFailure(f"{type(e).__name__}: {e}").with_handle(handle.chat_id, handle.parent_id)

    def _fail(self, failure: Failure, handle: ConversationHandle, chat_request: ChatRequest) -> Failure:
        if isinstance(failure, UpstreamError):
            print(f"[Chat] API Error: {failure.status} {failure.body}")
            log_error_request(
                "/api/v2/chat/completions",
                {
                    "model": chat_request.model,
                    "chat_type": chat_request.chat_type,
                    "chat_id": handle.chat_id,
                    "parent_id": handle.parent_id,
                },
                failure.body,
                failure.status,
            )
        return failure.with_handle(handle.chat_id, handle.parent_id)

    def _complete_turn(self, reply: UpstreamReply, handle: ConversationHandle,
                       chat_request: ChatRequest, credential: Credential) -> ChatOutcome:
        chat_type = chat_request.chat_type
        response = reply.response
        try:
            if reply.is_event_stream():
                translation = translate_stream(response.iter_content(chunk_size=None), chat_type)
                return self._from_translation(translation, handle, chat_request)
            text = response.text
        finally:
            response.close()

        if looks_like_sse(text):
            return self._from_translation(translate_buffered(text, chat_type), handle, chat_request)

        data = json.loads(text)
        if not isinstance(data, dict):
            return self._fail(UpstreamError(response.status_code, text), handle, chat_request)
        if data.get("success") is False:
            return self._fail(UpstreamError(response.status_code, text), handle, chat_request)

        task_id = first_match(TASK_ID_EXTRACTORS, data)
        if chat_type == CHAT_TYPE_VIDEO and task_id:
            return self._complete_task(task_id, handle, chat_request, credential)

        translator = StreamTranslator(chat_type)
        translator.feed_frame(data)
        translation = translator.close()
        if not translation.response_id and data.get("id"):
            translation.response_id = str(data["id"])
        return self._from_translation(translation, handle, chat_request)

    def _from_translation(self, translation: TranslationResult, handle: ConversationHandle,
                          chat_request: ChatRequest) -> NormalizedResponse:
        if not translation.finished:
            print("[Stream] Warning: upstream stream ended without a finish marker")
        response_id = translation.response_id
        return NormalizedResponse(
            id=response_id or f"chatcmpl-{int(time.time() * 1000)}",
            model=chat_request.model,
            content=translation.content,
            handle=ConversationHandle(handle.chat_id, response_id or handle.parent_id),
            finish_reason=translation.finish_reason or "stop",
            usage=translation.usage or empty_usage(),
            artifact_url=translation.artifact_url,
        )

    def _complete_task(self, task_id: str, handle: ConversationHandle,
                       chat_request: ChatRequest, credential: Credential) -> ChatOutcome:
        print(f"[Chat] Task created: {task_id}")
        task_handle = ConversationHandle(handle.chat_id, task_id)

        if not chat_request.wait_for_completion:
            return NormalizedResponse(
                id=task_id,
                model=chat_request.model,
                content=f"Task created. Poll /api/tasks/status/{task_id} for results.",
                handle=task_handle,
                task_id=task_id,
                task_status="processing",
            )

        print("[Chat] Waiting for task completion...")
        poll = poll_task_status(
            self.client, task_id, credential,
            max_attempts=self.poll_max_attempts,
            interval_ms=self.poll_interval_ms,
            sleep=self.sleep,
        )

        if poll.success:
            data: Dict[str, Any] = poll.data or {}
            video_url = first_match(TASK_RESULT_URL_EXTRACTORS, data)
            return NormalizedResponse(
                id=task_id,
                model=chat_request.model,
                content=video_url or "Task completed",
                handle=task_handle,
                usage=data.get("usage") or empty_usage(),
                task_id=task_id,
                task_status="completed",
                artifact_url=video_url,
            )

        if poll.status == STATUS_TIMEOUT:
            return PollTimeout(task_id, poll.attempts, chat_id=handle.chat_id, parent_id=handle.parent_id)
        return TaskFailed(task_id, poll.error or "Task failed", data=poll.data,
                          chat_id=handle.chat_id, parent_id=handle.parent_id)

    def check_task(self, task_id: str) -> Union[PollResult, Failure]:
        """Single status check of an asynchronous task"""
        credential = self.credentials.next_credential()
        if credential is None:
            return NoCredentialsAvailable()
        return poll_task_status(self.client, task_id, credential, max_attempts=1, interval_ms=0, sleep=self.sleep)

    def check_credentials(self) -> List[Dict[str, Any]]:
        """
        Validity sweep over every credential.

        Invalid and cooling-down credentials are reported without a network call.
        The rest are probed; accepted ones are marked valid, rejected ones invalid.
        A probe that fails at the transport level leaves the credential untouched
        and reports it as UNKNOWN.
        """
        now = self.credentials.clock()
        accounts = []

        for credential in self.credentials.list_tokens():
            info = credential.describe(now)
            if info["status"] != "OK":
                accounts.append(info)
                continue

            try:
                accepted = self.client.probe(credential.secret)
            except requests.RequestException as e:
                print(f"[Token Manager] Could not check account {credential.id}: {type(e).__name__}")
                info["status"] = "UNKNOWN"
                accounts.append(info)
                continue

            if accepted:
                if credential.cool_down_until is not None:
                    self.credentials.mark_valid(credential.id)
                    info["resetAt"] = None
            else:
                self.credentials.mark_invalid(credential.id)
                info["status"] = "INVALID"
                info["invalid"] = True
            accounts.append(info)

        return accounts
