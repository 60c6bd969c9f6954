"""OpenAI HTTP client utilities for generation calls.

Responsibilities:
- Send chat-completions requests to OpenAI's REST API with bounded retries.
- Normalize response extraction, including safety-filtered completions.
- Raise actionable provider exceptions for runner-level error mapping.
"""

from __future__ import annotations

from collections.abc import Callable
import json
import re
import socket
from time import sleep
from typing import Any

import requests

from .rate_limiter import RateLimiter


class GenerationProviderError(RuntimeError):
    """Raised when a provider request fails or returns malformed output."""

    def __init__(
        self,
        message: str,
        *,
        failure_kind: str = "unknown",
        status_code: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        """Initialize provider error metadata for stage-aware diagnostics."""

        super().__init__(message)
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.provider_code = provider_code

    @property
    def retryable(self) -> bool:
        """Return whether a repeat of the same request may succeed."""

        if self.failure_kind in {"timeout", "transport", "rate_limited"}:
            return True
        return self.failure_kind == "http_error" and (self.status_code or 0) >= 500


class OpenAIChatClient:
    """Minimal requests-based OpenAI chat-completions client."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 120.0,
        max_retries: int = 2,
        retry_backoff_seconds: float = 2.0,
        rate_limiter: RateLimiter | None = None,
        sleeper: Callable[[float], None] = sleep,
    ) -> None:
        """Initialize OpenAI HTTP client settings and retry policy."""

        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, max_retries)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self._sleeper = sleeper
        self.retry_attempt_count = 0

    def chat_completion_text(
        self,
        *,
        model: str,
        messages: list[dict[str, str]],
        temperature: float = 0.4,
    ) -> str:
        """Return the first assistant text response from a chat-completions request."""

        self._require_api_key()
        payload = {"model": model, "messages": messages, "temperature": temperature}

        attempt = 0
        while True:
            self.rate_limiter.acquire(f"openai:chat:{model}")
            try:
                raw_payload = self._post_json(endpoint_path="/chat/completions", payload=payload)
                return self._extract_message_text(raw_payload)
            except GenerationProviderError as exc:
                if not exc.retryable or attempt >= self.max_retries:
                    raise
                attempt += 1
                self.retry_attempt_count += 1
                self._sleeper(self.retry_backoff_seconds * attempt)

    def _require_api_key(self) -> None:
        """Require API key presence before issuing OpenAI requests."""

        if not self.api_key:
            raise GenerationProviderError(
                "Missing OpenAI API key. Set `OPENAI_API_KEY` or run "
                "`deepdraft credentials --set-api-key`.",
                failure_kind="invalid_api_key",
            )

    def _post_json(self, *, endpoint_path: str, payload: dict[str, Any]) -> str:
        """Execute an OpenAI JSON POST request and map failures consistently."""

        endpoint = f"{self.base_url}{endpoint_path}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            return bytes(response.content).decode("utf-8")
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            failure_kind = self._classify_transport_failure(exc)
            if failure_kind == "timeout":
                detail = "OpenAI request timed out."
            else:
                detail = f"OpenAI request transport error: {self._short_message(str(exc))}"
            raise GenerationProviderError(detail, failure_kind=failure_kind) from exc
        except (TimeoutError, socket.timeout) as exc:
            raise GenerationProviderError(
                "OpenAI request timed out.",
                failure_kind="timeout",
            ) from exc
        except UnicodeDecodeError as exc:
            raise GenerationProviderError(
                "OpenAI response is not valid UTF-8.",
                failure_kind="malformed_response",
            ) from exc

    @classmethod
    def _extract_message_text(cls, raw_payload: str) -> str:
        """Extract first assistant message text from a chat-completions JSON payload."""

        try:
            payload = json.loads(raw_payload)
        except json.JSONDecodeError as exc:
            raise GenerationProviderError(
                "OpenAI returned invalid JSON payload.",
                failure_kind="malformed_response",
            ) from exc

        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not isinstance(choices, list) or not choices:
            raise GenerationProviderError(
                "OpenAI response missing non-empty `choices` list.",
                failure_kind="malformed_response",
            )

        first_choice = choices[0]
        if not isinstance(first_choice, dict):
            raise GenerationProviderError(
                "OpenAI response `choices[0]` is malformed.",
                failure_kind="malformed_response",
            )
        if first_choice.get("finish_reason") == "content_filter":
            raise GenerationProviderError(
                "OpenAI blocked the completion with its content filter.",
                failure_kind="safety_block",
            )

        message = first_choice.get("message")
        if not isinstance(message, dict):
            raise GenerationProviderError(
                "OpenAI response missing `choices[0].message` object.",
                failure_kind="malformed_response",
            )
        refusal = message.get("refusal")
        if isinstance(refusal, str) and refusal.strip():
            raise GenerationProviderError(
                f"OpenAI refused the request: {cls._short_message(refusal)}",
                failure_kind="safety_block",
            )

        text = cls._message_content_to_text(message.get("content")).strip()
        if not text:
            raise GenerationProviderError(
                "OpenAI response message content is empty.",
                failure_kind="malformed_response",
            )
        return text

    @staticmethod
    def _message_content_to_text(content: Any) -> str:
        """Convert OpenAI message content variants into a plain text string."""

        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                if not isinstance(item, dict):
                    continue
                if item.get("type") == "text" and isinstance(item.get("text"), str):
                    parts.append(item["text"])
            return "".join(parts)
        return ""

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        response = exc.response
        if response is None:
            return ""
        return bytes(response.content or b"").decode("utf-8", errors="replace").strip()

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\bsk-[A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        redacted = re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> tuple[str, str | None]:
        """Extract a concise provider-facing message and optional provider error code."""

        if not body:
            return "", None

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body)), None

        provider_code: str | None = None
        message: str | None = None
        if isinstance(payload, dict):
            error_payload = payload.get("error")
            if isinstance(error_payload, dict):
                code_value = error_payload.get("code")
                if isinstance(code_value, str) and code_value.strip():
                    provider_code = code_value.strip()
                message_value = error_payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value.strip()

        if message is None:
            message = body

        return cls._short_message(cls._redact_sensitive_tokens(message)), provider_code

    @staticmethod
    def _classify_http_failure(
        status_code: int,
        provider_message: str,
        provider_code: str | None,
    ) -> str:
        """Classify OpenAI HTTP errors into deterministic diagnostic kinds."""

        message_lower = provider_message.lower()
        normalized_code = provider_code.lower() if provider_code is not None else ""

        if status_code == 401 or "api key" in message_lower:
            return "invalid_api_key"
        if normalized_code == "insufficient_quota" or (
            status_code == 429 and "quota" in message_lower
        ):
            return "insufficient_quota"
        if status_code == 429:
            return "rate_limited"
        if normalized_code == "content_filter" or "safety" in message_lower:
            return "safety_block"
        if normalized_code == "model_not_found" or (
            "model" in message_lower
            and any(phrase in message_lower for phrase in ("not found", "does not exist"))
        ):
            return "invalid_model"
        if status_code in {408, 504} or "timed out" in message_lower:
            return "timeout"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        """Classify network-layer failures into deterministic diagnostic kinds."""

        if isinstance(reason, TimeoutError | socket.timeout | requests.Timeout):
            return "timeout"
        return "transport"

    @classmethod
    def _http_error_to_provider_error(cls, exc: requests.HTTPError) -> GenerationProviderError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        status_code = exc.response.status_code if exc.response is not None else 0
        body = cls._decode_error_body(exc)
        provider_message, provider_code = cls._extract_provider_message(body)
        failure_kind = cls._classify_http_failure(status_code, provider_message, provider_code)

        headline = {
            "invalid_api_key": "OpenAI authentication failed",
            "insufficient_quota": "OpenAI quota is insufficient for this request",
            "rate_limited": "OpenAI rate limit reached",
            "safety_block": "OpenAI blocked the request",
            "invalid_model": "OpenAI rejected the selected model",
            "timeout": "OpenAI request timed out",
        }.get(failure_kind, "OpenAI request failed")

        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."

        return GenerationProviderError(
            detail,
            failure_kind=failure_kind,
            status_code=status_code,
            provider_code=provider_code,
        )
