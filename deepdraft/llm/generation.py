"""Generation client interfaces and provider integrations.

Responsibilities:
- Define the stateless `generate(prompt, context_refs, model)` protocol used by runners.
- Provide the OpenAI-backed implementation that resolves context documents.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from ..io.storage import DocumentStore
from .openai_client import OpenAIChatClient
from .prompts import PromptLibrary


class GenerationClient(Protocol):
    """Protocol for text generation providers."""

    def generate(
        self,
        prompt: str,
        context_refs: Sequence[str] = (),
        model: str | None = None,
    ) -> str:
        """Return generated text, raising on network, safety, or malformed-response failure."""


class OpenAIGenerationClient:
    """OpenAI-backed generation client with document-store context resolution."""

    def __init__(
        self,
        client: OpenAIChatClient,
        document_store: DocumentStore,
        model: str = "gpt-4.1-mini",
        provider_id: str = "openai",
        max_context_chars: int = 200_000,
        prompts: PromptLibrary | None = None,
    ) -> None:
        """Initialize generation settings and provider client dependencies."""

        self.client = client
        self.document_store = document_store
        self.model = model
        self.provider_id = provider_id
        self.max_context_chars = max_context_chars
        self.prompts = prompts if prompts is not None else PromptLibrary()

    def generate(
        self,
        prompt: str,
        context_refs: Sequence[str] = (),
        model: str | None = None,
    ) -> str:
        """Send one chat-completions request with context documents attached."""

        messages = [{"role": "system", "content": self.prompts.system_prompt()}]
        messages.extend(self._context_messages(context_refs))
        messages.append({"role": "user", "content": prompt})
        return self.client.chat_completion_text(model=model or self.model, messages=messages)

    def _context_messages(self, context_refs: Sequence[str]) -> list[dict[str, str]]:
        """Load referenced documents into user messages within the context cap."""

        messages: list[dict[str, str]] = []
        remaining = self.max_context_chars
        for ref in context_refs:
            if remaining <= 0:
                break
            content = self.document_store.read(ref)[:remaining]
            remaining -= len(content)
            messages.append(
                {"role": "user", "content": f"Reference document `{ref}`:\n\n{content}"}
            )
        return messages

    @property
    def retry_attempt_count(self) -> int:
        """Return retry attempt count performed by the underlying provider client."""

        return self.client.retry_attempt_count
